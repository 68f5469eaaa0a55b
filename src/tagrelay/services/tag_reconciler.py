from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from tagrelay.core.errors import TagMutationError
from tagrelay.core.logging import one_line
from tagrelay.core.outcome import StepResult
from tagrelay.core.stripe_events import TagDirection
from tagrelay.integrations.bothelp.client import BothelpClient

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TagAction:
    subscriber_id: str
    tag: str
    direction: TagDirection


class TagReconciler:
    """
    Adds or removes a tag on a BotHelp subscriber.

    Never raises: every failure comes back as a failed StepResult and is
    logged here. Repeating the same action is left to BotHelp, which treats
    it as a no-op.
    """

    def __init__(self, client: BothelpClient):
        self.client = client

    async def set_tag(
        self, subscriber_id: Optional[str], tag: str, direction: TagDirection
    ) -> StepResult:
        if not subscriber_id:
            return StepResult.skip("no_subscriber")

        action = TagAction(subscriber_id=subscriber_id, tag=tag, direction=direction)
        try:
            return await self._apply(action)
        except Exception as e:
            result = StepResult.failure(e)
            logger.error(
                "tag_mutation_error",
                subscriber_id=subscriber_id,
                tag=tag,
                direction=direction.value,
                error=result.error_code,
                detail=result.error_detail,
            )
            return result

    async def _apply(self, action: TagAction) -> StepResult:
        try:
            if action.direction is TagDirection.ADD:
                resp = await self.client.add_tag(action.subscriber_id, action.tag)
            else:
                resp = await self.client.remove_tag(action.subscriber_id, action.tag)
        except httpx.HTTPError as e:
            raise TagMutationError(f"BotHelp tag {action.direction.value} failed: {type(e).__name__}: {e}") from e

        if resp.status_code < 200 or resp.status_code >= 300:
            body = one_line(resp.text, 300)
            raise TagMutationError(
                f"BotHelp tag {action.direction.value} returned {resp.status_code}: {body}",
                status_code=resp.status_code,
                body=body,
            )

        logger.info(
            "tag_applied",
            subscriber_id=action.subscriber_id,
            tag=action.tag,
            direction=action.direction.value,
        )
        return StepResult.success(action)
