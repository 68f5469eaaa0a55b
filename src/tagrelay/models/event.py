from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

import structlog
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from tagrelay.core.stripe_events import (
    CHECKOUT_COMPLETED,
    INVOICE_PAYMENT_FAILED,
    INVOICE_PAYMENT_SUCCEEDED,
    SUBSCRIPTION_DELETED,
    SUBSCRIPTION_TRIAL_ENDING,
)

logger = structlog.get_logger(__name__)

# Stripe occasionally sends metadata: null
Metadata = Annotated[dict[str, Any], BeforeValidator(lambda v: v or {})]


class _StripeModel(BaseModel):
    # Stripe sends far more than we read; keep only declared fields
    model_config = ConfigDict(extra="ignore", frozen=True)


class Price(_StripeModel):
    id: Optional[str] = None
    metadata: Metadata = Field(default_factory=dict)


class LineItem(_StripeModel):
    price: Optional[Price] = None
    metadata: Metadata = Field(default_factory=dict)


class LineItemList(_StripeModel):
    data: list[LineItem] = Field(default_factory=list)


class CustomerDetails(_StripeModel):
    email: Optional[str] = None


class ExpandedCustomer(_StripeModel):
    id: Optional[str] = None
    email: Optional[str] = None
    metadata: Metadata = Field(default_factory=dict)


class SubscriptionDetails(_StripeModel):
    metadata: Metadata = Field(default_factory=dict)


class _CustomerOwned(_StripeModel):
    id: Optional[str] = None
    customer: Union[str, ExpandedCustomer, None] = None
    metadata: Metadata = Field(default_factory=dict)

    @property
    def customer_id(self) -> Optional[str]:
        if isinstance(self.customer, ExpandedCustomer):
            return self.customer.id
        return self.customer or None


class CheckoutSession(_CustomerOwned):
    client_reference_id: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    customer_email: Optional[str] = None
    line_items: Optional[LineItemList] = None


class Invoice(_CustomerOwned):
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    subscription_details: Optional[SubscriptionDetails] = None
    lines: Optional[LineItemList] = None


class Subscription(_CustomerOwned):
    status: Optional[str] = None
    items: Optional[LineItemList] = None


def _scalar_id(v: Any) -> Optional[str]:
    if isinstance(v, bool) or not isinstance(v, (str, int)):
        return None
    return str(v)


# Envelope bookkeeping only; a bad value here must not sink the delivery
EnvelopeId = Annotated[Optional[str], BeforeValidator(_scalar_id)]
EnvelopeFlag = Annotated[Optional[bool], BeforeValidator(lambda v: v if isinstance(v, bool) else None)]


class _EventBase(_StripeModel):
    id: EnvelopeId = None
    livemode: EnvelopeFlag = None


class CheckoutCompletedEvent(_EventBase):
    type: Literal["checkout.session.completed"]
    object: CheckoutSession


class InvoicePaidEvent(_EventBase):
    type: Literal["invoice.payment_succeeded"]
    object: Invoice


class InvoiceFailedEvent(_EventBase):
    type: Literal["invoice.payment_failed"]
    object: Invoice


class SubscriptionDeletedEvent(_EventBase):
    type: Literal["customer.subscription.deleted"]
    object: Subscription


class TrialEndingEvent(_EventBase):
    type: Literal["customer.subscription.trial_will_end"]
    object: Subscription


class UnknownEvent(_EventBase):
    type: str
    object: dict[str, Any] = Field(default_factory=dict)


StripeEvent = Union[
    CheckoutCompletedEvent,
    InvoicePaidEvent,
    InvoiceFailedEvent,
    SubscriptionDeletedEvent,
    TrialEndingEvent,
    UnknownEvent,
]

_EVENT_MODELS: dict[str, type[_EventBase]] = {
    CHECKOUT_COMPLETED: CheckoutCompletedEvent,
    INVOICE_PAYMENT_SUCCEEDED: InvoicePaidEvent,
    INVOICE_PAYMENT_FAILED: InvoiceFailedEvent,
    SUBSCRIPTION_DELETED: SubscriptionDeletedEvent,
    SUBSCRIPTION_TRIAL_ENDING: TrialEndingEvent,
}


def parse_event(raw: dict[str, Any]) -> StripeEvent:
    """
    Verified Stripe payload (dict) -> typed event variant.

    The Stripe envelope nests the object under data.object; it is lifted to
    `object` here. A recognized type whose object does not validate degrades
    to UnknownEvent instead of failing the delivery.
    """
    event_type = str(raw.get("type") or "unknown")
    data = raw.get("data") or {}
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        obj = {}

    fields = {"id": raw.get("id"), "livemode": raw.get("livemode"), "type": event_type, "object": obj}

    model = _EVENT_MODELS.get(event_type)
    if model is not None:
        try:
            return model.model_validate(fields)  # type: ignore[return-value]
        except ValidationError as e:
            logger.warning(
                "event_object_invalid",
                event_type=event_type,
                event_id=raw.get("id"),
                errors=e.error_count(),
            )

    try:
        return UnknownEvent.model_validate(fields)
    except ValidationError as e:
        logger.warning("event_envelope_invalid", event_type=event_type, errors=e.error_count())
        return UnknownEvent(type=event_type)
