from enum import Enum
from typing import Final


class TagDirection(str, Enum):
    ADD = "add"
    REMOVE = "remove"


CHECKOUT_COMPLETED: Final[str] = "checkout.session.completed"
INVOICE_PAYMENT_SUCCEEDED: Final[str] = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED: Final[str] = "invoice.payment_failed"
SUBSCRIPTION_DELETED: Final[str] = "customer.subscription.deleted"
SUBSCRIPTION_TRIAL_ENDING: Final[str] = "customer.subscription.trial_will_end"

# Event type -> what happens to the access tag.
# Types not listed here (trial ending included) are logged and acknowledged.
TAG_DIRECTIONS: Final[dict[str, TagDirection]] = {
    CHECKOUT_COMPLETED: TagDirection.ADD,
    INVOICE_PAYMENT_SUCCEEDED: TagDirection.ADD,
    INVOICE_PAYMENT_FAILED: TagDirection.REMOVE,
    SUBSCRIPTION_DELETED: TagDirection.REMOVE,
}

# identity written back to the Stripe customer only from these
IDENTITY_WRITE_BACK_TYPES: Final[set[str]] = {CHECKOUT_COMPLETED}
