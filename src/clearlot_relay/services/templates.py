"""Copy for user-facing notifications.

Status copy comes from fixed lookup tables; anything not listed falls back
to a generic line that names the status.
"""

from __future__ import annotations

from clearlot_relay.models.notification import NotificationPriority

BUYER_STATUS_TITLES: dict[str, str] = {
    "pending": "Order awaiting payment review",
    "approved": "Payment approved!",
    "shipped": "Your order has shipped!",
    "delivered": "Your order has arrived!",
    "completed": "Order completed!",
}

BUYER_STATUS_MESSAGES: dict[str, str] = {
    "pending": 'Your order "{offer}" is awaiting payment review.',
    "approved": 'Your payment for "{offer}" has been approved!',
    "shipped": 'Your order "{offer}" has shipped and is on its way!',
    "delivered": 'Your order "{offer}" has been delivered! Please confirm receipt.',
    "completed": 'Your order "{offer}" has been completed successfully!',
}

SELLER_STATUS_TITLES: dict[str, str] = {
    "approved": "Payment received!",
    "shipped": "Order marked as shipped",
    "delivered": "Order delivered",
    "completed": "Order completed!",
}

SELLER_STATUS_MESSAGES: dict[str, str] = {
    "approved": 'Payment for "{offer}" has been received. Please prepare the shipment.',
    "shipped": 'Your order "{offer}" has been marked as shipped.',
    "delivered": 'Your order "{offer}" has been delivered to the buyer.',
    "completed": 'Your order "{offer}" has been completed successfully!',
}

SELLER_NOTIFIED_STATUSES = frozenset(SELLER_STATUS_TITLES)

HIGH_PRIORITY_STATUSES = frozenset({"approved", "delivered", "completed"})
MEDIUM_PRIORITY_STATUSES = frozenset({"shipped", "pending"})

VERIFICATION_COPY: dict[str, tuple[str, str]] = {
    "approved": (
        "Verification approved!",
        "Your business verification has been approved. You now have full access to the marketplace.",
    ),
    "rejected": (
        "Verification rejected",
        "Your business verification was rejected.",
    ),
    "pending": (
        "Verification under review",
        "Your verification documents were received and are being reviewed.",
    ),
    "not_submitted": (
        "Verification required",
        "Please submit your business verification documents to start trading.",
    ),
}

ACCOUNT_STATUS_COPY: dict[str, tuple[str, str]] = {
    "active": ("Account activated", "Your account is active. Welcome back!"),
    "inactive": ("Account deactivated", "Your account has been deactivated."),
    "suspended": (
        "Account suspended",
        "Your account has been suspended. Please contact support for details.",
    ),
    "pending": ("Account pending review", "Your account is pending review by our team."),
}

DEFAULT_OFFER_TITLE = "your item"
UNKNOWN_USER_NAME = "Unknown User"


def status_priority(status: str) -> NotificationPriority:
    if status in HIGH_PRIORITY_STATUSES:
        return NotificationPriority.HIGH
    if status in MEDIUM_PRIORITY_STATUSES:
        return NotificationPriority.MEDIUM
    return NotificationPriority.LOW


def buyer_status_copy(status: str, offer_title: str) -> tuple[str, str]:
    title = BUYER_STATUS_TITLES.get(status, f"Order status: {status}")
    template = BUYER_STATUS_MESSAGES.get(status, "Your order status has been updated to {status}.")
    return title, template.format(offer=offer_title, status=status)


def seller_status_copy(status: str, offer_title: str) -> tuple[str, str]:
    title = SELLER_STATUS_TITLES.get(status, f"Order status: {status}")
    template = SELLER_STATUS_MESSAGES.get(status, "Order status has been updated to {status}.")
    return title, template.format(offer=offer_title, status=status)


def verification_copy(outcome: str, reason: str | None = None) -> tuple[str, str]:
    title, message = VERIFICATION_COPY.get(
        outcome,
        ("Verification status updated", f"Your verification status is now {outcome}."),
    )
    if outcome == "rejected" and reason:
        message = f"{message} Reason: {reason}"
    return title, message


def account_status_copy(status: str) -> tuple[str, str]:
    return ACCOUNT_STATUS_COPY.get(
        status,
        ("Account status updated", f"Your account status is now {status}."),
    )


def message_preview(content: str, limit: int) -> str:
    """Truncate a message body for display in a notification."""
    if len(content) <= limit:
        return content
    return content[:limit] + "..."


def purchase_created_copy(buyer_name: str, offer_title: str, amount: float) -> tuple[str, str]:
    return (
        "New order received!",
        f'{buyer_name} purchased "{offer_title}" for HKD {amount:.2f}.',
    )


def price_drop_copy(offer_title: str, previous: float, current: float, percentage: int) -> tuple[str, str]:
    return (
        "Price drop alert!",
        f'The price of "{offer_title}" dropped from HKD {previous:.2f} '
        f"to HKD {current:.2f} ({percentage}% off)!",
    )


def delivery_reminder_copy(offer_title: str) -> tuple[str, str]:
    return (
        "Please confirm receipt",
        f'Your order "{offer_title}" has shipped. Please check whether it has '
        "arrived and confirm receipt.",
    )


def delivery_escalation_copy(
    buyer_name: str, seller_name: str, offer_title: str, hours: float
) -> tuple[str, str]:
    return (
        "Buyer has not confirmed receipt",
        f'Buyer {buyer_name} has not confirmed receipt of "{offer_title}" '
        f"{hours:.0f} hours after shipment (seller: {seller_name}).",
    )
