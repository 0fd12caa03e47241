import logging

from jinja2 import TemplateError

from storefront.notifications.rules import NOTIFICATION_RULES
from storefront.notifications.channels import Channel
from storefront.notifications.email_handlers import send_user_email, send_admin_email
from storefront.notifications.events import NotificationEvent
from storefront.config import settings

logger = logging.getLogger(__name__)


def dispatch_order_event(
    *,
    event: NotificationEvent,
    recipient_email: str | None,
    recipient_name: str | None = None,
    extra: dict | None = None,
    notify_user: bool = True,
    notify_admin: bool = True,
) -> bool:
    """
    Central notification dispatcher, fire-and-forget.

    Handles:
    - user email
    - admin email

    Returns True when every attempted email was accepted. Never raises:
    a failed notification must not undo or fail the order change that
    triggered it.
    """

    rules = NOTIFICATION_RULES.get(event, {})
    extra = extra or {}
    delivered = True

    # -------------------------
    # USER EMAIL
    # -------------------------
    if notify_user and rules.get(Channel.EMAIL_USER) and recipient_email:
        try:
            sent = send_user_email(
                template=extra["user_template"],
                subject=extra["user_subject"],
                to=recipient_email,
                to_name=recipient_name,
                **extra,
            )
            delivered = delivered and sent
        except (KeyError, TemplateError):
            logger.exception("User email for %s failed", event.value)
            delivered = False

    # -------------------------
    # ADMIN EMAIL
    # -------------------------
    if notify_admin and rules.get(Channel.EMAIL_ADMIN) and settings.admin_emails:
        try:
            sent = send_admin_email(
                template=extra["admin_template"],
                subject=extra["admin_subject"],
                **extra,
            )
            delivered = delivered and sent
        except (KeyError, TemplateError):
            logger.exception("Admin email for %s failed", event.value)
            delivered = False

    return delivered
