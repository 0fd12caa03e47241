import logging
import re
from typing import List, Optional, Union

import requests

from storefront.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


def is_valid_email(email):
    if isinstance(email, list):
        return all(is_valid_email(e) for e in email)

    if not email:
        return False

    return re.match(r"[^@]+@[^@]+\.[^@]+", email) is not None


def send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    to_name: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> bool:
    """
    Send email via Brevo. Best effort: never raises, returns whether
    Brevo accepted the message.
    """
    settings = settings or default_settings

    # Normalize emails into a list
    if isinstance(to, list):
        valid_emails = [e for e in to if is_valid_email(e)]
    else:
        valid_emails = [to] if is_valid_email(to) else []

    if not valid_emails:
        logger.warning(f"No valid emails found: {to}")
        return False

    recipients = []
    for email in valid_emails:
        recipient = {"email": email}
        if to_name and not isinstance(to, list):
            recipient["name"] = to_name
        recipients.append(recipient)

    payload = {
        "sender": {
            "email": settings.mail_from,
            "name": settings.store_name,
        },
        "to": recipients,
        "subject": subject,
        "htmlContent": html,
    }

    headers = {
        "accept": "application/json",
        "api-key": settings.brevo_api_key,
        "Content-Type": "application/json",
    }

    try:
        response = requests.post(
            BREVO_API_URL,
            json=payload,
            headers=headers,
            timeout=10,
        )

        if response.status_code >= 400:
            logger.error(
                f"Brevo email failed ({response.status_code}): {response.text}"
            )
            return False

        logger.info(f"Brevo email sent to {valid_emails}")
        return True

    except requests.RequestException:
        logger.exception("Brevo email exception")
        return False
