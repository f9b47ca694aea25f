import httpx
from ..core.config import settings
import logging

logger = logging.getLogger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
PLACEHOLDER_API_KEY = "your-sendgrid-api-key-here"


class EmailDeliveryError(Exception):
    pass


def _sendgrid_configured() -> bool:
    return bool(settings.sendgrid_api_key) and settings.sendgrid_api_key != PLACEHOLDER_API_KEY


def build_reset_url(token: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/reset-password/{token}"


def _reset_email_html(first_name: str, reset_url: str) -> str:
    return f"""
      <div dir="rtl" style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #0077b6;">איפוס סיסמה</h2>
        <p>שלום {first_name},</p>
        <p>קיבלנו בקשה לאיפוס הסיסמה שלך במערכת קורס מדריכי צלילה.</p>
        <p>לחץ על הכפתור הבא לאיפוס הסיסמה:</p>
        <p style="text-align: center; margin: 30px 0;">
          <a href="{reset_url}"
             style="background-color: #0077b6; color: white; padding: 12px 24px;
                    text-decoration: none; border-radius: 4px; display: inline-block;">
            איפוס סיסמה
          </a>
        </p>
        <p>או העתק את הקישור הבא לדפדפן:</p>
        <p style="word-break: break-all; color: #666;">{reset_url}</p>
        <p><strong>קישור זה יפוג תוך שעה אחת.</strong></p>
        <p>אם לא ביקשת לאפס את הסיסמה, התעלם מהודעה זו.</p>
      </div>
    """


async def send_password_reset_email(email: str, token: str, first_name: str) -> dict:
    """
    Send the reset link through SendGrid. Without an API key the link is only
    logged and a simulated result is returned.
    """
    reset_url = build_reset_url(token)

    if not _sendgrid_configured():
        logger.warning(f"SendGrid not configured. Reset URL for {email}: {reset_url}")
        return {"success": True, "simulated": True, "reset_url": reset_url}

    payload = {
        "personalizations": [{"to": [{"email": email}]}],
        "from": {"email": settings.sendgrid_from_email},
        "subject": "איפוס סיסמה - מערכת קורס מדריכי צלילה",
        "content": [{"type": "text/html", "value": _reset_email_html(first_name, reset_url)}]
    }
    headers = {"Authorization": f"Bearer {settings.sendgrid_api_key}"}

    try:
        async with httpx.AsyncClient(timeout=20) as client:
            response = await client.post(SENDGRID_URL, json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.error(f"SendGrid request failed: {e}")
        raise EmailDeliveryError("Error sending email") from e

    if response.status_code >= 400:
        logger.error(f"SendGrid error {response.status_code}: {response.text}")
        raise EmailDeliveryError("Error sending email")

    logger.info(f"Password reset email sent to {email}")
    return {"success": True}
