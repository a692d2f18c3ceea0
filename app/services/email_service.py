import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from app.core.config import settings

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, html_body: str) -> bool:
    """Send email via SMTP (blocking). Returns False when sending is disabled."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send to %s", to_email)
        return False
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
        server.starttls()
        server.login(settings.smtp_user, settings.smtp_password)
        server.sendmail(settings.from_email, [to_email], msg.as_string())
    logger.info("Email sent to %s", to_email)
    return True


def build_message_html(title: str, body: str, action_url: str | None = None, action_label: str = "Open") -> str:
    action_html = ""
    if action_url:
        action_html = (
            f'<p style="margin:24px 0 0 0;"><a href="{escape(action_url, quote=True)}" '
            'style="background:#4f46e5;color:#ffffff;padding:10px 18px;border-radius:6px;'
            f'text-decoration:none;font-size:14px;">{escape(action_label)}</a></p>'
        )
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)}</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0">
    <tr>
      <td align="center" style="padding:40px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:520px;background:#ffffff;border-radius:12px;">
          <tr>
            <td style="padding:32px;">
              <h1 style="margin:0 0 12px 0;font-size:20px;color:#111827;">{escape(title)}</h1>
              <p style="margin:0;font-size:15px;color:#374151;">{escape(body)}</p>
              {action_html}
            </td>
          </tr>
          <tr>
            <td style="padding:20px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;font-size:13px;color:#6b7280;">
              {escape(settings.site_name)} &nbsp;&middot;&nbsp; {escape(settings.contact_email)}
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_notification_email(to_email: str, title: str, body: str) -> bool:
    subject = f"{settings.site_name} – {title}"
    return _send_email_sync(to_email, subject, build_message_html(title, body))


def send_verification_email(to_email: str, recipient_name: str | None, token: str) -> None:
    """Compose and send the e-mail verification link (call from a background task)."""
    link = f"{settings.frontend_url.rstrip('/')}/verify-email?token={token}"
    html = build_message_html(
        "Verify your email",
        f"Hi {recipient_name or 'there'}, confirm your email address to start booking sessions.",
        action_url=link,
        action_label="Verify email",
    )
    try:
        _send_email_sync(to_email, f"{settings.site_name} – Verify your email", html)
    except Exception as e:
        logger.exception("Failed to send verification email to %s: %s", to_email, e)
