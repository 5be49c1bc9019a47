"""
New-lead email alert - SendGrid-based notification to the form owner.

Runs detached from the submission request. Every failure is logged and
swallowed: the lead is already stored, the alert is best-effort.
"""
import asyncio
import html
import logging
from dataclasses import dataclass

from leadcapture.config import get_settings
from leadcapture.utils.logging import mask_email

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeadSummary:
    form_name: str
    name: str
    email: str
    source: str


def _render(summary: LeadSummary, dashboard_url: str) -> tuple[str, str]:
    rows = (
        ("Name", summary.name or "-"),
        ("Email", summary.email or "-"),
        ("Source", summary.source),
        ("Form", summary.form_name),
    )
    table = "".join(
        f'<tr><td style="padding: 10px 16px; color: #777; font-size: 13px; width: 100px;">{label}</td>'
        f'<td style="padding: 10px 16px; color: #111; font-size: 14px;">{html.escape(value)}</td></tr>'
        for label, value in rows
    )
    html_content = f"""
    <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 480px; margin: 0 auto; padding: 40px 20px;">
      <h2 style="margin: 0 0 16px; color: #111; font-size: 20px;">New lead received</h2>
      <p style="color: #555; font-size: 15px; line-height: 1.6;">
        You have a new submission from your form "{html.escape(summary.form_name)}".
      </p>
      <table cellpadding="0" cellspacing="0" style="width: 100%; border-collapse: collapse; border: 1px solid #eee;">
        {table}
      </table>
      <p style="color: #999; font-size: 13px; line-height: 1.5; margin-top: 20px;">
        View and manage all leads in your <a href="{html.escape(dashboard_url)}">dashboard</a>.
      </p>
    </div>
    """

    text = (
        f'You have a new submission from your form "{summary.form_name}".\n\n'
        + "".join(f"{label}: {value}\n" for label, value in rows)
        + f"\nView and manage all leads in your dashboard: {dashboard_url}\n"
    )
    return html_content, text


async def notify_new_lead(tenant_email: str, summary: LeadSummary) -> bool:
    """Send the new-lead alert. Returns True when SendGrid accepted the message."""
    settings = get_settings()
    if not settings.sendgrid_api_key:
        logger.warning("SendGrid not configured, skipping new-lead alert to %s", mask_email(tenant_email))
        return False

    subject = f"New lead: {summary.form_name}"
    html_content, text_content = _render(summary, settings.dashboard_base_url)

    try:
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Content, Email, Mail, To

        message = Mail(
            from_email=Email(settings.from_email, settings.from_name),
            to_emails=To(tenant_email),
            subject=subject,
        )
        message.content = [
            Content("text/plain", text_content),
            Content("text/html", html_content),
        ]

        sg = SendGridAPIClient(api_key=settings.sendgrid_api_key)
        # Offload synchronous SendGrid SDK call to thread pool
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: sg.send(message))

        logger.info("New-lead alert sent: to=%s form=%s", mask_email(tenant_email), summary.form_name[:40])
        return True

    except Exception as e:
        logger.error("New-lead alert failed: to=%s error=%s", mask_email(tenant_email), str(e))
        return False
