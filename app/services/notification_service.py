"""Booking status e-mails. Fire-and-forget: queued as background tasks, failures only logged."""
import logging
import smtplib
from dataclasses import dataclass
from datetime import date, time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.booking import Booking
from app.models.user import User

logger = logging.getLogger(__name__)

# event -> (subject, headline)
EVENTS: dict[str, tuple[str, str]] = {
    "booking.created": ("Nowa rezerwacja", "Masz nową prośbę o rezerwację."),
    "booking.confirmed": ("Rezerwacja potwierdzona", "Twoja rezerwacja została potwierdzona."),
    "booking.rejected": ("Rezerwacja odrzucona", "Usługodawca odrzucił Twoją rezerwację."),
    "booking.quote_sent": ("Nowa wycena", "Otrzymałeś wycenę usługi."),
    "booking.started": ("Usługa rozpoczęta", "Usługodawca rozpoczął realizację usługi."),
    "booking.completed": ("Usługa zakończona", "Usługa została zakończona. Podziel się opinią!"),
    "booking.cancelled": ("Rezerwacja anulowana", "Klient anulował rezerwację."),
}


@dataclass(frozen=True)
class BookingNotice:
    event: str
    to_email: str
    recipient_name: str | None
    booking_number: str | None
    booking_date: date
    start_time: time
    end_time: time
    status: str
    reason: str | None = None


def _send_email_sync(to_email: str, subject: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def build_booking_notice_html(notice: BookingNotice) -> str:
    _, headline = EVENTS[notice.event]
    when = (
        f"{notice.booking_date.strftime('%d.%m.%Y')}, "
        f"{notice.start_time.strftime('%H:%M')}–{notice.end_time.strftime('%H:%M')}"
    )
    reason_html = ""
    if notice.reason:
        reason_html = f'<p style="margin:0 0 16px 0;color:#6b7280;">Powód: {escape(notice.reason)}</p>'
    return f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{escape(settings.site_name)}</title></head>
<body style="margin:0;padding:24px;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background:#f3f4f6;">
  <div style="max-width:560px;margin:0 auto;background:#ffffff;border-radius:12px;padding:32px;">
    <p style="margin:0 0 8px 0;font-size:15px;color:#374151;">Cześć {escape(notice.recipient_name or '')},</p>
    <h1 style="margin:0 0 16px 0;font-size:20px;color:#111827;">{escape(headline)}</h1>
    <p style="margin:0 0 8px 0;color:#374151;">Rezerwacja <strong>{escape(notice.booking_number or '')}</strong></p>
    <p style="margin:0 0 16px 0;color:#374151;">Termin: <strong>{when}</strong></p>
    {reason_html}
    <p style="margin:24px 0 0 0;font-size:13px;color:#6b7280;">{escape(settings.site_name)} · {escape(settings.contact_email)}</p>
  </div>
</body>
</html>
"""


def send_booking_notice(notice: BookingNotice) -> None:
    subject, _ = EVENTS[notice.event]
    _send_email_sync(notice.to_email, f"{settings.site_name} – {subject}", build_booking_notice_html(notice))


async def queue_booking_notice(
    background_tasks: BackgroundTasks,
    session: AsyncSession,
    booking: Booking,
    event: str,
    recipient_id: int,
) -> None:
    """Resolve the recipient now, send after the response."""
    recipient = await session.get(User, recipient_id)
    if not recipient:
        logger.warning("Notification %s for booking %s: recipient %s missing", event, booking.id, recipient_id)
        return
    background_tasks.add_task(
        send_booking_notice,
        BookingNotice(
            event=event,
            to_email=recipient.email,
            recipient_name=recipient.full_name,
            booking_number=booking.booking_number,
            booking_date=booking.booking_date,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status,
            reason=booking.cancellation_reason,
        ),
    )
