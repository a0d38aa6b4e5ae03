from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from email.message import EmailMessage
from html import escape
import logging
import smtplib
import ssl
import time

from app.core.config import get_settings
from app.core.timeutils import as_utc

logger = logging.getLogger(__name__)


class EmailDeliveryError(RuntimeError):
    pass


def _classify_smtp_data_error(exc: smtplib.SMTPDataError) -> str:
    smtp_error = exc.smtp_error
    if isinstance(smtp_error, bytes):
        message = smtp_error.decode("utf-8", errors="ignore").lower()
    else:
        message = str(smtp_error).lower()

    if any(marker in message for marker in ("sending limit", "quota", "too many messages", "rate limit")):
        return "SMTP sender rate limited"
    if "recipient" in message and "rejected" in message:
        return "SMTP recipient rejected"
    if "sender" in message and "rejected" in message:
        return "SMTP sender rejected"
    return "SMTP data rejected"


def _is_connection_issue(exc: Exception) -> bool:
    return isinstance(
        exc,
        (
            smtplib.SMTPConnectError,
            smtplib.SMTPServerDisconnected,
            smtplib.SMTPHeloError,
            OSError,
            TimeoutError,
        ),
    )


def _build_message(
    settings,
    *,
    recipients: Sequence[str],
    subject: str,
    text_content: str,
    html_content: str | None = None,
) -> EmailMessage:
    from_email = settings.smtp_from_email
    message = EmailMessage()
    message["From"] = f"{settings.smtp_from_name} <{from_email}>" if settings.smtp_from_name else from_email
    # A single recipient is addressed directly; bulk sends keep the list private.
    message["To"] = recipients[0] if len(recipients) == 1 else from_email
    message["Subject"] = subject
    message.set_content(text_content)
    if html_content:
        message.add_alternative(html_content, subtype="html")
    return message


def _deliver(settings, message: EmailMessage, recipients: Sequence[str]) -> None:
    timeout = max(1, settings.smtp_timeout_seconds)
    if settings.smtp_use_ssl:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=timeout) as smtp:
            if settings.smtp_username:
                smtp.login(settings.smtp_username, settings.smtp_password or "")
            smtp.send_message(message, to_addrs=list(recipients))
        return

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=timeout) as smtp:
        if settings.smtp_use_tls:
            smtp.starttls(context=ssl.create_default_context())
        if settings.smtp_username:
            smtp.login(settings.smtp_username, settings.smtp_password or "")
        smtp.send_message(message, to_addrs=list(recipients))


def send_email(
    *,
    to_emails: Sequence[str],
    subject: str,
    text_content: str,
    html_content: str | None = None,
) -> None:
    settings = get_settings()
    if not settings.smtp_host or not settings.smtp_from_email:
        raise EmailDeliveryError("SMTP is not configured")
    recipients = [item for item in dict.fromkeys(to_emails) if item]
    if not recipients:
        raise EmailDeliveryError("No recipients specified")

    retry_attempts = max(1, settings.smtp_retry_attempts)
    retry_backoff_seconds = max(0.0, settings.smtp_retry_backoff_seconds)
    message = _build_message(
        settings,
        recipients=recipients,
        subject=subject,
        text_content=text_content,
        html_content=html_content,
    )

    last_error: Exception | None = None
    last_error_message = "Unable to deliver email"
    for attempt in range(1, retry_attempts + 1):
        try:
            _deliver(settings, message, recipients)
            return
        except smtplib.SMTPAuthenticationError as exc:
            last_error, last_error_message = exc, "SMTP authentication failed"
            break
        except smtplib.SMTPDataError as exc:
            last_error, last_error_message = exc, _classify_smtp_data_error(exc)
            break
        except smtplib.SMTPRecipientsRefused as exc:
            last_error, last_error_message = exc, "SMTP recipient rejected"
            break
        except smtplib.SMTPSenderRefused as exc:
            last_error, last_error_message = exc, "SMTP sender rejected"
            break
        except Exception as exc:
            last_error = exc
            if not _is_connection_issue(exc):
                last_error_message = "Unable to deliver email"
                break
            last_error_message = "SMTP connection failed"
            if attempt < retry_attempts and retry_backoff_seconds > 0:
                time.sleep(retry_backoff_seconds * attempt)

    logger.warning("Email delivery to %d recipient(s) failed: %s", len(recipients), last_error_message)
    raise EmailDeliveryError(last_error_message) from last_error


def _format_time(value: datetime | None) -> str:
    normalized = as_utc(value)
    if normalized is None:
        return "Not specified"
    return normalized.strftime("%B %d, %Y %H:%M UTC")


def _html_body(heading: str, description: str, details: Sequence[str], link: str) -> str:
    detail_items = "".join(f"<li>{escape(item)}</li>" for item in details)
    paragraphs = "".join(f"<p>{escape(line)}</p>" for line in description.splitlines() if line.strip())
    return (
        f"<h2>{escape(heading)}</h2>"
        f"{paragraphs}"
        f"<ul>{detail_items}</ul>"
        f"<p><a href=\"{escape(link, quote=True)}\">View announcement</a></p>"
    )


def send_announcement_email(
    *,
    title: str,
    description: str,
    category: str,
    recipient_emails: Sequence[str],
    expiry_date: datetime | None = None,
    scheduled_at: datetime | None = None,
) -> None:
    settings = get_settings()
    details = [f"Category: {category}"]
    if scheduled_at is not None:
        details.append(f"Published: {_format_time(scheduled_at)}")
    if expiry_date is not None:
        details.append(f"Expires: {_format_time(expiry_date)}")
    lines = [title, "", description, "", *details, "", f"View announcement: {settings.frontend_url}"]
    send_email(
        to_emails=recipient_emails,
        subject=f"New Announcement: {title}",
        text_content="\n".join(lines),
        html_content=_html_body(title, description, details, settings.frontend_url),
    )


def send_reminder_email(
    *,
    title: str,
    description: str,
    category: str,
    recipient_emails: Sequence[str],
    reminder_time: datetime | None,
) -> None:
    settings = get_settings()
    details = [f"Category: {category}", f"Reminder Time: {_format_time(reminder_time)}"]
    text_content = "\n".join(
        [f"Reminder: {title}", "", description, "", *details, "", f"View announcement: {settings.frontend_url}"]
    )
    send_email(
        to_emails=recipient_emails,
        subject=f"Reminder: {title}",
        text_content=text_content,
        html_content=_html_body(f"Reminder: {title}", description, details, settings.frontend_url),
    )
