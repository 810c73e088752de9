from __future__ import annotations

import logging
import smtplib
from email.mime.text import MIMEText

from .model import ReconciliationResult
from .settings import settings

LOGGER = logging.getLogger("fsr.alerts")


def smtp_configured() -> bool:
    """Alerts need FSR_ENABLE_EMAIL=true plus FSR_SMTP_* and FSR_EMAIL_FROM / FSR_EMAIL_TO."""
    return settings.enable_email and all(
        [
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            settings.email_from,
            settings.email_to,
        ]
    )


def build_failure_message(result: ReconciliationResult) -> MIMEText:
    failed = result.failed()
    lines = [f"Target: {result.target}", f"Started: {result.started_at}", f"Finished: {result.finished_at}", ""]
    for f in failed:
        lines.append(f"- {f.field_name}: {f.error_kind} after {f.attempts} write attempt(s): {f.error}")
    if result.cancelled:
        lines.append("")
        lines.append("The run was cancelled before all fields were processed.")

    msg = MIMEText("\n".join(lines), "plain")
    msg["Subject"] = f"FSR: {len(failed)} field(s) failed on {result.target}"
    msg["From"] = settings.email_from or ""
    msg["To"] = settings.email_to or ""
    msg["X-FSR-Target"] = result.target
    return msg


def deliver(msg: MIMEText) -> bool:
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.email_from, [settings.email_to], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError):
        LOGGER.exception("alert email for target=%s failed", msg["X-FSR-Target"])
        return False


def alert_on_failure(result: ReconciliationResult) -> bool:
    """E-mail operators about failed fields. Returns True if a message went out."""
    if result.ok or not smtp_configured():
        return False
    return deliver(build_failure_message(result))
