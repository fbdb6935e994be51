"""Account email notifications and their fire-and-forget dispatch."""

from __future__ import annotations

import logging
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from email.message import EmailMessage
from threading import BoundedSemaphore
from typing import Callable, Protocol
from urllib.parse import quote

from .domain.contracts import Notifier
from .metrics import record_notification

logger = logging.getLogger(__name__)

CONFIRMATION_SUBJECT = "Confirm Your Account - User Service"
RESET_SUBJECT = "Password Reset Request - User Service"

_CONFIRMATION_TEXT = """\
Thank you for registering. To activate your account, open the link below:

{url}

If you did not create an account, ignore this email.
"""

_RESET_TEXT = """\
We received a request to reset the password for your account. To choose a new
password, open the link below:

{url}

The link expires in {lifetime}. If you did not request a reset, ignore this
email and your password will remain unchanged.
"""

_HTML = """\
<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #333;">
    <h2>{heading}</h2>
    <p>{intro}</p>
    <p><a href="{url}">{action}</a></p>
    <p style="word-break: break-all;">{url}</p>
  </body>
</html>
"""


def describe_lifetime(ttl: timedelta) -> str:
    """Render a token lifetime in the largest whole unit, e.g. ``24 hours``."""
    seconds = int(ttl.total_seconds())
    for unit, size in (("hour", 3600), ("minute", 60)):
        if seconds >= size and seconds % size == 0:
            count = seconds // size
            return f"{count} {unit}" + ("" if count == 1 else "s")
    return f"{seconds} second" + ("" if seconds == 1 else "s")


class Mailer(Protocol):
    def send(self, message: EmailMessage) -> None: ...


@dataclass(slots=True)
class SmtpMailer:
    """Deliver messages through an SMTP relay, one connection per message."""

    host: str
    port: int = 587
    username: str = ""
    password: str = ""
    starttls: bool = True
    timeout: float = 10.0

    def send(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.starttls:
                server.starttls()
            if self.username:
                server.login(self.username, self.password)
            server.send_message(message)


class LoggingMailer:
    """Mailer used when no SMTP relay is configured; records recipients only."""

    def send(self, message: EmailMessage) -> None:
        logger.info("mail delivery disabled, would send %r to %s", message["Subject"], message["To"])


class EmailNotifier:
    """Render confirmation and reset emails and hand them to a ``Mailer``."""

    def __init__(
        self,
        mailer: Mailer,
        *,
        base_url: str,
        sender: str,
        reset_ttl: timedelta = timedelta(hours=24),
    ) -> None:
        self._mailer = mailer
        self._reset_lifetime = describe_lifetime(reset_ttl)
        self._base_url = base_url.rstrip("/")
        self._sender = sender

    def confirmation_url(self, token: str) -> str:
        return f"{self._base_url}/api/user/confirm?token={quote(token)}"

    def reset_url(self, token: str) -> str:
        return f"{self._base_url}/reset-password?token={quote(token)}"

    def send_confirmation(self, email: str, token: str) -> None:
        url = self.confirmation_url(token)
        message = self._build(
            email,
            CONFIRMATION_SUBJECT,
            _CONFIRMATION_TEXT.format(url=url),
            _HTML.format(
                heading="Confirm Your Account",
                intro="Thank you for registering. Please confirm your email address.",
                action="Confirm My Account",
                url=url,
            ),
        )
        self._mailer.send(message)
        logger.info("confirmation email sent to %s", email)

    def send_password_reset(self, email: str, token: str) -> None:
        url = self.reset_url(token)
        message = self._build(
            email,
            RESET_SUBJECT,
            _RESET_TEXT.format(url=url, lifetime=self._reset_lifetime),
            _HTML.format(
                heading="Reset Your Password",
                intro=(
                    "We received a request to reset your password. "
                    f"The link expires in {self._reset_lifetime}."
                ),
                action="Reset My Password",
                url=url,
            ),
        )
        self._mailer.send(message)
        logger.info("password reset email sent to %s", email)

    def _build(self, recipient: str, subject: str, text: str, html: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message


class QueuedNotifier:
    """Run a delegate ``Notifier`` on a bounded worker pool.

    ``max_pending`` caps queued plus running deliveries. A notification that
    does not fit is dropped and logged; a delivery that raises is logged. No
    delivery is retried and nothing propagates back to the caller.
    """

    def __init__(self, delegate: Notifier, *, max_workers: int = 2, max_pending: int = 100) -> None:
        if max_workers <= 0 or max_pending <= 0:
            raise ValueError("worker and queue sizes must be positive")
        self._delegate = delegate
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notifier")
        self._slots = BoundedSemaphore(max_pending)

    def send_confirmation(self, email: str, token: str) -> None:
        self._dispatch("confirmation", email, self._delegate.send_confirmation, token)

    def send_password_reset(self, email: str, token: str) -> None:
        self._dispatch("password_reset", email, self._delegate.send_password_reset, token)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _dispatch(self, kind: str, email: str, send: Callable[[str, str], None], token: str) -> None:
        if not self._slots.acquire(blocking=False):
            logger.warning("notification queue full, dropping %s email for %s", kind, email)
            record_notification(kind, "dropped")
            return
        try:
            future = self._executor.submit(send, email, token)
        except RuntimeError:
            self._slots.release()
            logger.warning("notifier is shut down, dropping %s email for %s", kind, email)
            record_notification(kind, "dropped")
            return
        future.add_done_callback(lambda f: self._finished(kind, email, f))

    def _finished(self, kind: str, email: str, future: Future) -> None:
        self._slots.release()
        exc = future.exception()
        if exc is not None:
            logger.error("failed to send %s email to %s", kind, email, exc_info=exc)
            record_notification(kind, "failed")
        else:
            record_notification(kind, "sent")
