"""Notification dispatcher: fans a resolved notice out over every channel.

For each target user, independently:
1. load channel preferences (defaults when absent),
2. write the in-app Notification when ``in_app`` is on,
3. send an email when ``email`` is on and the user has an address,
4. send an SMS when ``sms`` is on and the user has a phone number.

External sends run on a worker pool with a timeout. A failure for one user or
one channel is logged and counted, never raised, and never affects any other
user or channel. The dispatcher does not de-duplicate: two calls for the same
notice write two records.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from eventhub.config import settings
from eventhub.models.notification import Notification, NotificationType
from eventhub.models.user import User
from eventhub.services.channels import EmailChannel, SMSChannel, render_email_body, render_sms_text
from eventhub.services.notification_service import get_preferences

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    """A fully resolved notification: who, what kind, and the populated text."""

    type: NotificationType
    user_ids: tuple[str, ...]
    title: str
    message: str
    link: Optional[str] = None


@dataclass
class DispatchReport:
    in_app_written: list[str] = field(default_factory=list)
    emails_attempted: list[str] = field(default_factory=list)
    sms_attempted: list[str] = field(default_factory=list)
    failures: list[tuple[str, str]] = field(default_factory=list)  # (user_id, channel)


class NotificationDispatcher:

    def __init__(
        self,
        session_factory: Callable[[], Session],
        email_channel: Optional[EmailChannel] = None,
        sms_channel: Optional[SMSChannel] = None,
        send_timeout: Optional[float] = None,
        max_workers: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.email_channel = email_channel or EmailChannel()
        self.sms_channel = sms_channel or SMSChannel()
        self.send_timeout = send_timeout if send_timeout is not None else settings.NOTIFICATION_SEND_TIMEOUT_SECONDS
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.DISPATCH_WORKERS, thread_name_prefix="notify"
        )

    def notify(self, notice: Notice) -> DispatchReport:
        report = DispatchReport()
        # Recipient set is fixed once; preferences are applied per user below.
        recipients = list(dict.fromkeys(uid for uid in notice.user_ids if uid))
        if not recipients:
            logger.debug("No recipients for %s notice", notice.type.value)
            return report

        for user_id in recipients:
            self._notify_user(user_id, notice, report)

        logger.info(
            "Dispatched %s to %d user(s): %d in-app, %d email, %d sms, %d failure(s)",
            notice.type.value,
            len(recipients),
            len(report.in_app_written),
            len(report.emails_attempted),
            len(report.sms_attempted),
            len(report.failures),
        )
        return report

    def _notify_user(self, user_id: str, notice: Notice, report: DispatchReport) -> None:
        db = self.session_factory()
        try:
            user = db.query(User).filter(User.user_id == user_id).first()
            if not user:
                logger.warning("Skipping notification for unknown user %s", user_id)
                return
            prefs = get_preferences(db, user_id)
            email, phone, name = user.email, user.phone, user.display_name

            if prefs.in_app:
                try:
                    db.add(Notification(
                        user_id=user_id,
                        type=notice.type,
                        title=notice.title,
                        message=notice.message,
                        link=notice.link,
                    ))
                    db.commit()
                    report.in_app_written.append(user_id)
                except SQLAlchemyError:
                    db.rollback()
                    logger.exception("Failed to write in-app notification for user %s", user_id)
                    report.failures.append((user_id, "in_app"))
        except SQLAlchemyError:
            logger.exception("Failed to load recipient %s", user_id)
            report.failures.append((user_id, "lookup"))
            return
        finally:
            db.close()

        if prefs.email and email:
            report.emails_attempted.append(user_id)
            body = render_email_body(name or "there", notice.message, notice.link, settings.APP_BASE_URL)
            self._send(user_id, "email", report, self.email_channel.send, email, notice.title, body)

        if prefs.sms and phone:
            report.sms_attempted.append(user_id)
            self._send(user_id, "sms", report, self.sms_channel.send, phone, render_sms_text(notice.title, notice.message))

    def _send(self, user_id: str, channel: str, report: DispatchReport, send, *args) -> None:
        future = self._executor.submit(send, *args)
        try:
            future.result(timeout=self.send_timeout)
        except FutureTimeout:
            logger.error("Timed out sending %s to user %s after %.1fs", channel, user_id, self.send_timeout)
            report.failures.append((user_id, channel))
        except Exception:
            logger.exception("Failed to send %s to user %s", channel, user_id)
            report.failures.append((user_id, channel))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
