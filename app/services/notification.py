# app/services/notification.py
import asyncio
import inspect
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Callable, Dict, Optional, Protocol, Union

from app.core.config import settings
from app.utils.tg_service import TelegramService

logger = logging.getLogger(__name__)

TEMPLATES: Dict[str, str] = {
    "proctoring_auto_submit": (
        "⚠️ Attempt auto-submitted due to proctoring flags\n\n"
        "Test: {test_title}\n"
        "Attempt ID: {attempt_id}\n"
        "Candidate ID: {candidate_id}\n"
        "Total warnings: {total_warnings} (limit {warning_limit})\n"
        "- Tab switches: {tab_switches}\n"
        "- Fullscreen exits: {fullscreen_exits}\n"
        "- Copy/paste attempts: {copy_paste_attempts}"
    ),
}


class NotificationSender(Protocol):
    def notify(self, recipient: Union[int, str], template_kind: str, data: dict) -> Any: ...


def render(template_kind: str, data: dict) -> str:
    try:
        template = TEMPLATES[template_kind]
    except KeyError:
        raise ValueError(f"Unknown notification template '{template_kind}'")
    return template.format(**data)


class TelegramNotificationSender:
    """Delivers rendered templates to a Telegram chat id."""

    def __init__(self, bot_token: str):
        self.bot_token = bot_token

    async def notify(self, recipient: Union[int, str], template_kind: str, data: dict):
        # Workers run separate event loops; a bot and its HTTP client are
        # never shared between deliveries
        service = TelegramService(bot_token=self.bot_token)
        async with service.bot:
            message = await service.send_message(
                chat_id=recipient, text=render(template_kind, data)
            )
        if message is None:
            raise RuntimeError(f"Telegram delivery to {recipient} failed")
        return message


class LoggingNotificationSender:
    """Used when Telegram delivery is disabled."""

    def notify(self, recipient: Union[int, str], template_kind: str, data: dict):
        logger.info(
            f"Notification '{template_kind}' for {recipient} not delivered "
            f"(delivery disabled): {render(template_kind, data)}"
        )


class NotificationDispatcher:
    """
    Fire-and-forget delivery on a small thread pool.

    ``enqueue`` returns immediately; failures are logged and never reach the
    caller.
    """

    def __init__(self, sender: NotificationSender, max_workers: int = 2):
        self.sender = sender
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notify"
        )

    def _deliver(self, recipient, template_kind: str, data: dict):
        result = self.sender.notify(recipient, template_kind, data)
        if inspect.isawaitable(result):
            result = asyncio.run(result)
        return result

    @staticmethod
    def _log_outcome(template_kind: str, recipient) -> Callable[[Future], None]:
        def callback(future: Future) -> None:
            error = future.exception()
            if error is not None:
                logger.error(
                    f"Notification '{template_kind}' to {recipient} failed: {error}"
                )
            else:
                logger.info(f"Notification '{template_kind}' sent to {recipient}")

        return callback

    def enqueue(
        self, recipient: Optional[Union[int, str]], template_kind: str, data: dict
    ) -> Optional[Future]:
        if recipient is None or recipient == "":
            logger.warning(
                f"Notification '{template_kind}' dropped: no recipient configured"
            )
            return None
        try:
            future = self._executor.submit(self._deliver, recipient, template_kind, data)
        except RuntimeError as e:
            logger.error(f"Could not enqueue notification '{template_kind}': {e}")
            return None
        future.add_done_callback(self._log_outcome(template_kind, recipient))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


@lru_cache(maxsize=1)
def get_notification_dispatcher() -> NotificationDispatcher:
    if settings.telegram_notification_enabled and settings.telegram_bot_token:
        sender: NotificationSender = TelegramNotificationSender(settings.telegram_bot_token)
    else:
        sender = LoggingNotificationSender()
    return NotificationDispatcher(sender, max_workers=settings.notification_workers)
