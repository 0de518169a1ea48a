# marketplace/notifications.py
import logging

import requests
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


class NotificationChannel:
    """
    Fire-and-forget notification sink.

    notify() returns (success, detail) and never raises: a failed
    notification must not fail the operation that triggered it.
    """

    name = "base"

    def notify(self, recipient, message, metadata=None):
        try:
            return self.send(recipient, message, metadata or {})
        except Exception as e:
            logger.error(f"{self.name} notification to {recipient} failed: {str(e)}")
            return False, str(e)

    def send(self, recipient, message, metadata):
        raise NotImplementedError


class LoggingNotificationChannel(NotificationChannel):
    name = "log"

    def send(self, recipient, message, metadata):
        logger.info(f"Notification for {recipient}: {message} {metadata}")
        return True, "Logged"


class EmailNotificationChannel(NotificationChannel):
    name = "email"

    def send(self, recipient, message, metadata):
        recipients = [r for r in (recipient, settings.ADMIN_ORDER_EMAIL) if r]
        if not recipients:
            return False, "No recipient"

        subject = metadata.get("subject") or message.splitlines()[0][:120]
        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=recipients,
            fail_silently=False,
        )
        logger.info(f"Email notification sent to {', '.join(recipients)}")
        return True, "Email sent"


class TelegramNotificationChannel(NotificationChannel):
    """Posts to the admin group through the Telegram Bot API"""

    name = "telegram"
    API_URL = "https://api.telegram.org"

    def __init__(self, token=None, chat_id=None):
        self.token = token or settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id or settings.TELEGRAM_ADMIN_CHAT_ID

    def send(self, recipient, message, metadata):
        if not self.token or not self.chat_id:
            logger.warning("Telegram bot not configured, notification dropped")
            return False, "Bot not configured"

        text = message
        if recipient:
            text = f"{message}\n\nRecipient: {recipient}"

        response = requests.post(
            f"{self.API_URL}/bot{self.token}/sendMessage",
            json={"chat_id": self.chat_id, "text": text},
            timeout=10,
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("ok"):
            logger.error(f"Telegram sendMessage rejected: {data}")
            return False, data.get("description", "sendMessage failed")
        return True, data["result"].get("message_id")


CHANNELS = {
    "log": LoggingNotificationChannel,
    "email": EmailNotificationChannel,
    "telegram": TelegramNotificationChannel,
}


def get_notification_channel(backend=None):
    """Build the channel configured by NOTIFICATION_BACKEND"""
    backend = backend or getattr(settings, "NOTIFICATION_BACKEND", "log")
    channel_class = CHANNELS.get(backend)
    if channel_class is None:
        logger.warning(f"Unknown notification backend {backend!r}, falling back to log")
        channel_class = LoggingNotificationChannel
    return channel_class()
