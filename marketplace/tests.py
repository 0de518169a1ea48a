from unittest import mock

import requests
from django.core import mail
from django.test import SimpleTestCase, override_settings

from .notifications import (
    EmailNotificationChannel,
    LoggingNotificationChannel,
    TelegramNotificationChannel,
    get_notification_channel,
)


class NotificationChannelTests(SimpleTestCase):
    def test_logging_channel(self):
        with self.assertLogs("marketplace.notifications", level="INFO"):
            self.assertEqual(LoggingNotificationChannel().notify("a@example.com", "hello"), (True, "Logged"))

    @override_settings(
        EMAIL_BACKEND="django.core.mail.backends.locmem.EmailBackend",
        ADMIN_ORDER_EMAIL="admin@example.com",
        DEFAULT_FROM_EMAIL="shop@example.com",
    )
    def test_email_channel_copies_admin(self):
        success, _ = EmailNotificationChannel().notify("buyer@example.com", "Order shipped", {"subject": "Update"})

        self.assertTrue(success)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].subject, "Update")
        self.assertEqual(mail.outbox[0].to, ["buyer@example.com", "admin@example.com"])

    @override_settings(ADMIN_ORDER_EMAIL="")
    def test_email_channel_without_recipients(self):
        self.assertEqual(EmailNotificationChannel().notify("", "nobody"), (False, "No recipient"))

    @mock.patch("marketplace.notifications.requests.post")
    def test_telegram_channel(self, post):
        post.return_value.json.return_value = {"ok": True, "result": {"message_id": 42}}

        success, detail = TelegramNotificationChannel("token", "-100").notify("buyer@example.com", "Paid")

        self.assertTrue(success)
        self.assertEqual(detail, 42)
        url = post.call_args[0][0]
        self.assertEqual(url, "https://api.telegram.org/bottoken/sendMessage")
        self.assertEqual(post.call_args[1]["json"]["chat_id"], "-100")
        self.assertEqual(post.call_args[1]["timeout"], 10)

    @mock.patch("marketplace.notifications.requests.post", side_effect=requests.exceptions.Timeout("slow"))
    def test_failures_never_raise(self, post):
        success, detail = TelegramNotificationChannel("token", "-100").notify("x", "Paid")
        self.assertFalse(success)
        self.assertEqual(detail, "slow")

    @override_settings(TELEGRAM_BOT_TOKEN="", TELEGRAM_ADMIN_CHAT_ID="")
    def test_telegram_not_configured(self):
        self.assertEqual(TelegramNotificationChannel().notify("x", "Paid"), (False, "Bot not configured"))

    def test_channel_from_settings(self):
        with override_settings(NOTIFICATION_BACKEND="email"):
            self.assertIsInstance(get_notification_channel(), EmailNotificationChannel)
        self.assertIsInstance(get_notification_channel("telegram"), TelegramNotificationChannel)
        self.assertIsInstance(get_notification_channel("pigeon"), LoggingNotificationChannel)
