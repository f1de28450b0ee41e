"""
Tests for notification senders and the application lifecycle
"""
import pytest

from edutrack.config import settings
from edutrack.core.database import get_db
from edutrack.main import EduTrackApp
from edutrack.services.permissions import Principal, Role
from edutrack.services.notifications import (
    LoggingNotificationSender,
    TelegramNotificationSender,
    get_notification_sender,
)


class TestNotificationSenders:
    """Test sender selection and fallbacks"""

    async def test_logging_sender_accepts_messages(self):
        assert await LoggingNotificationSender().send(None, 'Warning issued') is True

    async def test_telegram_sender_without_chat_drops_message(self):
        sender = TelegramNotificationSender('123456:TEST-TOKEN')

        assert await sender.send(None, 'Warning issued') is False

    def test_logging_sender_when_no_token(self, monkeypatch):
        monkeypatch.setattr(settings, 'telegram_bot_token', None)

        assert isinstance(get_notification_sender(), LoggingNotificationSender)

    def test_telegram_sender_when_token_configured(self, monkeypatch):
        monkeypatch.setattr(settings, 'telegram_bot_token', '123456:TEST-TOKEN')
        monkeypatch.setattr(settings, 'notification_chat_id', '-100200300')

        sender = get_notification_sender()

        assert isinstance(sender, TelegramNotificationSender)
        assert sender.default_chat_id == '-100200300'


class TestApplicationLifecycle:
    """Test startup and shutdown against the in-memory database"""

    async def test_startup_builds_services(self):
        app = EduTrackApp(create_tables=True)

        await app.startup()
        try:
            assert await app.health_check() is True
            assert app.grade_ledger is not None
            assert app.attendance is not None
            assert app.assignments is not None

            async with app.session() as db:
                directory = await app.standing.student_directory(db, Principal(user_id='A1', role=Role.ADMIN))
            assert directory['pagination']['total'] == 0
        finally:
            await app.shutdown()

        assert await app.health_check() is False

    async def test_session_scope_requires_startup(self):
        with pytest.raises(RuntimeError):
            async with get_db():
                pass
