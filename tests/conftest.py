import types
from unittest.mock import AsyncMock, MagicMock

import pytest

import config
import db
import i18n
from sessions import PendingActionRegistry, SessionStore

ADMIN_ID = 1001
BUYER_ID = 2002

PHOTO_BYTES = b'\xff\xd8\xff\xe0 fake jpeg'


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def tmp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(config, 'DB_PATH', str(tmp_path / 'shop.db'))
    monkeypatch.setattr(config, 'ADMIN_IDS', [ADMIN_ID])
    monkeypatch.setattr(config, 'ADMIN_CONTACT_ID', ADMIN_ID)
    db.init_db()
    i18n.load_translations()
    db.upsert_user(ADMIN_ID, 'admin', 'Admin')
    db.set_user_language(ADMIN_ID, 'en')
    return config.DB_PATH


@pytest.fixture
def clock():
    return FakeClock()


def make_bot(photo_bytes: bytes = PHOTO_BYTES):
    bot = MagicMock()
    bot.send_message = AsyncMock()
    bot.send_photo = AsyncMock()
    tg_file = MagicMock()
    tg_file.download_as_bytearray = AsyncMock(return_value=bytearray(photo_bytes))
    bot.get_file = AsyncMock(return_value=tg_file)
    return bot


@pytest.fixture
def context(clock):
    return types.SimpleNamespace(
        bot=make_bot(),
        bot_data={'sessions': SessionStore(clock), 'pending': PendingActionRegistry(clock)},
    )


@pytest.fixture
def photo():
    def factory(file_id: str = 'photo-1', file_size: int = 2048):
        return types.SimpleNamespace(file_id=file_id, file_size=file_size)
    return factory


@pytest.fixture
def make_update():
    """Minimal stand-in for telegram.Update carrying one message."""

    def factory(user_id: int, text=None, photo=None, contact=None, document=None):
        message = types.SimpleNamespace(
            text=text,
            caption=None,
            photo=photo or [],
            contact=contact,
            document=document,
            chat_id=user_id,
            reply_text=AsyncMock(),
        )
        user = types.SimpleNamespace(id=user_id, username=f'user{user_id}', first_name='Test', full_name='Test User')
        return types.SimpleNamespace(message=message, effective_user=user,
                                     effective_chat=types.SimpleNamespace(id=user_id))
    return factory


def sent_texts(bot):
    return [c.kwargs.get('text') for c in bot.send_message.call_args_list]


def last_sent(bot):
    return bot.send_message.call_args.kwargs
