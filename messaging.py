"""Outbound sends that must not break the flow that triggered them, and photo downloads."""

import logging
from typing import Optional

from telegram.error import Forbidden, TelegramError

import config
import db

logger = logging.getLogger(__name__)


class ImageTooLarge(Exception):
    def __init__(self, size_mb: float):
        super().__init__(f'Image too large: {size_mb:.2f} MB (max {config.MAX_IMAGE_MB} MB)')
        self.size_mb = size_mb


async def safe_send(bot, chat_id: int, text: str, **kwargs) -> bool:
    """send_message that logs and swallows transport failures."""
    try:
        await bot.send_message(chat_id=chat_id, text=text, **kwargs)
        return True
    except Forbidden:
        logger.warning('Chat %s has not started the bot or blocked it', chat_id)
    except TelegramError as e:
        logger.warning('Failed to send message to %s: %s', chat_id, e)
    return False


async def notify_admins(bot, text: str, photo: Optional[bytes] = None, **kwargs) -> int:
    """Send `text` (as a photo caption when `photo` is given) to every admin. Returns how many got it."""
    delivered = 0
    for admin_id in db.get_admin_ids():
        try:
            if photo is not None:
                await bot.send_photo(chat_id=admin_id, photo=photo, caption=text, **kwargs)
            else:
                await bot.send_message(chat_id=admin_id, text=text, **kwargs)
            delivered += 1
        except TelegramError as e:
            logger.warning('Failed to notify admin %s: %s', admin_id, e)
    return delivered


async def download_photo(bot, photo) -> bytes:
    """Bytes of a PhotoSize, refusing files over MAX_IMAGE_MB before downloading."""
    size_mb = (photo.file_size or 0) / (1024 * 1024)
    if size_mb > config.MAX_IMAGE_MB:
        raise ImageTooLarge(size_mb)
    tg_file = await bot.get_file(photo.file_id)
    data = await tg_file.download_as_bytearray()
    logger.info('Downloaded photo %s, %d bytes', photo.file_id, len(data))
    return bytes(data)
