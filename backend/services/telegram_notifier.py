"""
Telegram Notifier
Delivers deposit/deployment messages to users by chat id.

Fire-and-forget: delivery failures are logged and never raised back into
the deployment pipeline.
"""

import logging
from typing import Optional

from telegram import Bot
from telegram.error import TelegramError

from config.monitoring import TELEGRAM_BOT_TOKEN

logger = logging.getLogger("DepositNotifier")


class TelegramNotifier:
    def __init__(self, token: str = TELEGRAM_BOT_TOKEN, bot: Optional[Bot] = None):
        if bot is not None:
            self.bot = bot
        elif token:
            self.bot = Bot(token=token)
        else:
            logger.warning("TELEGRAM_BOT_TOKEN not set - notifications will only be logged")
            self.bot = None

        self.sent = 0
        self.failed = 0

    async def send(self, user_id: str, message: str) -> None:
        if self.bot is None:
            logger.info(f"[Notify {user_id}] {message}")
            return

        try:
            await self.bot.send_message(
                chat_id=user_id,
                text=message,
                parse_mode="Markdown"
            )
            self.sent += 1
            logger.info(f"📬 Sent notification to {user_id}")
        except TelegramError as e:
            self.failed += 1
            logger.error(f"Failed to send notification to user {user_id}: {e}")
        except Exception as e:
            self.failed += 1
            logger.error(f"Unexpected error notifying user {user_id}: {e}")
