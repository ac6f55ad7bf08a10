# utils/logging.py
import logging
import telegram
import asyncio
from typing import Optional
from config import settings
import json
from datetime import datetime
from redis import asyncio as aioredis
import hashlib

class TelegramHandler(logging.Handler):
    """Forwards error records to a Telegram chat, suppressing repeats within a window"""
    def __init__(self, token: str, chat_id: str, level: int = logging.ERROR):
        super().__init__(level)
        self.bot = telegram.Bot(token=token)
        self.chat_id = chat_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._redis: Optional[aioredis.Redis] = None
        self._notification_window = settings.NOTIFICATION_WINDOW
        self._max_similar_notifications = settings.MAX_SIMILAR_NOTIFICATIONS

    async def setup_redis(self):
        if not self._redis:
            self._redis = await aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf8",
                decode_responses=True
            )

    def _get_alert_key(self, record: logging.LogRecord) -> str:
        content = f"{record.levelname}:{record.module}:{record.funcName}:{record.msg}"
        return f"telegram:alert:{hashlib.md5(content.encode()).hexdigest()}"

    async def _should_send(self, record: logging.LogRecord) -> bool:
        """Count similar alerts inside the notification window; allow the first few"""
        await self.setup_redis()
        key = self._get_alert_key(record)
        now = datetime.now().timestamp()

        raw = await self._redis.get(key)
        state = json.loads(raw) if raw else None
        if state is None or now - state['first_seen'] >= self._notification_window:
            state = {'count': 0, 'first_seen': now}
        state['count'] += 1
        state['last_seen'] = now
        await self._redis.set(key, json.dumps(state), ex=self._notification_window)

        if state['count'] <= self._max_similar_notifications:
            return True
        if state['count'] == self._max_similar_notifications + 1:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=(
                    f"*Rate Limited*\nSimilar alerts suppressed for "
                    f"{self._notification_window // 60} minutes."
                ),
                parse_mode='Markdown'
            )
        return False

    async def _sender(self):
        while True:
            record = await self._queue.get()
            try:
                if await self._should_send(record):
                    message = self.format(record)
                    if len(message) > 4000:
                        message = message[:3997] + "..."
                    await self.bot.send_message(
                        chat_id=self.chat_id,
                        text=f"*BMT ALERT*\n```\n{message}\n```",
                        parse_mode='Markdown'
                    )
            except Exception as e:
                print(f"Error sending Telegram message: {e}")
            finally:
                self._queue.task_done()

    def emit(self, record):
        if self._task is None:
            return
        try:
            self._queue.put_nowait(record)
        except Exception:
            self.handleError(record)

    def start(self):
        """Start the background sender task (needs a running loop)"""
        if not self._task:
            self._task = asyncio.create_task(self._sender())

    async def stop(self):
        if self._task:
            self._task.cancel()
            self._task = None
        if self._redis:
            await self._redis.close()
            self._redis = None

# Create logger
logger = logging.getLogger("bmt-rewards")
logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

# Console handler
console_handler = logging.StreamHandler()
console_handler.setLevel(logging.DEBUG)
formatter = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
console_handler.setFormatter(formatter)
logger.addHandler(console_handler)

telegram_handler: Optional[TelegramHandler] = None

# Telegram handler (only for ERROR and CRITICAL)
if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID:
    telegram_handler = TelegramHandler(
        token=settings.TELEGRAM_BOT_TOKEN,
        chat_id=settings.TELEGRAM_CHAT_ID,
        level=logging.ERROR
    )
    telegram_handler.setFormatter(formatter)
    logger.addHandler(telegram_handler)

def start_telegram_handler():
    if telegram_handler:
        telegram_handler.start()

async def stop_telegram_handler():
    if telegram_handler:
        await telegram_handler.stop()
