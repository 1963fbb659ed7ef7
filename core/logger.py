import logging
import os
from core.config import settings

LOG_EMOJIS = {
    'success': '✅', 'error': '❌', 'info': 'ℹ️', 'debug': '🐛',
    'webhook': '🌐', 'playback': '🎬', 'dummy': '📁', 'search': '🔍',
    'delete': '🗑️', 'update': '🔄', 'warning': '⚠️',
    'processing': '⏳', 'monitored': '👀', 'downloading': '⏳',
    'tv': '📺', 'timeout': '⏱️', 'status': '🔄', 'tag': '🏷️',
    'cleanup': '🧹', 'placeholder': '➡️', 'refresh': '🔄',
    'terminate': '⏹️', 'skip': '🔁', 'maintenance': '🛠️'
}


class EnhancedEmojiLogFormatter(logging.Formatter):
    def format(self, record):
        # Add source file information
        filename = os.path.basename(record.pathname)
        line_num = record.lineno

        emoji = LOG_EMOJIS.get(record.__dict__.get('emoji_type', ''), '➡️')

        # Work on a copy so the emoji is not stacked once per handler
        record = logging.makeLogRecord(record.__dict__)
        record.msg = f"{emoji} {record.msg}"

        # Temporarily update format to include source information
        old_format = self._style._fmt
        self._style._fmt = old_format.replace('%(name)s', f'{filename}:{line_num}')
        try:
            formatted = super().format(record)
        finally:
            self._style._fmt = old_format

        return formatted


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger("infinite_plex")
logger.setLevel(settings.LOG_LEVEL.upper())

if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(EnhancedEmojiLogFormatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    if settings.LOG_FILE:
        file_handler = logging.FileHandler(settings.LOG_FILE)
        file_handler.setFormatter(EnhancedEmojiLogFormatter(LOG_FORMAT))
        logger.addHandler(file_handler)
