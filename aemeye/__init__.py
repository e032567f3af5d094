import os
import logging
import sys
from typing import Optional

__version__ = '0.1.0'

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def configure_logging(level_name: Optional[str] = None) -> int:
    """Configure root logging on stderr; stdout carries results only.

    Level comes from ``level_name``, then AEMEYE_LOG_LEVEL, then WARNING.
    Set AEMEYE_LOG_FILE to also write a rotating log file.
    """
    level_name = (level_name or os.environ.get('AEMEYE_LOG_LEVEL', 'WARNING')).upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)
    # Optional rotating file handler for persistent logs
    log_file = os.environ.get('AEMEYE_LOG_FILE')
    if log_file:
        try:
            from logging.handlers import RotatingFileHandler
            max_bytes = int(os.environ.get('AEMEYE_LOG_MAX_BYTES', str(5 * 1024 * 1024)))
            backup = int(os.environ.get('AEMEYE_LOG_BACKUP_COUNT', '5'))
            fh = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup)
            fh.setLevel(level)
            fh.setFormatter(logging.Formatter(LOG_FORMAT))
            logging.getLogger().addHandler(fh)
            logging.getLogger(__name__).info(
                'RotatingFileHandler attached path=%s max_bytes=%d backups=%d',
                log_file, max_bytes, backup)
        except (OSError, ValueError) as exc:
            logging.getLogger(__name__).warning('failed attaching RotatingFileHandler for %s: %s', log_file, exc)
    logging.getLogger('urllib3').setLevel(max(level, logging.WARNING))
    logging.getLogger(__name__).debug('Logging initialized at level %s', level_name)
    return level
