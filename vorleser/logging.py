import logging
from concurrent_log_handler import ConcurrentRotatingFileHandler
from pathlib import Path

from vorleser.config import settings

# Third-party loggers that flood DEBUG output during scans and watches
NOISY_LOGGERS = ("apscheduler", "watchdog", "sqlalchemy.engine")


class LogConfig:
    """Package logger setup: one lock-safe rotating file plus the console"""

    def __init__(self, log_dir: Path = settings.log_dir, log_file: str = "vorleser.log"):
        self.log_dir = Path(log_dir)
        self.log_file = log_file
        self.logger = None

    @staticmethod
    def resolve_level(log_level: str) -> int:
        level = logging.getLevelName(str(log_level).upper())
        return level if isinstance(level, int) else logging.INFO

    def setup_logging(self, log_level: str = "INFO"):
        self.log_dir.mkdir(parents=True, exist_ok=True)
        level = self.resolve_level(log_level)

        self.logger = logging.getLogger("vorleser")
        self.logger.setLevel(level)
        self.logger.handlers.clear()

        # Several uvicorn workers may share the log dir
        file_handler = ConcurrentRotatingFileHandler(
            filename=self.log_dir / self.log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
            use_gzip=True
        )
        console_handler = logging.StreamHandler()

        formatter = logging.Formatter(
            '%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        for handler in (file_handler, console_handler):
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))

        return self.logger


log_config = LogConfig()
