import logging
from slowpost.config import settings


def setup_logger(level: str = None):
    """Configure the shared "slowpost" logger."""
    level_name = (level or settings.log_level).upper()

    logger = logging.getLogger("slowpost")
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # avoid duplicate handlers on re-import
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, level_name, logging.INFO))

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

    return logger

# shared logger instance
logger = setup_logger()
