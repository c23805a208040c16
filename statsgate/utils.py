import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
    """
    Replace loguru's default sink with a stderr sink at the given level.

    Structured fields bound by EventSink (category, metadata) stay on the
    record's ``extra`` for any additional sink to pick up.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
        ),
    )
