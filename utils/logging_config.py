import logging

from db.config import settings


def configure_logging(level: str | int | None = None):
    level = level or settings.logging_level
    if isinstance(level, str):
        level = level.upper()
    logging.basicConfig(
        format="%(levelname)s::%(asctime)s::%(pathname)s::%(lineno)d - %(message)s",
        datefmt="%d-%b-%y %H:%M:%S",
        level=level,
    )
    # request lines drown the engine logs at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
