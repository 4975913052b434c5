import logging

import structlog

from tirestore.core.config import settings

# Client libraries that log every HTTP round trip at INFO
NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "stripe")


def configure_logging():
    """Wire structlog onto stdlib logging.

    JSON lines everywhere except local debug runs, which get the coloured
    console renderer. Context bound through ``structlog.contextvars`` (the
    request correlation id) is merged into every event.
    """
    level = logging.DEBUG if settings.DEBUG else logging.INFO
    renderer = structlog.dev.ConsoleRenderer() if settings.DEBUG else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
