import logging

from core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging() -> None:
    """Configure root logging once for the API process and Celery workers."""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler()],
    )
    # SQLAlchemy echo already covers statement logging in DEBUG
    logging.getLogger("sqlalchemy.engine").propagate = not settings.SQLALCHEMY_ECHO
