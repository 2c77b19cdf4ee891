import structlog
from sqlalchemy.engine import Engine

import user_service.db.base  # noqa: F401
from user_service.db.base_class import Base

logger = structlog.get_logger()


def init_db(bind: Engine) -> None:
    """Create any missing tables (users, addresses and their indexes)."""
    Base.metadata.create_all(bind=bind)
    logger.info("database_initialized", tables=sorted(Base.metadata.tables))


if __name__ == "__main__":
    from user_service.core.logging_config import configure_logging
    from user_service.db.session import engine

    configure_logging()
    init_db(engine)
