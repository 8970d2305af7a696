"""
Database configuration and session management
"""

from sqlmodel import SQLModel, Session, create_engine
import structlog

from pluginhub.core.config import get_settings

logger = structlog.get_logger(__name__)
settings = get_settings()

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    connect_args=connect_args,
)


def init_db(bind=None):
    """Create platform tables (plugin tables are owned by plugin migrations)"""
    # Import models so they are attached to the metadata
    import pluginhub.models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database tables created")


def get_session():
    """Dependency to get database session"""
    with Session(engine) as session:
        yield session
