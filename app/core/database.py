import logging

from sqlalchemy import JSON, create_engine, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from app.core.config import settings

logger = logging.getLogger(__name__)

# JSONB on PostgreSQL, plain JSON on anything else (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def create_db_engine(database_url: str, echo: bool = False):
    """Build an engine for the given URL with pool settings per backend."""
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    db_engine = create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        connect_args={"connect_timeout": 5},
    )

    @event.listens_for(db_engine, "connect")
    def set_timezone(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute(f"SET timezone='{settings.timezone}'")
        cursor.close()

    return db_engine


# -----------------------
# Database URL
# -----------------------
DATABASE_URL = settings.sqlalchemy_url

# Hide password in logs
safe_db_url = make_url(DATABASE_URL).render_as_string(hide_password=True)
logger.info(f"Connecting to database: {safe_db_url}")

# -----------------------
# SQLAlchemy engine
# -----------------------
engine = create_db_engine(DATABASE_URL, echo=settings.debug)

# -----------------------
# Session and Base
# -----------------------
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# -----------------------
# Dependency for FastAPI
# -----------------------
def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database error occurred: {str(e)}")
        db.rollback()
        raise
    finally:
        db.close()
