import logging
from contextlib import contextmanager
from pathlib import Path

from sqlmodel import SQLModel, create_engine, Session

from scripts.config import load_config

logger = logging.getLogger(__name__)

# Load config
config = load_config()

DATABASE_URL = config.get("database", {}).get("url", "sqlite:///./database/app.db")

if DATABASE_URL.startswith("sqlite:///./"):
    # Relative sqlite files live next to this module's parent directory
    Path(DATABASE_URL.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    DATABASE_URL,
    connect_args=config.get("database", {}).get("connect_args", {}) if DATABASE_URL.startswith("sqlite") else {},
)


def get_session():
    with Session(engine) as session:
        yield session


@contextmanager
def atomic(db: Session):
    """Commit the enclosed unit of work, or roll all of it back.

    Multi-entity mutations (submissions + pivot + ranks, item points +
    activity items + activities) run inside this block so a failure part way
    through leaves the previous durable state untouched.
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("Transaction rolled back", exc_info=True)
        raise


def init_db(bind=None):
    # Import models so every table is registered on the metadata
    import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)


def shutdown_db():
    engine.dispose()
