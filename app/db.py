# app/db.py

import logging

from sqlmodel import SQLModel, create_engine, Session

from .config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

# Engine = connection to the database
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False  # required for SQLite + FastAPI

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
    connect_args=connect_args,
)


def create_db_and_tables():
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables ensured")


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session
