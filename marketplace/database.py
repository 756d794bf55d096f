"""
Database connection and session.

Schema source of truth: marketplace.models. On startup, Base.metadata.create_all(bind=engine)
creates all tables and unique indexes from the current models. Uniqueness of contacts,
token fingerprints and pending registrations is enforced here, by the database, not by
read-then-write checks in the services.
"""
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from marketplace.config import get_settings

settings = get_settings()

_connect_args = {}
if settings.database_url.startswith("sqlite"):
    # SQLite connections are shared across the request threadpool
    _connect_args["check_same_thread"] = False

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    connect_args=_connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
