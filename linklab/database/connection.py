"""
Database engine and session factory.

Everything durable (links and click events) lives behind this engine.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from linklab.config import settings


connect_args = {}
if settings.database_url.startswith("sqlite"):
    # Sessions are used from the threadpool and from detached click tasks
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a request-scoped session and close it afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
