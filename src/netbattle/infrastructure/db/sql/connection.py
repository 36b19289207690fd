import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


DEFAULT_DATABASE_URL = "sqlite:///netbattle.sqlite3"


def database_url() -> str:
    return os.getenv("NETBATTLE_DATABASE_URL") or DEFAULT_DATABASE_URL


engine = create_engine(database_url(), future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
