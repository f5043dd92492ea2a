import tempfile
from pathlib import Path
from typing import Generator

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models.database import Base

logger = structlog.get_logger()


def _create_engine_from_url(db_url: str) -> Engine:
    if "sqlite" not in db_url:
        return create_engine(db_url)
    connect_args = {"check_same_thread": False}
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(db_url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(db_url, connect_args=connect_args)


# Attempt to ensure sqlite parent dir exists and fall back to a temp file if needed.
def _resolve_database_url(original_url: str) -> str:
    try:
        url = make_url(original_url)
        if url.drivername and url.drivername.startswith("sqlite") and url.database and url.database != ":memory:":
            db_path = Path(url.database)
            if not db_path.is_absolute():
                db_path = (Path.cwd() / db_path).resolve()

            db_dir = db_path.parent
            logger.info("Resolved sqlite path", resolved=str(db_path), original=original_url)

            try:
                db_dir.mkdir(parents=True, exist_ok=True)
                # test writability by creating a temp file
                test_file = db_dir / ".writable_test"
                with open(test_file, "w") as f:
                    f.write("ok")
                test_file.unlink()
                return original_url
            except OSError as e:
                logger.error(
                    "Configured sqlite path not writable; falling back to temp file",
                    error=str(e),
                    path=str(db_path),
                )
                tmp = Path(tempfile.gettempdir()) / "testforge_fallback.db"
                fallback = f"sqlite:///{tmp.as_posix()}"
                logger.info("Using fallback sqlite path", fallback=fallback)
                return fallback
    except Exception as e:
        logger.debug("Failed to parse/resolve database url", error=str(e), original=original_url)

    return original_url


class Database:
    """Engine and session factory built from an explicit database URL."""

    def __init__(self, database_url: str):
        self.url = _resolve_database_url(database_url)
        self.engine = _create_engine_from_url(self.url)
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def session(self) -> Generator[Session, None, None]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def create_tables(self) -> None:
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully", url=self.url)
        except Exception as e:
            logger.error("Failed to create database tables", error=str(e))
            raise

    def drop_tables(self) -> None:
        Base.metadata.drop_all(bind=self.engine)
