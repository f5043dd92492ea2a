from pathlib import Path

from sqlalchemy import text

from app.core.database import Database


def test_db_file_exists_after_create_tables(tmp_path):
    """The parent directory of a sqlite file is created before the engine opens it."""
    db_path = tmp_path / "nested" / "data" / "testforge.db"
    database = Database(f"sqlite:///{db_path.as_posix()}")

    database.create_tables()

    assert Path(db_path).parent.exists()
    assert Path(db_path).exists()
    database.engine.dispose()


def test_in_memory_database_shares_one_connection():
    database = Database("sqlite://")
    database.create_tables()

    # A new session must see the tables created on the engine
    sessions = database.session()
    session = next(sessions)
    try:
        name = session.execute(
            text("SELECT name FROM sqlite_master WHERE name = 'conversational_analyses'")
        ).scalar()
        assert name == "conversational_analyses"
    finally:
        sessions.close()
