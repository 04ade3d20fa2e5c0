from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import get_settings


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    from sqlalchemy import create_engine

    eng = create_engine(settings.database_url, connect_args=connect_args)
    if settings.database_url.startswith("sqlite"):
        configure_sqlite(eng)
    return eng


def casefold_key(value):
    if value is None:
        return None
    return value.strip().casefold()


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()
    # SQLite lower() only folds ASCII.
    dbapi_conn.create_function("casefold_key", 1, casefold_key, deterministic=True)


def configure_sqlite(eng: Engine) -> None:
    """FK enforcement for the cascade rules and the casefold_key() SQL function."""
    event.listen(eng, "connect", _enable_sqlite_pragmas)


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass

