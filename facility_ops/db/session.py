from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from facility_ops.core.config import settings


def _connect_args(uri: str) -> dict:
    if uri.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def enable_sqlite_savepoints(target: Engine) -> Engine:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT / ROLLBACK work on pysqlite.

    Without this the driver opens no transaction before a SAVEPOINT and its
    RELEASE commits the nested write immediately.
    """

    @event.listens_for(target, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return target


engine = create_engine(
    settings.SQLALCHEMY_DATABASE_URI,
    connect_args=_connect_args(settings.SQLALCHEMY_DATABASE_URI),
    pool_pre_ping=True,
)
if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
