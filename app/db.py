from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import create_engine, event
from .config import settings


_is_sqlite = settings.database_url.startswith("sqlite")

# Connection pool sizing only applies to server databases
_pool_kwargs = {} if _is_sqlite else {"pool_size": 5, "max_overflow": 10, "pool_recycle": 3600}

engine = create_engine(
    settings.database_url,
    future=True,
    pool_pre_ping=True,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    **_pool_kwargs,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def configure_sqlite(target_engine) -> None:
    """
    Turn on foreign keys and let SQLAlchemy own transaction boundaries so
    SAVEPOINTs (used by get-or-create) behave on pysqlite.
    """

    @event.listens_for(target_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(target_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


if _is_sqlite:
    configure_sqlite(engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
