from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from bakery.config import settings


connect_args = {}
pool_config = {}

if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
else:
    pool_config = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.DATABASE_ECHO,
    **pool_config,
)


def configure_sqlite(target_engine):
    """
    SQLite ignores FOREIGN KEY clauses unless the pragma is set per connection,
    and pysqlite's own transaction handling breaks SAVEPOINT. Let SQLAlchemy
    emit BEGIN itself instead.
    """

    @event.listens_for(target_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(target_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


if settings.database_url.startswith("sqlite"):
    configure_sqlite(engine)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
