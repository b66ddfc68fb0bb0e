"""Database engine and transaction scope for agromart."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from .config import Settings, load_settings
from .tables import Base

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT = 30  # seconds


def _enable_sqlite_immediate_transactions(engine: Engine) -> None:
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so two checkouts could both
    read the last unit before either writes. Taking the write lock at BEGIN
    serializes them; the later one then sees the committed stock.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy's "begin" event below.
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Owns the engine and hands out sessions."""

    def __init__(self, url: str, echo: bool = False):
        """
        Initialize Database.

        Args:
            url: SQLAlchemy database URL.
            echo: Log emitted SQL.
        """
        self.url = make_url(url)
        connect_args = {}
        if self.is_sqlite:
            connect_args = {"timeout": SQLITE_BUSY_TIMEOUT, "check_same_thread": False}
            self._ensure_sqlite_dir()
        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        if self.is_sqlite:
            _enable_sqlite_immediate_transactions(self.engine)
        self._sessionmaker = sessionmaker(bind=self.engine, expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Database":
        settings = settings or load_settings()
        return cls(settings.database_url)

    @property
    def is_sqlite(self) -> bool:
        return self.url.get_backend_name() == "sqlite"

    def _ensure_sqlite_dir(self) -> None:
        database = self.url.database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    def create_schema(self, drop_existing: bool = False) -> None:
        """Create all tables, optionally dropping existing ones first."""
        if drop_existing:
            Base.metadata.drop_all(self.engine)
        Base.metadata.create_all(self.engine)
        logger.info("schema_ready url=%s", self.url.render_as_string(hide_password=True))

    def is_initialized(self) -> bool:
        """Check whether the schema has been created."""
        return inspect(self.engine).has_table("orders")

    def session(self) -> Session:
        """Open a new session. The caller owns it."""
        return self._sessionmaker()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Run a unit of work in one transaction.

        Commits when the block exits normally, rolls back and re-raises on
        any exception.
        """
        session = self._sessionmaker()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
