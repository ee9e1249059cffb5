"""Database connection handling and schema creation."""

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from reviewer_roulette.models import Base


class NotFoundError(LookupError):
    """Raised when a requested record does not exist."""


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the engine and hands out transactional sessions."""

    def __init__(self, url: str = "sqlite://", echo: bool = False) -> None:
        parsed = make_url(url)
        options: dict = {"echo": echo}
        is_sqlite = parsed.get_backend_name() == "sqlite"
        if is_sqlite and parsed.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(parsed, **options)
        if is_sqlite:
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("database is closed")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session; commit on success, roll back on error."""
        self._ensure_open()
        session = self._sessions()
        try:
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def auto_migrate(self) -> None:
        """Create every table that does not exist yet."""
        self._ensure_open()
        Base.metadata.create_all(self.engine)

    def health(self) -> None:
        """Run a trivial query; raises if the database cannot be reached."""
        self._ensure_open()
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    def close(self) -> None:
        """Release all pooled connections."""
        if not self._closed:
            self.engine.dispose()
            self._closed = True

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()