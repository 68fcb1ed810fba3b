from contextlib import contextmanager
from typing import Any, Optional
import threading

from sqlalchemy import text
from sqlmodel import SQLModel, Session, create_engine, select

import config
from logger import get_logger

logger = get_logger(__name__)

# Application-level locks keyed by a simple name (e.g., writes)
locks = {}
locks_lock = threading.Lock()


def get_lock(name: str):
    with locks_lock:
        if name not in locks:
            locks[name] = threading.Lock()
        return locks[name]


class Repository:
    """Storage operations shared by both backends.

    Subclasses decide how an engine is built and how a row is locked for a
    read-modify-write inside ``transaction()``.
    """

    backend = "generic"

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = self._create_engine(url, echo)

    def _create_engine(self, url: str, echo: bool):
        return create_engine(url, echo=echo)

    def create_all(self):
        SQLModel.metadata.create_all(self.engine)

    def drop_all(self):
        SQLModel.metadata.drop_all(self.engine)

    def session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    @contextmanager
    def transaction(self):
        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def for_update(self, session: Session, model, key: str):
        return session.get(model, key)

    def list(self, model, *where, order_by=None):
        with self.session() as session:
            stmt = select(model)
            for clause in where:
                stmt = stmt.where(clause)
            if order_by is not None:
                stmt = stmt.order_by(order_by)
            return list(session.exec(stmt).all())

    def get(self, model, key: str):
        with self.session() as session:
            return session.get(model, key)

    def save(self, obj):
        """Insert or replace a row by primary key."""
        with self.transaction() as session:
            merged = session.merge(obj)
        return merged

    def delete(self, model, key: str) -> bool:
        with self.transaction() as session:
            row = self.for_update(session, model, key)
            if row is None:
                return False
            session.delete(row)
            return True

    def query(self, sql: str, params: Optional[dict] = None) -> Any:
        """Run parameterized SQL (``:name`` binds work on both backends).

        Returns a list of row mappings for SELECT, otherwise the affected row count.
        """
        with self.transaction() as session:
            result = session.connection().execute(text(sql), params or {})
            if result.returns_rows:
                return [dict(row) for row in result.mappings().all()]
            return result.rowcount


class SQLiteRepository(Repository):
    backend = "sqlite"

    def _create_engine(self, url: str, echo: bool):
        # SQLite needs check_same_thread=False
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})

    @contextmanager
    def transaction(self):
        # SQLite has no row locks, so read-modify-write sequences are serialized here
        with get_lock(f"sqlite-write:{self.url}"):
            with super().transaction() as session:
                yield session


class PostgresRepository(Repository):
    backend = "postgres"

    def _create_engine(self, url: str, echo: bool):
        return create_engine(
            url,
            echo=echo,
            pool_pre_ping=True,
            connect_args={"sslmode": config.POSTGRES_SSLMODE},
        )

    def for_update(self, session: Session, model, key: str):
        return session.exec(select(model).where(model.id == key).with_for_update()).first()


def create_repository(url: str, echo: bool = False) -> Repository:
    if url.startswith("sqlite"):
        repo = SQLiteRepository(url, echo=echo)
    elif url.startswith("postgresql"):
        repo = PostgresRepository(url, echo=echo)
    else:
        raise ValueError(f"unsupported database url: {url.split(':', 1)[0]}")
    logger.info(f"Using {repo.backend} storage backend.")
    return repo


repository = create_repository(config.DATABASE_URL, echo=config.DB_ECHO)


def get_repository() -> Repository:
    return repository


def set_repository(repo: Repository):
    global repository
    repository = repo


def init_db():
    get_repository().create_all()


def get_session():
    return get_repository().session()


def query(sql: str, params: Optional[dict] = None):
    return get_repository().query(sql, params)
