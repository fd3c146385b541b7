"""Durable storage of block difficulty observations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.types import TypeDecorator

from .errors import StorageError, StoreConnectionError

logger = logging.getLogger(__name__)

MAX_UINT64 = 2**64 - 1


@dataclass(frozen=True)
class Observation:
    """One block's difficulty as captured by the exporter."""

    block_number: int
    difficulty: int
    timestamp: datetime

    def __post_init__(self):
        for name in ("block_number", "difficulty"):
            value = getattr(self, name)
            if not 0 <= value <= MAX_UINT64:
                raise ValueError(f"{name} must fit in 64 bits unsigned, got {value}")


class Uint64(TypeDecorator):
    """
    Unsigned 64-bit integer column.

    NUMERIC(20) holds the full range on PostgreSQL and MySQL. SQLite has no
    exact decimal and its INTEGER is signed, so the value is kept as decimal
    text there.
    """

    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(20))
        return dialect.type_descriptor(Numeric(20, 0))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        return str(int(value))

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


def observation_table(name: str, metadata: MetaData) -> Table:
    return Table(
        name,
        metadata,
        Column("block_number", BigInteger, primary_key=True, autoincrement=False),
        Column("difficulty", Uint64(), nullable=False),
        Column("timestamp", DateTime(timezone=True), nullable=False),
    )


class Ledger:
    """Insert-or-ignore store of observations keyed by block number."""

    def __init__(self, dsn: str, table: str = "block_difficulty", engine: Engine | None = None):
        self.dsn = dsn
        self.metadata = MetaData()
        self.table = observation_table(table, self.metadata)
        self._engine = engine

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = create_engine(self.dsn, pool_pre_ping=True)
        return self._engine

    def connect(self) -> "Ledger":
        try:
            self.metadata.create_all(self.engine)
            with self.engine.connect() as conn:
                conn.execute(select(func.count()).select_from(self.table)).scalar()
        except SQLAlchemyError as e:
            raise StoreConnectionError(f"failed to connect to database: {e}") from e
        logger.info(f"Connected to {self.engine.dialect.name} store, table {self.table.name}")
        return self

    def record_observation(self, height: int, difficulty: int, timestamp: datetime) -> bool:
        """Write one observation; returns False when the height was already stored."""
        observation = Observation(height, difficulty, timestamp)
        values = {
            "block_number": observation.block_number,
            "difficulty": observation.difficulty,
            "timestamp": observation.timestamp,
        }
        try:
            with self.engine.begin() as conn:
                result = conn.execute(self._insert_ignore(), values)
        except IntegrityError:
            # Only reached on dialects without an insert-or-ignore form.
            return False
        except SQLAlchemyError as e:
            raise StorageError(f"failed to insert data for block {height}: {e}") from e
        return result.rowcount != 0

    def latest_height(self) -> int | None:
        try:
            with self.engine.connect() as conn:
                value = conn.execute(select(func.max(self.table.c.block_number))).scalar()
        except SQLAlchemyError as e:
            raise StorageError(f"failed to read latest height: {e}") from e
        return None if value is None else int(value)

    def close(self):
        if self._engine is not None:
            self._engine.dispose()

    def _insert_ignore(self):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            return postgresql.insert(self.table).on_conflict_do_nothing(
                index_elements=["block_number"]
            )
        if dialect == "sqlite":
            return sqlite.insert(self.table).on_conflict_do_nothing(
                index_elements=["block_number"]
            )
        if dialect in ("mysql", "mariadb"):
            return self.table.insert().prefix_with("IGNORE")
        return self.table.insert()
