from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cardflow.config import settings

engine = create_async_engine(settings.database_url, echo=False, pool_pre_ping=True)

SessionLocal = async_sessionmaker(
  engine,
  class_=AsyncSession,
  expire_on_commit=False,
)


if engine.dialect.name == "sqlite":
  # SQLite ignores FOR UPDATE and the driver defers BEGIN until the first write,
  # so every transaction takes the write lock up front instead.

  @event.listens_for(engine.sync_engine, "connect")
  def _sqlite_connect(dbapi_connection, connection_record) -> None:
    dbapi_connection.isolation_level = None

  @event.listens_for(engine.sync_engine, "begin")
  def _sqlite_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


def dialect_name(db: AsyncSession) -> str:
  return db.get_bind().dialect.name
