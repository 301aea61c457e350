from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_and_sessionmaker(
    database_url: str,
    *,
    echo: bool = False,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(database_url, pool_pre_ping=True, echo=echo)
    if engine.dialect.name == "sqlite":
        # SQLite leaves ON DELETE rules off unless asked per connection.
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    return engine, session_maker
