import logging
import threading
import time
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Index,
    Integer,
    MetaData,
    Select,
    Table,
    Text,
    create_engine,
    event,
    false,
    func,
    insert,
    literal,
    select,
    text,
    update,
)
from sqlalchemy.engine import Connection, CursorResult, Engine, Row
from sqlalchemy.exc import SQLAlchemyError

from steamtop.exceptions import StorageError
from steamtop.models.games import Game
from steamtop.settings import settings
from steamtop.storage.config import DbConfig, DbHost

logger = logging.getLogger(__name__)

metadata = MetaData()

games = Table(
    "games",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("app_id", BigInteger, nullable=False),
    Column("name", Text, nullable=False),
    Column("singleplayer", Boolean, nullable=False, server_default=false()),
    Column("multiplayer", Boolean, nullable=False, server_default=false()),
    Column("online_multiplayer", Boolean, nullable=False, server_default=false()),
    Column("local_multiplayer", Boolean, nullable=False, server_default=false()),
    Column("last_update", BigInteger, nullable=False, server_default=text("0")),
    Column("players", Integer, nullable=False, server_default=text("0")),
    Index("ix_games_app_id", "app_id"),
    sqlite_autoincrement=True,
)

CAPABILITY_COLUMNS = ["singleplayer", "multiplayer", "online_multiplayer", "local_multiplayer"]


def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    # WAL lets an open top-games cursor coexist with writers
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.execute("PRAGMA busy_timeout=30000;")
    cursor.close()


def create_games_engine(host: DbHost) -> Engine:
    """Create the SQLAlchemy engine for a database descriptor."""
    url = host.url()
    if host.is_sqlite:
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
        event.listen(engine, "connect", _set_sqlite_pragma)
        return engine
    return create_engine(url, pool_pre_ping=True, pool_size=settings.max_workers)


def _row_to_game(row: Row) -> Game:
    return Game(
        id=row.id,
        app_id=row.app_id,
        name=row.name,
        singleplayer=row.singleplayer,
        multiplayer=row.multiplayer,
        online_multiplayer=row.online_multiplayer,
        local_multiplayer=row.local_multiplayer,
        last_update=datetime.fromtimestamp(row.last_update, tz=timezone.utc),
        players=row.players,
    )


class GamesIter:
    """
    Forward-only cursor over ranked games.

    Owns its own connection and must be closed, either explicitly or by
    using it as a context manager. Rows are decoded lazily.
    """

    def __init__(self, connection: Connection, result: CursorResult):
        self._connection = connection
        self._result = result
        self._closed = False

    def __iter__(self) -> Iterator[Game]:
        return self

    def __next__(self) -> Game:
        if self._closed:
            raise StopIteration
        try:
            row = self._result.fetchone()
        except SQLAlchemyError as e:
            raise StorageError(f"Unable to read top games: {e}") from e
        if row is None:
            raise StopIteration
        return _row_to_game(row)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._result.close()
        finally:
            self._connection.close()

    def __enter__(self) -> "GamesIter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class GamesDb:
    """
    Persistence for scraped games.

    SQLite does not serialize concurrent writers, so every call goes through
    a single lock when the engine is SQLite. PostgreSQL handles its own
    concurrency and no lock is taken.

    Args:
        config: Database descriptor (see ``steamtop.storage.config``).
        engine: Optional pre-built engine, mostly for tests.
        clock: Returns the current epoch time in seconds, used for ``last_update``.
    """

    def __init__(
        self,
        config: DbConfig,
        engine: Optional[Engine] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.clock = clock
        try:
            self.engine = engine or create_games_engine(config.database)
        except SQLAlchemyError as e:
            raise StorageError(f"Unable to connect to database: {e}") from e
        self._lock = threading.Lock() if config.database.is_sqlite else nullcontext()
        self.migrate()

    def migrate(self) -> None:
        """Create the games table and its index if they do not exist."""
        logger.debug(f"Ensuring schema on {self.engine.url.render_as_string(hide_password=True)}")
        try:
            metadata.create_all(self.engine, checkfirst=True)
        except SQLAlchemyError as e:
            self.engine.dispose()
            raise StorageError(f"Unable to migrate database: {e}") from e

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except SQLAlchemyError as e:
                raise StorageError(f"{action}: {e}") from e

    def exists(self, app_id: int) -> bool:
        query = select(func.count(games.c.id)).where(games.c.app_id == app_id)
        with self._guard(f"Unable to test app {app_id}"):
            with self.engine.connect() as conn:
                count = conn.execute(query).scalar_one()
        return count > 0

    def save_app_info(
        self,
        app_id: int,
        name: str,
        singleplayer: bool,
        multiplayer: bool,
        online_multiplayer: bool,
        local_multiplayer: bool,
    ) -> int:
        """Append a new, never refreshed row and return its ``id``. Does not check for duplicates."""
        stmt = insert(games).values(
            app_id=app_id,
            name=name,
            singleplayer=singleplayer,
            multiplayer=multiplayer,
            online_multiplayer=online_multiplayer,
            local_multiplayer=local_multiplayer,
        )
        with self._guard(f"Unable to save app {app_id}"):
            with self.engine.begin() as conn:
                result = conn.execute(stmt)
                return result.inserted_primary_key[0]

    def save_new_app_info(
        self,
        app_id: int,
        name: str,
        singleplayer: bool,
        multiplayer: bool,
        online_multiplayer: bool,
        local_multiplayer: bool,
    ) -> Optional[int]:
        """
        Insert a row only if no row has ``app_id`` yet.

        The existence test and the insert are one statement, so two writers
        racing on the same app cannot both insert it.

        Returns:
            The new row ``id``, or None if the app was already stored.
        """
        source = select(
            literal(app_id, BigInteger),
            literal(name, Text),
            literal(singleplayer, Boolean),
            literal(multiplayer, Boolean),
            literal(online_multiplayer, Boolean),
            literal(local_multiplayer, Boolean),
        ).where(~select(games.c.id).where(games.c.app_id == app_id).correlate(None).exists())
        stmt = (
            insert(games)
            .from_select(["app_id", "name", *CAPABILITY_COLUMNS], source)
            .returning(games.c.id)
        )
        with self._guard(f"Unable to save app {app_id}"):
            with self.engine.begin() as conn:
                return conn.execute(stmt).scalar_one_or_none()

    def get_unupdated_app_ids(self, since: datetime) -> List[int]:
        """Return app IDs whose last refresh is strictly older than ``since``, in storage order."""
        timestamp = int(since.timestamp())
        query = select(games.c.app_id).where(games.c.last_update < timestamp).order_by(games.c.id)
        with self._guard("Unable to list stale apps"):
            with self.engine.connect() as conn:
                return list(conn.execute(query).scalars())

    def update_players_count(self, app_id: int, players: int) -> int:
        """Store the player count for every row of ``app_id`` and stamp it with now. Returns rows matched."""
        stmt = (
            update(games)
            .where(games.c.app_id == app_id)
            .values(players=players, last_update=int(self.clock()))
        )
        with self._guard(f"Unable to update app {app_id} stats"):
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount

    def top_games_query(self, limit: int) -> Select:
        # sqlite compares names bytewise; make postgres do the same instead of using the locale
        name = games.c.name if self.config.database.is_sqlite else games.c.name.collate("C")
        return select(games).order_by(games.c.players.desc(), name.asc()).limit(limit)

    def get_top_games(self, limit: int) -> GamesIter:
        """Open a cursor over at most ``limit`` games, most played first, ties by name."""
        query = self.top_games_query(limit)
        with self._guard("Unable to query top games"):
            conn = self.engine.connect()
            try:
                result = conn.execute(query)
            except Exception:
                conn.close()
                raise
        return GamesIter(conn, result)
