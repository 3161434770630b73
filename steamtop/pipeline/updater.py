import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from steamtop.clients.steam_client import SteamClient
from steamtop.exceptions import DecodeError, SteamTopError, TransportError
from steamtop.pipeline.scope import CancelScope
from steamtop.storage.database import GamesDb

logger = logging.getLogger(__name__)


class Updater:
    """
    Refreshes player counts of games whose last refresh is too old.

    Args:
        db: Games database.
        client: Steam client (a new one is created if omitted).
        max_workers: Worker pool size (defaults to settings.max_workers).
        clock: Returns the current epoch time in seconds.
    """

    def __init__(
        self,
        db: GamesDb,
        client: Optional[SteamClient] = None,
        max_workers: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.client = client or SteamClient(pool_size=max_workers)
        self.max_workers = max_workers
        self.clock = clock

    def update(self, staleness: timedelta) -> int:
        """
        Refresh every game not refreshed within ``staleness``.

        Returns:
            Number of games refreshed.

        Raises:
            SteamTopError: If listing stale games fails, or the error that cancelled the run.
        """
        since = datetime.fromtimestamp(self.clock(), tz=timezone.utc) - staleness
        stale_ids = self.db.get_unupdated_app_ids(since)
        logger.info(f"Updating {len(stale_ids)} games not refreshed since {since:%Y-%m-%d %H:%M:%S} UTC")

        updated = 0
        lock = threading.Lock()

        def update_app(app_id: int) -> None:
            nonlocal updated
            if self._update_app(scope, app_id):
                with lock:
                    updated += 1

        with CancelScope(self.max_workers, name="updater") as scope:
            for app_id in stale_ids:
                if not scope.submit(update_app, app_id):
                    break

        scope.raise_for_error()
        logger.info(f"Update complete ({updated}/{len(stale_ids)} games refreshed)")
        return updated

    def _update_app(self, scope: CancelScope, app_id: int) -> bool:
        try:
            players = self.client.get_player_count(app_id)
        except (TransportError, DecodeError) as e:
            scope.cancel(e)
            return False

        if scope.cancelled:
            return False

        try:
            self.db.update_players_count(app_id, players)
        except SteamTopError as e:
            scope.cancel(e)
            return False

        logger.debug(f"Game {app_id} has {players} players")
        return True
