import logging
import queue
import threading
from typing import Optional

from steamtop.clients.steam_client import SteamClient
from steamtop.exceptions import (
    DecodeError,
    RateLimitedError,
    SteamTopError,
    TransportError,
    UnexpectedResponseError,
)
from steamtop.pipeline.scope import CancelScope
from steamtop.storage.database import GamesDb
from steamtop.utils.catalog import extract_app_ids

logger = logging.getLogger(__name__)

END_OF_IDS = -1


class Scraper:
    """
    Discovers new games on the store search listing and saves them.

    A producer thread walks the search pages in order and feeds app IDs to a
    queue; each ID is then checked and saved by a worker of a bounded pool.
    Every call to ``scrape`` runs with a fresh ``CancelScope``.

    Args:
        db: Games database.
        client: Steam client (a new one is created if omitted).
        max_workers: Worker pool size (defaults to settings.max_workers).
    """

    def __init__(self, db: GamesDb, client: Optional[SteamClient] = None, max_workers: Optional[int] = None):
        self.db = db
        self.client = client or SteamClient(pool_size=max_workers)
        self.max_workers = max_workers

    def scrape(self, continue_on_duplicate: bool = False) -> int:
        """
        Run one discovery pass.

        Unless ``continue_on_duplicate`` is set, the pass ends quietly at the
        first app that is already stored: the listing is sorted newest first,
        so everything after it is known.

        Returns:
            Number of games saved.

        Raises:
            SteamTopError: The error that cancelled the run.
        """
        logger.info(f"Starting scrape (continue_on_duplicate={continue_on_duplicate})")
        ids: "queue.Queue[int]" = queue.Queue()
        saved = _Counter()

        with CancelScope(self.max_workers, name="scraper") as scope:
            producer = threading.Thread(
                target=self._produce_app_ids,
                args=(scope, ids),
                name="scraper-pages",
                daemon=True,
            )
            producer.start()
            try:
                while True:
                    app_id = ids.get()
                    if app_id == END_OF_IDS or scope.cancelled:
                        break
                    scope.submit(self._save_app_info, scope, app_id, continue_on_duplicate, saved)
            except BaseException as e:
                scope.cancel(e)
                raise
            finally:
                producer.join()

        scope.raise_for_error()
        logger.info(f"Scrape complete ({saved.value} games saved)")
        return saved.value

    def _produce_app_ids(self, scope: CancelScope, ids: "queue.Queue[int]") -> None:
        try:
            page = 1
            while not scope.cancelled:
                try:
                    contents = self.client.get_search_page(page)
                except TransportError as e:
                    scope.cancel(e)
                    return
                app_ids = extract_app_ids(contents)
                if not app_ids:
                    logger.info(f"No apps on search page {page}, end of listing")
                    return
                logger.debug(f"Search page {page}: {len(app_ids)} apps")
                for app_id in app_ids:
                    ids.put(app_id)
                page += 1
        except Exception as e:
            logger.exception("Search page producer crashed")
            scope.cancel(e)
        finally:
            ids.put(END_OF_IDS)

    def _save_app_info(self, scope: CancelScope, app_id: int, continue_on_duplicate: bool, saved: "_Counter") -> None:
        try:
            exists = self.db.exists(app_id)
        except SteamTopError as e:
            scope.cancel(e)
            return
        if exists:
            self._on_duplicate(scope, app_id, continue_on_duplicate)
            return

        try:
            envelope = self.client.get_app_details(app_id)
        except (TransportError, DecodeError) as e:
            logger.warning(f"Skipping app {app_id}: {e}")
            return

        if envelope.is_empty():
            scope.cancel(RateLimitedError(f"empty json: {app_id}, probably rate limit"))
            return

        app_info = envelope.get(app_id)
        if app_info is None:
            scope.cancel(UnexpectedResponseError(f"unexpected app json: {app_id}: {envelope.root!r}"))
            return

        if not app_info.success:
            logger.warning(f"Store reports no details for app {app_id}, saving it without them")

        if scope.cancelled:
            return

        try:
            db_id = self.db.save_new_app_info(
                app_id,
                app_info.name,
                app_info.is_singleplayer(),
                app_info.is_multiplayer(),
                app_info.is_online_multiplayer(),
                app_info.is_local_multiplayer(),
            )
        except SteamTopError as e:
            scope.cancel(e)
            return

        if db_id is None:
            self._on_duplicate(scope, app_id, continue_on_duplicate)
            return
        saved.increment()
        logger.info(f"Saved {app_info.name} ({app_id}) to database: {db_id}")

    @staticmethod
    def _on_duplicate(scope: CancelScope, app_id: int, continue_on_duplicate: bool) -> None:
        if continue_on_duplicate:
            logger.debug(f"App {app_id} already stored, skipping")
            return
        logger.info(f"App {app_id} already stored, stopping")
        scope.cancel(None)


class _Counter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.value = 0

    def increment(self) -> None:
        with self._lock:
            self.value += 1
