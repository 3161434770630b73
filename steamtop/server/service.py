import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

import uvicorn
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from steamtop.clients.steam_client import SteamClient
from steamtop.exceptions import ConfigError, SteamTopError
from steamtop.pipeline.scraper import Scraper
from steamtop.pipeline.updater import Updater
from steamtop.server.app import create_app
from steamtop.storage.database import GamesDb
from steamtop.views.top_games import TopGamesView

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS = ":9654"


def parse_bind_address(address: str) -> Tuple[str, int]:
    """Split ``host:port`` into its parts. An empty host binds every interface."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigError(f"Invalid bind address: {address!r}")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


class GamesServer:
    """
    Serve mode: keeps the database fresh in the background and serves the
    top games snapshot over HTTP.

    Both periodic jobs run on a single scheduler thread, so they never
    overlap; a slow scrape delays the next player count refresh.

    Args:
        db: Games database.
        client: Steam client shared by the scraper and the updater.
        update_period: Minutes between player count refreshes; also the staleness window.
        games_period: Minutes between catalog scrapes.
        max_workers: Worker pool size for both pipelines.
        scheduler: Optional pre-built scheduler, mostly for tests.
    """

    def __init__(
        self,
        db: GamesDb,
        client: Optional[SteamClient] = None,
        update_period: int = 5,
        games_period: int = 60,
        max_workers: Optional[int] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        if update_period < 1 or games_period < 1:
            raise ConfigError("update-period and games-period must be at least 1 minute")
        self.db = db
        client = client or SteamClient(pool_size=max_workers)
        self.scraper = Scraper(db, client, max_workers)
        self.updater = Updater(db, client, max_workers)
        self.view = TopGamesView()
        self.update_period = update_period
        self.games_period = games_period
        self.app = create_app(self.view)
        self.scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(1)},
            job_defaults={"coalesce": True, "max_instances": 1},
        )

    def update_players(self) -> None:
        logger.info("Updating player counts")
        try:
            self.updater.update(timedelta(minutes=self.update_period))
        except SteamTopError as e:
            logger.error(f"Error updating: {e}")
        finally:
            self.refresh_view()

    def scrape_games(self) -> None:
        logger.info("Scraping games")
        try:
            self.scraper.scrape(continue_on_duplicate=True)
        except SteamTopError as e:
            logger.error(f"Error scraping: {e}")
        finally:
            self.refresh_view()

    def refresh_view(self) -> None:
        try:
            self.view.refresh(self.db)
        except SteamTopError as e:
            logger.error(f"Error building games list: {e}")

    def start(self) -> None:
        """Publish the first snapshot and start the periodic jobs; the first refresh runs right away."""
        self.refresh_view()
        self.scheduler.add_job(
            func=self.update_players,
            trigger=IntervalTrigger(minutes=self.update_period),
            id="update_players",
            name="Update player counts",
            next_run_time=datetime.now(),
        )
        self.scheduler.add_job(
            func=self.scrape_games,
            trigger=IntervalTrigger(minutes=self.games_period),
            id="scrape_games",
            name="Scrape games",
        )
        self.scheduler.start()
        logger.info(f"Background jobs started (update every {self.update_period}m, scrape every {self.games_period}m)")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def serve(self, address: str = DEFAULT_ADDRESS) -> None:
        host, port = parse_bind_address(address)
        self.start()
        logger.info(f"Serving at {address}")
        try:
            uvicorn.run(self.app, host=host, port=port, access_log=False)
        finally:
            self.stop()
