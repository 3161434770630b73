import argparse
import logging
import sys
from datetime import timedelta
from typing import List, Optional

from steamtop.clients.steam_client import SteamClient
from steamtop.exceptions import SteamTopError
from steamtop.pipeline.scraper import Scraper
from steamtop.pipeline.updater import Updater
from steamtop.server.service import DEFAULT_ADDRESS, GamesServer
from steamtop.settings import settings
from steamtop.storage.config import DbConfig, load_db_config, local_db_config
from steamtop.storage.database import GamesDb
from steamtop.views.top_games import Lister

logger = logging.getLogger(__name__)


def _add_flag(parser, name: str, **kwargs) -> None:
    # accept both -name and --name
    parser.add_argument(f"-{name}", f"--{name}", **kwargs)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="steamtop",
        description="Scrape Steam games, track their player counts and serve the most played ones.",
        allow_abbrev=False,
    )
    actions = parser.add_argument_group("actions (at least one is required)")
    _add_flag(actions, "scrape", action="store_true", help="Scrape the latest list of games")
    _add_flag(actions, "fullscrape", action="store_true", help="Scrape and do not stop on duplicates")
    _add_flag(
        actions, "update", type=int, default=-1, metavar="N",
        help="Update the games not updated within the last N minutes (-1 disables)",
    )
    _add_flag(actions, "list", type=int, default=0, metavar="N", help="List top N games")
    _add_flag(actions, "serve", action="store_true", help="Run as a web service")

    server = parser.add_argument_group("web service")
    _add_flag(server, "update-period", type=int, default=5, metavar="N", help="Update stats every N minutes")
    _add_flag(server, "games-period", type=int, default=60, metavar="N", help="Update games every N minutes")
    _add_flag(server, "port", default=DEFAULT_ADDRESS, metavar="ADDR", help="Server bind address")

    database = parser.add_mutually_exclusive_group()
    _add_flag(database, "config", metavar="PATH", help="Database configuration file (YAML or JSON)")
    _add_flag(
        database, "database", metavar="PATH",
        help=f"Local SQLite database file (default: {settings.default_database})",
    )

    _add_flag(parser, "verbose", action="store_true", help="Enable debug logging")
    return parser


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def has_action(args: argparse.Namespace) -> bool:
    return args.serve or args.scrape or args.fullscrape or args.update >= 0 or args.list >= 1


def get_database_config(args: argparse.Namespace) -> DbConfig:
    if args.config:
        return load_db_config(args.config)
    return local_db_config(args.database or settings.default_database)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if not has_action(args):
        parser.print_help(sys.stderr)
        return 1

    try:
        db = GamesDb(get_database_config(args))
    except SteamTopError as e:
        logger.error(f"Error connecting to games database: {e}")
        return 1

    try:
        if args.serve:
            GamesServer(db, update_period=args.update_period, games_period=args.games_period).serve(args.port)
        else:
            run_actions(db, args)
    except SteamTopError as e:
        logger.error(f"Run failed: {e}")
        return 1
    finally:
        db.close()
    return 0


def run_actions(db: GamesDb, args: argparse.Namespace) -> None:
    """Run scrape, update and list in that order, as requested by ``args``."""
    client = SteamClient()
    if args.scrape or args.fullscrape:
        Scraper(db, client).scrape(continue_on_duplicate=args.fullscrape)
    if args.update >= 0:
        Updater(db, client).update(timedelta(minutes=args.update))
    if args.list > 0:
        Lister(db).list(args.list)


if __name__ == "__main__":
    sys.exit(main())
