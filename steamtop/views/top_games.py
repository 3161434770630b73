import logging
import sys
from typing import List, Optional, TextIO, Tuple

from steamtop.models.games import Game, RankedGame
from steamtop.settings import settings
from steamtop.storage.database import GamesDb

logger = logging.getLogger(__name__)


class TopGamesView:
    """
    Ranked snapshot of the most played games, served over HTTP.

    ``refresh`` builds a new tuple off to the side and publishes it with a
    single assignment, so readers of ``games`` always get a complete list.
    """

    def __init__(self, max_games: Optional[int] = None):
        self.max_games = max_games or settings.max_json_games
        self._games: Tuple[RankedGame, ...] = ()

    @property
    def games(self) -> Tuple[RankedGame, ...]:
        return self._games

    def refresh(self, db: GamesDb) -> int:
        """Rebuild the snapshot from the database. Returns the number of games published."""
        results: List[RankedGame] = []
        with db.get_top_games(self.max_games) as games:
            for rank, game in enumerate(games, start=1):
                results.append(
                    RankedGame(app_id=game.app_id, name=game.name, players=game.players, rank=rank)
                )
        self._games = tuple(results)
        logger.info(f"Published top games snapshot ({len(results)} games)")
        return len(results)


class Lister:
    """Prints the top games to a terminal."""

    def __init__(self, db: GamesDb):
        self.db = db

    def list(self, top: int, out: Optional[TextIO] = None) -> None:
        out = out or sys.stdout
        with self.db.get_top_games(top) as games:
            for rank, game in enumerate(games, start=1):
                self._print_game(rank, game, out)

    @staticmethod
    def _print_game(rank: int, game: Game, out: TextIO) -> None:
        out.write("%3d: %-6d %-35s %d\n" % (rank, game.app_id, game.name, game.players))
