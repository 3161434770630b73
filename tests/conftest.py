"""
Pytest fixtures shared by the storage, pipeline and server tests
"""
from unittest.mock import MagicMock

import pytest

from steamtop.clients.steam_client import SteamClient
from steamtop.models.steam import AppInfoEnvelope
from steamtop.storage.config import local_db_config
from steamtop.storage.database import GamesDb

NOW = 1_700_000_000


class FakeClock:
    """Callable returning a fixed epoch time that tests can move forward."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "steamdb" / "steam.db"


@pytest.fixture
def games_db(db_path, clock):
    db = GamesDb(local_db_config(db_path), clock=clock)
    yield db
    db.close()


@pytest.fixture
def mock_client():
    """A SteamClient double; tests set side effects on the endpoint methods."""
    return MagicMock(spec=SteamClient)


def add_game(db: GamesDb, app_id: int, name: str, players: int = 0, categories=(False, False, False, False)) -> int:
    row_id = db.save_app_info(app_id, name, *categories)
    if players:
        db.update_players_count(app_id, players)
    return row_id


def top_games(db: GamesDb, limit: int = 1_000_000):
    with db.get_top_games(limit) as games:
        return list(games)


def search_page(*app_ids: int) -> str:
    links = "".join(
        f'<a href="https://store.steampowered.com/app/{a}/"><img src="https://cdn/steam/apps/{a}/capsule.jpg"></a>'
        for a in app_ids
    )
    return f"<html><body>{links}</body></html>"


def envelope(app_id: int, name: str = None, categories=(), success: bool = True) -> AppInfoEnvelope:
    return AppInfoEnvelope.model_validate(
        {
            str(app_id): {
                "success": success,
                "data": {
                    "name": name or f"Game {app_id}",
                    "categories": [{"id": c, "description": str(c)} for c in categories],
                },
            }
        }
    )


def serve_pages(mock_client, *pages):
    """Make the client return ``pages`` in order, then an empty listing."""
    by_number = {number: search_page(*ids) for number, ids in enumerate(pages, start=1)}
    mock_client.get_search_page.side_effect = lambda page: by_number.get(page, "<html></html>")


def serve_details(mock_client, overrides=None):
    overrides = overrides or {}

    def get_app_details(app_id):
        result = overrides.get(app_id)
        if isinstance(result, Exception):
            raise result
        return result if result is not None else envelope(app_id)

    mock_client.get_app_details.side_effect = get_app_details
