from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import add_game, serve_details, serve_pages
from steamtop.exceptions import ConfigError, TransportError
from steamtop.models.games import RankedGame
from steamtop.server.app import create_app
from steamtop.server.service import GamesServer, parse_bind_address
from steamtop.views.top_games import TopGamesView


@pytest.fixture
def view():
    view = TopGamesView()
    view._games = (
        RankedGame(app_id=730, name="Counter-Strike 2", players=1000, rank=1),
        RankedGame(app_id=570, name="Dota 2", players=600, rank=2),
    )
    return view


@pytest.fixture
def server(games_db, mock_client):
    return GamesServer(games_db, mock_client, max_workers=2, scheduler=MagicMock())


class TestApp:
    def test_returns_snapshot(self, view):
        client = TestClient(create_app(view))
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == [
            {"app_id": 730, "name": "Counter-Strike 2", "players": 1000, "rank": 1},
            {"app_id": 570, "name": "Dota 2", "players": 600, "rank": 2},
        ]

    def test_empty_snapshot(self):
        client = TestClient(create_app(TopGamesView()))
        assert client.get("/").json() == []

    def test_gzip_when_accepted(self, view):
        client = TestClient(create_app(view, gzip_minimum_size=0))
        response = client.get("/", headers={"Accept-Encoding": "gzip"})
        assert response.headers["content-encoding"] == "gzip"
        assert len(response.json()) == 2

    def test_no_gzip_without_accept_encoding(self, view):
        client = TestClient(create_app(view, gzip_minimum_size=0))
        response = client.get("/", headers={"Accept-Encoding": "identity"})
        assert "content-encoding" not in response.headers

    def test_large_request_rejected(self, view):
        """Bodies above the size limit should get 413."""
        client = TestClient(create_app(view, max_request_size=128))
        response = client.post("/", content=b"x" * 129)
        assert response.status_code == 413

    def test_limit_reads_content_length_only(self, view):
        """A chunked body carries no Content-Length and is not measured."""
        client = TestClient(create_app(view, max_request_size=128))
        response = client.post("/", content=iter([b"x" * 100, b"x" * 100]))
        assert response.status_code == 405

    def test_other_methods_not_allowed(self, view):
        client = TestClient(create_app(view))
        assert client.post("/", content=b"{}").status_code == 405

    def test_no_docs_routes(self, view):
        client = TestClient(create_app(view))
        assert client.get("/docs").status_code == 404
        assert client.get("/openapi.json").status_code == 404


class TestParseBindAddress:
    @pytest.mark.parametrize(
        "address, expected",
        [
            (":9654", ("0.0.0.0", 9654)),
            ("127.0.0.1:8080", ("127.0.0.1", 8080)),
            ("[::1]:80", ("::1", 80)),
        ],
    )
    def test_valid(self, address, expected):
        assert parse_bind_address(address) == expected

    @pytest.mark.parametrize("address", ["9654", "localhost:", "host:http"])
    def test_invalid(self, address):
        with pytest.raises(ConfigError):
            parse_bind_address(address)


class TestGamesServer:
    def test_rejects_bad_periods(self, games_db, mock_client):
        with pytest.raises(ConfigError):
            GamesServer(games_db, mock_client, update_period=0, scheduler=MagicMock())

    def test_scrape_fire_publishes_snapshot(self, server, mock_client):
        """One games-period fire on an empty store should make every new game visible."""
        serve_pages(mock_client, [10, 20, 30], [40, 50])
        serve_details(mock_client)
        client = TestClient(server.app)
        assert client.get("/").json() == []

        server.scrape_games()

        games = client.get("/").json()
        assert len(games) == 5
        assert [g["rank"] for g in games] == [1, 2, 3, 4, 5]
        assert {g["app_id"] for g in games} == {10, 20, 30, 40, 50}

    def test_scrape_error_is_logged(self, server, mock_client, games_db):
        """A failed scrape keeps the server running and still refreshes the list."""
        add_game(games_db, 1, "Known", players=3)
        mock_client.get_search_page.side_effect = TransportError("connection refused")
        server.scrape_games()
        assert [g.app_id for g in server.view.games] == [1]

    def test_worker_crash_still_refreshes_list(self, server, mock_client, games_db):
        """A non-steamtop error from a job propagates, but the list is rebuilt first."""
        add_game(games_db, 1, "Known", players=3)
        serve_pages(mock_client, [2])
        serve_details(mock_client, {2: ValueError("boom")})
        with pytest.raises(ValueError, match="boom"):
            server.scrape_games()
        assert [g.app_id for g in server.view.games] == [1]

        server.updater = MagicMock()
        server.updater.update.side_effect = RuntimeError("worker died")
        add_game(games_db, 3, "New", players=9)
        with pytest.raises(RuntimeError):
            server.update_players()
        assert [g.app_id for g in server.view.games] == [3, 1]

    def test_update_uses_period_as_staleness(self, server):
        server.updater = MagicMock()
        server.update_players()
        server.updater.update.assert_called_once()
        assert server.updater.update.call_args.args[0].total_seconds() == 5 * 60

    def test_update_fire_refreshes_counts(self, server, mock_client, games_db):
        add_game(games_db, 1, "A")
        add_game(games_db, 2, "B")
        mock_client.get_player_count.side_effect = lambda app_id: app_id * 100
        server.update_players()
        assert [(g.app_id, g.players) for g in server.view.games] == [(2, 200), (1, 100)]

    def test_start_registers_jobs(self, server, games_db):
        add_game(games_db, 1, "Ready", players=1)
        server.start()
        job_ids = [c.kwargs["id"] for c in server.scheduler.add_job.call_args_list]
        assert job_ids == ["update_players", "scrape_games"]
        server.scheduler.start.assert_called_once()
        assert len(server.view.games) == 1

    def test_serve_runs_uvicorn_and_stops(self, server):
        with patch("steamtop.server.service.uvicorn.run") as run:
            server.serve("127.0.0.1:9000")
        run.assert_called_once()
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["port"] == 9000
        server.scheduler.shutdown.assert_called_once_with(wait=False)
