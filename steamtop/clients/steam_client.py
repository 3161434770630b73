import logging
import time
from typing import Optional, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError
from requests import Response
from requests.adapters import HTTPAdapter

from steamtop.exceptions import DecodeError, TransportError
from steamtop.models.steam import AppInfoEnvelope, NumberOfPlayers
from steamtop.settings import settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SteamClient:
    """
    Client for the Steam storefront and the Steam Web API stats endpoint.
    Every request is a plain GET bounded by a single total timeout.

    Args:
        timeout: HTTP request timeout in seconds (connect + read).
        max_retries: Number of attempts per request on transport failures.
        backoff_factor: Delay multiplier between attempts (linear backoff).
        pool_size: Size of the connection pool shared by worker threads.
        session: Optional pre-configured requests.Session for connection reuse.
    """

    SEARCH_URL = "http://store.steampowered.com/search/?sort_by=Released_DESC&vrsupport=101&page={page}"
    APP_INFO_URL = "http://store.steampowered.com/api/appdetails?appids={appid}"
    APP_PLAYERS_URL = "https://api.steampowered.com/ISteamUserStats/GetNumberOfCurrentPlayers/v1/?appid={appid}"

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_factor: Optional[float] = None,
        pool_size: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.max_retries = max(1, max_retries if max_retries is not None else settings.http_max_retries)
        self.backoff_factor = backoff_factor if backoff_factor is not None else settings.http_backoff_factor
        self.session = session or self._build_session(pool_size or settings.max_workers)

    @staticmethod
    def _build_session(pool_size: int) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers["User-Agent"] = settings.user_agent
        return session

    def search_page_url(self, page: int) -> str:
        return self.SEARCH_URL.format(page=page)

    def app_info_url(self, appid: int) -> str:
        return self.APP_INFO_URL.format(appid=appid)

    def app_players_url(self, appid: int) -> str:
        return self.APP_PLAYERS_URL.format(appid=appid)

    def fetch_bytes(self, url: str) -> bytes:
        """
        Perform a GET request and return the raw body.

        Non-2xx responses are not errors here: their body is returned as-is.

        Raises:
            TransportError: If connecting or reading the body fails on every attempt.
        """
        for attempt in range(1, self.max_retries + 1):
            try:
                resp: Response = self.session.get(url, timeout=self.timeout)
                try:
                    if not resp.ok:
                        logger.debug(f"GET {url} returned HTTP {resp.status_code}")
                    return resp.content
                finally:
                    resp.close()
            except requests.RequestException as e:
                logger.warning(f"Request to {url} failed (attempt {attempt}/{self.max_retries}): {e}")
                if attempt == self.max_retries:
                    raise TransportError(f"error fetching {url}: {e}") from e
                time.sleep(self.backoff_factor * attempt)
        raise TransportError(f"error fetching {url}")

    def fetch_text(self, url: str) -> str:
        return self.fetch_bytes(url).decode("utf-8", errors="replace")

    def fetch_json(self, url: str, schema: Type[ModelT]) -> ModelT:
        """
        Fetch ``url`` and decode the body into ``schema``.

        Raises:
            TransportError: If the request fails.
            DecodeError: If the body is not valid JSON for ``schema``.
        """
        body = self.fetch_bytes(url)
        try:
            return schema.model_validate_json(body)
        except ValidationError as e:
            raise DecodeError(f"error decoding {url}: {e}") from e

    def get_search_page(self, page: int) -> str:
        """Fetch one page of the store search listing as HTML."""
        return self.fetch_text(self.search_page_url(page))

    def get_app_details(self, appid: int) -> AppInfoEnvelope:
        """Fetch the appdetails envelope for a single app."""
        return self.fetch_json(self.app_info_url(appid), AppInfoEnvelope)

    def get_player_count(self, appid: int) -> int:
        """Fetch the current number of players for a single app."""
        players = self.fetch_json(self.app_players_url(appid), NumberOfPlayers)
        return players.response.player_count
