import logging
import time
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from steamtop.models.games import RankedGame
from steamtop.settings import settings
from steamtop.views.top_games import TopGamesView

logger = logging.getLogger(__name__)


def create_app(
    view: TopGamesView,
    max_request_size: Optional[int] = None,
    gzip_minimum_size: Optional[int] = None,
) -> FastAPI:
    """
    Build the read-only JSON API serving the top games snapshot.

    Middleware, outermost first: request logging, request size limit, gzip.
    The size limit is checked against the Content-Length header only;
    chunked bodies without one are not measured.
    """
    max_request_size = max_request_size if max_request_size is not None else settings.max_request_size
    gzip_minimum_size = gzip_minimum_size if gzip_minimum_size is not None else settings.gzip_minimum_size

    app = FastAPI(title="steamtop", docs_url=None, redoc_url=None, openapi_url=None)
    app.add_middleware(GZipMiddleware, minimum_size=gzip_minimum_size)

    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                return JSONResponse({"detail": "Invalid Content-Length"}, status_code=400)
            if size > max_request_size:
                return JSONResponse({"detail": "Request body too large"}, status_code=413)
        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        client = request.client.host if request.client else "-"
        logger.info(f'{client} "{request.method} {request.url.path}" {response.status_code} {elapsed_ms:.1f}ms')
        return response

    @app.get("/", response_model=List[RankedGame], name="games")
    async def games() -> List[RankedGame]:
        return list(view.games)

    return app
