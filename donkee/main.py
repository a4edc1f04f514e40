import logging
import secrets
from typing import Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from donkee import __version__
from donkee.config import Settings, get_settings
from donkee.logging_config import setup_logging
from donkee.orchestration.tasks import (
    ContentTooShortError, DailyLimitReachedError, healthcheck, post_new_tweet,
    reply_to_top_tweet, search_and_store,
)
from donkee.services.grok_client import GrokClient, GrokError
from donkee.services.x_client import XApiError, XClient
from donkee.storage import StorageError, create_store

logger = logging.getLogger(__name__)


def create_limiter() -> Limiter:
    """Per-client-IP limit on every route not marked exempt, checked before authentication."""
    return Limiter(
        key_func=get_remote_address,
        default_limits=[get_settings().api_rate_limit],
    )


limiter = create_limiter()
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

app = FastAPI(
    title="Donkee Bot API",
    description="Searches X for trending crypto posts, stores them, and posts Grok-written tweets and replies",
    version=__version__,
)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for IP: {get_remote_address(request)}")
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests from this IP, please try again later."},
    )


@app.on_event("startup")
def startup():
    """Validate configuration and open the store. Either failing stops the server."""
    settings = get_settings()
    setup_logging(settings.log_level)

    missing = settings.missing_credentials()
    if missing:
        for name in missing:
            logger.error(f"Missing environment variable: {name.upper()}")
        raise RuntimeError("Missing required configuration")

    try:
        app.state.store = create_store(settings).open()
    except StorageError as e:
        logger.error(f"Error connecting to database: {e}")
        raise

    app.state.x_client = XClient.from_settings(settings)
    app.state.grok = GrokClient.from_settings(settings)
    logger.info("Donkee Bot API starting up")


@app.on_event("shutdown")
def shutdown():
    for name in ("x_client", "grok", "store"):
        resource = getattr(app.state, name, None)
        if resource is not None:
            resource.close()
    logger.info("Donkee Bot API shutting down")


def get_store(request: Request):
    return request.app.state.store


def get_x_client(request: Request) -> XClient:
    return request.app.state.x_client


def get_grok(request: Request) -> GrokClient:
    return request.app.state.grok


def require_api_key(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
    settings: Settings = Depends(get_settings),
) -> str:
    expected = settings.donkee_secret_key
    if not api_key or not expected or not secrets.compare_digest(api_key, expected):
        logger.info(f"Unauthorized access attempt for {request.url.path} endpoint")
        raise HTTPException(status_code=401, detail="Unauthorized")
    return api_key


def _posting_error(e: Exception, action: str) -> HTTPException:
    """Map a failure from a posting flow to an HTTP error."""
    if isinstance(e, ContentTooShortError):
        return HTTPException(status_code=400, detail={"error": "Generated content too short"})
    if isinstance(e, DailyLimitReachedError):
        return HTTPException(
            status_code=429,
            detail={"error": "Daily tweet limit exhausted", "reset": e.reset_at.isoformat()},
        )
    if isinstance(e, XApiError) and e.status_code == 403:
        return HTTPException(
            status_code=403,
            detail={"error": "Insufficient permissions (check app settings)", "details": e.detail},
        )
    if isinstance(e, XApiError) and e.status_code == 401:
        return HTTPException(
            status_code=401,
            detail={"error": "Invalid authentication credentials", "details": e.detail},
        )
    if isinstance(e, GrokError):
        return HTTPException(status_code=502, detail={"error": "Error generating content", "details": str(e)})
    return HTTPException(status_code=500, detail={"error": f"Error {action}", "details": str(e)})


@app.get("/health")
@limiter.exempt
def health_check(request: Request):
    """Health check endpoint."""
    return healthcheck(getattr(request.app.state, "store", None))


@app.get("/search", dependencies=[Depends(require_api_key)])
def search(
    settings: Settings = Depends(get_settings),
    store=Depends(get_store),
    x_client: XClient = Depends(get_x_client),
) -> Dict:
    """Search the configured query and lists and store new posts."""
    try:
        report = search_and_store(x_client, store, settings)
    except Exception as e:
        logger.error(f"Search and store operation failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error in search and store operation")

    return {
        "message": "Tweets searched and stored",
        "summary": report.summary(),
        "report": report.model_dump(mode="json"),
    }


@app.get("/tweet", dependencies=[Depends(require_api_key)])
def tweet(
    settings: Settings = Depends(get_settings),
    store=Depends(get_store),
    x_client: XClient = Depends(get_x_client),
    grok: GrokClient = Depends(get_grok),
) -> Dict:
    """Generate a new Donkee tweet and post it."""
    try:
        return post_new_tweet(grok, x_client, store, settings)
    except Exception as e:
        logger.error(f"Tweet posting failed: {e}")
        raise _posting_error(e, "posting tweet")


@app.get("/reply", dependencies=[Depends(require_api_key)])
def reply(
    settings: Settings = Depends(get_settings),
    store=Depends(get_store),
    x_client: XClient = Depends(get_x_client),
    grok: GrokClient = Depends(get_grok),
) -> Dict:
    """Reply to the highest-engagement recent post."""
    try:
        return reply_to_top_tweet(grok, x_client, store, settings)
    except Exception as e:
        logger.error(f"Reply posting failed: {e}")
        raise _posting_error(e, "posting reply")
