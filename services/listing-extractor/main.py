"""FastAPI listing extractor service.

Fetches real-estate listing pages, extracts a normalized listing record and
relays listing photos from trusted image hosts. Page HTML and image bytes
are never logged, only their sizes.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from browser import BrowserFetcher
from config import settings
from extraction import extract_from_html, extract_listing
from fetcher import PageFetcher
from field_schema import FieldSchema, default_schema
from image_relay import ImageRelay, rejection_status
from models import ExtractionResult, ExtractRequest, ImageRejection, is_absolute_http_url

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_fetcher: PageFetcher | None = None
_browser: BrowserFetcher | None = None
_relay: ImageRelay | None = None
_schema: FieldSchema | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared HTTP clients and the field schema on startup."""
    global _fetcher, _browser, _relay, _schema

    _schema = default_schema()
    _fetcher = PageFetcher()
    if settings.BROWSER_FETCH_ENABLED:
        _browser = BrowserFetcher()
    _relay = ImageRelay()
    logger.info(
        "Listing extractor ready: fields=%d browser_hosts=%s trusted_image_hosts=%s",
        len(_schema),
        ",".join(_browser.hosts) if _browser is not None else "none",
        ",".join(sorted(_relay.policy.trusted_hosts)),
    )

    yield

    _fetcher.close()
    _relay.close()
    if _browser is not None:
        _browser.close()
    _fetcher = _browser = _relay = None


app = FastAPI(title="Listing Extractor", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError):
    """Malformed request bodies are caller errors (400), like a bad url."""
    return JSONResponse(status_code=400, content={"detail": "Malformed request body"})


@app.post("/api/v1/extract", response_model=ExtractionResult)
def extract(body: ExtractRequest | None = Body(default=None)):
    """Extract a listing record from a marketplace URL.

    Partial and failed extractions are still 200 responses; only a missing
    or malformed ``url`` is a caller error.
    """
    url = body.url if body is not None else None
    if not isinstance(url, str) or not url.strip():
        return JSONResponse(status_code=400, content={"detail": "url is required"})
    url = url.strip()
    if not is_absolute_http_url(url):
        return JSONResponse(status_code=400, content={"detail": "url must be an absolute http(s) URL"})

    if body.html:
        logger.info("Processing extraction from supplied HTML: size=%d bytes", len(body.html))
        return extract_from_html(body.html, url, _schema)

    if _fetcher is None:
        return JSONResponse(status_code=503, content={"detail": "Listing fetcher is not available"})

    logger.info("Processing extraction: url=%s", url)
    return extract_listing(url, _fetcher, _schema, browser=_browser)


@app.get("/api/v1/image-relay")
def image_relay(url: str | None = Query(default=None)):
    """Relay a listing photo from a trusted image host."""
    if _relay is None:
        return JSONResponse(status_code=503, content={"detail": "Image relay is not available"})

    result = _relay.resolve(url or "")
    if isinstance(result, ImageRejection):
        content = {"error": result.reason.value, "detail": result.message}
        if result.status_code is not None:
            content["upstreamStatus"] = result.status_code
        return JSONResponse(status_code=rejection_status(result.reason), content=content)

    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={
            "Cache-Control": result.cache_control,
            "X-Content-Type-Options": "nosniff",
            "Access-Control-Allow-Origin": "*",
        },
    )


@app.get("/health")
def health():
    """Return service status."""
    return {
        "status": "healthy",
        "fetcher_ready": _fetcher is not None,
        "browser_enabled": _browser is not None,
        "image_relay_ready": _relay is not None,
        "fields": len(_schema) if _schema is not None else 0,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
