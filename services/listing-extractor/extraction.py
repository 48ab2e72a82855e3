"""Extraction orchestrator: fetch, run field extractors, validate.

Never raises for fetch or parsing problems; every outcome is an
ExtractionResult. A result is successful when every required field was
recovered, so partial listings still come back as ``success=True``.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any

from browser import BrowserFetcher
from config import settings
from extractors import FieldExtractor, extractors_for
from fetcher import FetchError, PageFetcher, RawContent
from field_schema import FieldSchema, default_schema
from models import ExtractionResult, ListingRecord, RawExtraction
from page import ListingPage, detect_source
from validator import validate

logger = logging.getLogger(__name__)

BLOCKED_PAGE_ERROR = (
    "The listing site returned an anti-bot or CAPTCHA page instead of the listing. "
    "Please try again later or paste the page HTML."
)


def _run_extractors(page: ListingPage, extractors: list[FieldExtractor]) -> dict[str, Any]:
    """Fan out over a thread pool and wait for all (or the timeout).

    Extractors still running at the deadline count as not found.
    """
    found: dict[str, Any] = {}
    pool = ThreadPoolExecutor(
        max_workers=max(1, settings.EXTRACTOR_WORKERS),
        thread_name_prefix="extractor",
    )
    try:
        futures = {pool.submit(e.extract, page): e.field for e in extractors}
        done, not_done = wait(futures, timeout=settings.EXTRACTOR_TIMEOUT_SECONDS)
        for future in done:
            name = futures[future]
            try:
                found[name] = future.result()
            except Exception as e:
                logger.warning("Extractor for %s failed: %s", name, e)
        for future in not_done:
            logger.warning("Extractor for %s timed out", futures[future])
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
    return found


def _failed_fetch(error: FetchError, schema: FieldSchema) -> ExtractionResult:
    report = validate(RawExtraction(), schema)
    return ExtractionResult(
        success=False,
        data=None,
        error=str(error),
        extracted_fields=(),
        missing_fields=schema.names,
        validation=report,
    )


def extract_from_html(
    html: str,
    url: str,
    schema: FieldSchema | None = None,
    base_url: str | None = None,
) -> ExtractionResult:
    """Extract a listing from HTML the caller already holds.

    ``base_url`` is where the HTML was actually served from (after
    redirects); matchers read the page against it while the record keeps
    the requested ``url``.
    """
    if schema is None:
        schema = default_schema()
    page = ListingPage.from_html(html, base_url or url)

    found = _run_extractors(page, extractors_for(schema.names))
    raw = RawExtraction.from_values(schema, found)
    report = validate(raw, schema)

    success = report.overall_valid
    error = None
    if not success:
        if page.blocked:
            error = BLOCKED_PAGE_ERROR
        else:
            error = f"Missing required fields: {', '.join(report.missing_required)}"

    logger.info(
        "Extraction finished: source=%s extracted=%d/%d score=%d success=%s",
        page.source,
        len(report.extracted_fields),
        len(schema),
        report.score,
        success,
    )

    return ExtractionResult(
        success=success,
        data=ListingRecord.from_extraction(raw, url=url, source=page.source),
        error=error,
        extracted_fields=report.extracted_fields,
        missing_fields=report.missing_fields,
        validation=report,
    )


def _fetch_page(url: str, fetcher: PageFetcher, browser: BrowserFetcher | None) -> RawContent:
    """Browser first for hosts that need it, plain HTTP otherwise or as fallback."""
    if browser is not None and browser.handles(url):
        try:
            return browser.fetch(url)
        except FetchError as e:
            logger.warning("Browser fetch failed, falling back to HTTP: source=%s error=%s", detect_source(url), e)
    return fetcher.fetch(url)


def extract_listing(
    url: str,
    fetcher: PageFetcher,
    schema: FieldSchema | None = None,
    browser: BrowserFetcher | None = None,
) -> ExtractionResult:
    """Fetch ``url`` and extract it. No retries beyond the browser-to-HTTP fallback."""
    if schema is None:
        schema = default_schema()
    try:
        content = _fetch_page(url, fetcher, browser)
    except FetchError as e:
        logger.info(
            "Extraction failed: source=%s status=%s transient=%s",
            detect_source(url),
            e.status_code,
            e.transient,
        )
        return _failed_fetch(e, schema)

    return extract_from_html(content.html, url, schema, base_url=content.final_url)
