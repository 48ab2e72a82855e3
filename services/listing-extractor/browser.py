"""Headless Chrome fetcher for marketplaces that block plain HTTP clients.

Zillow, Realtor.com and a few others serve CAPTCHA walls to anything that
does not run their scripts. For those hosts the page is loaded in a real
browser through Selenium and the rendered HTML is handed to the normal
extraction path. One driver is started lazily and reused; Selenium drivers
are not thread-safe, so page loads are serialized.
"""

import logging
import threading
import time
from typing import Callable
from urllib.parse import urlsplit

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException

from config import settings
from fetcher import FetchError, RawContent, TransientFetchError

logger = logging.getLogger(__name__)

_HIDE_WEBDRIVER = "Object.defineProperty(navigator, 'webdriver', {get: () => undefined})"


def build_driver(user_agent: str, page_load_timeout: int) -> webdriver.Chrome:
    opts = webdriver.ChromeOptions()
    opts.add_argument("--headless=new")
    opts.add_argument("--no-sandbox")
    opts.add_argument("--disable-dev-shm-usage")
    opts.add_argument("--disable-gpu")
    opts.add_argument("--window-size=1920,1080")
    opts.add_argument("--lang=en-US")
    opts.add_argument("--disable-blink-features=AutomationControlled")
    opts.add_argument(f"--user-agent={user_agent}")
    opts.add_experimental_option("excludeSwitches", ["enable-automation"])
    # Selenium Manager fetches the matching chromedriver
    driver = webdriver.Chrome(options=opts)
    driver.set_page_load_timeout(page_load_timeout)
    driver.execute_cdp_cmd("Page.addScriptToEvaluateOnNewDocument", {"source": _HIDE_WEBDRIVER})
    return driver


class BrowserFetcher:
    """Fetches listing pages with headless Chrome for configured hosts."""

    def __init__(
        self,
        hosts: list[str] | None = None,
        page_load_timeout: int | None = None,
        settle_seconds: float | None = None,
        user_agent: str | None = None,
        driver_factory: Callable[[str, int], webdriver.Chrome] | None = None,
    ):
        self.hosts = tuple(h.lower() for h in (hosts if hosts is not None else settings.BROWSER_HOSTS))
        self._page_load_timeout = (
            page_load_timeout if page_load_timeout is not None else settings.BROWSER_PAGE_LOAD_TIMEOUT
        )
        self._settle_seconds = settle_seconds if settle_seconds is not None else settings.BROWSER_SETTLE_SECONDS
        self._user_agent = user_agent or settings.USER_AGENT
        self._driver_factory = driver_factory or build_driver
        self._driver: webdriver.Chrome | None = None
        self._lock = threading.Lock()

    def handles(self, url: str) -> bool:
        """True when ``url`` is on a host that needs a real browser."""
        host = (urlsplit(url).hostname or "").lower()
        return any(host == h or host.endswith("." + h) for h in self.hosts)

    def close(self):
        with self._lock:
            self._discard_driver()

    def _discard_driver(self):
        if self._driver is None:
            return
        try:
            self._driver.quit()
        except WebDriverException as e:
            logger.warning("Browser did not shut down cleanly: %s", e.msg)
        self._driver = None

    def fetch(self, url: str) -> RawContent:
        """Load ``url`` in the browser and return the rendered HTML.

        Raises TransientFetchError when the browser cannot load the page and
        FetchError when it renders nothing.
        """
        with self._lock:
            try:
                if self._driver is None:
                    logger.info("Starting headless browser")
                    self._driver = self._driver_factory(self._user_agent, self._page_load_timeout)
                self._driver.get(url)
                if self._settle_seconds > 0:
                    time.sleep(self._settle_seconds)
                html = self._driver.page_source
                final_url = self._driver.current_url or url
            except TimeoutException as e:
                logger.warning("Browser page load timed out: %s", url)
                raise TransientFetchError("Browser page load timed out.") from e
            except WebDriverException as e:
                logger.warning("Browser fetch failed: %s", e.msg)
                # a crashed driver is restarted on the next fetch
                self._discard_driver()
                raise TransientFetchError(f"Browser fetch failed: {e.msg}") from e

        if not html:
            raise FetchError("Browser rendered an empty page.")

        logger.info("Fetched listing page with browser: size=%d chars", len(html))
        return RawContent(url=url, final_url=final_url, status_code=200, html=html, content_type="text/html")
