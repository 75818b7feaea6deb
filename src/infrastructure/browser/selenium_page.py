"""
Selenium Page Handle
====================

PageHandle backed by a real Chrome instance.

Network failures are read from Chrome's performance log (DevTools
``Network.*`` events), so the driver is created with performance logging
switched on.
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from selenium import webdriver
from selenium.common.exceptions import (
    ElementClickInterceptedException,
    ElementNotInteractableException,
    InvalidSelectorException,
    InvalidSessionIdException,
    NoSuchWindowException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.chrome.service import Service as ChromeService
from selenium.webdriver.common.by import By
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from ...domain.errors import PageUnavailableError
from ..config import BrowserSettings, get_settings
from .page_handle import ElementDescriptor, PageActionError, PageHandle, ResourceEvent

logger = logging.getLogger(__name__)

# Builds one descriptor dict per element: attributes, a short tag.class path
# from the ancestors down, and the aria labels found inside.
DESCRIBE_SCRIPT = """
return arguments[0].map(function (el) {
  var attrs = {};
  for (var i = 0; i < el.attributes.length; i++) {
    attrs[el.attributes[i].name] = el.attributes[i].value;
  }
  var path = [];
  var node = el;
  while (node && node.nodeType === 1 && path.length < 6) {
    var part = node.tagName.toLowerCase();
    if (node.classList && node.classList.length) {
      part += '.' + Array.prototype.slice.call(node.classList, 0, 2).join('.');
    }
    path.unshift(part);
    node = node.parentElement;
  }
  var labels = [];
  var labelled = el.querySelectorAll('[aria-label]');
  for (var j = 0; j < labelled.length && labels.length < 20; j++) {
    labels.push(labelled[j].getAttribute('aria-label'));
  }
  return {
    tag: el.tagName.toLowerCase(),
    text: el.innerText || el.textContent || '',
    attributes: attrs,
    path: path.join(' > '),
    labels: labels
  };
});
"""

_DISCONNECT_MARKERS = ("disconnected", "target window already closed", "no such window", "chrome not reachable")


class SeleniumPageHandle(PageHandle):
    """
    Chrome page driven through Selenium.

    Pass an existing ``driver`` to reuse a browser; otherwise one is created
    with webdriver-manager.
    """

    def __init__(self, driver: Optional[webdriver.Chrome] = None, headless: Optional[bool] = None,
                 settings: Optional[BrowserSettings] = None):
        self._settings = settings or get_settings().browser
        self.driver = driver or self._create_driver(
            self._settings.headless if headless is None else headless
        )
        self._request_urls: Dict[str, Tuple[str, str]] = {}
        self._events: List[ResourceEvent] = []

    def _create_driver(self, headless: bool) -> webdriver.Chrome:
        """Create and configure Chrome WebDriver."""
        options = webdriver.ChromeOptions()
        if headless:
            options.add_argument("--headless=new")
        options.add_argument("--disable-gpu")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")
        options.add_argument(f"--window-size={self._settings.window_size}")
        options.add_argument(f"--lang={self._settings.language}")
        options.add_argument(f"user-agent={self._settings.user_agent}")
        options.set_capability("goog:loggingPrefs", {"performance": "ALL"})

        service = ChromeService(ChromeDriverManager().install())
        driver = webdriver.Chrome(service=service, options=options)
        driver.set_page_load_timeout(self._settings.page_load_timeout)
        logger.info(f"Chrome started (headless={headless})")
        return driver

    def _call(self, fn: Callable[[], Any]) -> Any:
        """Run a driver call, turning a dead session into PageUnavailableError."""
        try:
            return fn()
        except (InvalidSessionIdException, NoSuchWindowException) as e:
            raise PageUnavailableError(f"Browser page is gone: {e.msg}") from e
        except WebDriverException as e:
            message = (e.msg or "").lower()
            if any(marker in message for marker in _DISCONNECT_MARKERS):
                raise PageUnavailableError(f"Browser page is gone: {e.msg}") from e
            raise

    # ── Navigation and queries ─────────────────────────────────────

    def navigate(self, url: str) -> None:
        logger.info(f"Navigating to: {url}")
        self._request_urls.clear()
        self._events = []
        try:
            self._call(lambda: self.driver.get(url))
        except PageUnavailableError:
            raise
        except WebDriverException as e:
            # Page load timeouts still leave a usable, partially loaded page
            logger.warning(f"Navigation did not finish cleanly: {e.msg}")

    def query_all(self, selector: str, within: Optional[ElementDescriptor] = None) -> List[ElementDescriptor]:
        root = within.ref if within is not None and within.ref is not None else self.driver
        try:
            elements = self._call(lambda: root.find_elements(By.CSS_SELECTOR, selector))
            if not elements:
                return []
            described = self._call(lambda: self.driver.execute_script(DESCRIBE_SCRIPT, elements))
        except InvalidSelectorException:
            logger.debug(f"Invalid selector skipped: {selector}")
            return []
        except StaleElementReferenceException:
            return []
        except PageUnavailableError:
            raise
        except WebDriverException as e:
            logger.debug(f"Query failed for {selector}: {e.msg}")
            return []

        return [
            ElementDescriptor(
                tag=info.get("tag", ""),
                text=info.get("text", "") or "",
                attributes=dict(info.get("attributes") or {}),
                path=info.get("path", ""),
                labels=tuple(label for label in info.get("labels") or () if label),
                ref=element,
            )
            for element, info in zip(elements, described or [])
        ]

    def page_text(self) -> str:
        return self._call(
            lambda: self.driver.execute_script("return document.body ? document.body.innerText : '';")
        ) or ""

    # ── Interaction ────────────────────────────────────────────────

    def click(self, element: ElementDescriptor) -> None:
        if element.ref is None:
            raise PageActionError(f"Element <{element.tag}> has no driver reference")
        try:
            self._call(element.ref.click)
        except (ElementClickInterceptedException, ElementNotInteractableException):
            # Covered by an overlay or off screen: fall back to a DOM click
            try:
                self._call(lambda: self.driver.execute_script("arguments[0].click();", element.ref))
            except StaleElementReferenceException as e:
                raise PageActionError(f"Element went stale: <{element.tag}>") from e
        except StaleElementReferenceException as e:
            raise PageActionError(f"Element went stale: <{element.tag}>") from e

    def scroll_by(self, pixels: int) -> None:
        self._call(lambda: self.driver.execute_script("window.scrollBy(0, arguments[0]);", pixels))

    def scroll_to_bottom(self, within: Optional[ElementDescriptor] = None) -> None:
        try:
            if within is not None and within.ref is not None:
                self._call(lambda: self.driver.execute_script(
                    "arguments[0].scrollTop = arguments[0].scrollHeight;", within.ref
                ))
            else:
                self._call(lambda: self.driver.execute_script(
                    "window.scrollTo(0, document.body.scrollHeight);"
                ))
        except StaleElementReferenceException as e:
            raise PageActionError("Scroll container went stale") from e

    # ── Page state ─────────────────────────────────────────────────

    def resource_events(self) -> List[ResourceEvent]:
        try:
            entries = self._call(lambda: self.driver.get_log("performance"))
        except PageUnavailableError:
            raise
        except WebDriverException as e:
            logger.debug(f"Performance log unavailable: {e.msg}")
            return list(self._events)

        for entry in entries:
            event = self._parse_log_entry(entry)
            if event is not None:
                self._events.append(event)
        return list(self._events)

    def _parse_log_entry(self, entry: Dict[str, Any]) -> Optional[ResourceEvent]:
        try:
            message = json.loads(entry["message"])["message"]
        except (KeyError, TypeError, ValueError):
            return None

        method = message.get("method", "")
        params = message.get("params", {})
        request_id = params.get("requestId", "")

        if method == "Network.requestWillBeSent":
            self._request_urls[request_id] = (
                params.get("request", {}).get("url", ""),
                params.get("type", ""),
            )
            return None

        if method == "Network.responseReceived":
            response = params.get("response", {})
            status = response.get("status")
            return ResourceEvent(
                url=response.get("url", ""),
                resource_type=params.get("type", ""),
                failed=bool(status and status >= 400),
                status=status,
            )

        if method == "Network.loadingFailed":
            url, resource_type = self._request_urls.get(request_id, ("", params.get("type", "")))
            return ResourceEvent(
                url=url,
                resource_type=resource_type,
                failed=True,
                error_text=params.get("errorText", ""),
            )

        return None

    def ready_state(self) -> str:
        return self._call(lambda: self.driver.execute_script("return document.readyState;")) or ""

    def viewport(self) -> Tuple[int, int]:
        size = self._call(
            lambda: self.driver.execute_script("return [window.innerWidth, window.innerHeight];")
        )
        return int(size[0]), int(size[1])

    def user_agent(self) -> str:
        return self._call(lambda: self.driver.execute_script("return navigator.userAgent;")) or ""

    def language(self) -> str:
        lang = self._call(lambda: self.driver.execute_script(
            "return document.documentElement.lang || navigator.language || '';"
        )) or ""
        return lang.split("-")[0].lower()

    def pause(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def wait_for(self, condition: Callable[[], bool], timeout: float, poll_interval: float = 0.25) -> bool:
        try:
            WebDriverWait(
                self.driver, timeout,
                poll_frequency=poll_interval,
                ignored_exceptions=[PageActionError, StaleElementReferenceException],
            ).until(lambda _: condition())
            return True
        except TimeoutException:
            logger.warning(f"Condition not met within {timeout}s")
            return False

    def is_alive(self) -> bool:
        try:
            self.driver.current_window_handle
            return True
        except WebDriverException:
            return False

    def close(self) -> None:
        try:
            self.driver.quit()
            logger.info("Browser closed")
        except WebDriverException as e:
            logger.debug(f"Error closing browser: {e.msg}")
