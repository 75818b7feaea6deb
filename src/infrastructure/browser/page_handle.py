"""
Page Handle - Abstraction Layer for the Browser Page
====================================================

Every component of the collection core talks to the page through this
interface. Production code uses SeleniumPageHandle; tests use an in-memory
fake.

USAGE:
    page = SeleniumPageHandle(headless=True)
    page.navigate("https://www.google.com/maps/place/...")
    for element in page.query_all("div[data-review-id]"):
        print(element.text)
    page.close()

DESIGN:
- Elements are returned as ElementDescriptor snapshots (tag, text,
  attributes, structural path, descendant aria labels) so that extraction
  logic is plain Python over plain data.
- The driver's own element object rides along in ``ref`` for clicking.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class PageActionError(Exception):
    """A click or scroll could not be performed. Usually worth retrying."""
    pass


@dataclass(frozen=True)
class ElementDescriptor:
    """
    Snapshot of one DOM element.

    ``path`` is the tag/class chain from a few ancestors down to the element;
    siblings rendered from the same template share it.
    """
    tag: str
    text: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    path: str = ""
    labels: Tuple[str, ...] = ()
    ref: Any = field(default=None, compare=False, repr=False)

    def attr(self, name: str, default: str = "") -> str:
        return self.attributes.get(name, default) or default

    @property
    def aria_label(self) -> str:
        return self.attr("aria-label")

    def all_text(self) -> str:
        """Visible text plus own and descendant aria labels."""
        parts = [self.text, self.aria_label, *self.labels]
        return "\n".join(p for p in parts if p)


@dataclass(frozen=True)
class ResourceEvent:
    """One network request observed while the page loaded."""
    url: str
    resource_type: str = ""
    failed: bool = False
    status: Optional[int] = None
    error_text: str = ""


class PageHandle(ABC):
    """
    Abstract browser page.
    Implement this interface to drive a different browser backend.
    """

    @abstractmethod
    def navigate(self, url: str) -> None:
        """Load a URL in the page."""
        ...

    @abstractmethod
    def query_all(self, selector: str, within: Optional[ElementDescriptor] = None) -> List[ElementDescriptor]:
        """All elements matching a CSS selector. Invalid selectors return []."""
        ...

    @abstractmethod
    def page_text(self) -> str:
        """Visible text of the whole page."""
        ...

    @abstractmethod
    def click(self, element: ElementDescriptor) -> None:
        """Click an element. Raises PageActionError when it cannot be clicked."""
        ...

    @abstractmethod
    def scroll_by(self, pixels: int) -> None:
        ...

    @abstractmethod
    def scroll_to_bottom(self, within: Optional[ElementDescriptor] = None) -> None:
        """Scroll a container (or the window) to its bottom."""
        ...

    @abstractmethod
    def resource_events(self) -> List[ResourceEvent]:
        """Network requests seen since the last navigation."""
        ...

    @abstractmethod
    def ready_state(self) -> str:
        """document.readyState: 'loading', 'interactive' or 'complete'."""
        ...

    @abstractmethod
    def viewport(self) -> Tuple[int, int]:
        """(width, height) in CSS pixels."""
        ...

    @abstractmethod
    def user_agent(self) -> str:
        ...

    @abstractmethod
    def language(self) -> str:
        """Interface language code, e.g. 'en' or 'he'."""
        ...

    @abstractmethod
    def pause(self, seconds: float) -> None:
        """Block for ``seconds``."""
        ...

    @abstractmethod
    def is_alive(self) -> bool:
        """False once the underlying browser page is gone."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        ...

    def wait_for(self, condition: Callable[[], bool], timeout: float, poll_interval: float = 0.25) -> bool:
        """
        Poll ``condition`` until it returns True or ``timeout`` seconds have
        been spent pausing. Returns the last result.
        """
        waited = 0.0
        while True:
            try:
                if condition():
                    return True
            except PageActionError as e:
                logger.debug(f"wait_for condition raised: {e}")
            if waited >= timeout:
                return False
            step = min(poll_interval, timeout - waited)
            self.pause(step)
            waited += step
