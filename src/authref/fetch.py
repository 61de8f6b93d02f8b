"""Page fetching and topic index parsing.

One HTTP GET per page, no retry: a failed fetch fails the run and the next
scheduled run picks it up.
"""
from __future__ import annotations

import logging
import re
import urllib.error
import urllib.request
from collections.abc import Callable
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from authref.authref_types import Topic
from authref.html_utils import gather_text, get_attr, parse_html

log = logging.getLogger(__name__)

DEFAULT_START_URL = (
    "https://docs.aws.amazon.com/service-authorization/latest/reference/"
    "reference_policies_actions-resources-contextkeys.html"
)
DEFAULT_USER_AGENT = "authref-scraper/0.1 (+https://docs.aws.amazon.com/service-authorization/)"
DEFAULT_TIMEOUT = 30.0

_TOPICS_HEADING_RE = re.compile(r"^\s*Topics\s*$")

type Fetcher = Callable[[str], BeautifulSoup]


class FetchError(RuntimeError):
    """Raised when a page cannot be fetched or the topic index is unreadable."""


def fetch_html(
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    user_agent: str = DEFAULT_USER_AGENT,
) -> BeautifulSoup:
    """GET *url* and parse the body.

    Raises:
        FetchError: transport failure or a status other than 200.
    """
    req = urllib.request.Request(url, headers={"User-Agent": user_agent})
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = resp.status
            body = resp.read()
    except urllib.error.HTTPError as exc:
        raise FetchError(f"HTTP GET {url}: status code {exc.code}") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise FetchError(f"HTTP GET {url}: {exc}") from exc

    if status != 200:
        raise FetchError(f"HTTP GET {url}: status code {status}")
    log.debug("Fetched %s (%d bytes)", url, len(body))
    return parse_html(body)


def _find_topics_list(index_page: BeautifulSoup | Tag) -> Tag | None:
    # soupsieve has no regex pseudo-class; narrow by substring, then match exactly.
    for heading in index_page.select('h6:-soup-contains-own("Topics")'):
        if not _TOPICS_HEADING_RE.match(gather_text(heading, recursive=False)):
            continue
        sibling = heading.find_next_sibling()
        if isinstance(sibling, Tag) and sibling.name == "ul":
            return sibling
    return None


def parse_topics(index_page: BeautifulSoup | Tag, base_url: str) -> list[Topic]:
    """List the service topics linked from the reference index page.

    Relative ``href`` values are resolved against *base_url*.

    Raises:
        FetchError: the topics list is missing or an entry has no ``href``.
    """
    topics_list = _find_topics_list(index_page)
    if topics_list is None:
        raise FetchError("get topics: could not find topics")

    topics: list[Topic] = []
    for anchor in topics_list.select("li > a"):
        href = get_attr(anchor, "href")
        if not href:
            raise FetchError("get topics: could not find topic <a> href")
        topics.append(Topic(name=gather_text(anchor), url=urljoin(base_url, href)))
    return topics
