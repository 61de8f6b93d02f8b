"""Scrape orchestration: index page -> topics -> one reference per service.

Pages can be fetched on a thread pool; each page is decoded independently,
so results are put back into index order after they complete. The first
failing page aborts the run.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from functools import partial
from pathlib import Path

from bs4 import BeautifulSoup

from authref.authref_types import ServiceAuthorizationReference, Topic
from authref.config import ScrapeConfig
from authref.fetch import Fetcher, fetch_html, parse_topics
from authref.html_utils import gather_text, parse_html
from authref.page_parser import DEFAULT_SELECTORS, PageSelectors, parse_service_page

log = logging.getLogger(__name__)

# Page titles read "Actions, resources, and condition keys for <service>".
_PAGE_TITLE_RE = re.compile(r"^Actions, resources, and condition keys for\s+", re.IGNORECASE)


def default_fetcher(config: ScrapeConfig) -> Fetcher:
    return partial(fetch_html, timeout=config.timeout, user_agent=config.user_agent)


def select_topics(topics: Sequence[Topic], services: Sequence[str]) -> list[Topic]:
    """Keep the topics named in *services* (case-insensitive), in index order.

    Raises:
        ValueError: a requested service is not on the index page.
    """
    if not services:
        return list(topics)
    wanted = {s.casefold() for s in services}
    selected = [t for t in topics if t.name.casefold() in wanted]
    missing = wanted - {t.name.casefold() for t in selected}
    if missing:
        raise ValueError(f"unknown service(s): {', '.join(sorted(missing))}")
    return selected


def scrape_topic(
    topic: Topic,
    fetcher: Fetcher,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> ServiceAuthorizationReference:
    """Fetch and decode one service page."""
    try:
        page = fetcher(topic.url)
        return parse_service_page(page, topic, selectors)
    except Exception as exc:
        exc.add_note(f"topic {topic.name!r} ({topic.url})")
        raise


def scrape_topics(
    topics: Sequence[Topic],
    fetcher: Fetcher,
    *,
    workers: int = 1,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> list[ServiceAuthorizationReference]:
    """Scrape *topics*, returning references in the same order as *topics*."""
    if workers <= 1 or len(topics) <= 1:
        results = []
        for i, topic in enumerate(topics, 1):
            results.append(scrape_topic(topic, fetcher, selectors))
            log.info("[%d/%d] %s", i, len(topics), topic.name)
        return results

    by_index: dict[int, ServiceAuthorizationReference] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures: dict[Future[ServiceAuthorizationReference], int] = {
            pool.submit(scrape_topic, topic, fetcher, selectors): i
            for i, topic in enumerate(topics)
        }
        for done_count, future in enumerate(as_completed(futures), 1):
            idx = futures[future]
            try:
                by_index[idx] = future.result()
            except Exception:
                for pending in futures:
                    pending.cancel()
                raise
            log.info("[%d/%d] %s", done_count, len(topics), topics[idx].name)

    return [by_index[i] for i in range(len(topics))]


def scrape_services(
    config: ScrapeConfig,
    *,
    fetcher: Fetcher | None = None,
) -> list[ServiceAuthorizationReference]:
    """Scrape every service listed on ``config.start_url``.

    Raises:
        FetchError: the index or a service page could not be fetched.
        ShapeError: a service page's tables drifted from their schema.
        ValueError: ``config.services`` names a service not on the index.
    """
    fetcher = fetcher or default_fetcher(config)
    index_page = fetcher(config.start_url)
    topics = select_topics(parse_topics(index_page, config.start_url), config.services)
    log.info("Found %d topics on %s", len(topics), config.start_url)
    return scrape_topics(
        topics,
        fetcher,
        workers=config.workers,
        selectors=config.selectors,
    )


# ---------------------------------------------------------------------------
# Offline mode: saved pages
# ---------------------------------------------------------------------------


def topic_for_saved_page(path: Path, page: BeautifulSoup) -> Topic:
    """Name a saved page after its ``<h1>`` (minus the boilerplate prefix)."""
    title = gather_text(page.select_one("h1"))
    name = _PAGE_TITLE_RE.sub("", title) or path.stem
    return Topic(name=name, url=path.resolve().as_uri())


def scrape_directory(
    directory: Path,
    *,
    services: Sequence[str] = (),
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> list[ServiceAuthorizationReference]:
    """Decode every ``*.html`` page saved under *directory*, sorted by file name.

    Raises:
        FileNotFoundError: *directory* does not exist.
        OSError: a saved page cannot be read.
        ShapeError: a saved page's tables drifted from their schema.
    """
    if not directory.is_dir():
        raise FileNotFoundError(f"HTML directory not found: {directory}")

    pages: dict[str, BeautifulSoup] = {}
    topics: list[Topic] = []
    for path in sorted(directory.glob("*.html")):
        page = parse_html(path.read_bytes())
        topic = topic_for_saved_page(path, page)
        pages[topic.url] = page
        topics.append(topic)
    log.info("Found %d saved pages in %s", len(topics), directory)

    return scrape_topics(
        select_topics(topics, services),
        pages.__getitem__,
        selectors=selectors,
    )
