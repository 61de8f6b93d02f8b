"""Tests for authref.scrape orchestration (live-style and saved pages)."""
from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from _html_fixtures import INDEX_URL, PAGES, S3_PAGE, S3_URL, STS_PAGE, STS_URL, fake_fetcher
from bs4 import BeautifulSoup

from authref.authref_types import ShapeError, Topic
from authref.config import ScrapeConfig
from authref.fetch import FetchError
from authref.html_utils import parse_html
from authref.scrape import (
    scrape_directory,
    scrape_services,
    scrape_topics,
    select_topics,
    topic_for_saved_page,
)

CONFIG = ScrapeConfig(start_url=INDEX_URL)


class TestSelectTopics:
    TOPICS = [Topic("Amazon S3", S3_URL), Topic("AWS Security Token Service", STS_URL)]

    def test_empty_keeps_all(self) -> None:
        assert select_topics(self.TOPICS, ()) == self.TOPICS

    def test_case_insensitive(self) -> None:
        assert select_topics(self.TOPICS, ["amazon s3"]) == self.TOPICS[:1]

    def test_unknown_service(self) -> None:
        with pytest.raises(ValueError, match="unknown service"):
            select_topics(self.TOPICS, ["Amazon EC2"])


class TestScrapeServices:
    def test_index_order(self) -> None:
        refs = scrape_services(CONFIG, fetcher=fake_fetcher())
        assert [r.service_prefix for r in refs] == ["sts", "s3"]
        assert refs[0].auth_reference_href == STS_URL
        assert len(refs[0].actions) == 3

    def test_service_filter(self) -> None:
        config = CONFIG.with_overrides(services=("Amazon S3",))
        refs = scrape_services(config, fetcher=fake_fetcher())
        assert [r.name for r in refs] == ["Amazon S3"]

    def test_parallel_keeps_index_order(self) -> None:
        base = fake_fetcher()

        def _slow_first(url: str) -> BeautifulSoup:
            if url == STS_URL:
                time.sleep(0.05)
            return base(url)

        config = CONFIG.with_overrides(workers=4)
        refs = scrape_services(config, fetcher=_slow_first)
        assert [r.service_prefix for r in refs] == ["sts", "s3"]

    def test_parallel_uses_threads(self) -> None:
        base = fake_fetcher()
        names: set[str] = set()

        def _record(url: str) -> BeautifulSoup:
            names.add(threading.current_thread().name)
            return base(url)

        scrape_services(CONFIG.with_overrides(workers=2), fetcher=_record)
        assert threading.main_thread().name in names
        assert len(names) >= 2

    def test_fetch_failure_is_annotated(self) -> None:
        base = fake_fetcher()

        def _failing(url: str) -> BeautifulSoup:
            if url == S3_URL:
                raise FetchError(f"HTTP GET {url}: status code 500")
            return base(url)

        with pytest.raises(FetchError) as info:
            scrape_services(CONFIG, fetcher=_failing)
        assert any("Amazon S3" in note for note in info.value.__notes__)

    def test_shape_failure_aborts_parallel_run(self) -> None:
        pages = dict(PAGES)
        pages[S3_URL] = S3_PAGE.replace("<td>List</td>", "")
        config = CONFIG.with_overrides(workers=2)
        with pytest.raises(ShapeError):
            scrape_services(config, fetcher=fake_fetcher(pages))


class TestScrapeTopics:
    def test_empty(self) -> None:
        assert scrape_topics([], fake_fetcher(), workers=4) == []


class TestScrapeDirectory:
    def _write_pages(self, directory: Path) -> None:
        (directory / "b_sts.html").write_text(STS_PAGE, encoding="utf-8")
        (directory / "a_s3.html").write_text(S3_PAGE, encoding="utf-8")
        (directory / "notes.txt").write_text("ignored", encoding="utf-8")

    def test_sorted_by_file_name(self, tmp_path: Path) -> None:
        self._write_pages(tmp_path)
        refs = scrape_directory(tmp_path)
        assert [r.name for r in refs] == ["Amazon S3", "AWS Security Token Service"]
        assert refs[0].auth_reference_href.startswith("file://")
        assert refs[0].auth_reference_href.endswith("a_s3.html")

    def test_service_filter(self, tmp_path: Path) -> None:
        self._write_pages(tmp_path)
        refs = scrape_directory(tmp_path, services=["aws security token service"])
        assert [r.service_prefix for r in refs] == ["sts"]

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            scrape_directory(tmp_path / "missing")

    def test_unreadable_page_raises_os_error(self, tmp_path: Path) -> None:
        (tmp_path / "a_s3.html").write_text(S3_PAGE, encoding="utf-8")
        (tmp_path / "broken.html").mkdir()
        with pytest.raises(IsADirectoryError):
            scrape_directory(tmp_path)

    def test_cp1252_page(self, tmp_path: Path) -> None:
        page = S3_PAGE.replace(
            "<html>", '<html><head><meta charset="windows-1252"></head>',
        ).replace("sender", "sender “café”")
        (tmp_path / "s3.html").write_bytes(page.encode("cp1252"))
        refs = scrape_directory(tmp_path)
        assert refs[0].actions[0].description.endswith("sender “café”")

    def test_title_falls_back_to_file_stem(self, tmp_path: Path) -> None:
        path = tmp_path / "untitled.html"
        topic = topic_for_saved_page(path, parse_html("<p>no heading</p>"))
        assert topic.name == "untitled"
        assert topic.url == path.resolve().as_uri()
