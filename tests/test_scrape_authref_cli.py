"""Tests for scripts/scrape_authref.py."""
from __future__ import annotations

import importlib.util
from pathlib import Path
from types import ModuleType

import orjson
import pytest
from _html_fixtures import INDEX_URL, PAGES, S3_PAGE, S3_URL, STS_PAGE, fake_fetcher

from authref.run_manifest import MANIFEST_FILENAME


def _load_script() -> ModuleType:
    script_path = Path(__file__).resolve().parents[1] / "scripts" / "scrape_authref.py"
    spec = importlib.util.spec_from_file_location("scrape_authref", script_path)
    assert spec is not None
    module = importlib.util.module_from_spec(spec)
    assert spec.loader is not None
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="module")
def cli() -> ModuleType:
    return _load_script()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("AUTHREF_START_URL", "AUTHREF_TIMEOUT", "AUTHREF_WORKERS", "AUTHREF_USER_AGENT"):
        monkeypatch.delenv(name, raising=False)


class TestLive:
    def test_writes_output(self, cli: ModuleType, tmp_path: Path) -> None:
        out = tmp_path / "service-auth.json"
        rc = cli.main(
            ["--start-url", INDEX_URL, "--output", str(out), "--workers", "2"],
            fetcher=fake_fetcher(),
        )
        assert rc == 0
        data = orjson.loads(out.read_bytes())
        assert [s["servicePrefix"] for s in data] == ["sts", "s3"]
        assume_role = data[0]["actions"][0]
        assert assume_role["name"] == "AssumeRole"
        assert [rt["resourceType"] for rt in assume_role["resourceTypes"]] == [
            "role", "oidc-provider",
        ]

    def test_start_url_from_env(
        self, cli: ModuleType, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("AUTHREF_START_URL", INDEX_URL)
        out = tmp_path / "out.json"
        assert cli.main(["--output", str(out)], fetcher=fake_fetcher()) == 0
        assert out.exists()

    def test_service_filter(self, cli: ModuleType, tmp_path: Path) -> None:
        out = tmp_path / "out.json"
        rc = cli.main(
            ["--start-url", INDEX_URL, "--output", str(out), "--service", "amazon s3"],
            fetcher=fake_fetcher(),
        )
        assert rc == 0
        assert [s["name"] for s in orjson.loads(out.read_bytes())] == ["Amazon S3"]

    def test_shape_error_exits_nonzero(self, cli: ModuleType, tmp_path: Path) -> None:
        pages = dict(PAGES)
        pages[S3_URL] = S3_PAGE.replace("<td>List</td>", "")
        out = tmp_path / "out.json"
        rc = cli.main(["--start-url", INDEX_URL, "--output", str(out)], fetcher=fake_fetcher(pages))
        assert rc == 1
        assert not out.exists()

    def test_unknown_service_exits_nonzero(self, cli: ModuleType, tmp_path: Path) -> None:
        rc = cli.main(
            ["--start-url", INDEX_URL, "--output", str(tmp_path / "o.json"), "--service", "nope"],
            fetcher=fake_fetcher(),
        )
        assert rc == 1

    def test_invalid_env_exits_nonzero(
        self, cli: ModuleType, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("AUTHREF_WORKERS", "lots")
        assert cli.main(["--output", str(tmp_path / "o.json")], fetcher=fake_fetcher()) == 1


class TestHtmlDir:
    def test_saved_pages(self, cli: ModuleType, tmp_path: Path) -> None:
        pages = tmp_path / "pages"
        pages.mkdir()
        (pages / "sts.html").write_text(STS_PAGE, encoding="utf-8")
        out = tmp_path / "out.json"
        assert cli.main(["--html-dir", str(pages), "--output", str(out)]) == 0
        assert [s["servicePrefix"] for s in orjson.loads(out.read_bytes())] == ["sts"]

    def test_unreadable_page_exits_nonzero(self, cli: ModuleType, tmp_path: Path) -> None:
        pages = tmp_path / "pages"
        (pages / "broken.html").mkdir(parents=True)
        out = tmp_path / "out.json"
        assert cli.main(["--html-dir", str(pages), "--output", str(out)]) == 1
        assert not out.exists()

    def test_missing_dir(self, cli: ModuleType, tmp_path: Path) -> None:
        rc = cli.main(["--html-dir", str(tmp_path / "nope"), "--output", str(tmp_path / "o.json")])
        assert rc == 1

    def test_sources_are_exclusive(self, cli: ModuleType, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            cli.main(["--html-dir", str(tmp_path), "--start-url", INDEX_URL])


class TestManifest:
    def test_manifest_written_and_compared(self, cli: ModuleType, tmp_path: Path) -> None:
        out = tmp_path / "service-auth.json"
        args = ["--start-url", INDEX_URL, "--output", str(out), "--manifest"]
        assert cli.main(args, fetcher=fake_fetcher()) == 0
        manifest_path = tmp_path / MANIFEST_FILENAME
        first = orjson.loads(manifest_path.read_bytes())
        assert first["input_source"] == {"mode": "live", "start_url": INDEX_URL}
        assert first["record_counts"]["services"] == 2

        assert cli.main(args, fetcher=fake_fetcher()) == 0
        second = orjson.loads(manifest_path.read_bytes())
        assert second["run_id"] != first["run_id"]
        assert second["output_sha256"] == first["output_sha256"]

    @pytest.mark.parametrize("previous", [b"{not json", b"[1, 2]"])
    def test_unreadable_previous_manifest_is_replaced(
        self, cli: ModuleType, tmp_path: Path, previous: bytes,
    ) -> None:
        out = tmp_path / "service-auth.json"
        manifest_path = tmp_path / MANIFEST_FILENAME
        manifest_path.write_bytes(previous)
        args = ["--start-url", INDEX_URL, "--output", str(out), "--manifest"]
        assert cli.main(args, fetcher=fake_fetcher()) == 0
        assert out.exists()
        assert orjson.loads(manifest_path.read_bytes())["record_counts"]["services"] == 2
