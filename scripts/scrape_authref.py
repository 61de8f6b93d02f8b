#!/usr/bin/env python3
"""Scrape the service authorization reference into a single JSON file.

Fetches the reference index, follows every service topic, decodes the
actions / resource types / condition keys tables of each page and writes one
record per service (default: ``service-auth.json``).

Usage (live):
    python3 scripts/scrape_authref.py --output service-auth.json --workers 8 -v

Usage (saved pages, no network):
    python3 scripts/scrape_authref.py --html-dir pages/ --output out.json

Usage (single service, with a run manifest next to the output):
    python3 scripts/scrape_authref.py --service "AWS Security Token Service" --manifest
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from authref.authref_types import ServiceAuthorizationReference, ShapeError
from authref.config import ScrapeConfig
from authref.fetch import Fetcher, FetchError
from authref.io_utils import save_references
from authref.run_manifest import (
    build_manifest,
    compare_manifests,
    default_manifest_path,
    generate_run_id,
    git_commit_hash,
    load_manifest,
    write_manifest,
)
from authref.scrape import scrape_directory, scrape_services

log = logging.getLogger("scrape_authref")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Scrape the service authorization reference to JSON."
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--start-url",
        default=None,
        help="Reference index page (default: $AUTHREF_START_URL or the public index)",
    )
    source.add_argument(
        "--html-dir",
        type=Path,
        default=None,
        help="Decode saved *.html service pages from this directory instead of fetching",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("service-auth.json"),
        help="Output file (default: service-auth.json)",
    )
    parser.add_argument(
        "--service",
        action="append",
        default=None,
        metavar="NAME",
        help="Only scrape this service (repeatable, matched case-insensitively)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Pages fetched in parallel (default: $AUTHREF_WORKERS or 1)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Per-request timeout in seconds (default: $AUTHREF_TIMEOUT or 30)",
    )
    parser.add_argument(
        "--manifest",
        action="store_true",
        help="Write run_manifest.json next to the output and log the delta "
        "against the previous one",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging",
    )
    return parser


def _collect(
    args: argparse.Namespace,
    config: ScrapeConfig,
    fetcher: Fetcher | None,
) -> list[ServiceAuthorizationReference]:
    if args.html_dir is not None:
        return scrape_directory(
            args.html_dir,
            services=config.services,
            selectors=config.selectors,
        )
    return scrape_services(config, fetcher=fetcher)


def main(argv: list[str] | None = None, *, fetcher: Fetcher | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    try:
        config = ScrapeConfig.from_env().with_overrides(
            start_url=args.start_url,
            workers=args.workers,
            timeout=args.timeout,
            services=tuple(args.service) if args.service else None,
        )
    except ValueError as exc:
        log.error("Invalid configuration: %s", exc)
        return 1

    t0 = time.monotonic()
    try:
        references = _collect(args, config, fetcher)
    except (FetchError, ShapeError, ValueError, OSError) as exc:
        notes = "; ".join(getattr(exc, "__notes__", []))
        log.error("%s%s", exc, f" [{notes}]" if notes else "")
        return 1
    scrape_sec = time.monotonic() - t0

    try:
        count = save_references(references, args.output)
    except OSError as exc:
        log.error("Could not write %s: %s", args.output, exc)
        return 1
    log.info("Wrote %d services to %s (%.1fs)", count, args.output, scrape_sec)

    if args.manifest:
        previous_path = default_manifest_path(args.output)
        previous = None
        if previous_path.exists():
            try:
                previous = load_manifest(previous_path)
            except (ValueError, OSError) as exc:
                log.warning("Ignoring unreadable previous manifest %s: %s", previous_path, exc)
        source = (
            {"mode": "html_dir", "path": str(args.html_dir)}
            if args.html_dir is not None
            else {"mode": "live", "start_url": config.start_url}
        )
        manifest = build_manifest(
            run_id=generate_run_id(),
            output_path=args.output,
            input_source=source,
            references=references,
            timings_sec={"scrape": round(scrape_sec, 3)},
            git_commit=git_commit_hash(search_from=ROOT),
            notes={"workers": config.workers, "services": list(config.services)},
        )
        path = write_manifest(args.output, manifest)
        log.info("Wrote manifest %s", path)
        if previous is not None:
            delta = compare_manifests(manifest, previous)
            log.info(
                "Output %s since %s; record deltas: %s",
                "changed" if delta["output_changed"] else "unchanged",
                delta["previous_run_id"],
                delta["record_count_delta"],
            )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
