"""Scrape configuration: defaults, environment overrides, CLI overrides.

Precedence is CLI flag > environment variable > default. Environment
variables:

    AUTHREF_START_URL   index page listing every service
    AUTHREF_TIMEOUT     per-request timeout in seconds (float)
    AUTHREF_WORKERS     pages fetched in parallel (int >= 1)
    AUTHREF_USER_AGENT  User-Agent header sent with every request
"""
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from authref.fetch import DEFAULT_START_URL, DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from authref.page_parser import DEFAULT_SELECTORS, PageSelectors


@dataclass(frozen=True, slots=True)
class ScrapeConfig:
    """Immutable settings for one scrape run."""

    start_url: str = DEFAULT_START_URL
    timeout: float = DEFAULT_TIMEOUT
    workers: int = 1
    user_agent: str = DEFAULT_USER_AGENT
    services: tuple[str, ...] = ()
    selectors: PageSelectors = field(default=DEFAULT_SELECTORS)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ScrapeConfig:
        """Build a config from defaults plus ``AUTHREF_*`` overrides."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}
        if env.get("AUTHREF_START_URL"):
            kwargs["start_url"] = env["AUTHREF_START_URL"]
        if env.get("AUTHREF_TIMEOUT"):
            kwargs["timeout"] = _parse_number(env["AUTHREF_TIMEOUT"], "AUTHREF_TIMEOUT", float)
        if env.get("AUTHREF_WORKERS"):
            kwargs["workers"] = _parse_number(env["AUTHREF_WORKERS"], "AUTHREF_WORKERS", int)
        if env.get("AUTHREF_USER_AGENT"):
            kwargs["user_agent"] = env["AUTHREF_USER_AGENT"]
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> ScrapeConfig:
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _parse_number[N: (int, float)](raw: str, name: str, kind: type[N]) -> N:
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name} must be a {kind.__name__}, got {raw!r}") from None
