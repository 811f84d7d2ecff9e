"""Crawler configuration.

Settings are pydantic models with sensible defaults. A YAML or JSON file can
be deep-merged over the defaults, and a few knobs read the environment.

Example config.yaml:

    limits:
      global_max_downloads: 50
      min_byte_size: 20KB
    providers:
      order: [wikimedia, bing, unsplash]
      sources:
        bing: {enabled: true, max_results: 20, tunables: {max_steps: 3}}
"""
from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from image_crawler.errors import ConfigurationError

DEFAULT_SOURCE_ORDER: tuple[str, ...] = (
    "google",
    "pexels",
    "bing",
    "duckduckgo",
    "freeimages",
    "wikimedia",
    "pixabay",
    "unsplash",
    "stocksnap",
    "freerangestock",
    "publicdomainpictures",
    "reshot",
    "adobestock",
    "dreamstime",
    "gettyimages",
    "shutterstock",
)
DEFAULT_ENABLED: frozenset[str] = frozenset({"google", "bing", "duckduckgo", "wikimedia"})
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmg])?(?:i?b)?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "k": 1024, "m": 1024**2, "g": 1024**3}


def _b(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _i(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def parse_size(value: int | str) -> int:
    """Parse a byte size such as ``50KB``, ``1.5MB`` or ``2048`` into bytes."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ConfigurationError(f"Size must not be negative: {value}")
        return value
    match = _SIZE_PATTERN.match(str(value))
    if not match:
        raise ConfigurationError(f"Invalid size: {value!r}")
    number, unit = match.groups()
    multiplier = _SIZE_UNITS[(unit or "").lower()]
    return int(float(number) * multiplier)


class CrawlLimits(BaseModel):
    """Run-wide limits and validation thresholds."""

    model_config = ConfigDict(frozen=True)

    global_max_downloads: int = Field(default=100, ge=0)
    per_source_max_results: int = Field(default=30, ge=0)
    min_width: int = Field(default=640, ge=0)
    min_height: int = Field(default=480, ge=0)
    min_byte_size: int = Field(default=50 * 1024, ge=0)
    allowed_extensions: tuple[str, ...] = ("jpg", "jpeg", "png", "gif", "webp")
    timeout_ms: int = Field(default_factory=lambda: _i("IMAGE_CRAWLER_TIMEOUT_MS", 30000), gt=0)
    safe_search: bool = True
    headless: bool = Field(default_factory=lambda: _b("IMAGE_CRAWLER_HEADLESS", True))

    @field_validator("min_byte_size", mode="before")
    @classmethod
    def _parse_byte_size(cls, v: Any) -> int:
        try:
            return parse_size(v)
        except ConfigurationError as e:
            raise ValueError(str(e)) from e

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, v: Any) -> tuple[str, ...]:
        if isinstance(v, str):
            v = v.split(",")
        normalized: list[str] = []
        for ext in v:
            ext = str(ext).strip().lower().lstrip(".")
            if ext and ext not in normalized:
                normalized.append(ext)
        if not normalized:
            raise ValueError("allowed_extensions must not be empty")
        return tuple(normalized)


class SourceSettings(BaseModel):
    """Per-source settings: membership, cap and free-form tunables."""

    enabled: bool = False
    max_results: int | None = Field(default=None, ge=0)
    tunables: dict[str, Any] = Field(default_factory=dict)
    spec: dict[str, Any] | None = Field(
        default=None, description="Inline ScrapeSpec document replacing the built-in one"
    )


def _default_sources() -> dict[str, SourceSettings]:
    return {name: SourceSettings(enabled=name in DEFAULT_ENABLED) for name in DEFAULT_SOURCE_ORDER}


class ProvidersConfig(BaseModel):
    """Source order and per-source settings."""

    order: list[str] = Field(default_factory=lambda: list(DEFAULT_SOURCE_ORDER))
    sources: dict[str, SourceSettings] = Field(default_factory=_default_sources)

    def settings_for(self, name: str) -> SourceSettings:
        return self.sources.get(name) or SourceSettings()

    def enabled_names(self) -> list[str]:
        """Enabled names in configured order, each listed once."""
        seen: set[str] = set()
        names: list[str] = []
        for name in self.order:
            if name in seen:
                continue
            seen.add(name)
            if self.settings_for(name).enabled:
                names.append(name)
        return names


class CrawlerSettings(BaseModel):
    """Top-level settings for one crawl."""

    limits: CrawlLimits = Field(default_factory=CrawlLimits)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    output_dir: Path = Path("./downloads")
    user_agent: str = DEFAULT_USER_AGENT


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``. Lists are replaced."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def load_settings(
    path: Path | str | None = None,
    overrides: dict[str, Any] | None = None,
) -> CrawlerSettings:
    """Build settings from defaults, an optional file, and explicit overrides.

    Args:
        path: YAML or JSON file. Falls back to ``IMAGE_CRAWLER_CONFIG``.
        overrides: Nested mapping applied last (e.g. CLI options).

    Returns:
        Validated CrawlerSettings

    Raises:
        ConfigurationError: If the file is unreadable or the result is invalid.
    """
    data = CrawlerSettings().model_dump(mode="python")
    if path is None and os.getenv("IMAGE_CRAWLER_CONFIG"):
        path = os.environ["IMAGE_CRAWLER_CONFIG"]
    if path is not None:
        data = deep_merge(data, _read_config_file(Path(path)))
    if overrides:
        data = deep_merge(data, overrides)
    try:
        return CrawlerSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def with_source_overrides(settings: CrawlerSettings, names: str | Iterable[str]) -> CrawlerSettings:
    """Apply a command-line source selection.

    ``"all"`` enables every configured source in its configured order. An
    explicit list replaces both membership and order for this run; names the
    configuration does not know are added with default settings.
    """
    providers = settings.providers
    sources = {name: cfg.model_copy() for name, cfg in providers.sources.items()}

    if isinstance(names, str):
        if names.strip().lower() == "all":
            order = list(providers.order)
            for name in order:
                sources[name] = sources.get(name, SourceSettings()).model_copy(update={"enabled": True})
            new_providers = ProvidersConfig(order=order, sources=sources)
            return settings.model_copy(update={"providers": new_providers})
        names = [n for n in names.split(",")]

    requested: list[str] = []
    for name in names:
        name = name.strip().lower()
        if name and name not in requested:
            requested.append(name)

    for name in sources:
        sources[name] = sources[name].model_copy(update={"enabled": name in requested})
    for name in requested:
        if name not in sources:
            sources[name] = SourceSettings(enabled=True)

    new_providers = ProvidersConfig(order=requested, sources=sources)
    return settings.model_copy(update={"providers": new_providers})
