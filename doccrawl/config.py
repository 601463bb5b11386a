"""Crawl configuration: schema, validation and loading."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from .storage import DEFAULT_STORAGE_DIR

LOGGER = logging.getLogger(__name__)

DEFAULT_API_PATTERN = "documents.info"
DEFAULT_CONCURRENCY = 3

REQUIRED_OPTIONS = ("url", "match", "max_pages_to_crawl", "output_file_name")

# camelCase keys accepted in config files.
_ALIASES: Dict[str, str] = {
    "maxPagesToCrawl": "max_pages_to_crawl",
    "outputFileName": "output_file_name",
    "maxFileSize": "max_file_size",
    "maxTokens": "max_tokens",
    "resourceExclusions": "resource_exclusions",
    "apiPattern": "api_pattern",
    "storageDir": "storage_dir",
}

Patterns = Union[str, List[str], Tuple[str, ...]]


class ConfigError(ValueError):
    """Raised when a crawl configuration is invalid."""


@dataclass(frozen=True)
class Cookie:
    """A cookie injected into the browser context before each navigation."""

    name: str
    value: str

    def for_url(self, url: str) -> Dict[str, str]:
        return {"name": self.name, "value": self.value, "url": url}


@dataclass(frozen=True)
class OutputConfig:
    """Output side of a run: where records are read from and how they are batched.

    ``max_file_size`` (megabytes) and ``max_tokens`` are ``None`` when the
    output files should not be bounded on that axis.
    """

    output_file_name: str
    max_file_size: Optional[float] = None
    max_tokens: Optional[int] = None
    storage_dir: Union[str, Path] = DEFAULT_STORAGE_DIR

    def __post_init__(self) -> None:
        object.__setattr__(self, "storage_dir", Path(self.storage_dir))
        _validate_output(self)

    @property
    def max_bytes(self) -> Optional[int]:
        """Byte ceiling per output file, or None when unbounded."""
        if self.max_file_size is None:
            return None
        return int(self.max_file_size * 1024 * 1024)

    @property
    def output_stem(self) -> str:
        name = self.output_file_name
        return name[: -len(".json")] if name.endswith(".json") else name


@dataclass(frozen=True)
class CrawlConfig:
    """Validated, immutable description of one crawl-and-write run."""

    url: str
    match: Patterns
    max_pages_to_crawl: int
    output_file_name: str
    exclude: Patterns = ()
    max_file_size: Optional[float] = None
    max_tokens: Optional[int] = None
    cookie: Any = None
    resource_exclusions: Tuple[str, ...] = ()
    api_pattern: str = DEFAULT_API_PATTERN
    concurrency: int = DEFAULT_CONCURRENCY
    headless: bool = True
    storage_dir: Union[str, Path] = DEFAULT_STORAGE_DIR
    cookies: Tuple[Cookie, ...] = field(init=False, default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "match", _as_patterns(self.match, "match"))
        object.__setattr__(self, "exclude", _as_patterns(self.exclude, "exclude"))
        object.__setattr__(
            self,
            "resource_exclusions",
            _as_patterns(self.resource_exclusions, "resource_exclusions"),
        )
        object.__setattr__(self, "cookies", _as_cookies(self.cookie))
        object.__setattr__(self, "storage_dir", Path(self.storage_dir))
        _validate(self)

    @property
    def output(self) -> OutputConfig:
        return OutputConfig(
            output_file_name=self.output_file_name,
            max_file_size=self.max_file_size,
            max_tokens=self.max_tokens,
            storage_dir=self.storage_dir,
        )

    @property
    def max_bytes(self) -> Optional[int]:
        return self.output.max_bytes

    @property
    def output_stem(self) -> str:
        return self.output.output_stem


def _as_patterns(value: Any, name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        if not all(isinstance(item, str) for item in value):
            raise ConfigError(f"{name} must contain only strings")
        return tuple(value)
    raise ConfigError(f"{name} must be a string or a list of strings")


def _as_cookies(value: Any) -> Tuple[Cookie, ...]:
    if value is None:
        return ()
    items = value if isinstance(value, (list, tuple)) else [value]
    cookies: List[Cookie] = []
    for item in items:
        if isinstance(item, Cookie):
            cookies.append(item)
            continue
        if not isinstance(item, Mapping):
            raise ConfigError("cookie must be an object with name and value")
        name, value_ = item.get("name"), item.get("value")
        if not isinstance(name, str) or not name or not isinstance(value_, str):
            raise ConfigError("cookie requires a non-empty string name and a string value")
        cookies.append(Cookie(name=name, value=value_))
    return tuple(cookies)


def _validate_output(config: Union[OutputConfig, CrawlConfig]) -> None:
    if not isinstance(config.output_file_name, str) or not config.output_file_name.strip():
        raise ConfigError("output_file_name must be a non-empty string")
    if config.max_file_size is not None and (
        isinstance(config.max_file_size, bool)
        or not isinstance(config.max_file_size, (int, float))
        or config.max_file_size <= 0
    ):
        raise ConfigError("max_file_size must be a number greater than 0")
    if config.max_tokens is not None and (
        isinstance(config.max_tokens, bool)
        or not isinstance(config.max_tokens, int)
        or config.max_tokens < 1
    ):
        raise ConfigError("max_tokens must be a positive integer")


def _validate(config: CrawlConfig) -> None:
    parsed = urlparse(config.url if isinstance(config.url, str) else "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"url must be an absolute http(s) URL, got {config.url!r}")
    if not config.match:
        raise ConfigError("match requires at least one glob pattern")
    if isinstance(config.max_pages_to_crawl, bool) or not isinstance(
        config.max_pages_to_crawl, int
    ):
        raise ConfigError("max_pages_to_crawl must be an integer")
    if config.max_pages_to_crawl < 1:
        raise ConfigError("max_pages_to_crawl must be at least 1")
    if not config.api_pattern:
        raise ConfigError("api_pattern must be a non-empty string")
    if not isinstance(config.concurrency, int) or config.concurrency < 1:
        raise ConfigError("concurrency must be at least 1")
    _validate_output(config)


def canonical_options(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename camelCase aliases to field names; reject unknown keys."""
    known = {f.name for f in fields(CrawlConfig) if f.init}
    options: Dict[str, Any] = {}
    for key, value in data.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            raise ConfigError(f"Unknown config option: {key}")
        options[name] = value
    return options


def config_from_mapping(data: Mapping[str, Any]) -> CrawlConfig:
    """Build a CrawlConfig from a mapping, accepting camelCase aliases."""
    kwargs = canonical_options(data)
    for required in REQUIRED_OPTIONS:
        if required not in kwargs:
            raise ConfigError(f"Missing required config option: {required}")
    try:
        return CrawlConfig(**kwargs)
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc


def read_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read the raw options of a JSON config file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the file is not a JSON object.
    """
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file must contain a JSON object, got {type(data).__name__}"
        )

    LOGGER.debug("Loaded config from %s", config_path)
    return data


def load_config(path: Union[str, Path]) -> CrawlConfig:
    """Read a JSON config file and return the validated CrawlConfig."""
    return config_from_mapping(read_config_file(path))
