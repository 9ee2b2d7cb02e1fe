"""Configuration for the search index, stored as YAML."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "BROWSER_INDEX_"


@dataclass
class IndexConfig:
    """Tunables for indexing, ranking, and persistence.

    Attributes:
        storage_key: Reserved key of the snapshot blob in the key-value store.
        title_weight: Field weight of a title match.
        url_weight: Field weight of a url match.
        tf_cap: Upper bound on the counted occurrences of one term.
        default_limit: Page size used when a query gives none (or a negative one).
        bookmark_boost: Score multiplier for bookmarks.
        recency_weight: Size of the recency boost for a brand-new record.
        recency_half_life_days: Age at which the recency boost halves.
        visit_weight: Multiplier on ln(visit_count) for history records.
        flush_delay_ms: Quiet period before a coalesced flush runs.
        flush_max_delay_ms: Longest a pending flush may be postponed.
        max_history_records: Cap on history records; oldest are evicted.
            None disables the cap.
    """

    storage_key: str = "browser_index/snapshot"
    title_weight: float = 2.0
    url_weight: float = 1.0
    tf_cap: int = 3
    default_limit: int = 20
    bookmark_boost: float = 1.1
    recency_weight: float = 1.0
    recency_half_life_days: float = 7.0
    visit_weight: float = 0.1
    flush_delay_ms: int = 500
    flush_max_delay_ms: int = 5000
    max_history_records: int | None = 1000

    def validate(self) -> None:
        """Raise ValueError for values the index cannot work with."""
        if not self.storage_key:
            raise ValueError("storage_key must be non-empty")
        if self.title_weight <= 0 or self.url_weight <= 0:
            raise ValueError("Field weights must be positive")
        if self.tf_cap < 1:
            raise ValueError(f"tf_cap must be >= 1, got {self.tf_cap}")
        if self.default_limit < 1:
            raise ValueError(f"default_limit must be >= 1, got {self.default_limit}")
        if self.bookmark_boost <= 0:
            raise ValueError("bookmark_boost must be positive")
        if self.recency_weight < 0 or self.visit_weight < 0:
            raise ValueError("Boost weights must not be negative")
        if self.recency_half_life_days <= 0:
            raise ValueError("recency_half_life_days must be positive")
        if self.flush_delay_ms < 0 or self.flush_max_delay_ms < self.flush_delay_ms:
            raise ValueError("Need 0 <= flush_delay_ms <= flush_max_delay_ms")
        if self.max_history_records is not None and self.max_history_records < 1:
            raise ValueError("max_history_records must be >= 1 or null")

    def to_dict(self) -> dict:
        """Serialize to dict for YAML storage."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping) -> IndexConfig:
        """Deserialize from dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))
        return cls(**{k: v for k, v in data.items() if k in known})


def _coerce(value: str, current: object, name: str) -> object:
    if name == "max_history_records":
        if value.strip().lower() in ("", "none", "null", "0"):
            return None
        return int(value)
    if isinstance(current, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return value


def apply_env_overrides(
    config: IndexConfig,
    environ: Mapping[str, str] | None = None,
) -> IndexConfig:
    """Apply BROWSER_INDEX_<FIELD> environment variables to a config.

    Example: BROWSER_INDEX_FLUSH_DELAY_MS=250.

    Args:
        config: Config to update in place.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        The same config object.

    Raises:
        ValueError: If a variable cannot be parsed for its field's type.
    """
    env = os.environ if environ is None else environ
    for f in fields(config):
        key = ENV_PREFIX + f.name.upper()
        if key not in env:
            continue
        raw = env[key]
        try:
            value = _coerce(raw, getattr(config, f.name), f.name)
        except ValueError as e:
            raise ValueError(f"Invalid value for {key}: {raw!r}") from e
        setattr(config, f.name, value)
        logger.debug("Config override from %s: %s=%r", key, f.name, value)
    return config


class ConfigManager:
    """Loads and saves IndexConfig as YAML.

    Writes are atomic (temp file + rename) to prevent corruption.
    """

    def __init__(self, config_path: Path) -> None:
        """Initialize with path to the YAML configuration file.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self._config_path = Path(config_path)

    @property
    def config_path(self) -> Path:
        """Return the configuration file path."""
        return self._config_path

    def load(self, apply_env: bool = True) -> IndexConfig:
        """Load the configuration.

        A missing or empty file yields the defaults.

        Args:
            apply_env: Apply BROWSER_INDEX_* overrides after reading the file.

        Returns:
            Validated IndexConfig.

        Raises:
            ValueError: If the file is not a mapping or holds invalid values.
        """
        config = IndexConfig()
        if self._config_path.exists():
            with open(self._config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
            if data is not None:
                if not isinstance(data, dict):
                    raise ValueError(f"Config must be a mapping: {self._config_path}")
                config = IndexConfig.from_dict(data)
        if apply_env:
            apply_env_overrides(config)
        config.validate()
        return config

    def save(self, config: IndexConfig) -> None:
        """Save the configuration.

        Args:
            config: Config to write.
        """
        config.validate()
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        # Atomic write: write to temp file in same directory, then rename
        fd, temp_path = tempfile.mkstemp(
            dir=self._config_path.parent,
            prefix=".config_",
            suffix=".yaml.tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
            os.replace(temp_path, self._config_path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
