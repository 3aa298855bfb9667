"""Engine configuration.

Values come from three layers, later ones winning: dataclass defaults, an
optional YAML file, and ``TALLY_*`` environment variables::

    database_url: sqlite:///tally.db
    report_threshold: 3
    reputation_mode: deferred
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from tally.errors import ValidationError

ENV_PREFIX = "TALLY_"

REPUTATION_MODES = ("inline", "deferred")


@dataclass
class EngineConfig:
    """Policy knobs and connectivity for one engine instance."""

    database_url: str = "sqlite:///tally.db"

    # Open reports needed to move pending/approved content to flagged.
    report_threshold: int = 3
    # Reports one user may file per UTC day; 0 disables the limit.
    daily_report_limit: int = 10

    # Reputation policy
    per_content_vote_cap: int = 100
    report_penalty: int = 10
    verification_bonus: int = 25
    reputation_mode: str = "inline"

    mention_cap: int = 25
    max_conflict_retries: int = 5
    queue_max_page_size: int = 50

    def __post_init__(self) -> None:
        for name in (
            "report_threshold",
            "per_content_vote_cap",
            "mention_cap",
            "queue_max_page_size",
        ):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be >= 1")
        for name in ("daily_report_limit", "report_penalty", "verification_bonus", "max_conflict_retries"):
            if getattr(self, name) < 0:
                raise ValidationError(f"{name} must be >= 0")
        if self.reputation_mode not in REPUTATION_MODES:
            raise ValidationError(
                f"reputation_mode must be one of {', '.join(REPUTATION_MODES)}"
            )


def _coerce(name: str, raw: Any, target: type) -> Any:
    if target is int:
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"{name} must be an integer, got {raw!r}") from None
    return str(raw)


def config_from_mapping(data: Mapping[str, Any]) -> EngineConfig:
    """Build a config from a plain mapping, rejecting unknown keys."""
    known = {f.name: f for f in fields(EngineConfig)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValidationError(f"Unknown config keys: {', '.join(unknown)}")
    values = {}
    for key, raw in data.items():
        target = int if known[key].default.__class__ is int else str
        values[key] = _coerce(key, raw, target)
    return EngineConfig(**values)


def load_config(
    path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """Load configuration from *path* (YAML) and the environment."""
    data: dict[str, Any] = {}
    if path is not None:
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValidationError(f"Config file {path} must contain a mapping")
        data.update(loaded)

    env = os.environ if environ is None else environ
    for f in fields(EngineConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in env:
            data[f.name] = env[key]

    return config_from_mapping(data)
