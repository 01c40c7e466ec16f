"""
Configuration management (SSOT).

This module defines ALL configuration for voicebill. All config keys are
defined here; no other module should invent config keys or thresholds.

Key invariants:
- Every similarity threshold lives in [0, 1]
- lookup_threshold <= confirm_threshold (a lookup hit may need confirmation)
- min_similarity <= exact_threshold (an exact match is always a suggestion)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


@dataclass
class MatchingConfig:
    """Fuzzy client-matching thresholds."""

    # Minimum score for a client to appear in ranked suggestions
    min_similarity: float = 0.3
    # Maximum number of ranked suggestions returned
    suggestion_limit: int = 5
    # Score at or above which a directory entry counts as an exact match
    exact_threshold: float = 0.9
    # Minimum score for lookup_client to return a candidate at all
    lookup_threshold: float = 0.5
    # Below this (but above lookup_threshold) the caller must confirm the match
    confirm_threshold: float = 0.8
    # Maximum documents returned by a client document search
    document_search_limit: int = 10


@dataclass
class NumberingConfig:
    """Document number allocation settings."""

    # How many recent numbers are inspected to find the next sequence value
    inspect_limit: int = 10
    invoice_prefix: str = "INV"
    estimate_prefix: str = "EST"


@dataclass
class MergeConfig:
    """Merge fan-out settings."""

    # Thread pool size for concurrent per-client searches
    max_workers: int = 4


@dataclass
class ReviewConfig:
    """Review session settings."""

    # Debounce delay before an autosave fires (seconds)
    autosave_delay_seconds: float = 2.0


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    matching: MatchingConfig = field(default_factory=MatchingConfig)
    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    merge: MergeConfig = field(default_factory=MergeConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/voicebill.db"))

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []
        m = self.matching

        for name in (
            "min_similarity",
            "exact_threshold",
            "lookup_threshold",
            "confirm_threshold",
        ):
            value = getattr(m, name)
            if not 0.0 <= value <= 1.0:
                errors.append(f"matching.{name} must be between 0 and 1 (got {value})")

        if m.lookup_threshold > m.confirm_threshold:
            errors.append("matching.lookup_threshold must be <= confirm_threshold")
        if m.min_similarity > m.exact_threshold:
            errors.append("matching.min_similarity must be <= exact_threshold")
        if m.suggestion_limit < 1:
            errors.append("matching.suggestion_limit must be positive")
        if m.document_search_limit < 1:
            errors.append("matching.document_search_limit must be positive")

        if self.numbering.inspect_limit < 1:
            errors.append("numbering.inspect_limit must be positive")
        if not self.numbering.invoice_prefix or not self.numbering.estimate_prefix:
            errors.append("numbering prefixes must not be empty")
        if self.numbering.invoice_prefix == self.numbering.estimate_prefix:
            errors.append("numbering.invoice_prefix and estimate_prefix must differ")

        if self.merge.max_workers < 1:
            errors.append("merge.max_workers must be positive")

        if self.review.autosave_delay_seconds < 0:
            errors.append("review.autosave_delay_seconds must not be negative")

        return errors


def _env_override(name: str, default, cast):
    """Return an environment override cast to the right type, or the default."""
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        return default  # Keep default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - VOICEBILL_DB_PATH
    - VOICEBILL_MIN_SIMILARITY
    - VOICEBILL_AUTOSAVE_DELAY (seconds)
    - VOICEBILL_MERGE_WORKERS
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    matching_data = data.get("matching", {})
    matching = MatchingConfig(
        min_similarity=_env_override(
            "VOICEBILL_MIN_SIMILARITY", matching_data.get("min_similarity", 0.3), float
        ),
        suggestion_limit=matching_data.get("suggestion_limit", 5),
        exact_threshold=matching_data.get("exact_threshold", 0.9),
        lookup_threshold=matching_data.get("lookup_threshold", 0.5),
        confirm_threshold=matching_data.get("confirm_threshold", 0.8),
        document_search_limit=matching_data.get("document_search_limit", 10),
    )

    numbering_data = data.get("numbering", {})
    numbering = NumberingConfig(
        inspect_limit=numbering_data.get("inspect_limit", 10),
        invoice_prefix=numbering_data.get("invoice_prefix", "INV"),
        estimate_prefix=numbering_data.get("estimate_prefix", "EST"),
    )

    merge_data = data.get("merge", {})
    merge = MergeConfig(
        max_workers=_env_override(
            "VOICEBILL_MERGE_WORKERS", merge_data.get("max_workers", 4), int
        ),
    )

    review_data = data.get("review", {})
    review = ReviewConfig(
        autosave_delay_seconds=_env_override(
            "VOICEBILL_AUTOSAVE_DELAY", review_data.get("autosave_delay_seconds", 2.0), float
        ),
    )

    state_db = os.environ.get(
        "VOICEBILL_DB_PATH", data.get("state_db_path", "data/voicebill.db")
    )

    return Config(
        matching=matching,
        numbering=numbering,
        merge=merge,
        review=review,
        state_db_path=Path(state_db),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# voicebill configuration
#
# Similarity scores are always in [0, 1].

matching:
  min_similarity: 0.3          # Lowest score shown as a client suggestion
  suggestion_limit: 5          # Max ranked suggestions
  exact_threshold: 0.9         # Score treated as an exact match
  lookup_threshold: 0.5        # Below this, lookup reports "no match"
  confirm_threshold: 0.8       # Below this, a lookup hit needs confirmation
  document_search_limit: 10    # Max documents returned per client search

numbering:
  inspect_limit: 10            # Recent numbers inspected for the next sequence
  invoice_prefix: "INV"
  estimate_prefix: "EST"

merge:
  max_workers: 4               # Concurrent per-client searches

review:
  autosave_delay_seconds: 2.0  # Debounce before a review session autosaves

# State database path
state_db_path: "data/voicebill.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
