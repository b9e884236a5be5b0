"""
Configuration for the CSV to 3NF normalization engine.

Every numeric constant the heuristics rely on lives in the CONFIG constant
below so that analysts can trace how a score or a split decision was reached.
Per-invocation options (the thresholds a caller may override) are carried by
`NormalizerConfig`, which is built fresh for every run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigurationError
from .vocabulary import Vocabulary

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------------------------
CONFIG: Dict[str, Any] = {
    "THRESHOLDS": {
        # Redundancy (percent) at which a single column / identifier combination
        # is recommended for its own table.
        "SINGLE_COLUMN_REDUNDANCY_PCT": 20.0,
        "COMBINATION_REDUNDANCY_PCT": 70.0,
        # Entity split: average redundancy that triggers a split, and the
        # per-column redundancy that sends a column to the lookup entity.
        "LOOKUP_SPLIT_AVG_PCT": 80.0,
        "LOOKUP_SPLIT_COLUMN_PCT": 70.0,
        # Columns above this redundancy are reported as REDUNDANCY/HIGH issues.
        "CRITICAL_REDUNDANCY_PCT": 70.0,
    },
    "SCORING": {
        "BASE_SCORE": 100.0,
        "REDUNDANCY_PENALTY_FROM_PCT": 50.0,
        "REDUNDANCY_PENALTY_FACTOR": 0.5,
        "MISSING_PRIMARY_KEY_PENALTY": 20.0,
        "MISSING_RELATIONSHIPS_PENALTY": 15.0,
        # Normal form booleans derived from the mean entity score.
        "SECOND_NF_MIN_SCORE": 70.0,
        "THIRD_NF_MIN_SCORE": 85.0,
        "BCNF_MIN_SCORE": 95.0,
        # Entities under this score get a STRUCTURE/MEDIUM issue.
        "LOW_SCORE_ISSUE_BELOW": 70.0,
        "SUGGESTION_SCORE_BELOW": 80.0,
    },
    "LIMITS": {
        # A line is a declared-type row when more than this share of its cells
        # are SQL type names.
        "TYPE_ROW_MIN_SHARE": 0.5,
        "VARCHAR_BUCKETS": (50, 100, 255),
        "MAX_SAMPLE_ROWS": 5,
        "PREVIEW_ROWS": 5,
        "MANY_ENTITIES": 5,
    },
    "SQL": {
        "MIN_CODE_LENGTH": 1,
        "INTEGER_TYPES": ("INT", "INTEGER", "BIGINT", "SMALLINT", "TINYINT"),
        "NUMERIC_TYPE_MARKERS": ("INT", "DECIMAL", "NUMERIC", "FLOAT", "DOUBLE", "REAL"),
        "CHARACTER_TYPE_MARKERS": ("CHAR", "TEXT"),
    },
}

# External option names (as sent by upload/UI collaborators) -> field names.
OPTION_ALIASES: Dict[str, str] = {
    "redundancyThresholdSingleColumn": "redundancy_threshold_single_column",
    "redundancyThresholdCombination": "redundancy_threshold_combination",
    "maxSampleRows": "max_sample_rows",
    "includeSampleData": "include_sample_data",
    "includeViews": "include_views",
}


@dataclass(frozen=True)
class NormalizerConfig:
    redundancy_threshold_single_column: float = CONFIG["THRESHOLDS"]["SINGLE_COLUMN_REDUNDANCY_PCT"]
    redundancy_threshold_combination: float = CONFIG["THRESHOLDS"]["COMBINATION_REDUNDANCY_PCT"]
    max_sample_rows: int = CONFIG["LIMITS"]["MAX_SAMPLE_ROWS"]
    include_sample_data: bool = False
    include_views: bool = False
    vocabulary: Vocabulary = field(default_factory=Vocabulary)

    @classmethod
    def from_options(cls, options: Optional[Mapping[str, Any]] = None) -> "NormalizerConfig":
        """Build a config from a loosely typed options mapping.

        Accepts camelCase option names as well as the dataclass field names.
        Unknown keys are logged and ignored; values that cannot be coerced raise
        ConfigurationError.
        """
        if options is None:
            return cls()
        if isinstance(options, NormalizerConfig):
            return options

        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in options.items():
            name = OPTION_ALIASES.get(key, key)
            if name not in known:
                logger.warning("Ignoring unknown normalizer option %r", key)
                continue
            kwargs[name] = _coerce(name, value)
        return cls(**kwargs)


def _coerce(name: str, value: Any) -> Any:
    if name == "vocabulary":
        if not isinstance(value, Vocabulary):
            raise ConfigurationError(f"vocabulary must be a Vocabulary instance, got {type(value).__name__}")
        return value
    if name in ("include_sample_data", "include_views"):
        return bool(value)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Option {name} expects a number, got {value!r}") from exc
    if name == "max_sample_rows":
        if number < 0:
            raise ConfigurationError(f"max_sample_rows must be >= 0, got {value!r}")
        return int(number)
    if not 0 <= number <= 100:
        raise ConfigurationError(f"Option {name} must be a percentage in [0, 100], got {value!r}")
    return number
