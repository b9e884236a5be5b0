"""
Redundancy and functional-dependency analysis over the source table.

Everything here is a read-only pass over the observed column values: each
function builds its own maps and returns new structures. The only mutation is
`profile_table`/`tag_table`, which fill in the statistics and tags of the
freshly parsed source table.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import CONFIG, NormalizerConfig
from .models import Column, Dependency, DependencyKind, EntityType, NormalizationLevel, Table
from .vocabulary import Vocabulary, contains_any, first_match

logger = logging.getLogger(__name__)

DEFAULT_TABLE_PURPOSE = "Stores general information"


# --------------------------------------------------------------------------------------
# Data containers
# --------------------------------------------------------------------------------------
@dataclass
class ColumnRedundancy:
    column: str
    unique_values: int
    total_values: int
    redundancy_percentage: float
    should_normalize: bool


@dataclass
class CombinationCandidate:
    """An identifier plus the columns that stay constant for each of its values."""

    determinant: str
    related_columns: List[str]
    suggested_table: str
    unique_combinations: int
    total_rows: int
    redundancy_percentage: float
    should_normalize: bool


@dataclass
class RedundancyReport:
    columns: List[ColumnRedundancy] = field(default_factory=list)
    combinations: List[CombinationCandidate] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    def column(self, name: str) -> Optional[ColumnRedundancy]:
        for entry in self.columns:
            if entry.column == name:
                return entry
        return None


# --------------------------------------------------------------------------------------
# Column statistics
# --------------------------------------------------------------------------------------
def redundancy_percentage(unique: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round((total - unique) / total * 100, 2)


def profile_column(column: Column) -> Column:
    """Fill the value counts and redundancy of one column from its observed values."""
    observed = [v for v in column.values if v != ""]
    column.total_value_count = len(observed)
    column.unique_value_count = len(set(observed))
    column.redundancy_percentage = redundancy_percentage(column.unique_value_count, column.total_value_count)
    return column


def profile_table(table: Table) -> Table:
    for col in table.columns:
        profile_column(col)
        logger.debug(
            "Column %s: %d unique of %d values (%.2f%% redundancy)",
            col.name,
            col.unique_value_count,
            col.total_value_count,
            col.redundancy_percentage,
        )
    return table


def mean_redundancy(columns: Sequence[Column]) -> float:
    observed = [c.redundancy_percentage for c in columns if c.has_values]
    if not observed:
        return 0.0
    return sum(observed) / len(observed)


def repeat_share(values: Sequence[str]) -> float:
    """Share of rows whose value occurs more than once."""
    if not values:
        return 0.0
    counts: Dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    repeated = sum(1 for value in values if counts[value] > 1)
    return round(repeated / len(values), 4)


# --------------------------------------------------------------------------------------
# Functional dependencies
# --------------------------------------------------------------------------------------
def dependency_holds(determinant: Sequence[str], dependent: Sequence[str]) -> bool:
    """A -> B holds when every repeat of an A value maps to the B value first seen with it."""
    first_seen: Dict[str, str] = {}
    for a_value, b_value in zip(determinant, dependent):
        if a_value in first_seen:
            if first_seen[a_value] != b_value:
                return False
        else:
            first_seen[a_value] = b_value
    return True


class FDDiscoverer:
    """Evaluates every ordered column pair with the map-and-compare check."""

    def __init__(self, columns: Sequence[Column]) -> None:
        self.columns = list(columns)

    def discover(self, include_trivial: bool = False) -> List[Dependency]:
        """Holding dependencies in column order.

        A dependency whose determinant never repeats holds trivially; those are
        dropped unless `include_trivial` is set. Confidence is the share of rows
        whose determinant value repeats, i.e. the rows that actually witnessed it.
        """
        fds: List[Dependency] = []
        for left in self.columns:
            confidence = repeat_share(left.values)
            if confidence == 0 and not include_trivial:
                continue
            for right in self.columns:
                if right is left:
                    continue
                if dependency_holds(left.values, right.values):
                    fds.append(Dependency((left.name,), (right.name,), DependencyKind.FUNCTIONAL, confidence))
        return fds


# --------------------------------------------------------------------------------------
# Composite keys & partial dependencies
# --------------------------------------------------------------------------------------
def combination_count(columns: Sequence[Column]) -> int:
    return len(set(zip(*(c.values for c in columns))))


def find_composite_key(table: Table, vocabulary: Vocabulary) -> Optional[Tuple[str, ...]]:
    """Smallest combination of identifier columns that is unique while none of them is alone."""
    candidates = [c for c in table.columns if vocabulary.is_identifier(c.name) and c.has_values]
    rows = len(table.data_rows)
    if len(candidates) < 2 or rows == 0:
        return None
    if any(len(set(c.values)) == rows for c in candidates):
        return None
    for size in range(2, len(candidates) + 1):
        for combo in combinations(candidates, size):
            if combination_count(combo) == rows:
                return tuple(c.name for c in combo)
    return None


def partial_dependencies(table: Table, key: Sequence[str]) -> List[Dependency]:
    """Non-key columns determined by a repeating proper part of a composite key."""
    if len(key) < 2:
        return []
    key_set = set(key)
    found: List[Dependency] = []
    for part_name in key:
        part = table.column(part_name)
        if part is None:
            continue
        share = repeat_share(part.values)
        if share == 0:
            continue
        for col in table.columns:
            if col.name in key_set:
                continue
            if dependency_holds(part.values, col.values):
                found.append(Dependency((part_name,), (col.name,), DependencyKind.PARTIAL, share))
    return found


# --------------------------------------------------------------------------------------
# Redundancy analyzer
# --------------------------------------------------------------------------------------
class RedundancyAnalyzer:
    """Per-column and per-identifier-combination redundancy with normalization advice."""

    def __init__(self, config: Optional[NormalizerConfig] = None) -> None:
        self.config = config or NormalizerConfig()
        self.vocabulary = self.config.vocabulary

    def analyze(self, table: Table) -> RedundancyReport:
        total_rows = len(table.data_rows)
        report = RedundancyReport()
        for col in table.columns:
            report.columns.append(self._column_entry(col, total_rows))
        report.combinations = self._combinations(table, total_rows)

        for entry in report.columns:
            if entry.should_normalize:
                report.recommendations.append(
                    f"Create a separate table for column '{entry.column}' "
                    f"({entry.redundancy_percentage:.2f}% redundancy)"
                )
        for combo in report.combinations:
            if combo.should_normalize:
                report.recommendations.append(
                    f"Create table {combo.suggested_table} keyed by '{combo.determinant}' "
                    f"holding {', '.join(combo.related_columns)}"
                )

        report.summary = {
            "total_columns": len(report.columns),
            "columns_to_normalize": sum(1 for e in report.columns if e.should_normalize),
            "combinations_to_normalize": sum(1 for c in report.combinations if c.should_normalize),
            "total_rows": total_rows,
        }
        logger.info(
            "Redundancy analysis: %d of %d columns above %.0f%%, %d combination candidates",
            report.summary["columns_to_normalize"],
            report.summary["total_columns"],
            self.config.redundancy_threshold_single_column,
            len(report.combinations),
        )
        return report

    def _column_entry(self, col: Column, total_rows: int) -> ColumnRedundancy:
        pct = redundancy_percentage(col.unique_value_count, col.total_value_count)
        should = pct >= self.config.redundancy_threshold_single_column and col.unique_value_count < total_rows
        return ColumnRedundancy(col.name, col.unique_value_count, col.total_value_count, pct, should)

    def _combinations(self, table: Table, total_rows: int) -> List[CombinationCandidate]:
        found: List[CombinationCandidate] = []
        if total_rows == 0:
            return found
        for ident in table.columns:
            if not self.vocabulary.is_identifier(ident.name):
                continue
            base = self.vocabulary.identifier_base(ident.name)
            keywords = self.vocabulary.relation_keywords.get(base, ())
            if not keywords:
                continue
            related = [
                col
                for col in table.columns
                if col is not ident
                and not self.vocabulary.is_identifier(col.name)
                and contains_any(col.name, keywords)
                and dependency_holds(ident.values, col.values)
            ]
            if not related:
                continue
            unique = combination_count([ident] + related)
            if unique >= total_rows:
                continue
            pct = redundancy_percentage(unique, total_rows)
            candidate = CombinationCandidate(
                determinant=ident.name,
                related_columns=[c.name for c in related],
                suggested_table=self.vocabulary.resolve_table_name(base),
                unique_combinations=unique,
                total_rows=total_rows,
                redundancy_percentage=pct,
                should_normalize=pct >= self.config.redundancy_threshold_combination,
            )
            logger.debug("Combination candidate %s -> %s", ident.name, candidate.related_columns)
            found.append(candidate)
        return found


# --------------------------------------------------------------------------------------
# Table tagging
# --------------------------------------------------------------------------------------
def level_for_redundancy(mean_pct: float) -> NormalizationLevel:
    if mean_pct < 30:
        return NormalizationLevel.THIRD_NF
    if mean_pct < 60:
        return NormalizationLevel.SECOND_NF
    if mean_pct < 80:
        return NormalizationLevel.FIRST_NF
    return NormalizationLevel.NONE


def tag_table(table: Table, vocabulary: Vocabulary) -> Table:
    """Purpose, keys, entity type and normalization level of the source table."""
    joined = " ".join(col.name for col in table.columns)
    table.purpose = first_match(vocabulary.table_purpose_rules, joined, DEFAULT_TABLE_PURPOSE)

    table.primary_key = None
    table.foreign_keys = []
    for col in table.columns:
        if table.primary_key is None and vocabulary.is_primary_key_name(col.name):
            col.is_primary_key = True
            table.primary_key = col
        elif vocabulary.is_foreign_key_name(col.name):
            col.is_foreign_key = True
            table.foreign_keys.append(col)

    if table.foreign_keys:
        table.entity_type = EntityType.TRANSACTION
    elif table.primary_key is not None:
        table.entity_type = EntityType.LOOKUP
    else:
        table.entity_type = EntityType.MAIN

    table.normalization_level = level_for_redundancy(mean_redundancy(table.columns))
    logger.info(
        "Source table tagged %s / %s (primary key: %s, %d foreign keys)",
        table.entity_type.value,
        table.normalization_level.value,
        table.primary_key.name if table.primary_key else "none",
        len(table.foreign_keys),
    )
    return table


def critical_columns(columns: Sequence[Column]) -> List[Column]:
    limit = CONFIG["THRESHOLDS"]["CRITICAL_REDUNDANCY_PCT"]
    return [c for c in columns if c.redundancy_percentage > limit]
