"""
Entity detection: clusters the source columns into candidate entities.

Passes, always in this order:

1. domain classification (ordered keyword rules, first match wins)
2. naming and purpose
3. key tagging (primary, foreign, required)
4. redundancy-driven lookup split

followed by foreign key resolution, support-entity synthesis for dangling
references, relationship materialization, per-entity functional dependencies
and scoring.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence

from .analysis import FDDiscoverer, mean_redundancy
from .config import CONFIG, NormalizerConfig
from .models import (
    Column,
    ColumnReference,
    Entity,
    Relationship,
    RelationshipKind,
    RelationshipStrength,
    Table,
)
from .vocabulary import Vocabulary, contains_any, first_match

logger = logging.getLogger(__name__)

SUPPORT_DOMAIN = "SUPPORT"
LOOKUP_SUFFIX = "_LOOKUP"


@dataclass
class DetectionSummary:
    total_entities: int
    entities_by_kind: Dict[str, int] = field(default_factory=dict)
    average_score: float = 0.0
    recommendations: List[str] = field(default_factory=list)


# --------------------------------------------------------------------------------------
# Scoring
# --------------------------------------------------------------------------------------
def score_entity(entity: Entity) -> float:
    """100, minus redundancy, missing key and missing relationship penalties, clamped to [0, 100]."""
    scoring = CONFIG["SCORING"]
    score = scoring["BASE_SCORE"]
    for col in entity.columns:
        if col.redundancy_percentage > scoring["REDUNDANCY_PENALTY_FROM_PCT"]:
            score -= col.redundancy_percentage * scoring["REDUNDANCY_PENALTY_FACTOR"]
    if entity.primary_key is None:
        score -= scoring["MISSING_PRIMARY_KEY_PENALTY"]
    if not entity.relationships and len(entity.columns) > 1:
        score -= scoring["MISSING_RELATIONSHIPS_PENALTY"]
    return round(max(0.0, min(100.0, score)), 2)


def entity_kind(entity: Entity) -> str:
    if entity.primary_key is not None and not entity.relationships:
        return "LOOKUP"
    if entity.relationships:
        return "TRANSACTION"
    if len(entity.columns) == 1:
        return "SIMPLE"
    return "COMPLEX"


# --------------------------------------------------------------------------------------
# Detector
# --------------------------------------------------------------------------------------
class EntityDetector:
    """Turns the tagged source tables into named entities with keys and relationships."""

    def __init__(self, tables: Sequence[Table], config: Optional[NormalizerConfig] = None) -> None:
        self.tables = list(tables)
        self.config = config or NormalizerConfig()
        self.vocabulary: Vocabulary = self.config.vocabulary
        self.entities: "OrderedDict[str, Entity]" = OrderedDict()

    def detect(self) -> List[Entity]:
        self.entities = OrderedDict()
        for table in self.tables:
            if not table.columns:
                continue
            logger.info("Detecting entities in %s (%d columns)", table.name, len(table.columns))
            self._entities_from_domains(table)
        self._split_by_redundancy()
        self._resolve_references()
        self._create_support_entities()
        self._materialize_relationships()
        self._annotate_dependencies()
        for entity in self.entities.values():
            assert entity.columns, f"entity {entity.name} has no columns"
            entity.normalization_score = score_entity(entity)
            logger.info("Entity %s scored %.1f/100", entity.name, entity.normalization_score)
        return list(self.entities.values())

    # -- pass 1 & 2: domains and names ---------------------------------------------------
    def _entities_from_domains(self, table: Table) -> None:
        groups: "OrderedDict[str, List[Column]]" = OrderedDict()
        for col in table.columns:
            groups.setdefault(self.vocabulary.domain_of(col.name), []).append(col)

        for domain, columns in groups.items():
            name = self.entity_name(domain, columns)
            existing = self.entities.get(name)
            if existing is not None:
                logger.debug("Merging %s columns into existing entity %s", domain, name)
                self._assign_keys(existing, existing.columns + columns)
                continue
            entity = Entity(
                name=name,
                purpose=self.entity_purpose(domain),
                columns=[],
                domain=domain,
            )
            self._assign_keys(entity, columns)
            self.entities[name] = entity
            logger.info("Entity %s created from domain %s: %s", name, domain, ", ".join(entity.column_names))

    def entity_name(self, domain: str, columns: Sequence[Column]) -> str:
        for col in columns:
            if contains_any(col.name, self.vocabulary.name_column_keywords):
                hinted = first_match(self.vocabulary.entity_name_hints, col.name)
                if hinted is not None:
                    return hinted
                break
        return self.vocabulary.domain_entity_names.get(domain, domain)

    def entity_purpose(self, domain: str) -> str:
        return self.vocabulary.domain_purposes.get(domain, f"Stores information of the {domain} domain")

    # -- pass 3: keys ----------------------------------------------------------------------
    def is_strict_primary_key(self, name: str) -> bool:
        return name.lower() == "id" or self.vocabulary.is_primary_key_name(name)

    def find_primary_key(self, columns: Sequence[Column]) -> Optional[Column]:
        for col in columns:
            if self.is_strict_primary_key(col.name):
                return col
        identifiers = [c for c in columns if self.vocabulary.is_identifier(c.name)]
        if len(identifiers) == 1:
            return identifiers[0]
        return None

    def _assign_keys(self, entity: Entity, columns: Sequence[Column]) -> None:
        """Replace the entity's columns with freshly tagged copies of `columns`."""
        fresh = [
            replace(col, is_primary_key=False, is_foreign_key=False, is_required=False, reference=None)
            for col in columns
        ]
        pk = self.find_primary_key(fresh)
        for col in fresh:
            col.is_primary_key = col is pk
            col.is_foreign_key = not col.is_primary_key and self.vocabulary.is_foreign_key_name(col.name)
            col.is_required = (
                col.is_primary_key
                or col.is_foreign_key
                or contains_any(col.name, self.vocabulary.required_name_keywords)
            )
        entity.columns = fresh
        entity.primary_key = pk

    # -- pass 4: lookup split --------------------------------------------------------------
    def _split_by_redundancy(self) -> None:
        thresholds = CONFIG["THRESHOLDS"]
        to_split = []
        for name, entity in self.entities.items():
            average = mean_redundancy(entity.columns)
            if average > thresholds["LOOKUP_SPLIT_AVG_PCT"]:
                logger.warning("Entity %s has high average redundancy: %.2f%%", name, average)
                to_split.append(name)

        for name in to_split:
            entity = self.entities[name]
            limit = thresholds["LOOKUP_SPLIT_COLUMN_PCT"]
            high = [c for c in entity.columns if c.redundancy_percentage > limit]
            low = [c for c in entity.columns if c.redundancy_percentage <= limit]
            if not high or not low:
                continue
            lookup_name = f"{name}{LOOKUP_SUFFIX}"
            lookup = Entity(name=lookup_name, purpose=f"Lookup table for {name}", columns=[], domain=entity.domain)
            self._assign_keys(lookup, high)
            self._assign_keys(entity, low)
            self.entities[lookup_name] = lookup
            logger.info("Entity %s split: %s moved to %s", name, ", ".join(lookup.column_names), lookup_name)

    # -- references, support entities, relationships ---------------------------------------
    def _resolve_references(self) -> None:
        for entity in self.entities.values():
            for col in entity.columns:
                if not col.is_foreign_key:
                    continue
                base = self.vocabulary.identifier_base(col.name)
                if not base:
                    logger.debug("Foreign key %s.%s has no base name to resolve", entity.name, col.name)
                    continue
                table = self.vocabulary.resolve_table_name(base)
                target = self.entities.get(table)
                target_column = (
                    target.primary_key.name if target is not None and target.primary_key is not None else f"id_{base}"
                )
                col.reference = ColumnReference(table, target_column)

    def _create_support_entities(self) -> None:
        referenced: "OrderedDict[str, str]" = OrderedDict()
        for entity in self.entities.values():
            for col in entity.columns:
                if col.is_foreign_key and col.reference is not None:
                    referenced.setdefault(col.reference.table, col.reference.column)

        for table_name, key_name in referenced.items():
            if table_name in self.entities:
                continue
            key = Column(name=key_name, type="INTEGER", is_primary_key=True, is_required=True)
            label = Column(name="nombre", type="VARCHAR(100)", is_required=True)
            self.entities[table_name] = Entity(
                name=table_name,
                purpose=f"Support table for {table_name}",
                columns=[key, label],
                primary_key=key,
                domain=SUPPORT_DOMAIN,
            )
            logger.info("Support entity %s created for a dangling foreign key", table_name)

    def _materialize_relationships(self) -> None:
        for entity in self.entities.values():
            entity.relationships = []
            for col in entity.columns:
                if not (col.is_foreign_key and col.reference is not None):
                    continue
                has_gaps = not col.values or col.total_value_count < len(col.values)
                entity.relationships.append(
                    Relationship(
                        column=col.name,
                        references=col.reference,
                        kind=RelationshipKind.FOREIGN_KEY,
                        strength=RelationshipStrength.WEAK if has_gaps else RelationshipStrength.STRONG,
                    )
                )

    def _annotate_dependencies(self) -> None:
        for entity in self.entities.values():
            entity.dependencies = FDDiscoverer(entity.columns).discover()

    # -- summary ---------------------------------------------------------------------------
    def summary(self) -> DetectionSummary:
        entities = list(self.entities.values())
        result = DetectionSummary(total_entities=len(entities))
        for entity in entities:
            kind = entity_kind(entity)
            result.entities_by_kind[kind] = result.entities_by_kind.get(kind, 0) + 1
            if entity.normalization_score < CONFIG["SCORING"]["LOW_SCORE_ISSUE_BELOW"]:
                result.recommendations.append(
                    f"Improve normalization of {entity.name} (score: {entity.normalization_score:.1f})"
                )
            if entity.primary_key is None:
                result.recommendations.append(f"Define a primary key for {entity.name}")
        if entities:
            result.average_score = round(sum(e.normalization_score for e in entities) / len(entities), 2)
        return result
