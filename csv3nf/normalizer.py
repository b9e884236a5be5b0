"""
Normalization orchestrator and public entry point.

`normalize_csv` runs the whole pipeline for one CSV text:

    structure -> analysis -> entities -> normalization -> sql -> final_analysis

The 2NF and 3NF stages are advisory. They log candidate splits and annotate
entities with PARTIAL/TRANSITIVE dependencies but never move columns; the
entity detector's lookup split is the only structural change and the DDL
reflects exactly that.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .analysis import (
    RedundancyAnalyzer,
    RedundancyReport,
    critical_columns,
    find_composite_key,
    partial_dependencies,
    profile_table,
    tag_table,
)
from .config import CONFIG, NormalizerConfig
from .entities import SUPPORT_DOMAIN, DetectionSummary, EntityDetector
from .errors import NormalizationError
from .inference import StructureInferencer
from .models import (
    AnalysisResult,
    Dependency,
    DependencyKind,
    Entity,
    Issue,
    IssueKind,
    NormalForms,
    NormalizationStep,
    Severity,
    Table,
)
from .sql import SqlGenerator, is_numeric_type, is_reserved
from .vocabulary import contains_any

logger = logging.getLogger(__name__)

ConfigLike = Union[NormalizerConfig, Mapping[str, Any], None]


@dataclass
class NormalizationResult:
    original_structure: List[Table]
    entities: List[Entity]
    steps: List[NormalizationStep]
    sql: str
    analysis: AnalysisResult
    recommendations: List[str]
    redundancy: RedundancyReport
    summary: Optional[DetectionSummary] = None


@dataclass
class StageOutcome:
    """What one advisory stage found: affected entities, candidate tables, dependencies."""

    modified: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    dependencies: List[Tuple[str, Dependency]] = field(default_factory=list)

    def touch(self, entity_name: str) -> None:
        if entity_name not in self.modified:
            self.modified.append(entity_name)

    def propose(self, table_name: str) -> None:
        if table_name not in self.created:
            self.created.append(table_name)


class DatabaseNormalizer:
    """Runs the five pipeline stages for one input; every stage failure is wrapped with its name."""

    def __init__(self, text: str, config: ConfigLike = None) -> None:
        self.text = text
        self.config = NormalizerConfig.from_options(config)
        self.vocabulary = self.config.vocabulary

    def normalize(self) -> NormalizationResult:
        logger.info("Starting normalization to 3NF")
        table = self._stage("structure", self._structure)
        redundancy = self._stage("analysis", RedundancyAnalyzer(self.config).analyze, table)
        detector = EntityDetector([table], self.config)
        entities = self._stage("entities", detector.detect)
        summary = self._stage("entities", detector.summary)
        logger.info(
            "Detected %d entities (mean score %.1f): %s",
            summary.total_entities,
            summary.average_score,
            ", ".join(f"{kind}={count}" for kind, count in summary.entities_by_kind.items()),
        )
        steps, findings = self._stage("normalization", self._normalize_entities, table, entities)
        sql = self._stage("sql", SqlGenerator(self.config).generate, entities)
        analysis = self._stage("final_analysis", self._final_analysis, table, entities, findings)
        recommendations = self._stage("final_analysis", self.recommendations, analysis, summary)
        logger.info(
            "Normalization complete: score %.1f, %d issues", analysis.normalization_score, len(analysis.issues)
        )
        return NormalizationResult(
            original_structure=[table],
            entities=entities,
            steps=steps,
            sql=sql,
            analysis=analysis,
            recommendations=recommendations,
            redundancy=redundancy,
            summary=summary,
        )

    @staticmethod
    def _stage(name: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except NormalizationError:
            raise
        except Exception as exc:
            logger.error("Stage %s failed: %s", name, exc)
            raise NormalizationError(name, f"{type(exc).__name__}: {exc}", exc) from exc

    def _structure(self) -> Table:
        table = StructureInferencer(self.config).infer(self.text)
        profile_table(table)
        return tag_table(table, self.vocabulary)

    # ----------------------------------------------------------------------------------
    # Four-step log
    # ----------------------------------------------------------------------------------
    def _normalize_entities(
        self, table: Table, entities: List[Entity]
    ) -> Tuple[List[NormalizationStep], List[Tuple[str, Dependency]]]:
        first = self.first_normal_form(entities)
        second = self.second_normal_form(table, entities)
        third = self.third_normal_form(entities)
        optimized = self.optimization(entities)

        for owner, dep in second.dependencies + third.dependencies:
            entity = next(e for e in entities if e.name == owner)
            if dep not in entity.dependencies:
                entity.dependencies.append(dep)

        steps = [
            NormalizationStep(
                1,
                "Check First Normal Form (1NF)",
                "Validate atomic values",
                "1NF satisfied"
                if not first.modified
                else f"1NF not satisfied: non-atomic values in {', '.join(first.modified)}",
                (),
                tuple(first.modified),
            ),
            NormalizationStep(
                2,
                "Apply Second Normal Form (2NF)",
                "Detect partial dependencies",
                self._advisory_outcome("partial", second),
                tuple(second.created),
                tuple(second.modified),
            ),
            NormalizationStep(
                3,
                "Apply Third Normal Form (3NF)",
                "Detect transitive dependencies",
                self._advisory_outcome("transitive", third),
                tuple(third.created),
                tuple(third.modified),
            ),
            NormalizationStep(
                4,
                "Final structure optimization",
                "Create indexes and constraints",
                f"Optimization completed for {len(optimized.modified)} entities",
                (),
                tuple(optimized.modified),
            ),
        ]
        for step in steps:
            logger.info("Step %d: %s -> %s", step.ordinal, step.description, step.outcome)
        return steps, second.dependencies + third.dependencies

    @staticmethod
    def _advisory_outcome(label: str, outcome: StageOutcome) -> str:
        if not outcome.dependencies:
            return f"No {label} dependencies found"
        return (
            f"{len(outcome.dependencies)} {label} dependency candidates logged; "
            f"proposed tables: {', '.join(outcome.created)}"
        )

    def non_atomic_columns(self, entity: Entity) -> List[str]:
        separators = self.vocabulary.atomic_separators
        return [
            col.name for col in entity.columns if any(sep in value for value in col.values for sep in separators)
        ]

    def first_normal_form(self, entities: Sequence[Entity]) -> StageOutcome:
        outcome = StageOutcome()
        for entity in entities:
            columns = self.non_atomic_columns(entity)
            if columns:
                logger.warning("Entity %s has non-atomic values in %s", entity.name, ", ".join(columns))
                outcome.touch(entity.name)
        return outcome

    def second_normal_form(self, table: Table, entities: Sequence[Entity]) -> StageOutcome:
        outcome = StageOutcome()
        for entity in entities:
            pk = entity.primary_key
            if pk is None or len(entity.columns) <= 2:
                continue
            for col in entity.columns:
                if col.name == pk.name or not contains_any(col.name, self.vocabulary.descriptive_keywords):
                    continue
                dep = Dependency((pk.name,), (col.name,), DependencyKind.PARTIAL, 1.0)
                self._record(outcome, entity.name, dep)

        key = find_composite_key(table, self.vocabulary)
        if key:
            logger.info("Source table has composite key (%s)", ", ".join(key))
            owners: Dict[str, str] = {}
            for entity in entities:
                if entity.domain == SUPPORT_DOMAIN:
                    continue
                for col in entity.columns:
                    owners.setdefault(col.name, entity.name)
            for dep in partial_dependencies(table, key):
                owner = owners.get(dep.dependent[0])
                if owner is not None:
                    self._record(outcome, owner, dep)
        return outcome

    def third_normal_form(self, entities: Sequence[Entity]) -> StageOutcome:
        outcome = StageOutcome()
        for entity in entities:
            if len(entity.columns) <= 2:
                continue
            pk_name = entity.primary_key.name if entity.primary_key is not None else None
            non_key = [c for c in entity.columns if c.name != pk_name]
            for left in non_key:
                for right in non_key:
                    if left is right:
                        continue
                    if self._is_transitive_pair(left.name, right.name):
                        self._record(
                            outcome,
                            entity.name,
                            Dependency((left.name,), (right.name,), DependencyKind.TRANSITIVE, 1.0),
                        )
            non_key_names = {c.name for c in non_key}
            for fd in entity.dependencies:
                if fd.kind != DependencyKind.FUNCTIONAL:
                    continue
                if fd.determinant[0] in non_key_names and fd.dependent[0] in non_key_names:
                    self._record(
                        outcome,
                        entity.name,
                        Dependency(fd.determinant, fd.dependent, DependencyKind.TRANSITIVE, fd.confidence),
                    )
        return outcome

    def _is_transitive_pair(self, determinant: str, dependent: str) -> bool:
        left, right = determinant.lower(), dependent.lower()
        return any(a in left and b in right for a, b in self.vocabulary.transitive_pairs)

    @staticmethod
    def _record(outcome: StageOutcome, owner: str, dep: Dependency) -> None:
        for existing_owner, existing in outcome.dependencies:
            if existing_owner == owner and existing.determinant == dep.determinant and existing.dependent == dep.dependent:
                return
        outcome.dependencies.append((owner, dep))
        outcome.touch(owner)
        candidate = f"{owner}_{'_'.join(dep.dependent)}"
        outcome.propose(candidate)
        logger.info(
            "%s dependency candidate in %s: %s -> %s (proposed table %s)",
            dep.kind.value,
            owner,
            ", ".join(dep.determinant),
            ", ".join(dep.dependent),
            candidate,
        )

    @staticmethod
    def optimization(entities: Sequence[Entity]) -> StageOutcome:
        outcome = StageOutcome()
        for entity in entities:
            if entity.relationships or any(is_numeric_type(c.type) for c in entity.columns):
                outcome.touch(entity.name)
        return outcome

    # ----------------------------------------------------------------------------------
    # Final analysis
    # ----------------------------------------------------------------------------------
    def _final_analysis(
        self, table: Table, entities: Sequence[Entity], findings: Sequence[Tuple[str, Dependency]]
    ) -> AnalysisResult:
        scoring = CONFIG["SCORING"]
        rows = table.data_rows
        columns = [col for entity in entities for col in entity.columns]
        redundancy_score = round(sum(c.redundancy_percentage for c in columns) / len(columns), 2) if columns else 0.0
        score = round(sum(e.normalization_score for e in entities) / len(entities), 2) if entities else 0.0
        forms = NormalForms(
            first=True,
            second=score >= scoring["SECOND_NF_MIN_SCORE"],
            third=score >= scoring["THIRD_NF_MIN_SCORE"],
            bcnf=score >= scoring["BCNF_MIN_SCORE"],
        )
        return AnalysisResult(
            total_rows=len(rows),
            unique_rows=len({tuple(row) for row in rows}),
            redundancy_score=redundancy_score,
            normalization_score=score,
            normal_forms=forms,
            issues=self.identify_issues(entities, findings),
            suggestions=self.suggestions(entities),
        )

    def identify_issues(self, entities: Sequence[Entity], findings: Sequence[Tuple[str, Dependency]]) -> List[Issue]:
        issues: List[Issue] = []
        low_score = CONFIG["SCORING"]["LOW_SCORE_ISSUE_BELOW"]
        reported: Set[str] = set()

        for entity in entities:
            names = tuple(entity.column_names)
            if entity.normalization_score < low_score:
                issues.append(
                    Issue(
                        IssueKind.STRUCTURE,
                        Severity.MEDIUM,
                        f"Entity {entity.name} has a low normalization score ({entity.normalization_score:.1f})",
                        names,
                        "Apply additional normalization",
                    )
                )
            if entity.primary_key is None:
                issues.append(
                    Issue(
                        IssueKind.STRUCTURE,
                        Severity.HIGH,
                        f"Entity {entity.name} has no primary key",
                        names,
                        "Define an appropriate primary key",
                    )
                )
            non_atomic = self.non_atomic_columns(entity)
            if non_atomic:
                issues.append(
                    Issue(
                        IssueKind.STRUCTURE,
                        Severity.MEDIUM,
                        f"Entity {entity.name} has non-atomic values",
                        tuple(non_atomic),
                        "Split multi-valued cells into separate rows or a child table",
                    )
                )

        for entity in entities:
            for col in critical_columns(entity.columns):
                issues.append(
                    Issue(
                        IssueKind.REDUNDANCY,
                        Severity.HIGH,
                        f"Column {col.name} in {entity.name} is {col.redundancy_percentage:.2f}% redundant",
                        (col.name,),
                        f"Move {col.name} into its own lookup table",
                    )
                )
            for col in entity.columns:
                if col.values and not col.has_values:
                    issues.append(
                        Issue(
                            IssueKind.DATA_TYPE,
                            Severity.LOW,
                            f"Column {col.name} has no values; type defaulted to {col.type}",
                            (col.name,),
                            "Declare the column type in a type row",
                        )
                    )
                if is_reserved(col.name) and col.name not in reported:
                    reported.add(col.name)
                    issues.append(
                        Issue(
                            IssueKind.STRUCTURE,
                            Severity.LOW,
                            f"Column name {col.name} is an SQL reserved word",
                            (col.name,),
                            "Rename the column or keep it quoted",
                        )
                    )

        for owner, dep in findings:
            form = "2NF" if dep.kind == DependencyKind.PARTIAL else "3NF"
            issues.append(
                Issue(
                    IssueKind.DEPENDENCY,
                    Severity.MEDIUM,
                    f"{dep.kind.value.capitalize()} dependency in {owner}: "
                    f"{', '.join(dep.determinant)} -> {', '.join(dep.dependent)}",
                    dep.determinant + dep.dependent,
                    f"Move {', '.join(dep.dependent)} to a table keyed by {', '.join(dep.determinant)} ({form})",
                )
            )
        return issues

    @staticmethod
    def suggestions(entities: Sequence[Entity]) -> List[str]:
        result: List[str] = []
        if len(entities) == 1:
            result.append("Consider splitting the table into several entities for better normalization")
        for entity in entities:
            if not entity.relationships and len(entity.columns) > 2:
                result.append(f"Add relationships to entity {entity.name} to improve referential integrity")
            if entity.normalization_score < CONFIG["SCORING"]["SUGGESTION_SCORE_BELOW"]:
                result.append(f"Review the structure of {entity.name} to improve normalization")
        return result

    @staticmethod
    def recommendations(analysis: AnalysisResult, summary: DetectionSummary) -> List[str]:
        scoring = CONFIG["SCORING"]
        result: List[str] = []
        if analysis.normalization_score < scoring["SECOND_NF_MIN_SCORE"]:
            result.append("The database needs significant normalization to reach 3NF")
        elif analysis.normalization_score < scoring["THIRD_NF_MIN_SCORE"]:
            result.append("The database is partially normalized; consider further improvements")
        else:
            result.append("The database is well normalized and meets 3NF")

        if summary.total_entities == 1:
            result.append("Consider splitting the single table into several entities")
        elif summary.total_entities > CONFIG["LIMITS"]["MANY_ENTITIES"]:
            result.append("The database is well structured with multiple specialized entities")

        if analysis.issues:
            result.append(f"Resolve the {len(analysis.issues)} identified issues to improve quality")
        return result


def normalize_csv(text: str, config: ConfigLike = None) -> NormalizationResult:
    """Run the full pipeline on CSV text.

    Raises InvalidInputError for unusable input, ConfigurationError for bad
    options and NormalizationError (carrying `.stage`) when a stage fails.
    """
    return DatabaseNormalizer(text, config).normalize()
