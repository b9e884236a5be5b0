"""
Filesystem artifacts for a normalization run.

Machine-readable JSON for every pipeline output, the DDL as `schema.sql`, and
a Markdown report for reviewers. `manifest.json` lists what was written.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

from .analysis import RedundancyReport
from .models import AnalysisResult, Column, Entity, NormalizationStep, Table
from .normalizer import NormalizationResult

logger = logging.getLogger(__name__)


class ArtifactWriter:
    """Handles filesystem output for both machine-readable and human-readable artifacts."""

    def __init__(self, base_path: Path) -> None:
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.manifest: Dict[str, Any] = {"files": []}

    def write_text(self, name: str, content: str) -> Path:
        path = self.base_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        self.manifest["files"].append(name)
        logger.debug("Wrote %s", path)
        return path

    def write_json(self, name: str, obj: Any) -> Path:
        return self.write_text(name, json.dumps(obj, indent=2, default=str, ensure_ascii=False))

    def write_result(self, result: NormalizationResult, source: str = "") -> Path:
        self.write_text("schema.sql", result.sql)
        self.write_json("entities.json", [self._entity_to_dict(e) for e in result.entities])
        self.write_json("steps.json", [self._step_to_dict(s) for s in result.steps])
        self.write_json("analysis.json", self._analysis_to_dict(result.analysis))
        self.write_json("redundancy.json", self._redundancy_to_dict(result.redundancy))
        self.write_json("source.json", [self._table_to_dict(t) for t in result.original_structure])
        self.write_report("report.md", result, source)
        self.manifest.update(
            {
                "source": source,
                "entities": [e.name for e in result.entities],
                "normalization_score": result.analysis.normalization_score,
                "issues": len(result.analysis.issues),
            }
        )
        return self.finalize()

    def finalize(self) -> Path:
        path = self.base_path / "manifest.json"
        path.write_text(json.dumps(self.manifest, indent=2, default=str), encoding="utf-8")
        return path

    def write_report(self, name: str, result: NormalizationResult, source: str = "") -> Path:
        analysis = result.analysis
        forms = analysis.normal_forms
        lines: List[str] = [
            f"# 3NF Normalization Report{': ' + source if source else ''}",
            "",
            "## Source",
            f"- Rows: {analysis.total_rows} ({analysis.unique_rows} unique)",
            f"- Redundancy score: {analysis.redundancy_score:.2f}%",
            f"- Normalization score: {analysis.normalization_score:.1f}/100",
            f"- Normal forms: 1NF={_flag(forms.first)}, 2NF={_flag(forms.second)}, "
            f"3NF={_flag(forms.third)}, BCNF={_flag(forms.bcnf)}",
            "",
            "## Entities",
        ]
        for entity in result.entities:
            pk = entity.primary_key.name if entity.primary_key else "none"
            lines.append(f"- {entity.name} (PK {pk}, score {entity.normalization_score:.1f}): {entity.purpose}")
            lines.append(f"  - Columns: {', '.join(entity.column_names)}")
            for rel in entity.relationships:
                lines.append(
                    f"  - {rel.column} -> {rel.references.table}.{rel.references.column} ({rel.strength.value})"
                )
        lines.append("")
        lines.append("## Normalization Steps")
        for step in result.steps:
            lines.append(f"{step.ordinal}. {step.description}: {step.outcome}")
        lines.append("")
        lines.append("## Issues")
        if analysis.issues:
            for issue in analysis.issues:
                lines.append(f"- [{issue.severity.value}] {issue.kind.value}: {issue.description}")
                lines.append(f"  - Fix: {issue.suggested_fix}")
        else:
            lines.append("- No issues found.")
        lines.append("")
        lines.append("## Recommendations")
        for text in result.recommendations + analysis.suggestions + result.redundancy.recommendations:
            lines.append(f"- {text}")
        lines.append("")
        return self.write_text(name, "\n".join(lines))

    @staticmethod
    def _column_to_dict(col: Column) -> Dict[str, Any]:
        return {
            "name": col.name,
            "type": col.type,
            "is_primary_key": col.is_primary_key,
            "is_foreign_key": col.is_foreign_key,
            "is_required": col.is_required,
            "reference": asdict(col.reference) if col.reference else None,
            "unique_value_count": col.unique_value_count,
            "total_value_count": col.total_value_count,
            "redundancy_percentage": col.redundancy_percentage,
        }

    @classmethod
    def _entity_to_dict(cls, entity: Entity) -> Dict[str, Any]:
        return {
            "name": entity.name,
            "purpose": entity.purpose,
            "domain": entity.domain,
            "primary_key": entity.primary_key.name if entity.primary_key else None,
            "normalization_score": entity.normalization_score,
            "columns": [cls._column_to_dict(c) for c in entity.columns],
            "relationships": [
                {
                    "column": r.column,
                    "references": asdict(r.references),
                    "kind": r.kind.value,
                    "strength": r.strength.value,
                }
                for r in entity.relationships
            ],
            "dependencies": [
                {
                    "determinant": list(d.determinant),
                    "dependent": list(d.dependent),
                    "kind": d.kind.value,
                    "confidence": d.confidence,
                }
                for d in entity.dependencies
            ],
        }

    @staticmethod
    def _step_to_dict(step: NormalizationStep) -> Dict[str, Any]:
        return {
            "ordinal": step.ordinal,
            "description": step.description,
            "action": step.action,
            "outcome": step.outcome,
            "tables_created": list(step.tables_created),
            "tables_modified": list(step.tables_modified),
        }

    @staticmethod
    def _analysis_to_dict(analysis: AnalysisResult) -> Dict[str, Any]:
        return {
            "total_rows": analysis.total_rows,
            "unique_rows": analysis.unique_rows,
            "redundancy_score": analysis.redundancy_score,
            "normalization_score": analysis.normalization_score,
            "normal_forms": asdict(analysis.normal_forms),
            "issues": [
                {
                    "kind": i.kind.value,
                    "severity": i.severity.value,
                    "description": i.description,
                    "affected_columns": list(i.affected_columns),
                    "suggested_fix": i.suggested_fix,
                }
                for i in analysis.issues
            ],
            "suggestions": list(analysis.suggestions),
        }

    @staticmethod
    def _redundancy_to_dict(report: RedundancyReport) -> Dict[str, Any]:
        return {
            "columns": [vars(c) for c in report.columns],
            "combinations": [vars(c) for c in report.combinations],
            "recommendations": report.recommendations,
            "summary": report.summary,
        }

    @classmethod
    def _table_to_dict(cls, table: Table) -> Dict[str, Any]:
        return {
            "name": table.name,
            "purpose": table.purpose,
            "entity_type": table.entity_type.value,
            "normalization_level": table.normalization_level.value,
            "has_type_row": table.has_type_row,
            "row_count": len(table.data_rows),
            "primary_key": table.primary_key.name if table.primary_key else None,
            "foreign_keys": [c.name for c in table.foreign_keys],
            "columns": [cls._column_to_dict(c) for c in table.columns],
        }


def _flag(value: bool) -> str:
    return "yes" if value else "no"
