"""
Data containers shared by every pipeline stage.

All of them are created fresh per invocation and owned by the call that
produced them; nothing here is cached or shared across runs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class EntityType(str, Enum):
    MAIN = "MAIN"
    LOOKUP = "LOOKUP"
    TRANSACTION = "TRANSACTION"
    AUDIT = "AUDIT"
    CONFIGURATION = "CONFIGURATION"


class NormalizationLevel(str, Enum):
    NONE = "NONE"
    FIRST_NF = "FIRST_NF"
    SECOND_NF = "SECOND_NF"
    THIRD_NF = "THIRD_NF"
    BCNF = "BCNF"


class RelationshipKind(str, Enum):
    FOREIGN_KEY = "FOREIGN_KEY"
    MANY_TO_MANY = "MANY_TO_MANY"
    ONE_TO_ONE = "ONE_TO_ONE"


class RelationshipStrength(str, Enum):
    STRONG = "STRONG"
    WEAK = "WEAK"


class DependencyKind(str, Enum):
    FUNCTIONAL = "FUNCTIONAL"
    PARTIAL = "PARTIAL"
    TRANSITIVE = "TRANSITIVE"


class IssueKind(str, Enum):
    REDUNDANCY = "REDUNDANCY"
    DEPENDENCY = "DEPENDENCY"
    STRUCTURE = "STRUCTURE"
    DATA_TYPE = "DATA_TYPE"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class ColumnReference:
    table: str
    column: str


@dataclass
class Column:
    name: str
    type: str
    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_required: bool = False
    reference: Optional[ColumnReference] = None
    values: List[str] = field(default_factory=list)
    unique_value_count: int = 0
    total_value_count: int = 0
    redundancy_percentage: float = 0.0

    @property
    def has_values(self) -> bool:
        return self.total_value_count > 0


@dataclass
class Table:
    """Raw grouping of the source columns before entity detection."""

    name: str
    columns: List[Column]
    data: List[List[str]]
    purpose: str = ""
    primary_key: Optional[Column] = None
    foreign_keys: List[Column] = field(default_factory=list)
    entity_type: EntityType = EntityType.MAIN
    normalization_level: NormalizationLevel = NormalizationLevel.NONE
    has_type_row: bool = False

    @property
    def data_rows(self) -> List[List[str]]:
        """Rows without the declared-type row kept at the front of `data`."""
        return self.data[1:] if self.has_type_row else self.data

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name == name:
                return col
        return None


@dataclass(frozen=True)
class Relationship:
    column: str
    references: ColumnReference
    kind: RelationshipKind = RelationshipKind.FOREIGN_KEY
    strength: RelationshipStrength = RelationshipStrength.STRONG


@dataclass(frozen=True)
class Dependency:
    determinant: Tuple[str, ...]
    dependent: Tuple[str, ...]
    kind: DependencyKind
    confidence: float


@dataclass
class Entity:
    name: str
    purpose: str
    columns: List[Column]
    relationships: List[Relationship] = field(default_factory=list)
    dependencies: List[Dependency] = field(default_factory=list)
    primary_key: Optional[Column] = None
    normalization_score: float = 0.0
    domain: str = ""

    def column(self, name: str) -> Optional[Column]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]


@dataclass(frozen=True)
class NormalizationStep:
    ordinal: int
    description: str
    action: str
    outcome: str
    tables_created: Tuple[str, ...] = ()
    tables_modified: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Issue:
    kind: IssueKind
    severity: Severity
    description: str
    affected_columns: Tuple[str, ...]
    suggested_fix: str


@dataclass(frozen=True)
class NormalForms:
    first: bool
    second: bool
    third: bool
    bcnf: bool


@dataclass
class AnalysisResult:
    total_rows: int
    unique_rows: int
    redundancy_score: float
    normalization_score: float
    normal_forms: NormalForms
    issues: List[Issue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
