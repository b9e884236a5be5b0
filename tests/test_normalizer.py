import logging
import unittest

import pytest

from csv3nf import ConfigurationError, InvalidInputError, NormalizationError, normalize_csv
from csv3nf.models import Dependency, DependencyKind, IssueKind, Severity

CLIENTS_CSV = "id_cliente,nombre,ciudad\n1,Ana,Quito\n2,Beto,Quito\n3,Ana,Quito"
INVOICE_CSV = (
    "num_factura,id_producto,fecha_factura,cantidad\n"
    "1,10,2024-01-01,2\n"
    "1,11,2024-01-01,1\n"
    "2,10,2024-01-02,5"
)
CITY_CSV = "id_cliente,nombre_cliente,ciudad_cliente\n1,Ana,Quito\n2,Beto,Quito\n3,Ana,Guayaquil"


class TestClientExample(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.result = normalize_csv(CLIENTS_CSV)

    def test_entities(self):
        self.assertEqual([e.name for e in self.result.entities], ["CLIENTES", "TEXTO", "UBICACIONES"])

    def test_step_log(self):
        steps = self.result.steps
        self.assertEqual([s.ordinal for s in steps], [1, 2, 3, 4])
        self.assertEqual(steps[0].outcome, "1NF satisfied")
        self.assertEqual(steps[1].tables_created, ())
        self.assertEqual(steps[3].tables_modified, ("CLIENTES",))

    def test_analysis(self):
        analysis = self.result.analysis
        self.assertEqual(analysis.total_rows, 3)
        self.assertEqual(analysis.unique_rows, 3)
        self.assertEqual(analysis.redundancy_score, 33.33)
        self.assertTrue(analysis.normal_forms.first)
        self.assertTrue(analysis.normal_forms.second)
        self.assertFalse(analysis.normal_forms.third)
        self.assertFalse(analysis.normal_forms.bcnf)

    def test_issues(self):
        self.assertEqual(
            [(i.kind, i.severity, i.description.split()[1]) for i in self.result.analysis.issues],
            [
                (IssueKind.STRUCTURE, Severity.HIGH, "TEXTO"),
                (IssueKind.STRUCTURE, Severity.MEDIUM, "UBICACIONES"),
                (IssueKind.STRUCTURE, Severity.HIGH, "UBICACIONES"),
            ],
        )

    def test_recommendations_and_suggestions(self):
        self.assertEqual(
            self.result.recommendations,
            [
                "The database is partially normalized; consider further improvements",
                "Resolve the 3 identified issues to improve quality",
            ],
        )
        self.assertEqual(
            self.result.analysis.suggestions, ["Review the structure of UBICACIONES to improve normalization"]
        )

    def test_redundancy_report(self):
        self.assertEqual(self.result.redundancy.column("ciudad").redundancy_percentage, 66.67)
        self.assertTrue(self.result.redundancy.column("nombre").should_normalize)

    def test_sql(self):
        self.assertIn("CREATE TABLE CLIENTES (\n    id_cliente INTEGER IDENTITY(1,1) PRIMARY KEY\n);", self.result.sql)


def test_partial_dependency_on_composite_key():
    result = normalize_csv(INVOICE_CSV)
    ordenes = next(e for e in result.entities if e.name == "ORDENES")
    assert ordenes.column_names == ["num_factura", "fecha_factura"]
    partial = Dependency(("num_factura",), ("fecha_factura",), DependencyKind.PARTIAL, 0.6667)
    assert partial in ordenes.dependencies
    assert result.steps[1].tables_created == ("ORDENES_fecha_factura",)
    assert result.steps[1].tables_modified == ("ORDENES",)
    dependency_issues = [i for i in result.analysis.issues if i.kind == IssueKind.DEPENDENCY]
    assert [(i.severity, i.affected_columns) for i in dependency_issues] == [
        (Severity.MEDIUM, ("num_factura", "fecha_factura"))
    ]


def test_transitive_keyword_pair():
    result = normalize_csv(CITY_CSV)
    clientes = result.entities[0]
    assert clientes.name == "CLIENTES"
    transitive = [d for d in clientes.dependencies if d.kind == DependencyKind.TRANSITIVE]
    assert [(d.determinant, d.dependent) for d in transitive] == [(("ciudad_cliente",), ("nombre_cliente",))]
    assert result.steps[2].tables_created == ("CLIENTES_nombre_cliente",)
    assert result.steps[1].tables_created == ("CLIENTES_nombre_cliente",)


def test_pipeline_is_idempotent():
    first = normalize_csv(INVOICE_CSV)
    second = normalize_csv(INVOICE_CSV)
    assert first.sql == second.sql
    assert first.analysis.issues == second.analysis.issues
    assert [(e.name, e.column_names, e.normalization_score) for e in first.entities] == [
        (e.name, e.column_names, e.normalization_score) for e in second.entities
    ]


def test_type_row_is_not_counted_as_data():
    result = normalize_csv("INT,VARCHAR(100),DATE\nid,nombre,fecha\n1,Ana,2024-01-01\n2,Beto,2024-01-02")
    assert result.original_structure[0].has_type_row
    assert result.analysis.total_rows == 2


def test_reserved_word_issue():
    result = normalize_csv("id,user,nota\n1,a,x\n2,b,y")
    reserved = [i for i in result.analysis.issues if i.severity == Severity.LOW and i.kind == IssueKind.STRUCTURE]
    assert [i.affected_columns for i in reserved] == [("user",)]
    assert "[user]" in result.sql


def test_non_atomic_values():
    result = normalize_csv('id,tags\n1,"a;b"\n2,c')
    assert result.steps[0].outcome == "1NF not satisfied: non-atomic values in GENERAL"
    assert any(
        i.kind == IssueKind.STRUCTURE and i.affected_columns == ("tags",) and "non-atomic" in i.description
        for i in result.analysis.issues
    )


def test_empty_column_issue():
    result = normalize_csv("id,nota,extra\n1,a,\n2,b,")
    data_type = [i for i in result.analysis.issues if i.kind == IssueKind.DATA_TYPE]
    assert [(i.severity, i.affected_columns) for i in data_type] == [(Severity.LOW, ("extra",))]


def test_camel_case_options():
    result = normalize_csv(CLIENTS_CSV, {"redundancyThresholdSingleColumn": 50})
    assert not result.redundancy.column("nombre").should_normalize


def test_unknown_option_is_ignored(caplog):
    with caplog.at_level(logging.WARNING, logger="csv3nf.config"):
        normalize_csv(CLIENTS_CSV, {"colour": "blue"})
    assert "colour" in caplog.text


@pytest.mark.parametrize("value", ["abc", 150, -1])
def test_bad_option_raises(value):
    with pytest.raises(ConfigurationError):
        normalize_csv(CLIENTS_CSV, {"redundancyThresholdCombination": value})


@pytest.mark.parametrize("text", ["", "id,nombre", None])
def test_invalid_input(text):
    with pytest.raises(InvalidInputError) as excinfo:
        normalize_csv(text)
    assert excinfo.value.stage == "input"


def test_stage_failure_is_wrapped(monkeypatch):
    def boom(self, entities):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr("csv3nf.sql.SqlGenerator.generate", boom)
    with pytest.raises(NormalizationError) as excinfo:
        normalize_csv(CLIENTS_CSV)
    assert excinfo.value.stage == "sql"
    assert isinstance(excinfo.value.cause, RuntimeError)
    assert str(excinfo.value).startswith("[sql]")


def test_partial_dependencies_skip_support_entities():
    result = normalize_csv("num_factura,id_producto,nombre,id_empleado_orden\n1,10,Ana,5\n1,11,Ana,5\n2,10,Beto,6")
    support = next(e for e in result.entities if e.name == "EMPLEADO_ORDENS")
    assert support.column_names == ["id_empleado_orden", "nombre"]
    assert not [d for d in support.dependencies if d.kind == DependencyKind.PARTIAL]

    texto = next(e for e in result.entities if e.name == "TEXTO")
    ordenes = next(e for e in result.entities if e.name == "ORDENES")
    assert Dependency(("num_factura",), ("nombre",), DependencyKind.PARTIAL, 0.6667) in texto.dependencies
    assert Dependency(("num_factura",), ("id_empleado_orden",), DependencyKind.PARTIAL, 0.6667) in ordenes.dependencies
    assert result.steps[1].tables_created == ("TEXTO_nombre", "ORDENES_id_empleado_orden")
    assert not any("EMPLEADO_ORDENS" in i.description for i in result.analysis.issues if i.kind == IssueKind.DEPENDENCY)


def test_summary_failure_is_wrapped(monkeypatch):
    def boom(self):
        raise KeyError("kind")

    monkeypatch.setattr("csv3nf.entities.EntityDetector.summary", boom)
    with pytest.raises(NormalizationError) as excinfo:
        normalize_csv(CLIENTS_CSV)
    assert excinfo.value.stage == "entities"


def test_recommendation_failure_is_wrapped(monkeypatch):
    def boom(analysis, summary):
        raise ZeroDivisionError("no entities")

    monkeypatch.setattr("csv3nf.normalizer.DatabaseNormalizer.recommendations", staticmethod(boom))
    with pytest.raises(NormalizationError) as excinfo:
        normalize_csv(CLIENTS_CSV)
    assert excinfo.value.stage == "final_analysis"
    assert isinstance(excinfo.value.cause, ZeroDivisionError)


def test_keyless_integer_entity_sample_data():
    result = normalize_csv("cantidad,nota\n1,a\n2,b", {"include_sample_data": True})
    assert "    cantidad INTEGER IDENTITY(1,1) PRIMARY KEY" in result.sql
    on = result.sql.index("SET IDENTITY_INSERT TRANSACCIONES ON;")
    insert = result.sql.index("INSERT INTO TRANSACCIONES (cantidad) VALUES (1);")
    off = result.sql.index("SET IDENTITY_INSERT TRANSACCIONES OFF;")
    assert on < insert < off


def test_digit_leading_header_is_quoted():
    result = normalize_csv("id,2024_ventas\n1,10\n2,20")
    assert "    [2024_ventas] " in result.sql
