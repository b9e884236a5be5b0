import pytest

from csv3nf.analysis import (
    FDDiscoverer,
    RedundancyAnalyzer,
    dependency_holds,
    find_composite_key,
    level_for_redundancy,
    partial_dependencies,
    profile_table,
    redundancy_percentage,
    repeat_share,
    tag_table,
)
from csv3nf.config import NormalizerConfig
from csv3nf.inference import StructureInferencer
from csv3nf.models import Dependency, DependencyKind, EntityType, NormalizationLevel
from csv3nf.vocabulary import Vocabulary

CLIENTS_CSV = "id_cliente,nombre,ciudad\n1,Ana,Quito\n2,Beto,Quito\n3,Ana,Quito"
INVOICE_CSV = (
    "num_factura,id_producto,fecha_factura,cantidad\n"
    "1,10,2024-01-01,2\n"
    "1,11,2024-01-01,1\n"
    "2,10,2024-01-02,5"
)
PRODUCTS_CSV = (
    "id_producto,id_categoria,nombre_categoria,precio\n"
    "1,10,Bebidas,2.5\n"
    "2,10,Bebidas,3.0\n"
    "3,20,Snacks,1.0\n"
    "4,10,Bebidas,4.0"
)


def _table(text):
    return profile_table(StructureInferencer().infer(text))


def test_redundancy_percentage_bounds():
    assert redundancy_percentage(0, 0) == 0.0
    assert redundancy_percentage(5, 5) == 0.0
    assert redundancy_percentage(1, 3) == 66.67
    assert 0 <= redundancy_percentage(1, 1000) <= 100


def test_column_redundancy_example():
    table = _table(CLIENTS_CSV)
    assert table.column("ciudad").total_value_count == 3
    assert table.column("ciudad").unique_value_count == 1
    assert table.column("ciudad").redundancy_percentage == 66.67
    assert table.column("nombre").redundancy_percentage == 33.33
    assert table.column("id_cliente").redundancy_percentage == 0.0


def test_should_normalize_flags():
    report = RedundancyAnalyzer().analyze(_table(CLIENTS_CSV))
    assert report.column("ciudad").should_normalize
    assert report.column("nombre").should_normalize
    assert not report.column("id_cliente").should_normalize
    assert report.summary["columns_to_normalize"] == 2
    assert report.summary["total_columns"] == 3
    assert any("ciudad" in text for text in report.recommendations)


def test_threshold_is_configurable():
    config = NormalizerConfig(redundancy_threshold_single_column=50)
    report = RedundancyAnalyzer(config).analyze(_table(CLIENTS_CSV))
    assert report.column("ciudad").should_normalize
    assert not report.column("nombre").should_normalize


def test_empty_values_are_not_counted():
    table = _table("id,nota\n1,a\n2,\n3,a")
    nota = table.column("nota")
    assert nota.total_value_count == 2
    assert nota.unique_value_count == 1
    assert nota.redundancy_percentage == 50.0


def test_dependency_holds():
    assert dependency_holds(["1", "1", "2"], ["a", "a", "b"])
    assert not dependency_holds(["1", "1"], ["a", "b"])
    assert dependency_holds([], [])


def test_repeat_share():
    assert repeat_share(["a", "b", "a"]) == pytest.approx(0.6667)
    assert repeat_share(["a", "b"]) == 0.0
    assert repeat_share([]) == 0.0


def test_fd_discovery_skips_unique_determinants():
    table = _table(CLIENTS_CSV)
    fds = FDDiscoverer(table.columns).discover()
    assert fds == [Dependency(("nombre",), ("ciudad",), DependencyKind.FUNCTIONAL, 0.6667)]


def test_fd_discovery_with_trivial():
    table = _table(CLIENTS_CSV)
    fds = FDDiscoverer(table.columns).discover(include_trivial=True)
    pairs = {(fd.determinant, fd.dependent) for fd in fds}
    assert (("id_cliente",), ("nombre",)) in pairs
    assert (("id_cliente",), ("ciudad",)) in pairs
    assert (("ciudad",), ("nombre",)) not in pairs


def test_combination_candidate():
    report = RedundancyAnalyzer().analyze(_table(PRODUCTS_CSV))
    assert len(report.combinations) == 1
    combo = report.combinations[0]
    assert combo.determinant == "id_categoria"
    assert combo.related_columns == ["nombre_categoria"]
    assert combo.suggested_table == "CATEGORIAS"
    assert combo.unique_combinations == 2
    assert combo.redundancy_percentage == 50.0
    assert not combo.should_normalize


def test_combination_threshold_is_configurable():
    config = NormalizerConfig(redundancy_threshold_combination=40)
    report = RedundancyAnalyzer(config).analyze(_table(PRODUCTS_CSV))
    assert report.combinations[0].should_normalize
    assert report.summary["combinations_to_normalize"] == 1


def test_composite_key_and_partial_dependency():
    table = _table(INVOICE_CSV)
    key = find_composite_key(table, Vocabulary())
    assert key == ("num_factura", "id_producto")
    deps = partial_dependencies(table, key)
    assert deps == [Dependency(("num_factura",), ("fecha_factura",), DependencyKind.PARTIAL, 0.6667)]


def test_no_composite_key_when_single_identifier_is_unique():
    assert find_composite_key(_table(PRODUCTS_CSV), Vocabulary()) is None
    assert partial_dependencies(_table(PRODUCTS_CSV), ("id_producto",)) == []


def test_tag_table():
    table = tag_table(_table(CLIENTS_CSV), Vocabulary())
    assert table.primary_key.name == "id_cliente"
    assert table.foreign_keys == []
    assert table.entity_type == EntityType.LOOKUP
    assert table.normalization_level == NormalizationLevel.SECOND_NF
    assert table.purpose == "Stores customer information"


def test_tag_table_with_foreign_keys():
    table = tag_table(_table(PRODUCTS_CSV), Vocabulary())
    assert table.primary_key.name == "id_producto"
    assert [c.name for c in table.foreign_keys] == ["id_categoria"]
    assert table.entity_type == EntityType.TRANSACTION


@pytest.mark.parametrize(
    "pct, level",
    [
        (0, NormalizationLevel.THIRD_NF),
        (29.99, NormalizationLevel.THIRD_NF),
        (30, NormalizationLevel.SECOND_NF),
        (60, NormalizationLevel.FIRST_NF),
        (80, NormalizationLevel.NONE),
    ],
)
def test_level_for_redundancy(pct, level):
    assert level_for_redundancy(pct) == level
