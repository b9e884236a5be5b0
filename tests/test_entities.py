import unittest

from csv3nf.analysis import profile_table, tag_table
from csv3nf.config import NormalizerConfig
from csv3nf.entities import EntityDetector, entity_kind, score_entity
from csv3nf.inference import StructureInferencer
from csv3nf.models import Column, ColumnReference, Entity, Relationship, RelationshipStrength
from csv3nf.vocabulary import KeywordRule, Vocabulary

CLIENTS_CSV = "id_cliente,nombre,ciudad\n1,Ana,Quito\n2,Beto,Quito\n3,Ana,Quito"
IDENTIFIERS_CSV = "id,id_region,id_zona,nota\n1,1,1,a\n2,1,2,b\n3,2,2,c"
SEGMENTS_CSV = "cliente_pais,cliente_region,cliente_segmento\n" + "\n".join(
    f"EC,Sierra,{segment}" for segment in "AAAABBBCCC"
)


def detect(text, config=None):
    config = config or NormalizerConfig()
    table = tag_table(profile_table(StructureInferencer(config).infer(text)), config.vocabulary)
    detector = EntityDetector([table], config)
    return detector, detector.detect()


class TestVocabulary(unittest.TestCase):
    def setUp(self):
        self.vocab = Vocabulary()

    def test_domain_classification(self):
        self.assertEqual(self.vocab.domain_of("id_cliente"), "CUSTOMERS")
        self.assertEqual(self.vocab.domain_of("fecha_pedido"), "ORDERS")
        self.assertEqual(self.vocab.domain_of("precio_unitario"), "FINANCIAL")
        self.assertEqual(self.vocab.domain_of("cantidad"), "TRANSACTIONS")
        self.assertEqual(self.vocab.domain_of("inventario"), "TRANSACTIONS")
        self.assertEqual(self.vocab.domain_of("id"), "IDENTIFIERS")
        self.assertEqual(self.vocab.domain_of("apellido"), "GENERAL")

    def test_identifier_patterns(self):
        self.assertTrue(self.vocab.is_identifier("num_factura"))
        self.assertTrue(self.vocab.is_identifier("codigo_producto"))
        self.assertFalse(self.vocab.is_identifier("cantidad"))
        self.assertFalse(self.vocab.is_identifier("apellido"))
        self.assertTrue(self.vocab.is_foreign_key_name("cliente_id"))
        self.assertFalse(self.vocab.is_foreign_key_name("num_factura"))

    def test_identifier_base_and_table_names(self):
        self.assertEqual(self.vocab.identifier_base("id_cliente"), "cliente")
        self.assertEqual(self.vocab.identifier_base("producto_id"), "producto")
        self.assertEqual(self.vocab.identifier_base("num_factura"), "factura")
        self.assertEqual(self.vocab.identifier_base("id"), "")
        self.assertEqual(self.vocab.resolve_table_name("cliente"), "CLIENTES")
        self.assertEqual(self.vocab.resolve_table_name("region"), "REGIONS")

    def test_keyword_rule(self):
        rule = KeywordRule("X", ("abc",), r"^z")
        self.assertTrue(rule.matches("xABCx"))
        self.assertTrue(rule.matches("zeta"))
        self.assertFalse(rule.matches("other"))


class TestEntityDetector(unittest.TestCase):
    def test_domain_entities_for_client_example(self):
        _, entities = detect(CLIENTS_CSV)
        self.assertEqual([e.name for e in entities], ["CLIENTES", "TEXTO", "UBICACIONES"])
        clientes, texto, ubicaciones = entities
        self.assertEqual(clientes.primary_key.name, "id_cliente")
        self.assertTrue(clientes.columns[0].is_required)
        self.assertIsNone(texto.primary_key)
        self.assertTrue(texto.column("nombre").is_required)
        self.assertFalse(ubicaciones.column("ciudad").is_required)
        self.assertEqual(clientes.normalization_score, 100.0)
        self.assertEqual(texto.normalization_score, 80.0)
        self.assertLess(ubicaciones.normalization_score, 50.0)

    def test_source_columns_are_not_mutated(self):
        config = NormalizerConfig()
        table = tag_table(profile_table(StructureInferencer().infer(IDENTIFIERS_CSV)), config.vocabulary)
        EntityDetector([table], config).detect()
        self.assertIsNone(table.column("id_region").reference)

    def test_foreign_keys_and_support_entities(self):
        _, entities = detect(IDENTIFIERS_CSV)
        self.assertEqual([e.name for e in entities], ["IDENTIFICADORES", "GENERAL", "REGIONS", "ZONAS"])
        ident = entities[0]
        self.assertEqual(ident.primary_key.name, "id")
        self.assertTrue(ident.column("id_region").is_foreign_key)
        self.assertEqual(ident.column("id_region").reference, ColumnReference("REGIONS", "id_region"))
        self.assertEqual(
            [(r.column, r.references.table, r.strength) for r in ident.relationships],
            [("id_region", "REGIONS", RelationshipStrength.STRONG), ("id_zona", "ZONAS", RelationshipStrength.STRONG)],
        )
        regions = entities[2]
        self.assertEqual(regions.column_names, ["id_region", "nombre"])
        self.assertEqual(regions.primary_key.name, "id_region")
        self.assertEqual(regions.column("nombre").type, "VARCHAR(100)")

    def test_lookup_split(self):
        _, entities = detect(SEGMENTS_CSV)
        self.assertEqual([e.name for e in entities], ["CLIENTES", "CLIENTES_LOOKUP"])
        self.assertEqual(entities[0].column_names, ["cliente_segmento"])
        self.assertEqual(entities[1].column_names, ["cliente_pais", "cliente_region"])
        for entity in entities:
            self.assertTrue(entity.columns)

    def test_functional_dependencies_annotated(self):
        _, entities = detect("id_cliente,nombre_cliente,ciudad_cliente\n1,Ana,Quito\n2,Ana,Quito\n3,Beto,Lima")
        clientes = entities[0]
        self.assertIn((("nombre_cliente",), ("ciudad_cliente",)), [(d.determinant, d.dependent) for d in clientes.dependencies])

    def test_custom_vocabulary(self):
        vocab = Vocabulary(
            domain_rules=(KeywordRule("PATIENTS", ("paciente",)),),
            domain_entity_names={"PATIENTS": "PACIENTES"},
        )
        _, entities = detect("id_paciente,peso\n1,70\n2,80", NormalizerConfig(vocabulary=vocab))
        self.assertEqual([e.name for e in entities], ["PACIENTES", "GENERAL"])

    def test_summary(self):
        detector, _ = detect(CLIENTS_CSV)
        summary = detector.summary()
        self.assertEqual(summary.total_entities, 3)
        self.assertEqual(summary.entities_by_kind, {"LOOKUP": 1, "SIMPLE": 2})
        self.assertIn("Define a primary key for TEXTO", summary.recommendations)


class TestScoring(unittest.TestCase):
    def _entity(self, redundancy):
        key = Column(name="id", type="INTEGER", is_primary_key=True)
        other = Column(name="x", type="INTEGER", redundancy_percentage=redundancy)
        return Entity(name="E", purpose="", columns=[key, other], primary_key=key)

    def test_score_is_non_increasing_in_redundancy(self):
        scores = [score_entity(self._entity(r)) for r in range(0, 101, 5)]
        self.assertEqual(scores, sorted(scores, reverse=True))

    def test_score_penalties(self):
        entity = self._entity(0)
        self.assertEqual(score_entity(entity), 85.0)
        entity.relationships.append(Relationship("x", ColumnReference("T", "id")))
        self.assertEqual(score_entity(entity), 100.0)
        entity.primary_key = None
        self.assertEqual(score_entity(entity), 80.0)
        self.assertEqual(score_entity(self._entity(100)), 35.0)

    def test_entity_kind(self):
        entity = self._entity(0)
        self.assertEqual(entity_kind(entity), "LOOKUP")
        entity.primary_key = None
        self.assertEqual(entity_kind(entity), "COMPLEX")


if __name__ == "__main__":
    unittest.main()
