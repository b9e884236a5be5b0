"""
Keyword vocabulary used to classify column names.

Each table is an ordered list of `KeywordRule`s evaluated first-match-wins.
The defaults carry a Spanish/English business vocabulary (clientes, productos,
facturas, ...). Substituting a `Vocabulary` is enough to retarget the
heuristics to another domain; no algorithm code reads these lists directly.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Tuple


# Identifier-like names: `id`, `id_x`, `x_id`, `idx`, `xid`, `num_x` plus codigo/numero.
ID_LOOSE_PATTERN = r"^id|id$|_id_|(?:^|_)num(?:_|$)"
# Names that qualify as a primary key on their own.
PRIMARY_KEY_PATTERN = r"^id$|^id_|_id$|_id_|(?:^|_)num(?:_|$)"
# Foreign-key shaped names: `id_x`, `x_id`.
FOREIGN_KEY_PATTERN = r"^id_|_id$|_id_"


@dataclass(frozen=True)
class KeywordRule:
    """Maps a column name to `result` when any keyword (substring) or the regex matches."""

    result: str
    keywords: Tuple[str, ...] = ()
    pattern: Optional[str] = None

    def matches(self, name: str) -> bool:
        lowered = name.lower()
        if any(keyword in lowered for keyword in self.keywords):
            return True
        return self.pattern is not None and re.search(self.pattern, lowered) is not None


def first_match(rules: Iterable[KeywordRule], name: str, default: Optional[str] = None) -> Optional[str]:
    for rule in rules:
        if rule.matches(name):
            return rule.result
    return default


def contains_any(name: str, keywords: Sequence[str]) -> bool:
    lowered = name.lower()
    return any(keyword in lowered for keyword in keywords)


# --------------------------------------------------------------------------------------
# Default tables
# --------------------------------------------------------------------------------------
IDENTIFIER_RULE = KeywordRule("IDENTIFIER", ("codigo", "numero"), ID_LOOSE_PATTERN)
PRIMARY_KEY_RULE = KeywordRule("PRIMARY_KEY", ("codigo", "numero"), PRIMARY_KEY_PATTERN)
FOREIGN_KEY_RULE = KeywordRule("FOREIGN_KEY", (), FOREIGN_KEY_PATTERN)

TYPE_NAME_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule("INTEGER", (), ID_LOOSE_PATTERN),
    KeywordRule("DECIMAL(10,2)", ("precio", "costo", "salario", "valor")),
    KeywordRule("INTEGER", ("cantidad", "stock", "edad")),
    KeywordRule("DATE", ("fecha", "date")),
    KeywordRule("VARCHAR(255)", ("email", "correo")),
    KeywordRule("VARCHAR(20)", ("telefono", "phone")),
    KeywordRule("VARCHAR(100)", ("nombre", "name")),
    KeywordRule("TEXT", ("descripcion", "description")),
    KeywordRule("VARCHAR(100)", ("ciudad", "city", "pais", "country")),
)

DOMAIN_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule("ORDERS", ("orden", "order", "pedido", "factura", "invoice")),
    KeywordRule("CUSTOMERS", ("cliente", "customer", "usuario")),
    KeywordRule("PRODUCTS", ("producto", "product", "articulo", "item")),
    KeywordRule("CATEGORIES", ("categoria", "category", "tipo")),
    KeywordRule("SUPPLIERS", ("proveedor", "supplier", "vendor")),
    KeywordRule("EMPLOYEES", ("empleado", "employee", "staff")),
    KeywordRule("LOCATIONS", ("ciudad", "city", "pais", "country", "direccion", "address")),
    KeywordRule("TRANSACTIONS", ("cantidad", "stock", "inventario")),
    KeywordRule("FINANCIAL", ("precio", "costo", "valor", "salario")),
    KeywordRule("TEMPORAL", ("fecha", "date", "tiempo", "time")),
    KeywordRule("IDENTIFIERS", IDENTIFIER_RULE.keywords, IDENTIFIER_RULE.pattern),
    KeywordRule("TEXT", ("nombre", "name", "descripcion", "description")),
    KeywordRule("CONTACT", ("email", "correo", "telefono", "phone")),
)

DEFAULT_DOMAIN = "GENERAL"

DOMAIN_ENTITY_NAMES: Dict[str, str] = {
    "ORDERS": "ORDENES",
    "CUSTOMERS": "CLIENTES",
    "PRODUCTS": "PRODUCTOS",
    "CATEGORIES": "CATEGORIAS",
    "SUPPLIERS": "PROVEEDORES",
    "EMPLOYEES": "EMPLEADOS",
    "LOCATIONS": "UBICACIONES",
    "TRANSACTIONS": "TRANSACCIONES",
    "FINANCIAL": "FINANZAS",
    "TEMPORAL": "TIEMPO",
    "IDENTIFIERS": "IDENTIFICADORES",
    "TEXT": "TEXTO",
    "CONTACT": "CONTACTO",
}

DOMAIN_PURPOSES: Dict[str, str] = {
    "ORDERS": "Stores orders and purchase requests",
    "CUSTOMERS": "Stores customer and user information",
    "PRODUCTS": "Stores product and article information",
    "CATEGORIES": "Stores classification categories",
    "SUPPLIERS": "Stores supplier information",
    "EMPLOYEES": "Stores employee information",
    "LOCATIONS": "Stores geographic location information",
    "TRANSACTIONS": "Stores transactions and stock movements",
    "FINANCIAL": "Stores financial and pricing information",
    "TEMPORAL": "Stores temporal information and dates",
    "IDENTIFIERS": "Stores unique identifiers",
    "TEXT": "Stores textual and descriptive information",
    "CONTACT": "Stores contact information",
}

# A name-like column whose own name carries one of these hints names the entity.
ENTITY_NAME_HINTS: Tuple[KeywordRule, ...] = (
    KeywordRule("CLIENTES", ("cliente",)),
    KeywordRule("PRODUCTOS", ("producto", "articulo")),
    KeywordRule("CATEGORIAS", ("categoria",)),
    KeywordRule("PROVEEDORES", ("proveedor",)),
    KeywordRule("EMPLEADOS", ("empleado",)),
    KeywordRule("CIUDADES", ("ciudad",)),
)

NAME_COLUMN_KEYWORDS: Tuple[str, ...] = ("nombre", "name", "descripcion")
REQUIRED_NAME_KEYWORDS: Tuple[str, ...] = ("nombre", "name")
DESCRIPTIVE_KEYWORDS: Tuple[str, ...] = ("nombre", "name", "descripcion", "description")

# Identifier base name -> keywords of columns describing that identifier.
RELATION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "compania": ("nombre", "direccion", "telefono", "email", "contacto"),
    "departamento": ("nombre", "descripcion", "jefe"),
    "categoria": ("nombre", "descripcion", "tipo"),
    "producto": ("nombre", "descripcion", "precio"),
    "empleado": ("nombre", "apellido", "email", "telefono"),
}

# (determinant keyword, dependent keyword) pairs reported as transitive candidates.
TRANSITIVE_PAIRS: Tuple[Tuple[str, str], ...] = (
    ("ciudad", "cliente"),
    ("categoria", "producto"),
    ("departamento", "empleado"),
)

TABLE_SYNONYMS: Dict[str, str] = {
    "cliente": "CLIENTES",
    "producto": "PRODUCTOS",
    "factura": "FACTURAS",
    "empleado": "EMPLEADOS",
    "departamento": "DEPARTAMENTOS",
    "cargo": "CARGOS",
    "categoria": "CATEGORIAS",
    "proveedor": "PROVEEDORES",
    "orden": "ORDENES",
    "ciudad": "CIUDADES",
}

TABLE_PURPOSE_RULES: Tuple[KeywordRule, ...] = (
    KeywordRule("Stores product and article information", ("producto", "product", "articulo")),
    KeywordRule("Stores customer information", ("cliente", "customer")),
    KeywordRule("Stores employee information", ("empleado", "employee")),
    KeywordRule("Stores classification categories", ("categoria", "category")),
    KeywordRule("Stores supplier information", ("proveedor", "supplier")),
    KeywordRule("Stores sales and order information", ("venta", "sale", "orden")),
    KeywordRule("Stores invoice information", ("factura", "invoice")),
)


@dataclass(frozen=True)
class Vocabulary:
    """Injected keyword tables for the detector, the analyzer and the SQL generator."""

    type_name_rules: Tuple[KeywordRule, ...] = TYPE_NAME_RULES
    domain_rules: Tuple[KeywordRule, ...] = DOMAIN_RULES
    default_domain: str = DEFAULT_DOMAIN
    domain_entity_names: Dict[str, str] = field(default_factory=lambda: dict(DOMAIN_ENTITY_NAMES))
    domain_purposes: Dict[str, str] = field(default_factory=lambda: dict(DOMAIN_PURPOSES))
    entity_name_hints: Tuple[KeywordRule, ...] = ENTITY_NAME_HINTS
    name_column_keywords: Tuple[str, ...] = NAME_COLUMN_KEYWORDS
    required_name_keywords: Tuple[str, ...] = REQUIRED_NAME_KEYWORDS
    descriptive_keywords: Tuple[str, ...] = DESCRIPTIVE_KEYWORDS
    identifier_rule: KeywordRule = IDENTIFIER_RULE
    primary_key_rule: KeywordRule = PRIMARY_KEY_RULE
    foreign_key_rule: KeywordRule = FOREIGN_KEY_RULE
    relation_keywords: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(RELATION_KEYWORDS))
    transitive_pairs: Tuple[Tuple[str, str], ...] = TRANSITIVE_PAIRS
    table_synonyms: Dict[str, str] = field(default_factory=lambda: dict(TABLE_SYNONYMS))
    table_purpose_rules: Tuple[KeywordRule, ...] = TABLE_PURPOSE_RULES
    index_keywords: Tuple[str, ...] = ("nombre", "name", "email", "correo", "codigo", "code", "fecha", "date")
    positive_keywords: Tuple[str, ...] = ("precio", "costo", "valor", "salario")
    non_negative_keywords: Tuple[str, ...] = ("cantidad", "stock")
    email_keywords: Tuple[str, ...] = ("email", "correo")
    date_keywords: Tuple[str, ...] = ("fecha", "date")
    code_keywords: Tuple[str, ...] = ("codigo", "code")
    atomic_separators: Tuple[str, ...] = (",", ";")

    def domain_of(self, column_name: str) -> str:
        return first_match(self.domain_rules, column_name, self.default_domain)

    def is_identifier(self, column_name: str) -> bool:
        return self.identifier_rule.matches(column_name)

    def is_primary_key_name(self, column_name: str) -> bool:
        return self.primary_key_rule.matches(column_name)

    def is_foreign_key_name(self, column_name: str) -> bool:
        return self.foreign_key_rule.matches(column_name)

    def identifier_base(self, column_name: str) -> str:
        """Strip identifier prefixes/suffixes: `id_cliente` -> `cliente`, `num_factura` -> `factura`."""
        base = column_name.lower()
        base = re.sub(r"^(?:id|codigo|numero|num|key)_?", "", base)
        base = re.sub(r"_?(?:id|codigo|numero|num)$", "", base)
        return base.strip("_")

    def resolve_table_name(self, base: str) -> str:
        """Map an identifier base name to its table: synonyms first, else `<BASE>S`."""
        lowered = base.lower()
        if lowered in self.table_synonyms:
            return self.table_synonyms[lowered]
        return lowered.upper() + "S"
