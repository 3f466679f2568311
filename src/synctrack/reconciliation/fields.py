"""Field specs per entity type: which fields are compared and how."""
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from synctrack.reconciliation.comparator import FieldType


@dataclass(frozen=True)
class FieldSpec:
    name: str
    field_type: FieldType


@dataclass(frozen=True)
class EntitySpec:
    """How to compare one entity type.

    `id_field` identifies the record on both sides; `label_field` provides
    the human-readable entity name shown to operators.
    """
    entity_type: str
    fields: Tuple[FieldSpec, ...]
    id_field: str = "id"
    label_field: Optional[str] = "name"

    def field(self, name: str) -> Optional[FieldSpec]:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


@dataclass
class FieldRegistry:
    """Entity specs keyed by entity type."""
    specs: Dict[str, EntitySpec] = field(default_factory=dict)

    def register(self, spec: EntitySpec) -> None:
        self.specs[spec.entity_type] = spec

    def get(self, entity_type: str) -> Optional[EntitySpec]:
        return self.specs.get(entity_type)

    def field_type(self, entity_type: str, field_name: Optional[str]) -> Optional[FieldType]:
        spec = self.get(entity_type)
        if spec is None or field_name is None:
            return None
        fs = spec.field(field_name)
        return fs.field_type if fs else None

    @classmethod
    def of(cls, specs: Iterable[EntitySpec]) -> "FieldRegistry":
        registry = cls()
        for spec in specs:
            registry.register(spec)
        return registry


def _fields(*pairs) -> Tuple[FieldSpec, ...]:
    return tuple(FieldSpec(name, FieldType(kind)) for name, kind in pairs)


DEFAULT_ENTITY_SPECS = (
    EntitySpec(
        "client",
        _fields(
            ("name", "string"),
            ("document", "string"),
            ("email", "string"),
            ("status", "enum"),
            ("squad", "string"),
            ("created_on", "date"),
        ),
    ),
    EntitySpec(
        "contract",
        _fields(
            ("service", "string"),
            ("status", "enum"),
            ("monthly_value", "money"),
            ("one_time_value", "money"),
            ("start_date", "date"),
            ("end_date", "date"),
        ),
        label_field="service",
    ),
    EntitySpec(
        "invoice",
        _fields(
            ("customer", "string"),
            ("status", "enum"),
            ("amount", "money"),
            ("amount_paid", "money"),
            ("due_date", "date"),
            ("paid_on", "date"),
        ),
        label_field="number",
    ),
    EntitySpec(
        "installment",
        _fields(
            ("status", "enum"),
            ("amount", "money"),
            ("number", "number"),
            ("due_date", "date"),
            ("paid_on", "date"),
        ),
        label_field="description",
    ),
)


def default_registry() -> FieldRegistry:
    return FieldRegistry.of(DEFAULT_ENTITY_SPECS)
