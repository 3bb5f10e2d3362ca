# =============================================================================
# Schema Inference
# =============================================================================
# Derives an ordered, typed warehouse schema from a stream of flat records.
# =============================================================================

"""
Schema inference for encoded records.

Types widen monotonically as records are observed:

    (nothing seen) -> BOOLEAN | INTEGER -> FLOAT -> STRING -> JSON

Python keeps int and float apart, so a float is FLOAT even when it is
whole; the NDJSON writer emits it as `100.0`, which an INTEGER column
rejects. Lists and dicts are JSON, and once a field holds one, every other
value in that column must load as a JSON scalar too.

A field named ``geometry`` is always GEOGRAPHY. A field is REQUIRED only when
every record observed carried a non-null value for it.
"""

from dataclasses import dataclass
from itertools import islice
from typing import Any, Iterable, Optional

from ..models.schema import FieldMode, FieldType, SchemaField
from .record_encoder import GEOMETRY_FIELD

__all__ = ["infer_schema", "FieldObservation"]


def _classify(value: Any) -> FieldType:
    # bool is a subclass of int, so it must be checked first
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, int):
        return FieldType.INTEGER
    if isinstance(value, float):
        return FieldType.FLOAT
    if isinstance(value, (dict, list)):
        return FieldType.JSON
    return FieldType.STRING


def _widen(current: Optional[FieldType], observed: FieldType) -> FieldType:
    if current is None or current == observed:
        return observed
    numeric = {FieldType.INTEGER, FieldType.FLOAT}
    if current in numeric and observed in numeric:
        return FieldType.FLOAT
    if FieldType.JSON in (current, observed):
        return FieldType.JSON
    return FieldType.STRING


@dataclass
class FieldObservation:
    """Running state for one field during inference."""

    name: str
    type: Optional[FieldType] = None
    seen_in: int = 0
    null_seen: bool = False

    def observe(self, value: Any) -> None:
        self.seen_in += 1
        if value is None:
            self.null_seen = True
            return
        self.type = _widen(self.type, _classify(value))

    def to_field(self, total_records: int) -> SchemaField:
        if self.name == GEOMETRY_FIELD:
            field_type = FieldType.GEOGRAPHY
        else:
            field_type = self.type or FieldType.STRING

        nullable = self.null_seen or self.seen_in < total_records
        return SchemaField(
            name=self.name,
            type=field_type,
            mode=FieldMode.NULLABLE if nullable else FieldMode.REQUIRED,
        )


def infer_schema(
    records: Iterable[dict],
    sample_size: Optional[int] = None,
) -> list[SchemaField]:
    """
    Infer a schema from records in a single pass.

    Args:
        records: Flat records (consumed once, one at a time)
        sample_size: Stop after this many records (None reads all)

    Returns:
        SchemaFields in first-seen order; empty when there are no records

    Example:
        >>> fields = infer_schema([{"id": 1, "area": 2.5}, {"id": 2, "area": None}])
        >>> [(f.name, f.type.value, f.mode.value) for f in fields]
        [('id', 'INTEGER', 'REQUIRED'), ('area', 'FLOAT', 'NULLABLE')]
    """
    if sample_size is not None:
        records = islice(records, sample_size)

    observations: dict[str, FieldObservation] = {}
    total = 0
    for record in records:
        total += 1
        for name, value in record.items():
            observation = observations.get(name)
            if observation is None:
                observation = observations[name] = FieldObservation(name=name)
            observation.observe(value)

    return [obs.to_field(total) for obs in observations.values()]
