"""Record normalization package."""

from splitsmart.normalization.normalizer import (
    FIELD_TABLE,
    KIND_BY_COLLECTION,
    FieldSpec,
    FieldType,
    RecordKind,
    RecordNormalizer,
    first_present,
    parse_amount,
    raw_group_id,
    raw_record_id,
)

__all__ = [
    "FIELD_TABLE",
    "KIND_BY_COLLECTION",
    "FieldSpec",
    "FieldType",
    "RecordKind",
    "RecordNormalizer",
    "first_present",
    "parse_amount",
    "raw_group_id",
    "raw_record_id",
]
