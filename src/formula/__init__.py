"""Formula loading: the package spec collaborator of the resolver."""

from .loader import FormulaRepository, read_record, record_to_spec
from .schema import FORMULA_SCHEMA, FormulaSchemaError, validate_record

__all__ = [
    "FORMULA_SCHEMA",
    "FormulaRepository",
    "FormulaSchemaError",
    "read_record",
    "record_to_spec",
    "validate_record",
]
