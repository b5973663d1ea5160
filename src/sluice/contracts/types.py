"""Semantic type aliases for compile-time type safety.

NewType creates distinct types that mypy treats as incompatible,
preventing accidental misuse of semantically different string values.
"""

from typing import NewType

ActionId = NewType("ActionId", str)
"""Unique identifier of an Action (DAG node), e.g. 'copy_orders'."""

DataObjectId = NewType("DataObjectId", str)
"""Unique identifier of a DataObject (dataset), e.g. 'stg_orders'."""
