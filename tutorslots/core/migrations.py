from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy import MetaData


def owned_tables(metadata: MetaData) -> frozenset[str]:
  """Names of the tables this service declares and therefore migrates."""
  return frozenset(metadata.tables)


def build_include_object(metadata: MetaData) -> Callable[..., bool]:
  """Limit autogenerate to scheduling tables so a shared database never gets foreign objects dropped."""
  tables = owned_tables(metadata)

  def include_object(object: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    if type_ == "table":
      return name in tables

    # Columns, indexes and constraints follow their parent table.
    parent = getattr(getattr(object, "table", None), "name", None)
    if parent is not None and parent not in tables:
      return False

    # Reflected leftovers without a model counterpart are reported by review, not dropped.
    return not (reflected and compare_to is None)

  return include_object


def build_migration_context_options(*, target_metadata: MetaData) -> dict[str, Any]:
  return {
    "target_metadata": target_metadata,
    "compare_type": True,
    "compare_server_default": True,
    "transaction_per_migration": True,
    "include_object": build_include_object(target_metadata),
  }
