"""Deep identifier substitution over snapshot payloads.

Foreign keys in the portal are plain string matches: a staff id can sit in a
``staff_id`` column, inside a JSON array, or as the key of a per-identity
dictionary such as ``flight_hours_by_aircraft``. Relabeling therefore walks
the whole value graph and rewrites both values and mapping keys.
"""

from collections.abc import Mapping
from typing import Any


def relabel(value: Any, old_id: str, new_id: str) -> Any:
    """Return a copy of ``value`` with every occurrence of ``old_id`` replaced.

    Occurrences are replaced both as scalar values and as mapping keys. Lists
    and tuples keep their order (tuples come back as lists). The input is
    never mutated.

    Example:
        >>> relabel({"a": ["x", 1], "x": {"k": "x"}}, "x", "y")
        {'a': ['y', 1], 'y': {'k': 'y'}}
    """
    if isinstance(value, Mapping):
        return {
            (new_id if key == old_id else key): relabel(item, old_id, new_id)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [relabel(item, old_id, new_id) for item in value]
    if isinstance(value, str) and value == old_id:
        return new_id
    return value


def relabel_tables(
    tables: Mapping[str, Any], old_id: str, new_id: str
) -> dict[str, Any]:
    """Relabel every collection of a snapshot, not just the one owning the id."""
    return {name: relabel(rows, old_id, new_id) for name, rows in tables.items()}

