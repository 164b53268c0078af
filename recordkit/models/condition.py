"""Query conditions.

``find_one()`` and ``find_all()`` accept three shapes of condition, resolved
once by ``classify_condition()``:

- ``ScalarKey``: a single primary key value, e.g. ``10`` or ``"U1234567"``
- ``KeyList``: a list/tuple/set of primary key values, e.g. ``[1, 2, 3]``.
  An empty list matches no rows.
- ``AttributeMap``: a mapping of column -> value, joined with AND

The builders below turn conditions into ``(sql, params)`` pairs using ``?``
placeholders.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from recordkit.database import quote_name

# Always false; used where an empty key set must match nothing
MATCH_NOTHING = "0=1"

KEY_LIST_TYPES = (list, tuple, set, frozenset)


def build_hash_condition(columns: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Build an AND-joined equality condition.

    List values become IN conditions, ``None`` becomes IS NULL.
    An empty mapping yields an empty SQL string (no filter).
    """
    parts = []
    params: list[Any] = []
    for column, value in columns.items():
        if isinstance(value, KEY_LIST_TYPES):
            sql, in_params = build_in_condition([column], list(value))
            parts.append(sql)
            params.extend(in_params)
        elif value is None:
            parts.append(f"{quote_name(column)} IS NULL")
        else:
            parts.append(f"{quote_name(column)} = ?")
            params.append(value)
    return " AND ".join(parts), params


def build_in_condition(
    columns: Sequence[str], values: Sequence[Any]
) -> tuple[str, list[Any]]:
    """Build an IN condition over one or more columns.

    For a single column ``values`` holds scalars (or mappings containing the
    column). For several columns every value must be a mapping and the result
    is an OR of per-row equality conditions.
    """
    values = list(values)
    if not values:
        return MATCH_NOTHING, []

    if len(columns) == 1:
        column = columns[0]
        flat = [v[column] if isinstance(v, Mapping) else v for v in values]
        present = [v for v in flat if v is not None]

        parts = []
        if present:
            placeholders = ", ".join("?" * len(present))
            parts.append(f"{quote_name(column)} IN ({placeholders})")
        if len(present) < len(flat):
            parts.append(f"{quote_name(column)} IS NULL")

        if len(parts) == 1:
            return parts[0], present
        return f"({' OR '.join(parts)})", present

    parts = []
    params: list[Any] = []
    for value in values:
        if not isinstance(value, Mapping):
            raise ValueError(
                f"Composite key lookup on {list(columns)} needs a mapping per key, "
                f"got {value!r}"
            )
        sql, row_params = build_hash_condition({c: value.get(c) for c in columns})
        parts.append(f"({sql})")
        params.extend(row_params)
    return f"({' OR '.join(parts)})", params


def normalize_where(condition: Any, params: Sequence[Any] = ()) -> tuple[str, list[Any]]:
    """Turn a where() argument into ``(sql, params)``.

    Accepts ``None`` (no filter), a column mapping, or a raw SQL fragment
    with ``?`` placeholders and its ``params``.
    """
    if condition is None:
        return "", []
    if isinstance(condition, Mapping):
        return build_hash_condition(condition)
    if isinstance(condition, str):
        return condition, list(params)
    raise TypeError(f"Unsupported condition type: {type(condition).__name__}")


@dataclass(frozen=True)
class ScalarKey:
    """Lookup by a single primary key value."""

    value: Any

    def to_where(self, record_class) -> tuple[str, list[Any]]:
        primary_key = record_class.primary_key()
        if len(primary_key) > 1:
            raise ValueError(
                f"{record_class.__name__} has a composite primary key "
                f"{primary_key}; pass a mapping of key values instead"
            )
        return build_hash_condition({primary_key[0]: self.value})


@dataclass(frozen=True)
class KeyList:
    """Lookup by a set of primary key values."""

    values: tuple

    def to_where(self, record_class) -> tuple[str, list[Any]]:
        return build_in_condition(record_class.primary_key(), self.values)


@dataclass(frozen=True)
class AttributeMap:
    """Lookup by column equality."""

    attributes: Mapping[str, Any]

    def to_where(self, record_class) -> tuple[str, list[Any]]:
        if not self.attributes:
            return MATCH_NOTHING, []

        known = set(record_class.attributes())
        for name in self.attributes:
            if name not in known:
                raise ValueError(
                    f"Key {name!r} is not a column of {record_class.table_name} "
                    "and can not be used as a filter"
                )
        return build_hash_condition(self.attributes)


Condition = ScalarKey | KeyList | AttributeMap


def classify_condition(condition: Any) -> Condition:
    """Resolve a raw condition into its tagged variant.

    Lists are always key lists, never attribute maps, and strings are
    scalars.
    """
    if isinstance(condition, (ScalarKey, KeyList, AttributeMap)):
        return condition
    if isinstance(condition, Mapping):
        return AttributeMap(dict(condition))
    if isinstance(condition, KEY_LIST_TYPES):
        return KeyList(tuple(condition))
    return ScalarKey(condition)


def bulk_where(
    record_class, condition: Any, params: Sequence[Any] = ()
) -> tuple[str, list[Any]]:
    """Resolve the condition of ``update_all()``/``delete_all()``.

    ``None`` and an empty mapping mean every row, a string is a raw SQL
    fragment with ``params``, a mapping is an AND of column values. Any other
    value is classified like a ``find_all()`` condition, so scalars and lists
    target primary keys and an empty list matches nothing.
    """
    if condition is None or isinstance(condition, (str, Mapping)):
        return normalize_where(condition, params)
    return classify_condition(condition).to_where(record_class)
