"""Chainable SELECT queries bound to a record class.

Usage:
    customers = Customer.find().where({"status": 1}).order_by("-id").limit(10).all()
    customer = Customer.find().where("email LIKE ?", "%@example.com").one()
    total = Customer.find().where({"status": 1}).count()

Every builder method returns a new query; nothing touches the database until
``all()``, ``one()``, ``count()`` or ``exists()`` is called.

A query created by ``ActiveRecord.get_relation()`` is *relational*: it carries
the primary record and the relation descriptor, and the link condition is
added when it runs.
"""

import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import Any, Optional

from recordkit.models.condition import (
    build_hash_condition,
    build_in_condition,
    normalize_where,
    quote_name,
)

logger = logging.getLogger(__name__)


class ActiveQuery:
    """Query builder returning record instances."""

    def __init__(self, model_class, primary_model=None, relation=None):
        self.model_class = model_class
        self.primary_model = primary_model
        self.relation = relation
        self._where: list[tuple[str, list[Any]]] = []
        self._order_by: list[str] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None
        self._with: list[str] = []

    def __repr__(self):
        sql, params = self.build_select()
        return f"ActiveQuery({self.model_class.__name__}: {sql} {params})"

    @property
    def multiple(self) -> bool:
        """Whether a relational query yields a list (has_many) or one record."""
        return self.relation.multiple if self.relation is not None else True

    def where(self, condition: Any, *params: Any) -> "ActiveQuery":
        """Replace the WHERE condition.

        Args:
            condition: Column mapping, raw SQL fragment with ``?``
                placeholders, or None to clear
            *params: Values for the placeholders of a raw fragment
        """
        new = self._clone()
        new._where = []
        new._add_where(condition, params)
        return new

    def and_where(self, condition: Any, *params: Any) -> "ActiveQuery":
        """Add a condition joined with AND to the existing ones."""
        new = self._clone()
        new._add_where(condition, params)
        return new

    def order_by(self, *columns: str) -> "ActiveQuery":
        """ORDER BY; prefix a column with '-' for DESC."""
        new = self._clone()
        for column in columns:
            if column.startswith("-"):
                new._order_by.append(f"{quote_name(column[1:])} DESC")
            else:
                new._order_by.append(f"{quote_name(column)} ASC")
        return new

    def limit(self, n: Optional[int]) -> "ActiveQuery":
        new = self._clone()
        new._limit = n
        return new

    def offset(self, n: Optional[int]) -> "ActiveQuery":
        new = self._clone()
        new._offset = n
        return new

    def with_relations(self, *names: str) -> "ActiveQuery":
        """Eager-load the named relations for every record returned by all()/one().

        Related records are fetched with one query per relation (two for
        junction relations) and cached on each record through
        ``populate_relation()``.
        """
        new = self._clone()
        new._with.extend(names)
        return new

    def all(self) -> list:
        """Execute the query and return every matching record."""
        sql, params = self.build_select()
        if sql is None:
            return []

        rows = self.model_class.get_db().fetch_all(sql, params)
        records = [self.model_class.populate_record(row) for row in rows]

        if records:
            for name in self._with:
                self._eager_load(name, records)

        return records

    def one(self):
        """Execute the query and return the first record, or None."""
        records = self.limit(1).all()
        return records[0] if records else None

    def count(self) -> int:
        """Rows matching the conditions; order, limit and offset are ignored."""
        sql, params = self.build_select(count=True)
        if sql is None:
            return 0
        return int(self.model_class.get_db().fetch_scalar(sql, params) or 0)

    def exists(self) -> bool:
        """Whether the query (offset included) yields at least one row."""
        sql, params = self.limit(1)._build("1", paginate=True)
        if sql is None:
            return False
        return self.model_class.get_db().fetch_scalar(sql, params) is not None

    def build_select(self, count: bool = False) -> tuple[Optional[str], list[Any]]:
        """Build the SELECT statement.

        With ``count`` the statement is a bare ``COUNT(*)`` over the
        conditions, without ORDER BY, LIMIT or OFFSET.

        Returns:
            ``(sql, params)``; ``sql`` is None when the query can not match
            anything (a relational query whose link values are null)
        """
        if count:
            return self._build("COUNT(*)", paginate=False)
        return self._build("*", paginate=True)

    def _build(self, column: str, paginate: bool) -> tuple[Optional[str], list[Any]]:
        wheres = list(self._where)

        if self.relation is not None:
            link_condition = self._link_condition()
            if link_condition is None:
                return None, []
            wheres.insert(0, link_condition)

        sql = f"SELECT {column} FROM {quote_name(self.model_class.table_name)}"
        params: list[Any] = []

        if wheres:
            sql += " WHERE " + " AND ".join(f"({clause})" for clause, _ in wheres)
            for _, clause_params in wheres:
                params.extend(clause_params)
        if not paginate:
            return sql, params

        if self._order_by:
            sql += " ORDER BY " + ", ".join(self._order_by)
        if self._limit is not None:
            sql += f" LIMIT {int(self._limit)}"
            if self._offset is not None:
                sql += f" OFFSET {int(self._offset)}"
        elif self._offset is not None:
            sql += f" LIMIT -1 OFFSET {int(self._offset)}"

        return sql, params

    def _add_where(self, condition: Any, params: Sequence[Any]) -> None:
        sql, clause_params = normalize_where(condition, params)
        if sql:
            self._where.append((sql, clause_params))

    def _clone(self) -> "ActiveQuery":
        new = ActiveQuery(self.model_class, self.primary_model, self.relation)
        new._where = list(self._where)
        new._order_by = list(self._order_by)
        new._limit = self._limit
        new._offset = self._offset
        new._with = list(self._with)
        return new

    def _link_condition(self) -> Optional[tuple[str, list[Any]]]:
        """Condition tying a relational query to its primary record."""
        relation = self.relation
        primary = self.primary_model

        if relation.via_table_name is None:
            values = {
                target_column: primary.get_attribute(primary_column)
                for target_column, primary_column in relation.link.items()
            }
            if any(value is None for value in values.values()):
                return None
            return build_hash_condition(values)

        junction_filter = {
            junction_column: primary.get_attribute(primary_column)
            for junction_column, primary_column in relation.via_link.items()
        }
        if any(value is None for value in junction_filter.values()):
            return None

        junction_rows = self._fetch_junction_rows(
            relation, *build_hash_condition(junction_filter)
        )
        target_columns = list(relation.link)
        keys = [
            {
                target_column: row[junction_column]
                for target_column, junction_column in relation.link.items()
            }
            for row in junction_rows
        ]
        return build_in_condition(target_columns, keys)

    def _fetch_junction_rows(
        self, relation, where_sql: str, params: list[Any]
    ) -> list[dict[str, Any]]:
        sql = f"SELECT * FROM {quote_name(relation.via_table_name)} WHERE {where_sql}"
        return self.model_class.get_db().fetch_all(sql, params)

    def _eager_load(self, name: str, records: list) -> None:
        relation = self.model_class.relation_descriptor(name)
        target_class = relation.target_class

        if relation.via_table_name is None:
            primary_columns = list(relation.link.values())
            target_columns = list(relation.link)
            keys = _distinct_keys(
                (r.get_attribute(c) for c in primary_columns) for r in records
            )
            related = self._fetch_targets(target_class, target_columns, keys)

            buckets = defaultdict(list)
            for record in related:
                key = tuple(record.get_attribute(c) for c in target_columns)
                buckets[key].append(record)
        else:
            junction_columns = list(relation.via_link)
            primary_columns = list(relation.via_link.values())
            keys = _distinct_keys(
                (r.get_attribute(c) for c in primary_columns) for r in records
            )
            if keys:
                junction_rows = self._fetch_junction_rows(
                    relation,
                    *build_in_condition(
                        junction_columns, [dict(zip(junction_columns, k)) for k in keys]
                    ),
                )
            else:
                junction_rows = []

            target_columns = list(relation.link)
            junction_target_columns = list(relation.link.values())
            target_keys = _distinct_keys(
                (row[c] for c in junction_target_columns) for row in junction_rows
            )
            related = self._fetch_targets(target_class, target_columns, target_keys)
            targets_by_key = {
                tuple(r.get_attribute(c) for c in target_columns): r for r in related
            }

            buckets = defaultdict(list)
            for row in junction_rows:
                target = targets_by_key.get(
                    tuple(row[c] for c in junction_target_columns)
                )
                if target is not None:
                    buckets[tuple(row[c] for c in junction_columns)].append(target)

        for record in records:
            matches = buckets.get(
                tuple(record.get_attribute(c) for c in primary_columns), []
            )
            if relation.multiple:
                record.populate_relation(name, list(matches))
            else:
                record.populate_relation(name, matches[0] if matches else None)

        logger.debug(
            f"Eager-loaded {name} for {len(records)} "
            f"{self.model_class.__name__} records ({len(related)} related)"
        )

    @staticmethod
    def _fetch_targets(target_class, target_columns, keys) -> list:
        if not keys:
            return []
        sql, params = build_in_condition(
            target_columns, [dict(zip(target_columns, k)) for k in keys]
        )
        return target_class.find().where(sql, *params).all()


def _distinct_keys(rows) -> list[tuple]:
    """Unique non-null key tuples, in first-seen order."""
    seen = {}
    for row in rows:
        key = tuple(row)
        if any(value is None for value in key):
            continue
        seen.setdefault(key, None)
    return list(seen)
