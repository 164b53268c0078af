"""Relation descriptors.

Relations are declared as class attributes:

    class Customer(ActiveRecord):
        orders = has_many("Order", {"customer_id": "id"})
        profile = has_one("Profile", {"customer_id": "id"})

    class Order(ActiveRecord):
        customer = has_one("Customer", {"id": "customer_id"})
        items = has_many("Item", {"id": "item_id"}).via_table(
            "order_items", {"order_id": "id"}
        )

``link`` maps columns of the related class to columns of the declaring class.
For junction relations ``via_table()`` maps junction columns to columns of the
declaring class, and ``link`` maps related columns to junction columns.

Reading the attribute on an instance runs the relational query once and
caches the result; assigning to it populates the cache directly.
"""

from collections.abc import Mapping
from typing import Optional

from recordkit.models.errors import ConfigurationError

# Record classes by name, so relations can refer to classes declared later
_record_classes: dict[str, type] = {}


def register_record_class(cls: type) -> None:
    _record_classes[cls.__name__] = cls


def resolve_record_class(target) -> type:
    if not isinstance(target, str):
        return target
    try:
        return _record_classes[target]
    except KeyError:
        raise ConfigurationError(f"Unknown record class {target!r}") from None


class Relation:
    """A named association from the declaring class to a related class."""

    def __init__(self, target, link: Mapping[str, str], multiple: bool):
        if not link:
            raise ConfigurationError("A relation needs at least one linked column")
        self.target = target
        self.link = dict(link)
        self.multiple = multiple
        self.via_table_name: Optional[str] = None
        self.via_link: dict[str, str] = {}
        self.name: Optional[str] = None
        self.owner: Optional[type] = None

    def __repr__(self):
        kind = "has_many" if self.multiple else "has_one"
        target = self.target if isinstance(self.target, str) else self.target.__name__
        via = f" via {self.via_table_name}" if self.via_table_name else ""
        return f"<{kind} {self.name}: {target} {self.link}{via}>"

    def __set_name__(self, owner, name):
        self.owner = owner
        self.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        if instance.is_relation_populated(self.name):
            return instance.get_related_records()[self.name]

        query = instance.get_relation(self.name)
        records = query.all() if self.multiple else query.one()
        instance.populate_relation(self.name, records)
        return records

    def __set__(self, instance, records):
        instance.populate_relation(self.name, records)

    def via_table(self, table_name: str, link: Mapping[str, str]) -> "Relation":
        """Route the relation through a junction table."""
        if not link:
            raise ConfigurationError("A junction link needs at least one column")
        self.via_table_name = table_name
        self.via_link = dict(link)
        return self

    @property
    def target_class(self) -> type:
        return resolve_record_class(self.target)


def has_one(target, link: Mapping[str, str]) -> Relation:
    """Declare a relation yielding a single related record (or None)."""
    return Relation(target, link, multiple=False)


def has_many(target, link: Mapping[str, str]) -> Relation:
    """Declare a relation yielding a list of related records."""
    return Relation(target, link, multiple=True)
