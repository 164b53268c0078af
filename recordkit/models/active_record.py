"""ActiveRecord base class.

Provides object-relational mapping with the ActiveRecord pattern:
- Attribute access backed by a per-instance attribute map
- Identity: primary key, old primary key, equality
- Class methods for queries (find, find_one, find_all, update_all, delete_all)
- Instance methods for persistence (save, insert, update, delete)
- Relations (get_relation, populate_relation, link, unlink)
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Optional

from recordkit.database import Database
from recordkit.models.active_query import ActiveQuery
from recordkit.models.condition import (
    build_hash_condition,
    bulk_where,
    classify_condition,
    quote_name,
)
from recordkit.models.errors import ConfigurationError, PreconditionError
from recordkit.models.relation import Relation, register_record_class

logger = logging.getLogger(__name__)


class ActiveRecord:
    """Base class for ActiveRecord-style records.

    Subclasses must define:
    - table_name: Name of the database table
    - primary_key_columns: Primary key column name, or a sequence of names
      for a composite key

    Subclasses may define:
    - primary_key_type: "INTEGER" (store assigns the key, the default) or
      "TEXT" (caller supplies the key). Composite keys are always supplied.
    - columns: Attribute names; read from the table schema when omitted
    - record_timestamps: Maintain created_at/updated_at columns
    - Relation descriptors (see recordkit.models.relation)

    A Database is bound per class with ``use_database()``; binding it on
    ActiveRecord itself makes it the default for every record class.
    """

    table_name: str
    primary_key_columns: str | Sequence[str]
    primary_key_type: str = "INTEGER"  # "TEXT" or "INTEGER"
    columns: Sequence[str] = ()
    record_timestamps: bool = False

    _db: Optional[Database] = None
    _relations: dict[str, Relation] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        relations = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, Relation):
                    relations[name] = value
        cls._relations = relations

        register_record_class(cls)

    def __init__(self, **kwargs):
        """Initialize a new (unsaved) record.

        Args:
            **kwargs: Attribute values

        Raises:
            AttributeError: If the class lacks table_name or primary_key_columns
            ValueError: If a keyword is not an attribute of the record
        """
        cls = type(self)
        if getattr(cls, "table_name", None) is None:
            raise AttributeError(
                f"{cls.__name__} must define 'table_name' class attribute"
            )
        if getattr(cls, "primary_key_columns", None) is None:
            raise AttributeError(
                f"{cls.__name__} must define 'primary_key_columns' class attribute"
            )

        self._attributes: dict[str, Any] = {}
        self._old_attributes: Optional[dict[str, Any]] = None
        self._related: dict[str, Any] = {}
        self._errors: list[str] = []

        invalid_fields = set(kwargs) - set(self.attributes())
        if invalid_fields:
            raise ValueError(f"Invalid fields: {invalid_fields}")

        self._attributes.update(kwargs)

    def __repr__(self):
        key = ", ".join(
            f"{name}={value!r}"
            for name, value in self.get_primary_key(as_dict=True).items()
        )
        return f"{type(self).__name__}({key})"

    def __getattr__(self, name):
        # Only reached when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        if name in type(self).attributes():
            return self._attributes.get(name)
        raise AttributeError(
            f"{type(self).__name__!r} object has no attribute {name!r}"
        )

    def __setattr__(self, name, value):
        if not name.startswith("_") and name in type(self).attributes():
            self._attributes[name] = value
        else:
            super().__setattr__(name, value)

    # -- connection ---------------------------------------------------------

    @classmethod
    def use_database(cls, database: Optional[Database]) -> None:
        """Bind the Database used by this class and its subclasses."""
        cls._db = database

    @classmethod
    def get_db(cls) -> Database:
        """Return the Database used for all operations on this class.

        Raises:
            ConfigurationError: If no database is bound
        """
        if cls._db is None:
            raise ConfigurationError(
                f"No database bound to {cls.__name__}; call use_database() first"
            )
        return cls._db

    # -- attributes ---------------------------------------------------------

    @classmethod
    def attributes(cls) -> list[str]:
        """Names of all attributes of the record."""
        if cls.columns:
            return list(cls.columns)

        cached = cls.__dict__.get("_schema_columns")
        if not cached:
            cached = cls.get_db().table_columns(cls.table_name)
            if cached:
                cls._schema_columns = cached
        return list(cached)

    @classmethod
    def has_attribute(cls, name: str) -> bool:
        """Whether ``name`` is an attribute of this record class, set or not."""
        return name in cls.attributes()

    def get_attribute(self, name: str) -> Any:
        """Current value of an attribute; None if unset or unknown."""
        return self._attributes.get(name)

    def set_attribute(self, name: str, value: Any) -> None:
        """Set an attribute value without validating or saving.

        Raises:
            ValueError: If the record has no attribute with that name
        """
        if not self.has_attribute(name):
            raise ValueError(f"{type(self).__name__} has no attribute named {name!r}")
        self._attributes[name] = value

    def get_attributes(self, names: Optional[Iterable[str]] = None) -> dict[str, Any]:
        names = self.attributes() if names is None else names
        return {name: self._attributes.get(name) for name in names}

    def set_attributes(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.set_attribute(name, value)

    def get_old_attribute(self, name: str) -> Any:
        if self._old_attributes is None:
            return None
        return self._old_attributes.get(name)

    def get_old_attributes(self) -> dict[str, Any]:
        return dict(self._old_attributes or {})

    def set_old_attributes(self, values: Optional[Mapping[str, Any]]) -> None:
        """Replace the old attribute snapshot; None marks the record as new."""
        self._old_attributes = dict(values) if values is not None else None

    def is_attribute_changed(self, name: str) -> bool:
        if name not in self._attributes:
            return False
        if self._old_attributes is None or name not in self._old_attributes:
            return True
        return self._attributes[name] != self._old_attributes[name]

    def get_dirty_attributes(
        self, names: Optional[Iterable[str]] = None
    ) -> dict[str, Any]:
        """Attribute values changed since the record was loaded or saved.

        For a new record every attribute that has been set is dirty.
        """
        names = self.attributes() if names is None else list(names)
        return {
            name: self._attributes[name]
            for name in names
            if name in self._attributes and self.is_attribute_changed(name)
        }

    # -- identity -----------------------------------------------------------

    @classmethod
    def primary_key(cls) -> list[str]:
        """Primary key column name(s); a list even for a single column."""
        key = getattr(cls, "primary_key_columns", None)
        if not key:
            raise ConfigurationError(
                f"{cls.__name__} must define 'primary_key_columns' class attribute"
            )
        return [key] if isinstance(key, str) else list(key)

    @classmethod
    def is_primary_key(cls, keys: Iterable[str]) -> bool:
        """Whether ``keys`` is exactly the primary key column set, in any order."""
        keys = list(keys)
        primary_key = cls.primary_key()
        return len(keys) == len(primary_key) and set(keys) == set(primary_key)

    def get_primary_key(self, as_dict: bool = False) -> Any:
        """Primary key value.

        Args:
            as_dict: Return a column -> value dict for single-column keys too.
                Composite keys always come back as a dict.
        """
        return self._key_value(self._attributes, as_dict)

    def get_old_primary_key(self, as_dict: bool = False) -> Any:
        """Primary key value as it was when the record was loaded or inserted.

        Not affected by later assignments to the key attributes, so updates
        and deletes hit the original row. For a record that was never loaded
        or inserted the values are None.
        """
        return self._key_value(self._old_attributes or {}, as_dict)

    def _key_value(self, source: Mapping[str, Any], as_dict: bool) -> Any:
        keys = self.primary_key()
        if len(keys) == 1 and not as_dict:
            return source.get(keys[0])
        return {key: source.get(key) for key in keys}

    def get_is_new_record(self) -> bool:
        """Whether the record is not backed by a stored row yet."""
        return self._old_attributes is None

    def set_is_new_record(self, value: bool) -> None:
        self._old_attributes = None if value else dict(self._attributes)

    @property
    def is_new_record(self) -> bool:
        return self.get_is_new_record()

    def equals(self, other: Any) -> bool:
        """Whether ``other`` refers to the same stored row.

        New records are never equal to anything.
        """
        if not isinstance(other, ActiveRecord):
            return False
        if self.get_is_new_record() or other.get_is_new_record():
            return False
        return (
            self.table_name == other.table_name
            and self.get_db().db_path == other.get_db().db_path
            and self.get_primary_key() == other.get_primary_key()
        )

    # -- queries ------------------------------------------------------------

    @classmethod
    def find(cls) -> ActiveQuery:
        """Create a query for this class; nothing runs until it is executed."""
        return ActiveQuery(cls)

    @classmethod
    def find_one(cls, condition: Any) -> Optional["ActiveRecord"]:
        """Find the first record matching a condition.

        Args:
            condition: A primary key value, a list of primary key values, or
                a mapping of column values (see recordkit.models.condition)

        Returns:
            Record instance or None if not found
        """
        return cls._find_by_condition(condition).one()

    @classmethod
    def find_all(cls, condition: Any) -> list["ActiveRecord"]:
        """Find all records matching a condition.

        An empty list of keys matches nothing; it is not treated as "no
        filter".

        Returns:
            List of record instances, empty if nothing matches
        """
        return cls._find_by_condition(condition).all()

    @classmethod
    def _find_by_condition(cls, condition: Any) -> ActiveQuery:
        sql, params = classify_condition(condition).to_where(cls)
        return cls.find().where(sql, *params)

    @classmethod
    def populate_record(cls, row: Mapping[str, Any]) -> "ActiveRecord":
        """Build a loaded (not new) record from a database row."""
        record = cls()
        known = set(cls.attributes())
        record._attributes = {k: v for k, v in row.items() if k in known}
        record._old_attributes = dict(record._attributes)
        return record

    @classmethod
    def update_all(
        cls,
        attributes: Mapping[str, Any],
        condition: Any = None,
        params: Sequence[Any] = (),
    ) -> int:
        """Update matching rows without loading or validating records.

        Args:
            attributes: Column values to set
            condition: Column mapping, raw SQL fragment, primary key value or
                list of primary key values; None or an empty mapping matches
                every row, an empty list none
            params: Values for a raw SQL fragment

        Returns:
            Number of rows updated. With no attributes to set nothing is
            written and the number of matching rows is returned.
        """
        table = quote_name(cls.table_name)
        where_sql, where_params = bulk_where(cls, condition, params)

        if not attributes:
            sql = f"SELECT COUNT(*) FROM {table}"
            if where_sql:
                sql += f" WHERE {where_sql}"
            return int(cls.get_db().fetch_scalar(sql, where_params) or 0)

        set_clauses = ", ".join(f"{quote_name(column)} = ?" for column in attributes)
        sql = f"UPDATE {table} SET {set_clauses}"
        if where_sql:
            sql += f" WHERE {where_sql}"

        rows = cls.get_db().execute(sql, [*attributes.values(), *where_params])
        logger.debug(f"update_all on {cls.table_name}: {rows} rows")
        return rows

    @classmethod
    def update_all_counters(
        cls,
        counters: Mapping[str, int | float],
        condition: Any = None,
        params: Sequence[Any] = (),
    ) -> int:
        """Add the given increments to columns of every matching row.

        ``condition`` takes the same shapes as in ``update_all()``.

        Returns:
            Number of rows updated
        """
        if not counters:
            return 0

        set_clauses = ", ".join(
            f"{quote_name(column)} = {quote_name(column)} + ?" for column in counters
        )
        sql = f"UPDATE {quote_name(cls.table_name)} SET {set_clauses}"
        where_sql, where_params = bulk_where(cls, condition, params)
        if where_sql:
            sql += f" WHERE {where_sql}"

        return cls.get_db().execute(sql, [*counters.values(), *where_params])

    @classmethod
    def delete_all(cls, condition: Any = None, params: Sequence[Any] = ()) -> int:
        """Delete matching rows without loading records.

        ``condition`` takes the same shapes as in ``update_all()``.

        WARNING: None or an empty condition deletes every row in the table.

        Returns:
            Number of rows deleted
        """
        sql = f"DELETE FROM {quote_name(cls.table_name)}"
        where_sql, where_params = bulk_where(cls, condition, params)
        if where_sql:
            sql += f" WHERE {where_sql}"
        else:
            logger.warning(f"delete_all on {cls.table_name} without a condition")

        rows = cls.get_db().execute(sql, where_params)
        logger.debug(f"delete_all on {cls.table_name}: {rows} rows")
        return rows

    # -- validation & hooks -------------------------------------------------

    def validate(self, attribute_names: Optional[Sequence[str]] = None) -> bool:
        """Run validation and collect errors.

        Returns:
            True if the record is valid; errors are available via get_errors()
        """
        self._errors = list(self._validation_errors(attribute_names))
        if self._errors:
            logger.info(
                f"{type(self).__name__} failed validation: {', '.join(self._errors)}"
            )
            return False
        return True

    def get_errors(self) -> list[str]:
        return list(self._errors)

    def _validation_errors(self, attribute_names: Optional[Sequence[str]]) -> list[str]:
        """Hook returning validation error messages.

        Subclasses override to check attribute values. ``attribute_names``
        limits which attributes are being saved (None means all).
        """
        return []

    def _before_save(self, is_new: bool) -> bool:
        """Hook called before insert or update.

        Subclasses can override to:
        - Normalize/prepare attributes
        - Return False to abort the save

        Returns:
            Whether the save should continue
        """
        return True

    def _after_save(self, is_new: bool, changed_attributes: dict[str, Any]) -> None:
        """Hook called after a successful insert or update.

        Args:
            is_new: True after an insert
            changed_attributes: Saved attribute names mapped to their
                previous values (None for an insert)
        """
        pass

    def _before_delete(self) -> bool:
        """Hook called before delete; return False to abort."""
        return True

    def _after_delete(self) -> None:
        """Hook called after a successful delete."""
        pass

    def _touch(self, is_new: bool) -> dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        names = self.attributes()
        touched = {}
        if is_new and "created_at" in names and self._attributes.get("created_at") is None:
            touched["created_at"] = now
        if "updated_at" in names:
            touched["updated_at"] = now
        self._attributes.update(touched)
        return touched

    # -- persistence --------------------------------------------------------

    def save(
        self,
        run_validation: bool = True,
        attribute_names: Optional[Sequence[str]] = None,
    ) -> bool:
        """Save record (insert when new, update otherwise).

        Uses template method pattern with hooks:
        1. validate() - skipped when run_validation is False
        2. _before_save() - preparation hook, can abort
        3. the INSERT or UPDATE
        4. _after_save() - post-save hook

        Args:
            run_validation: Validate first; an invalid record is not saved
            attribute_names: Attributes to save; None saves all of them

        Returns:
            Whether the record was saved

        Raises:
            SQLiteError: If database operation fails
        """
        if self.get_is_new_record():
            return self.insert(run_validation, attribute_names)
        return self.update(run_validation, attribute_names) is not False

    def insert(
        self,
        run_validation: bool = True,
        attributes: Optional[Sequence[str]] = None,
    ) -> bool:
        """Insert the record as a new row.

        On success the record is no longer new and the store-assigned key is
        both its current and its old primary key.

        Returns:
            True on success, False if validation failed or _before_save aborted

        Raises:
            ValueError: If a caller-supplied primary key is missing
            SQLiteError: If database operation fails
        """
        if run_validation and not self.validate(attributes):
            logger.info(f"{type(self).__name__} not inserted due to validation errors")
            return False
        if not self._before_save(True):
            logger.debug(f"{type(self).__name__} insert aborted by _before_save")
            return False

        if self.record_timestamps:
            touched = self._touch(is_new=True)
            if attributes is not None:
                attributes = [*attributes, *touched]

        values = self.get_dirty_attributes(attributes)
        primary_key = self.primary_key()
        auto_increment = self.primary_key_type == "INTEGER" and len(primary_key) == 1

        if auto_increment:
            # INTEGER PRIMARY KEY auto-increments, exclude from INSERT
            if values.get(primary_key[0]) is None:
                values.pop(primary_key[0], None)
        else:
            missing = [key for key in primary_key if self._attributes.get(key) is None]
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} is required for new "
                    f"{type(self).__name__} record"
                )
            for key in primary_key:
                values.setdefault(key, self._attributes[key])

        table = quote_name(self.table_name)
        if values:
            columns = ", ".join(quote_name(column) for column in values)
            placeholders = ", ".join("?" * len(values))
            sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"

        row_id = self.get_db().execute_insert(sql, list(values.values()))

        if auto_increment and self._attributes.get(primary_key[0]) is None:
            self._attributes[primary_key[0]] = row_id
            values[primary_key[0]] = row_id

        self._old_attributes = dict(values)
        logger.debug(f"Inserted {self!r} into {self.table_name}")

        self._after_save(True, {name: None for name in values})
        return True

    def update(
        self,
        run_validation: bool = True,
        attribute_names: Optional[Sequence[str]] = None,
    ) -> int | bool:
        """Write changed attributes to the row identified by the old primary key.

        Only dirty attributes are written. An unchanged record is not sent to
        the database at all and 0 is returned.

        Returns:
            Number of rows affected (0 is a successful outcome), or False if
            validation failed or _before_save aborted

        Raises:
            PreconditionError: If the record is new
            SQLiteError: If database operation fails
        """
        if self.get_is_new_record():
            raise PreconditionError(
                f"Cannot update new {type(self).__name__} record; insert it first"
            )
        if run_validation and not self.validate(attribute_names):
            logger.info(f"{type(self).__name__} not updated due to validation errors")
            return False
        if not self._before_save(False):
            logger.debug(f"{type(self).__name__} update aborted by _before_save")
            return False

        values = self.get_dirty_attributes(attribute_names)
        if not values:
            self._after_save(False, {})
            return 0

        if self.record_timestamps:
            values.update(self._touch(is_new=False))

        condition = self.get_old_primary_key(as_dict=True)
        rows = type(self).update_all(values, condition)

        changed_attributes = {}
        for name, value in values.items():
            changed_attributes[name] = self._old_attributes.get(name)
            self._old_attributes[name] = value

        logger.debug(f"Updated {self!r}: {sorted(values)} ({rows} rows)")
        self._after_save(False, changed_attributes)
        return rows

    def delete(self) -> int | bool:
        """Delete the row identified by the old primary key.

        The instance keeps its values but is marked as new afterwards.

        Returns:
            Number of rows deleted (0 is possible), or False if
            _before_delete aborted

        Raises:
            PreconditionError: If the record is new
            SQLiteError: If database operation fails
        """
        if self.get_is_new_record():
            raise PreconditionError(
                f"Cannot delete {type(self).__name__} record that was never saved"
            )
        if not self._before_delete():
            logger.debug(f"{type(self).__name__} delete aborted by _before_delete")
            return False

        rows = type(self).delete_all(self.get_old_primary_key(as_dict=True))
        self._old_attributes = None
        logger.debug(f"Deleted {self!r} ({rows} rows)")

        self._after_delete()
        return rows

    def refresh(self) -> bool:
        """Reload attribute values from the database.

        Returns:
            False if the record is new or its row no longer exists
        """
        if self.get_is_new_record():
            return False

        record = type(self).find_one(self.get_old_primary_key(as_dict=True))
        if record is None:
            return False

        self._attributes = dict(record._attributes)
        self._old_attributes = dict(record._old_attributes)
        self._related = {}
        return True

    # -- relations ----------------------------------------------------------

    @classmethod
    def relation_descriptor(cls, name: str) -> Relation:
        """The declared Relation named ``name`` (case-sensitive).

        Raises:
            ConfigurationError: If no such relation is declared
        """
        relation = cls._relations.get(name)
        if relation is None:
            raise ConfigurationError(f"{cls.__name__} has no relation named {name!r}")
        return relation

    def get_relation(
        self, name: str, throw_exception: bool = True
    ) -> Optional[ActiveQuery]:
        """Relational query for a declared relation of this record.

        Args:
            name: Relation name (case-sensitive)
            throw_exception: Raise when the relation is not declared;
                otherwise return None

        Raises:
            ConfigurationError: If the relation is unknown and throw_exception
        """
        relation = type(self)._relations.get(name)
        if relation is None:
            if throw_exception:
                raise ConfigurationError(
                    f"{type(self).__name__} has no relation named {name!r}"
                )
            return None
        return ActiveQuery(relation.target_class, primary_model=self, relation=relation)

    def populate_relation(self, name: str, records: Any) -> None:
        """Cache records as the value of a relation.

        The relation is not checked against the declared ones.
        """
        self._related[name] = records

    def is_relation_populated(self, name: str) -> bool:
        return name in self._related

    def get_related_records(self) -> dict[str, Any]:
        return dict(self._related)

    def link(
        self,
        name: str,
        model: "ActiveRecord",
        extra_columns: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Establish the relationship between this record and ``model``.

        The foreign key of whichever record holds it is set to the other
        record's primary key and that record is saved without validation.
        For a junction relation a junction row is inserted instead, carrying
        both keys plus ``extra_columns``.

        Raises:
            ConfigurationError: If the relation is not declared
            PreconditionError: If either primary key is null, or the link
                involves no primary key
        """
        relation = self.relation_descriptor(name)
        self._require_primary_keys(model, "link")

        if relation.via_table_name is not None:
            if self.get_is_new_record() or model.get_is_new_record():
                raise PreconditionError(
                    "Unable to link models: the models being linked "
                    "cannot be newly created"
                )
            columns = self._junction_columns(relation, model)
            columns.update(extra_columns or {})

            names = ", ".join(quote_name(column) for column in columns)
            placeholders = ", ".join("?" * len(columns))
            self.get_db().execute(
                f"INSERT INTO {quote_name(relation.via_table_name)} "
                f"({names}) VALUES ({placeholders})",
                list(columns.values()),
            )
        else:
            links_model_key = model.is_primary_key(relation.link.keys())
            links_own_key = self.is_primary_key(relation.link.values())
            inverse = {own: other for other, own in relation.link.items()}

            if links_model_key and links_own_key:
                if self.get_is_new_record() and model.get_is_new_record():
                    raise PreconditionError(
                        "Unable to link models: at most one model can be newly created"
                    )
                if self.get_is_new_record():
                    self._bind_models(inverse, self, model)
                else:
                    self._bind_models(relation.link, model, self)
            elif links_model_key:
                self._bind_models(inverse, self, model)
            elif links_own_key:
                self._bind_models(relation.link, model, self)
            else:
                raise PreconditionError(
                    "Unable to link models: the link defining the relation "
                    "does not involve any primary key"
                )

        if not relation.multiple:
            self._related[name] = model
        elif name in self._related:
            self._related[name] = [*self._related[name], model]

        logger.debug(f"Linked {self!r} -> {name} -> {model!r}")

    def unlink(self, name: str, model: "ActiveRecord", delete: bool = False) -> None:
        """Destroy the relationship between this record and ``model``.

        Args:
            name: Relation name (case-sensitive)
            model: The related record
            delete: Delete the record holding the foreign key (or the junction
                row) instead of setting the key to null and saving it

        Raises:
            ConfigurationError: If the relation is not declared
            PreconditionError: If either primary key is null, or the link
                involves no primary key
        """
        relation = self.relation_descriptor(name)
        self._require_primary_keys(model, "unlink")

        if relation.via_table_name is not None:
            where_sql, params = build_hash_condition(
                self._junction_columns(relation, model)
            )
            table = quote_name(relation.via_table_name)
            if delete:
                self.get_db().execute(f"DELETE FROM {table} WHERE {where_sql}", params)
            else:
                nulls = ", ".join(
                    f"{quote_name(column)} = NULL"
                    for column in [*relation.via_link, *relation.link.values()]
                )
                self.get_db().execute(
                    f"UPDATE {table} SET {nulls} WHERE {where_sql}", params
                )
        else:
            links_model_key = model.is_primary_key(relation.link.keys())
            links_own_key = self.is_primary_key(relation.link.values())

            if links_own_key:
                if delete:
                    model.delete()
                else:
                    for column in relation.link:
                        model.set_attribute(column, None)
                    model.save(False)
            elif links_model_key:
                for column in relation.link.values():
                    self.set_attribute(column, None)
                if delete:
                    self.delete()
                else:
                    self.save(False)
            else:
                raise PreconditionError(
                    "Unable to unlink models: the link does not involve any primary key"
                )

        if not relation.multiple:
            self._related.pop(name, None)
        elif name in self._related:
            key = model.get_primary_key()
            self._related[name] = [
                record
                for record in self._related[name]
                if record is not model and record.get_primary_key() != key
            ]

        logger.debug(f"Unlinked {self!r} -> {name} -> {model!r} (delete={delete})")

    def unlink_all(self, name: str, delete: bool = False) -> int:
        """Destroy every relationship of the named relation.

        Rows of the related class (or junction rows) are updated or deleted
        in bulk; no record instances are loaded.

        Returns:
            Number of rows updated or deleted

        Raises:
            PreconditionError: If the primary key is null or the related class
                does not hold the foreign key
        """
        relation = self.relation_descriptor(name)
        if any(value is None for value in self.get_primary_key(as_dict=True).values()):
            raise PreconditionError(
                f"Unable to unlink models: the primary key of "
                f"{type(self).__name__} is null"
            )

        if relation.via_table_name is not None:
            condition = {
                junction_column: self.get_attribute(own_column)
                for junction_column, own_column in relation.via_link.items()
            }
            where_sql, params = build_hash_condition(condition)
            table = quote_name(relation.via_table_name)
            if delete:
                rows = self.get_db().execute(
                    f"DELETE FROM {table} WHERE {where_sql}", params
                )
            else:
                nulls = ", ".join(
                    f"{quote_name(column)} = NULL" for column in relation.via_link
                )
                rows = self.get_db().execute(
                    f"UPDATE {table} SET {nulls} WHERE {where_sql}", params
                )
        else:
            if not self.is_primary_key(relation.link.values()):
                raise PreconditionError(
                    "Unable to unlink models: the related records do not hold "
                    "the foreign key"
                )
            target_class = relation.target_class
            condition = {
                target_column: self.get_attribute(own_column)
                for target_column, own_column in relation.link.items()
            }
            if delete:
                rows = target_class.delete_all(condition)
            else:
                rows = target_class.update_all(
                    {column: None for column in relation.link}, condition
                )

        self._related.pop(name, None)
        logger.debug(f"Unlinked all {name} of {self!r} ({rows} rows, delete={delete})")
        return rows

    def _require_primary_keys(self, model: "ActiveRecord", action: str) -> None:
        for record in (self, model):
            key = record.get_primary_key(as_dict=True)
            if any(value is None for value in key.values()):
                raise PreconditionError(
                    f"Unable to {action} models: the primary key of "
                    f"{type(record).__name__} is null"
                )

    def _junction_columns(self, relation: Relation, model: "ActiveRecord") -> dict:
        columns = {
            junction_column: self.get_attribute(own_column)
            for junction_column, own_column in relation.via_link.items()
        }
        for target_column, junction_column in relation.link.items():
            columns[junction_column] = model.get_attribute(target_column)
        return columns

    @staticmethod
    def _bind_models(
        link: Mapping[str, str], foreign_model: "ActiveRecord", primary_model: "ActiveRecord"
    ) -> None:
        """Copy primary_model's key into foreign_model and save it unvalidated.

        ``link`` maps foreign_model columns to primary_model columns.
        """
        values = {
            foreign_column: primary_model.get_attribute(primary_column)
            for foreign_column, primary_column in link.items()
        }
        if any(value is None for value in values.values()):
            raise PreconditionError(
                f"Unable to link models: the primary key of "
                f"{type(primary_model).__name__} is null"
            )
        for column, value in values.items():
            foreign_model.set_attribute(column, value)
        foreign_model.save(False)
