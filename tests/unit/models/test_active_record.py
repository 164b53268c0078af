"""Unit tests for base ActiveRecord class (ActiveRecord pattern).

Tests attribute access, identity resolution, query entry points and the
persistence lifecycle against a real SQLite database.
"""

import pytest

from recordkit.database import SQLiteError
from recordkit.models import ActiveRecord, ConfigurationError, PreconditionError
from tests.fixtures.models import Account, Customer, Item, Order, OrderItem


def create_customer(**kwargs):
    attrs = {"name": "Ada Lovelace", "email": "ada@example.com", "status": 1}
    attrs.update(kwargs)
    customer = Customer(**attrs)
    assert customer.insert() is True
    return customer


class TestActiveRecordBase:
    """Test base ActiveRecord class functionality."""

    def test_active_record_requires_table_name(self):
        """Test that ActiveRecord subclasses must define table_name."""

        class InvalidRecord(ActiveRecord):
            pass

        with pytest.raises(AttributeError, match="table_name"):
            InvalidRecord()

    def test_active_record_requires_primary_key(self):
        """Test that ActiveRecord subclasses must define primary_key_columns."""

        class InvalidRecord(ActiveRecord):
            table_name = "test"
            columns = ("id",)

        with pytest.raises(AttributeError, match="primary_key_columns"):
            InvalidRecord()

    def test_rejects_invalid_fields(self):
        with pytest.raises(ValueError, match="Invalid fields"):
            Customer(name="Ada", nickname="should fail")

    def test_get_db_without_binding_raises(self):
        with pytest.raises(ConfigurationError, match="use_database"):
            Customer.get_db()

    def test_get_db_returns_bound_database(self, bound_db):
        assert Customer.get_db() is bound_db
        assert Order.get_db() is bound_db


class TestAttributeAccess:
    """Test get/set/has attribute."""

    def test_get_attribute_returns_value(self):
        customer = Customer(name="Ada")
        assert customer.get_attribute("name") == "Ada"
        assert customer.name == "Ada"

    def test_get_attribute_unset_or_unknown_returns_none(self):
        customer = Customer(name="Ada")
        assert customer.get_attribute("email") is None
        assert customer.get_attribute("no_such_column") is None
        assert customer.email is None

    def test_unknown_attribute_syntax_raises_attribute_error(self):
        customer = Customer(name="Ada")
        with pytest.raises(AttributeError):
            customer.no_such_column

    def test_set_attribute_stores_without_persisting(self):
        customer = Customer(name="Ada")
        customer.set_attribute("email", "ada@example.com")
        customer.status = 2
        assert customer.get_attributes(["email", "status"]) == {
            "email": "ada@example.com",
            "status": 2,
        }
        assert customer.get_is_new_record() is True

    def test_set_attribute_rejects_unknown_name(self):
        customer = Customer(name="Ada")
        with pytest.raises(ValueError, match="no attribute named"):
            customer.set_attribute("nickname", "x")

    def test_has_attribute_independent_of_value(self):
        customer = Customer()
        assert customer.has_attribute("email") is True
        assert customer.has_attribute("nickname") is False
        assert Customer.has_attribute("status") is True

    def test_attributes_introspected_from_schema(self, bound_db):
        assert Item.attributes() == ["id", "name", "price"]
        assert Item(name="Widget").name == "Widget"


class TestIdentity:
    """Test primary key resolution and equality."""

    def test_primary_key_is_always_a_list(self):
        assert Customer.primary_key() == ["id"]
        assert OrderItem.primary_key() == ["order_id", "item_id"]

    def test_primary_key_missing_raises_configuration_error(self):
        class NoKey(ActiveRecord):
            table_name = "nokey"
            primary_key_columns = ()

        with pytest.raises(ConfigurationError):
            NoKey.primary_key()

    def test_get_primary_key_scalar_or_dict(self):
        customer = Customer(id=7, name="Ada")
        assert customer.get_primary_key() == 7
        assert customer.get_primary_key(as_dict=True) == {"id": 7}

    def test_composite_key_always_dict(self):
        row = OrderItem(order_id=1, item_id=2)
        assert row.get_primary_key() == {"order_id": 1, "item_id": 2}
        assert row.get_primary_key(as_dict=False) == {"order_id": 1, "item_id": 2}
        assert row.get_old_primary_key() == {"order_id": None, "item_id": None}

    def test_is_primary_key_order_independent(self):
        assert OrderItem.is_primary_key(["item_id", "order_id"]) is True
        assert OrderItem.is_primary_key(["order_id"]) is False
        assert Customer.is_primary_key({"id": 1}.keys()) is True
        assert Customer.is_primary_key(["id", "id"]) is False

    def test_old_primary_key_of_unsaved_record_is_none(self):
        customer = Customer(id=5, name="Ada")
        assert customer.get_old_primary_key() is None
        assert customer.get_old_primary_key(as_dict=True) == {"id": None}

    def test_old_primary_key_survives_key_mutation(self, bound_db):
        customer = create_customer()
        loaded = Customer.find_one(customer.id)
        original = loaded.get_primary_key()

        loaded.id = 999

        assert loaded.get_primary_key() == 999
        assert loaded.get_old_primary_key() == original

    def test_equals_false_for_new_records(self):
        assert Customer(id=1, name="Ada").equals(Customer(id=1, name="Ada")) is False

    def test_equals_same_row(self, bound_db):
        customer = create_customer()
        assert customer.equals(Customer.find_one(customer.id)) is True

    def test_equals_different_rows_or_tables(self, bound_db):
        first = create_customer()
        second = create_customer(name="Grace Hopper")
        order = Order(id=first.id)
        order.insert()

        assert first.equals(second) is False
        assert first.equals(order) is False
        assert first.equals("not a record") is False


class TestQueries:
    """Test class-level query entry points."""

    def test_find_returns_unexecuted_query(self):
        query = Customer.find()
        assert query.model_class is Customer

    def test_find_one_by_scalar(self, bound_db):
        customer = create_customer()
        found = Customer.find_one(customer.id)
        assert found is not None
        assert found.name == "Ada Lovelace"
        assert found.get_is_new_record() is False

    def test_find_one_not_found_returns_none(self, bound_db):
        assert Customer.find_one(12345) is None

    def test_find_one_matches_find_where(self, bound_db):
        for name in ("A", "B", "C"):
            create_customer(name=name)
        target = Customer.find_all({"name": "B"})[0]

        via_find_one = Customer.find_one(target.id)
        via_query = Customer.find().where({"id": target.id}).one()

        assert via_find_one.get_attributes() == via_query.get_attributes()

    def test_find_one_by_attribute_map(self, bound_db):
        create_customer(name="A", status=1)
        create_customer(name="B", status=2)
        assert Customer.find_one({"status": 2}).name == "B"

    def test_find_all_by_key_list(self, bound_db):
        ids = [create_customer(name=n).id for n in ("A", "B", "C")]
        found = Customer.find_all([ids[0], ids[2]])
        assert sorted(c.name for c in found) == ["A", "C"]

    def test_find_all_empty_list_returns_nothing(self, bound_db):
        create_customer()
        create_customer(name="Grace Hopper")
        assert Customer.find_all([]) == []

    def test_find_all_no_match_returns_empty_list(self, bound_db):
        assert Customer.find_all({"status": 99}) == []

    def test_find_all_composite_key(self, bound_db):
        order = Order(total=1.0)
        order.insert()
        first, second = Item(name="A"), Item(name="B")
        first.insert()
        second.insert()
        OrderItem(order_id=order.id, item_id=first.id).insert()
        OrderItem(order_id=order.id, item_id=second.id).insert()

        rows = OrderItem.find_all([{"order_id": order.id, "item_id": second.id}])
        assert len(rows) == 1
        assert rows[0].item_id == second.id

    def test_update_all_with_condition(self, bound_db):
        create_customer(name="A", status=1)
        create_customer(name="B", status=2)
        create_customer(name="C", status=2)

        assert Customer.update_all({"status": 3}, {"status": 2}) == 2
        assert Customer.find().where({"status": 3}).count() == 2

    def test_update_all_without_condition_hits_every_row(self, bound_db):
        for name in ("A", "B", "C"):
            create_customer(name=name)

        assert Customer.update_all({"status": 0}) == 3
        assert Customer.update_all({}, None) == 3
        assert Customer.find().where({"status": 0}).count() == 3

    def test_update_all_raw_condition(self, bound_db):
        create_customer(name="A", visits=1)
        create_customer(name="B", visits=5)
        assert Customer.update_all({"status": 9}, "visits > ?", [2]) == 1

    def test_update_all_counters(self, bound_db):
        customer = create_customer(visits=2)
        assert Customer.update_all_counters({"visits": 3}, {"id": customer.id}) == 1
        customer.refresh()
        assert customer.visits == 5

    def test_delete_all_with_condition(self, bound_db):
        create_customer(name="A", status=1)
        create_customer(name="B", status=2)
        assert Customer.delete_all({"status": 2}) == 1
        assert Customer.find().count() == 1

    def test_delete_all_without_condition_removes_every_row(self, bound_db):
        for name in ("A", "B", "C"):
            create_customer(name=name)
        assert Customer.delete_all(None) == 3
        assert Customer.find().count() == 0

    def test_update_all_by_primary_key_value(self, bound_db):
        target = create_customer(name="A")
        create_customer(name="B")

        assert Customer.update_all({"status": 5}, target.id) == 1
        assert Customer.find_one(target.id).status == 5

    def test_update_all_counters_by_key_list(self, bound_db):
        ids = [create_customer(name=n, visits=0).id for n in ("A", "B", "C")]

        assert Customer.update_all_counters({"visits": 2}, [ids[0], ids[1]]) == 2
        assert Customer.find().where({"visits": 2}).count() == 2

    def test_delete_all_by_key_list(self, bound_db):
        ids = [create_customer(name=n).id for n in ("A", "B", "C")]

        assert Customer.delete_all([ids[0], ids[2]]) == 2
        assert [c.id for c in Customer.find_all(ids)] == [ids[1]]

    def test_delete_all_empty_key_list_deletes_nothing(self, bound_db):
        create_customer()
        assert Customer.delete_all([]) == 0
        assert Customer.find().count() == 1

    def test_delete_all_composite_key_list(self, bound_db):
        order = Order(total=1.0)
        order.insert()
        first, second = Item(name="A"), Item(name="B")
        first.insert()
        second.insert()
        OrderItem(order_id=order.id, item_id=first.id).insert()
        OrderItem(order_id=order.id, item_id=second.id).insert()

        deleted = OrderItem.delete_all([{"order_id": order.id, "item_id": first.id}])

        assert deleted == 1
        assert [row.item_id for row in OrderItem.find_all({"order_id": order.id})] == [
            second.id
        ]


class TestPersistence:
    """Test save/insert/update/delete lifecycle."""

    def test_insert_assigns_key_and_marks_not_new(self, bound_db):
        customer = Customer(name="Ada")
        assert customer.get_is_new_record() is True

        assert customer.insert() is True

        assert customer.id is not None
        assert customer.get_is_new_record() is False
        assert customer.get_old_primary_key() == customer.get_primary_key()

    def test_insert_fails_validation_without_writing(self, bound_db):
        customer = Customer(email="nobody@example.com")
        assert customer.insert() is False
        assert customer.get_errors() == ["name is required"]
        assert customer.get_is_new_record() is True
        assert Customer.find().count() == 0

    def test_insert_without_validation(self, bound_db):
        customer = Customer(name="")
        assert customer.insert(run_validation=False) is True

    def test_insert_selected_attributes_only(self, bound_db):
        customer = Customer(name="Ada", email="ada@example.com")
        customer.insert(attributes=["name"])

        stored = Customer.find_one(customer.id)
        assert stored.email is None
        assert customer.is_attribute_changed("email") is True

    def test_insert_text_key_requires_value(self, bound_db, sample_account):
        sample_account.pop("id")
        with pytest.raises(ValueError, match="id is required"):
            Account(**sample_account).insert()

    def test_save_dispatches_insert_then_update(self, bound_db):
        customer = Customer(name="Ada")
        assert customer.save() is True
        customer_id = customer.id

        customer.email = "ada@example.com"
        assert customer.save() is True

        assert customer.id == customer_id
        assert Customer.find_one(customer_id).email == "ada@example.com"
        assert Customer.find().count() == 1

    def test_save_returns_false_on_validation_failure(self, bound_db):
        customer = create_customer()
        customer.name = ""
        assert customer.save() is False
        assert Customer.find_one(customer.id).name == "Ada Lovelace"

    def test_update_writes_only_dirty_attributes(self, bound_db):
        customer = create_customer()
        loaded = Customer.find_one(customer.id)
        loaded.email = "new@example.com"

        assert loaded.get_dirty_attributes() == {"email": "new@example.com"}
        assert loaded.update() == 1
        assert loaded.get_dirty_attributes() == {}
        assert loaded.get_old_attribute("email") == "new@example.com"

    def test_update_unchanged_returns_zero_not_false(self, bound_db):
        customer = Customer.find_one(create_customer().id)

        result = customer.update()

        assert result == 0
        assert result is not False

    def test_update_validation_failure_returns_false(self, bound_db):
        customer = Customer.find_one(create_customer().id)
        customer.name = None

        result = customer.update()

        assert result is False

    def test_update_targets_old_primary_key(self, bound_db):
        customer = Customer.find_one(create_customer().id)
        old_id = customer.id
        customer.id = old_id + 100

        assert customer.update() == 1
        assert Customer.find_one(old_id) is None
        assert Customer.find_one(old_id + 100) is not None
        assert customer.get_old_primary_key() == old_id + 100

    def test_update_new_record_raises(self, bound_db):
        with pytest.raises(PreconditionError):
            Customer(name="Ada").update()

    def test_delete_returns_count_and_detaches(self, bound_db):
        customer = create_customer()

        assert customer.delete() == 1

        assert customer.get_is_new_record() is True
        assert customer.name == "Ada Lovelace"
        assert Customer.find_one(customer.id) is None

    def test_delete_missing_row_returns_zero(self, bound_db):
        customer = create_customer()
        Customer.delete_all({"id": customer.id})
        assert customer.delete() == 0

    def test_delete_new_record_raises(self, bound_db):
        with pytest.raises(PreconditionError):
            Customer(name="Ada").delete()

    def test_refresh_reloads_values(self, bound_db):
        customer = create_customer()
        Customer.update_all({"name": "Changed"}, {"id": customer.id})

        assert customer.refresh() is True
        assert customer.name == "Changed"
        assert customer.get_dirty_attributes() == {}

    def test_refresh_after_row_removed(self, bound_db):
        customer = create_customer()
        Customer.delete_all({"id": customer.id})
        assert customer.refresh() is False

    def test_set_is_new_record(self, bound_db):
        customer = Customer(id=1, name="Ada")
        customer.set_is_new_record(False)
        assert customer.is_new_record is False
        assert customer.get_old_primary_key() == 1


class TestSaveHooks:
    """Test hook methods (_before_save, _after_save, _before_delete, _after_delete)."""

    def test_save_calls_hooks_in_order(self, bound_db):
        call_order = []

        class HookCustomer(Customer):
            def validate(self, attribute_names=None):
                call_order.append("validate")
                return super().validate(attribute_names)

            def _before_save(self, is_new):
                call_order.append(("before", is_new))
                return True

            def _after_save(self, is_new, changed_attributes):
                call_order.append(("after", is_new, sorted(changed_attributes)))

        customer = HookCustomer(name="Ada")
        customer.save()
        customer.email = "ada@example.com"
        customer.save()

        assert call_order == [
            "validate",
            ("before", True),
            ("after", True, ["id", "name"]),
            "validate",
            ("before", False),
            ("after", False, ["email"]),
        ]

    def test_before_save_can_abort(self, bound_db):
        class AbortingCustomer(Customer):
            def _before_save(self, is_new):
                return False

        customer = AbortingCustomer(name="Ada")
        assert customer.insert() is False
        assert customer.get_is_new_record() is True
        assert Customer.find().count() == 0

    def test_before_save_can_modify_attributes(self, bound_db):
        class NormalizingCustomer(Customer):
            def _before_save(self, is_new):
                self.email = self.email.lower()
                return True

        customer = NormalizingCustomer(name="Ada", email="ADA@EXAMPLE.COM")
        customer.save()

        assert Customer.find_one(customer.id).email == "ada@example.com"

    def test_after_save_receives_previous_values(self, bound_db):
        changes = []

        class AuditedCustomer(Customer):
            def _after_save(self, is_new, changed_attributes):
                changes.append(changed_attributes)

        customer = AuditedCustomer.find_one(create_customer().id)
        customer.name = "Grace Hopper"
        customer.update()

        assert changes == [{"name": "Ada Lovelace"}]

    def test_after_save_not_called_on_database_error(self, bound_db):
        after_save_called = False

        class BrokenOrder(Order):
            def _after_save(self, is_new, changed_attributes):
                nonlocal after_save_called
                after_save_called = True

        order = BrokenOrder(customer_id=424242)  # violates the foreign key

        with pytest.raises(SQLiteError):
            order.save()

        assert after_save_called is False
        assert order.get_is_new_record() is True

    def test_before_delete_can_abort(self, bound_db):
        class GuardedCustomer(Customer):
            def _before_delete(self):
                return False

        customer = GuardedCustomer.find_one(create_customer().id)
        assert customer.delete() is False
        assert Customer.find_one(customer.id) is not None


class TestTimestamps:
    """Test record_timestamps maintenance of created_at/updated_at."""

    def test_insert_sets_both_timestamps(self, bound_db):
        order = Order(total=10.0)
        order.insert()
        assert order.created_at is not None
        assert order.updated_at == order.created_at

    def test_update_only_touches_updated_at_when_dirty(self, bound_db):
        order = Order(total=10.0)
        order.insert()
        loaded = Order.find_one(order.id)
        created_at = loaded.created_at

        assert loaded.update() == 0
        assert loaded.updated_at == order.updated_at

        loaded.total = 20.0
        loaded.update()
        assert loaded.created_at == created_at
        assert Order.find_one(order.id).updated_at == loaded.updated_at
