"""
Model Engine Tests

Covers the mapping criteria language on top of SQLite.
"""

import json

import pytest

from soft_delete_hook.models import Orm, UsageError


@pytest.fixture
def users(orm):
    orm.load()
    orm.sync()
    users = orm.models["user"]
    for name, age, email in [
        ("Ada", 36, "ada@example.com"),
        ("Bob", 40, "bob@example.org"),
        ("Cy", 50, None),
        ("Dee", 60, "dee@example.com"),
    ]:
        users.create({"name": name, "age": age, "email": email})
    return users


def _names(records):
    return [r["name"] for r in records]


class TestDefinitions:
    """Test model definition and table creation"""

    def test_primary_key_is_added(self, orm):
        assert orm.models["user"].attributes["id"] == {"type": "number", "auto_increment": True}

    def test_custom_primary_key_is_kept(self, db_engine):
        orm = Orm(engine=db_engine)
        model = orm.define("tag", {"slug": {"type": "string", "required": True}}, primary_key="slug")
        orm.sync()

        model.create({"slug": "python"})

        assert "id" not in model.attributes
        assert model.find_one("python") == {"slug": "python"}

    def test_duplicate_identity_is_refused(self, orm):
        with pytest.raises(UsageError):
            orm.define("user")

    def test_attributes_added_before_sync_become_columns(self, orm):
        orm.models["pet"].attributes["nickname"] = {"type": "string"}
        orm.sync()
        assert "nickname" in orm.models["pet"].table.c

    def test_sync_is_idempotent(self, orm):
        orm.sync()
        table = orm.models["user"].table
        orm.sync()
        assert orm.models["user"].table is table

    def test_table_requires_sync(self, orm):
        with pytest.raises(RuntimeError):
            orm.models["user"].table

    def test_load_definitions(self, db_engine, tmp_path):
        path = tmp_path / "models.json"
        path.write_text(
            json.dumps(
                {
                    "invoice": {"attributes": {"total": {"type": "number"}}},
                    "invoice__lines": {"attributes": {"invoice": {"type": "number"}}},
                }
            )
        )
        orm = Orm(engine=db_engine, definitions_path=str(path))

        orm.load()
        orm.sync()

        assert orm.loaded
        assert set(orm.models) == {"invoice", "invoice__lines"}
        assert orm.models["invoice"].create({"total": 9.5})["total"] == 9.5


class TestCreate:
    """Test record creation"""

    def test_defaults_are_applied(self, orm):
        orm.sync()
        pet = orm.models["pet"].create({"name": "Tom"})
        assert pet["species"] == "cat"
        assert pet["id"] == 1

    def test_required_attribute_is_enforced(self, orm):
        orm.sync()
        with pytest.raises(UsageError, match="name"):
            orm.models["pet"].create({"species": "dog"})

    def test_unknown_attribute_is_refused(self, orm):
        orm.sync()
        with pytest.raises(UsageError, match="color"):
            orm.models["pet"].create({"name": "Tom", "color": "grey"})


class TestFind:
    """Test criteria translation on reads"""

    def test_find_everything(self, users):
        assert len(users.find()) == 4

    def test_scalar_and_list_primary_keys(self, users):
        assert _names(users.find(2)) == ["Bob"]
        assert _names(users.find([1, 3])) == ["Ada", "Cy"]

    def test_flat_and_where_conditions(self, users):
        assert _names(users.find({"name": "Bob"})) == ["Bob"]
        assert _names(users.find({"where": {"name": "Bob"}})) == ["Bob"]

    def test_null_conditions(self, users):
        assert _names(users.find({"email": None})) == ["Cy"]
        assert _names(users.find({"email": {"!=": None}})) == ["Ada", "Bob", "Dee"]

    @pytest.mark.parametrize(
        "condition,expected",
        [
            ({"<": 40}, ["Ada"]),
            ({"<=": 40}, ["Ada", "Bob"]),
            ({">": 50}, ["Dee"]),
            ({">=": 50}, ["Cy", "Dee"]),
            ({"!=": 36}, ["Bob", "Cy", "Dee"]),
            ({"in": [36, 60]}, ["Ada", "Dee"]),
            ({"nin": [36, 60]}, ["Bob", "Cy"]),
            ({">": 36, "<": 60}, ["Bob", "Cy"]),
        ],
    )
    def test_comparison_operators(self, users, condition, expected):
        assert _names(users.find({"where": {"age": condition}, "sort": "age"})) == expected

    def test_string_operators(self, users):
        assert _names(users.find({"email": {"endsWith": ".com"}})) == ["Ada", "Dee"]
        assert _names(users.find({"email": {"startsWith": "bob"}})) == ["Bob"]
        assert _names(users.find({"email": {"contains": "@example"}})) == ["Ada", "Bob", "Dee"]
        assert _names(users.find({"name": {"like": "%e%"}})) == ["Dee"]

    def test_or_and_and(self, users):
        found = users.find({"where": {"or": [{"name": "Ada"}, {"age": {">": 55}}]}, "sort": "name"})
        assert _names(found) == ["Ada", "Dee"]

        found = users.find({"and": [{"age": {">": 30}}, {"email": None}]})
        assert _names(found) == ["Cy"]

    def test_sort_limit_skip(self, users):
        assert _names(users.find({"sort": "age DESC", "limit": 2})) == ["Dee", "Cy"]
        assert _names(users.find({"sort": [{"age": "ASC"}], "skip": 1, "limit": 2})) == ["Bob", "Cy"]

    def test_select(self, users):
        assert users.find({"where": {"name": "Ada"}, "select": ["name"]}) == [{"id": 1, "name": "Ada"}]

    def test_find_one(self, users):
        assert users.find_one({"name": "Cy"})["age"] == 50
        assert users.find_one({"name": "Nobody"}) is None

    def test_find_one_refuses_multiple_matches(self, users):
        with pytest.raises(UsageError):
            users.find_one({"age": {">": 30}})

    def test_count(self, users):
        assert users.count() == 4
        assert users.count({"age": {">=": 50}}) == 2

    @pytest.mark.parametrize(
        "criteria",
        [
            {"color": "grey"},
            {"age": {"~": 3}},
            {"age": {}},
            {"or": []},
            {"where": "name"},
            {"sort": "color DESC"},
        ],
    )
    def test_malformed_criteria(self, users, criteria):
        with pytest.raises(UsageError):
            users.find(criteria)


class TestWrites:
    """Test update and destroy"""

    def test_update_returns_updated_records(self, users):
        updated = users.update({"age": {">": 45}}, {"email": "old@example.com"})
        assert _names(updated) == ["Cy", "Dee"]
        assert all(r["email"] == "old@example.com" for r in updated)

    def test_update_one(self, users):
        assert users.update_one(1, {"age": 37})["age"] == 37
        assert users.update_one(99, {"age": 37}) is None

    def test_update_one_refuses_multiple_matches(self, users):
        with pytest.raises(UsageError):
            users.update_one({"age": {">": 30}}, {"age": 1})
        assert users.count({"age": 1}) == 0

    def test_update_requires_criteria(self, users):
        with pytest.raises(UsageError):
            users.update(None, {"age": 1})

    def test_update_refuses_unknown_attribute(self, users):
        with pytest.raises(UsageError):
            users.update(1, {"color": "grey"})

    def test_empty_criteria_matches_everything(self, users):
        assert len(users.update({}, {"age": 1})) == 4

    def test_destroy(self, users):
        destroyed = users.destroy({"age": {"<": 45}})
        assert _names(destroyed) == ["Ada", "Bob"]
        assert users.count() == 2

    def test_destroy_one(self, users):
        assert users.destroy_one(3)["name"] == "Cy"
        assert users.destroy_one(3) is None
        with pytest.raises(UsageError):
            users.destroy_one({})
