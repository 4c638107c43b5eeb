"""
Unit tests for schema descriptors.

Tests cover:
- FieldKind parsing
- FieldDef validation and property resets
- ModelDef validation and completion with defaults
- Dictionary round trips used by schema files
"""

import pytest

from revtrack.schema.types import (
    FieldDef,
    FieldKind,
    FieldProperty,
    ModelDef,
    ModelOption,
    field,
    now_ms,
    snake_case,
)


class TestFieldKind:
    """Tests for FieldKind."""

    def test_from_str(self):
        """Kinds parse from their string value."""
        assert FieldKind.from_str("str") == FieldKind.STRING
        assert FieldKind.from_str("json") == FieldKind.JSON

    def test_from_str_invalid(self):
        """Unknown kinds list the valid ones."""
        with pytest.raises(ValueError, match="Valid kinds"):
            FieldKind.from_str("varchar")

    def test_sql_types(self):
        """Kinds map to SQLite storage classes."""
        assert FieldKind.STRING.sql_type == "TEXT"
        assert FieldKind.BOOLEAN.sql_type == "INTEGER"
        assert FieldKind.BYTES.sql_type == "BLOB"


class TestFieldDef:
    """Tests for FieldDef."""

    def test_field_helper(self):
        """field() accepts kind as a string."""
        f = field("email", "str", unique=True)
        assert f.kind == FieldKind.STRING
        assert f.unique is True

    def test_empty_name_rejected(self):
        """Field names cannot be empty."""
        with pytest.raises(ValueError, match="cannot be empty"):
            field("", "str")

    def test_auto_increment_requires_primary_key(self):
        """auto_increment without primary_key is rejected."""
        with pytest.raises(ValueError, match="must be the primary key"):
            field("id", "int", auto_increment=True)

    def test_auto_increment_requires_integer(self):
        """auto_increment on a string key is rejected."""
        with pytest.raises(ValueError, match="must be an integer"):
            field("id", "str", primary_key=True, auto_increment=True)

    def test_references_format(self):
        """references must be Model.field."""
        with pytest.raises(ValueError, match="Model.field"):
            field("owner_id", "int", references="User")

        f = field("owner_id", "int", references="User.id")
        assert f.references_model == "User"
        assert f.references_field == "id"

    def test_has_property(self):
        """has_property reports non-neutral values only."""
        f = field("email", "str", unique=True)
        assert f.has_property(FieldProperty.UNIQUE)
        assert not f.has_property(FieldProperty.REFERENCES)

    def test_without_resets_properties(self):
        """without() resets the named properties and keeps the rest."""
        f = field(
            "owner_id",
            "int",
            unique=True,
            references="User.id",
            on_delete="CASCADE",
            allow_null=False,
        )

        stripped = f.without({FieldProperty.UNIQUE, FieldProperty.REFERENCES, FieldProperty.ON_DELETE})

        assert stripped.unique is False
        assert stripped.references is None
        assert stripped.on_delete is None
        assert stripped.allow_null is False
        assert f.unique is True

    def test_without_nothing_to_reset(self):
        """without() returns the same instance when nothing changes."""
        f = field("name", "str")
        assert f.without({FieldProperty.UNIQUE}) is f

    def test_default_value_callable(self):
        """Callable defaults are evaluated."""
        f = field("created", "timestamp", default=now_ms)
        assert isinstance(f.default_value(), int)
        assert field("n", "int", default=3).default_value() == 3

    def test_validate_value(self):
        """Values are checked against kind, nullability and validators."""
        f = field("age", "int", allow_null=False, validate=lambda v: "too young" if v < 18 else None)

        assert f.validate_value(30) == (True, None)
        assert f.validate_value(None)[0] is False
        assert f.validate_value("30")[0] is False
        assert f.validate_value(True)[0] is False
        assert f.validate_value(10) == (False, "too young")

    def test_column_sql(self):
        """Column clauses carry constraints but no REFERENCES."""
        assert field("email", "str", unique=True, allow_null=False).column_sql() == (
            '"email" TEXT NOT NULL UNIQUE'
        )
        pk = field("id", "int", primary_key=True, auto_increment=True)
        assert pk.column_sql() == '"id" INTEGER PRIMARY KEY AUTOINCREMENT'
        assert "REFERENCES" not in field("o", "int", references="User.id").column_sql()

    def test_dict_round_trip(self):
        """to_dict/from_dict preserve serializable attributes."""
        f = field("owner_id", "int", references="User.id", on_delete="CASCADE", allow_null=False)
        assert FieldDef.from_dict(f.to_dict()) == f

    def test_now_default_serialized(self):
        """A now_ms default is written as 'now' and read back as now_ms."""
        f = field("seen_at", "timestamp", default=now_ms)
        data = f.to_dict()
        assert data["default"] == "now"
        assert FieldDef.from_dict(data).default is now_ms


class TestModelDef:
    """Tests for ModelDef."""

    def test_duplicate_field_rejected(self):
        """Field names must be unique."""
        with pytest.raises(ValueError, match="Duplicate field"):
            ModelDef(name="User", fields=(field("name", "str"), field("name", "str")))

    def test_two_primary_keys_rejected(self):
        """At most one primary key."""
        with pytest.raises(ValueError, match="more than one primary key"):
            ModelDef(
                name="User",
                fields=(field("a", "int", primary_key=True), field("b", "int", primary_key=True)),
            )

    def test_unknown_index_field_rejected(self):
        """Indexes must name declared fields."""
        with pytest.raises(ValueError, match="unknown fields"):
            ModelDef(name="User", fields=(field("name", "str"),), indexes=(("email",),))

    def test_table_name_defaults_to_snake_case(self):
        """Table name is derived from the model name."""
        assert ModelDef(name="UserProfile").resolved_table_name == "user_profile"
        assert ModelDef(name="User", table_name="people").resolved_table_name == "people"
        assert snake_case("User") == "user"

    def test_with_defaults(self):
        """with_defaults adds id, timestamps and the owning model name."""
        model = ModelDef(name="User", fields=(field("name", "str"),)).with_defaults()

        assert model.get_field_names() == ["id", "name", "created_at", "updated_at"]
        assert model.primary_key.name == "id"
        assert model.primary_key.auto_increment is True
        assert all(f.model == "User" for f in model.fields)

    def test_with_defaults_keeps_declared_key(self):
        """A declared primary key is kept and timestamps can be disabled."""
        model = ModelDef(
            name="Tag",
            fields=(field("slug", "str", primary_key=True),),
            timestamps=False,
        ).with_defaults()

        assert model.get_field_names() == ["slug"]
        assert model.primary_key.name == "slug"

    def test_without_options(self):
        """Model-level options reset to neutral values."""
        model = ModelDef(
            name="User",
            fields=(field("email", "str"),),
            table_name="people",
            unique_keys=(("email",),),
            description="People",
        )

        stripped = model.without_options({ModelOption.TABLE_NAME, ModelOption.UNIQUE_KEYS})

        assert stripped.table_name is None
        assert stripped.unique_keys == ()
        assert stripped.get_option(ModelOption.DESCRIPTION) == "People"

    def test_dict_round_trip(self):
        """to_dict/from_dict preserve the model."""
        model = ModelDef(
            name="Post",
            fields=(field("title", "str", allow_null=False), field("author_id", "int")),
            indexes=(("author_id",),),
            timestamps=False,
        )
        assert ModelDef.from_dict(model.to_dict()) == model
