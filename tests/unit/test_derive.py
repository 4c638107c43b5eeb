"""
Unit tests for history schema derivation.

Tests cover:
- Field copying and identity removal
- Constraint property stripping
- Shadow-only fields and name collisions
- Model-level option inheritance
- Derivation errors
"""

import pytest

from revtrack.errors import SchemaDerivationError
from revtrack.schema.derive import SchemaDeriver
from revtrack.schema.types import FieldKind, FieldProperty, ModelDef, ModelOption, field, now_ms


def user_def(**kwargs) -> ModelDef:
    return ModelDef(
        name="User",
        fields=(
            field("email", "str", unique=True, allow_null=False),
            field("name", "str", getter=str.upper, setter=str.strip),
            field("team_id", "int", references="Team.id", on_delete="CASCADE"),
        ),
        **kwargs,
    ).with_defaults()


class TestSchemaDeriver:
    """Tests for SchemaDeriver.derive()."""

    def test_field_order(self):
        """Copied fields come first, shadow-only fields last."""
        fields = SchemaDeriver().derive(user_def())

        assert [f.name for f in fields] == [
            "email",
            "name",
            "team_id",
            "created_at",
            "updated_at",
            "revision_id",
            "archived_at",
            "user_id",
        ]

    def test_identity_not_copied(self):
        """The source primary key lands only in the source key field."""
        fields = {f.name: f for f in SchemaDeriver().derive(user_def())}

        assert "id" not in fields
        assert fields["user_id"].kind == FieldKind.INTEGER
        assert fields["user_id"].primary_key is False
        assert fields["user_id"].allow_null is True

    def test_constraints_stripped(self):
        """Copied fields lose uniqueness, references, accessors and NOT NULL."""
        fields = {f.name: f for f in SchemaDeriver().derive(user_def())}

        assert fields["email"].unique is False
        assert fields["email"].allow_null is True
        assert fields["team_id"].references is None
        assert fields["team_id"].on_delete is None
        assert fields["name"].getter is None
        assert fields["name"].setter is None
        for f in fields.values():
            if f.name != "revision_id":
                assert not f.has_property(FieldProperty.PRIMARY_KEY)
                assert not f.has_property(FieldProperty.UNIQUE)

    def test_timestamp_defaults_stripped(self):
        """Archived timestamps keep no generated default."""
        fields = {f.name: f for f in SchemaDeriver().derive(user_def())}

        assert fields["created_at"].default is None
        assert fields["updated_at"].default is None
        assert fields["archived_at"].default is now_ms
        assert fields["archived_at"].allow_null is False

    def test_revision_id_is_primary_key(self):
        """revision_id is the autoincrement surrogate key."""
        fields = {f.name: f for f in SchemaDeriver().derive(user_def())}

        assert fields["revision_id"].primary_key is True
        assert fields["revision_id"].auto_increment is True

    def test_excluded_fields(self):
        """Excluded source fields are not copied."""
        fields = SchemaDeriver(excluded_fields={"email"}).derive(user_def())
        assert "email" not in [f.name for f in fields]

    def test_custom_excluded_properties(self):
        """Only the configured properties are stripped."""
        fields = {
            f.name: f for f in SchemaDeriver(excluded_properties=frozenset()).derive(user_def())
        }
        assert fields["team_id"].references == "Team.id"
        assert fields["email"].unique is True

    def test_author_field(self):
        """Author mode adds a nullable JSON author column."""
        fields = {f.name: f for f in SchemaDeriver(author_field_name="author_id").derive(user_def())}

        assert fields["author_id"].kind == FieldKind.JSON
        assert fields["author_id"].allow_null is True

    def test_shadow_fields_win_collisions(self):
        """A source field named like a shadow-only field is replaced."""
        source = ModelDef(
            name="Doc",
            fields=(field("archived_at", "str"), field("title", "str")),
        ).with_defaults()

        fields = SchemaDeriver().derive(source)
        names = [f.name for f in fields]

        assert names.count("archived_at") == 1
        archived = next(f for f in fields if f.name == "archived_at")
        assert archived.kind == FieldKind.TIMESTAMP

    def test_source_key_for(self):
        """Source key defaults to <snake model>_<pk>; explicit names win."""
        source = ModelDef(
            name="BlogPost", fields=(field("slug", "str", primary_key=True),)
        ).with_defaults()

        assert SchemaDeriver().source_key_for(source) == "blog_post_slug"
        assert SchemaDeriver(source_key_field="origin").source_key_for(source) == "origin"

    def test_string_identity(self):
        """The source key takes the kind of the source identity."""
        source = ModelDef(
            name="Tag", fields=(field("slug", "str", primary_key=True), field("label", "str"))
        ).with_defaults()

        fields = {f.name: f for f in SchemaDeriver().derive(source)}
        assert fields["tag_slug"].kind == FieldKind.STRING

    def test_not_a_model_def(self):
        """Non-ModelDef input raises SchemaDerivationError."""
        with pytest.raises(SchemaDerivationError) as exc_info:
            SchemaDeriver().derive({"name": "User"})
        assert exc_info.value.code == "SCHEMA_DERIVATION_ERROR"

    def test_missing_primary_key(self):
        """A source without identity cannot be archived."""
        with pytest.raises(SchemaDerivationError, match="no primary key") as exc_info:
            SchemaDeriver().derive(ModelDef(name="User", fields=(field("name", "str"),)))
        assert exc_info.value.model == "User"

    def test_invalid_shadow_field_chained(self):
        """Invalid derived fields raise SchemaDerivationError chained from the cause."""
        with pytest.raises(SchemaDerivationError) as exc_info:
            SchemaDeriver(revision_id_field="").derive(user_def())
        assert isinstance(exc_info.value.__cause__, ValueError)


class TestDeriveModel:
    """Tests for SchemaDeriver.derive_model()."""

    def test_defaults(self):
        """History model has no timestamps, own table name and an index on the source key."""
        shadow = SchemaDeriver().derive_model(user_def(), "UserHistory")

        assert shadow.name == "UserHistory"
        assert shadow.timestamps is False
        assert shadow.table_name is None
        assert shadow.resolved_table_name == "user_history"
        assert shadow.primary_key.name == "revision_id"
        assert ("user_id",) in shadow.indexes
        assert shadow.description == "Revision history of User"

    def test_excluded_names(self):
        """Table name and unique keys are not inherited by default."""
        source = user_def(table_name="people", unique_keys=(("email", "team_id"),))

        shadow = SchemaDeriver().derive_model(source, "UserHistory")

        assert shadow.table_name is None
        assert shadow.unique_keys == ()

    def test_table_name_inherited_when_allowed(self):
        """A kept table name gets a _history suffix."""
        source = user_def(table_name="people")

        shadow = SchemaDeriver(excluded_names=frozenset()).derive_model(source, "UserHistory")

        assert shadow.table_name == "people_history"

    def test_indexes_filtered(self):
        """Indexes over fields missing from the history schema are dropped."""
        source = user_def(indexes=(("email",), ("name", "team_id")))

        shadow = SchemaDeriver(excluded_fields={"email"}).derive_model(source, "UserHistory")

        assert ("email",) not in shadow.indexes
        assert ("name", "team_id") in shadow.indexes

    def test_description_inherited(self):
        """Description is copied unless excluded."""
        source = user_def(description="People")

        assert SchemaDeriver().derive_model(source, "UserHistory").description == "People"
        deriver = SchemaDeriver(excluded_names={ModelOption.DESCRIPTION})
        assert deriver.derive_model(source, "UserHistory").description == "Revision history of User"
