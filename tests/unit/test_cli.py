"""
Unit tests for the history CLI.

Tests cover:
- Schema file loading (YAML and JSON)
- derive command output
- log command against a tracked database
"""

import json
import os
import tempfile

import pytest

from revtrack.config import Settings
from revtrack.history.tracker import track
from revtrack.schema.types import ModelDef
from revtrack.store import Store
from revtrack.tools.history_cli import HistoryCLI, SchemaFileError, load_schema_file

SCHEMA_YAML = """
models:
  - name: User
    fields:
      - {name: email, kind: str, unique: true, allow_null: false}
      - {name: name, kind: str}
  - name: Post
    table_name: posts
    fields:
      - {name: title, kind: str}
      - {name: user_id, kind: int, references: User.id, on_delete: CASCADE}
    indexes:
      - [user_id]
"""


class TestLoadSchemaFile:
    """Tests for load_schema_file."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    def test_load_yaml(self, data_dir):
        """YAML schema files become ModelDefs."""
        path = os.path.join(data_dir, "models.yaml")
        with open(path, "w") as f:
            f.write(SCHEMA_YAML)

        models = load_schema_file(path)

        assert [m.name for m in models] == ["User", "Post"]
        assert models[0].get_field("email").unique is True
        assert models[1].table_name == "posts"
        assert models[1].get_field("user_id").references == "User.id"

    def test_load_json(self, data_dir):
        """JSON schema files are accepted too."""
        path = os.path.join(data_dir, "models.json")
        with open(path, "w") as f:
            json.dump({"models": [{"name": "Tag", "fields": [{"name": "label", "kind": "str"}]}]}, f)

        models = load_schema_file(path)

        assert models == [ModelDef.from_dict({"name": "Tag", "fields": [{"name": "label", "kind": "str"}]})]

    def test_missing_file(self, data_dir):
        """Missing files raise SchemaFileError."""
        with pytest.raises(SchemaFileError, match="Cannot read"):
            load_schema_file(os.path.join(data_dir, "nope.yaml"))

    def test_invalid_document(self, data_dir):
        """Documents failing validation raise SchemaFileError."""
        path = os.path.join(data_dir, "bad.yaml")
        with open(path, "w") as f:
            f.write("models:\n  - fields: []\n")

        with pytest.raises(SchemaFileError, match="Invalid schema file"):
            load_schema_file(path)

    def test_invalid_kind(self, data_dir):
        """Unknown field kinds raise SchemaFileError."""
        path = os.path.join(data_dir, "kind.yaml")
        with open(path, "w") as f:
            f.write("models:\n  - name: A\n    fields:\n      - {name: x, kind: varchar}\n")

        with pytest.raises(SchemaFileError, match="Invalid field kind"):
            load_schema_file(path)


class TestHistoryCLI:
    """Tests for HistoryCLI commands."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def schema_path(self, data_dir):
        """Write the sample schema file."""
        path = os.path.join(data_dir, "models.yaml")
        with open(path, "w") as f:
            f.write(SCHEMA_YAML)
        return path

    def test_derive_all(self, schema_path):
        """derive prints one history schema per model."""
        output = HistoryCLI().derive(load_schema_file(schema_path))

        assert [m["name"] for m in output] == ["UserHistory", "PostHistory"]
        post = output[1]
        assert "table_name" not in post
        assert post["timestamps"] is False
        fields = {f["name"]: f for f in post["fields"]}
        assert "references" not in fields["user_id"]
        assert fields["revision_id"]["primary_key"] is True
        assert fields["archived_at"]["default"] == "now"
        assert ["post_id"] in post["indexes"]

    def test_derive_one_with_author(self, schema_path):
        """derive honors --model, --author-field and --suffix."""
        output = HistoryCLI().derive(
            load_schema_file(schema_path),
            model_name="User",
            author_field="changed_by",
            suffix="Revision",
        )

        assert len(output) == 1
        assert output[0]["name"] == "UserRevision"
        names = [f["name"] for f in output[0]["fields"]]
        assert names[-1] == "changed_by"
        email = next(f for f in output[0]["fields"] if f["name"] == "email")
        assert "unique" not in email

    def test_derive_uses_settings(self, schema_path):
        """Defaults for suffix, author and exclusions come from Settings."""
        settings = Settings(model_suffix="Log", author_field="actor", excluded_attributes="email")

        output = HistoryCLI(settings).derive(load_schema_file(schema_path), model_name="User")

        assert output[0]["name"] == "UserLog"
        names = [f["name"] for f in output[0]["fields"]]
        assert "email" not in names
        assert names[-1] == "actor"

    def test_derive_unknown_model(self, schema_path):
        """An unknown --model is an error."""
        with pytest.raises(SchemaFileError, match="Comment"):
            HistoryCLI().derive(load_schema_file(schema_path), model_name="Comment")

    @pytest.mark.asyncio
    async def test_log(self, data_dir, schema_path):
        """log lists the archived revisions of one record."""
        db_path = os.path.join(data_dir, "app.db")
        models = load_schema_file(schema_path)
        store = Store(db_path)
        for definition in models:
            store.define_model(definition)
        user_model = store.get_model("User")
        track(user_model, store)
        await store.sync()

        user = await user_model.create({"email": "a@example.com", "name": "foo"})
        await user.update({"name": "bar"})
        await user.update({"name": "baz"})

        rows = await HistoryCLI().log(db_path, models, "User", str(user.id))

        assert [r["name"] for r in rows] == ["foo", "bar"]
        assert all(r["user_id"] == user.id for r in rows)

    @pytest.mark.asyncio
    async def test_log_missing_database(self, data_dir, schema_path):
        """log refuses to create a database."""
        with pytest.raises(SchemaFileError, match="does not exist"):
            await HistoryCLI().log(
                os.path.join(data_dir, "missing.db"), load_schema_file(schema_path), "User", "1"
            )
