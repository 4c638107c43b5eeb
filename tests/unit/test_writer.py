"""
Unit tests for RevisionWriter.

Tests cover:
- Row building from snapshots
- Single and batch writes
- Author slot consumption
- Skipped snapshots without identity
"""

import os
import tempfile

import pytest
import pytest_asyncio

from revtrack.history.author import AuthorContext
from revtrack.history.writer import RevisionWriter, Snapshot
from revtrack.schema.derive import SchemaDeriver
from revtrack.schema.types import ModelDef, field
from revtrack.store import Store


class TestRevisionWriter:
    """Tests for RevisionWriter against a real history table."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest_asyncio.fixture
    async def models(self, data_dir):
        """Source and history models, synced, without tracking hooks."""
        store = Store(os.path.join(data_dir, "writer.db"))
        user = store.define_model(ModelDef(name="User", fields=(field("name", "str"),)))
        deriver = SchemaDeriver(author_field_name="author")
        shadow = store.define_model(deriver.derive_model(user.definition, "UserHistory"))
        await store.sync()
        return user, shadow

    def snapshot(self, user, **values):
        base = {"id": 1, "name": "foo", "created_at": 1000, "updated_at": 2000}
        base.update(values)
        return Snapshot.from_values(user, base)

    @pytest.mark.asyncio
    async def test_snapshot_identity(self, models):
        """Snapshot identity is the source primary key value."""
        user, _ = models
        snap = self.snapshot(user, id=9)

        assert snap.identity == 9
        assert snap.model_name == "User"
        assert snap.identity_field == "id"

    @pytest.mark.asyncio
    async def test_single_write(self, models):
        """One snapshot becomes one history row with the source key set."""
        user, shadow = models
        writer = RevisionWriter(user, shadow, "user_id", author_context=AuthorContext())

        revision = await writer.write(self.snapshot(user))

        assert revision.revision_id == 1
        assert revision.user_id == 1
        assert revision.name == "foo"
        assert revision.created_at == 1000
        assert revision.updated_at == 2000
        assert revision.archived_at is not None
        assert await shadow.count() == 1

    @pytest.mark.asyncio
    async def test_identity_field_not_copied(self, models):
        """The source id never overrides the history primary key."""
        user, shadow = models
        writer = RevisionWriter(user, shadow, "user_id")

        await writer.write(self.snapshot(user, id=50))
        second = await writer.write(self.snapshot(user, id=50))

        assert second.revision_id == 2
        assert second.user_id == 50

    @pytest.mark.asyncio
    async def test_unknown_columns_dropped(self, models):
        """Values the history model does not declare are left out."""
        user, shadow = models
        writer = RevisionWriter(user, shadow, "user_id")
        snap = Snapshot(model_name="User", identity_field="id", values={"id": 1, "extra": "x"})

        revision = await writer.write(snap)

        assert revision.user_id == 1

    @pytest.mark.asyncio
    async def test_snapshot_without_identity_skipped(self, models):
        """A snapshot with no identity writes nothing and keeps the author slot."""
        user, shadow = models
        ctx = AuthorContext()
        ctx.set("User", "alice")
        writer = RevisionWriter(user, shadow, "user_id", author_field_name="author", author_context=ctx)

        assert await writer.write(self.snapshot(user, id=None)) is None
        assert await shadow.count() == 0
        assert ctx.peek("User") == "alice"

    @pytest.mark.asyncio
    async def test_author_consumed_once(self, models):
        """The author applies to one write, then the slot is empty."""
        user, shadow = models
        ctx = AuthorContext()
        writer = RevisionWriter(user, shadow, "user_id", author_field_name="author", author_context=ctx)

        ctx.set("User", {"id": 7, "role": "admin"})
        first = await writer.write(self.snapshot(user))
        second = await writer.write(self.snapshot(user))

        assert first.author == {"id": 7, "role": "admin"}
        assert second.author is None

    @pytest.mark.asyncio
    async def test_author_disabled(self, models):
        """Without an author field the slot is left alone."""
        user, shadow = models
        ctx = AuthorContext()
        ctx.set("User", "alice")
        writer = RevisionWriter(user, shadow, "user_id", author_context=ctx)

        revision = await writer.write(self.snapshot(user))

        assert revision.author is None
        assert ctx.peek("User") == "alice"

    @pytest.mark.asyncio
    async def test_batch_write(self, models):
        """A batch shares one author and skips snapshots without identity."""
        user, shadow = models
        ctx = AuthorContext()
        ctx.set("User", 42)
        writer = RevisionWriter(user, shadow, "user_id", author_field_name="author", author_context=ctx)

        revisions = await writer.write(
            [self.snapshot(user, id=1), self.snapshot(user, id=None), self.snapshot(user, id=2)]
        )

        assert [r.user_id for r in revisions] == [1, 2]
        assert [r.author for r in revisions] == [42, 42]
        assert ctx.peek("User") is None

    @pytest.mark.asyncio
    async def test_empty_batch_consumes_author(self, models):
        """An empty batch writes nothing but still clears the slot."""
        user, shadow = models
        ctx = AuthorContext()
        ctx.set("User", 42)
        writer = RevisionWriter(user, shadow, "user_id", author_field_name="author", author_context=ctx)

        assert await writer.write([]) == []
        assert ctx.peek("User") is None

    @pytest.mark.asyncio
    async def test_write_in_transaction_rolls_back(self, models):
        """Rows written with a transaction vanish with its rollback."""
        user, shadow = models
        writer = RevisionWriter(user, shadow, "user_id")

        tx = user.store.transaction()
        await writer.write(self.snapshot(user), transaction=tx)
        assert await shadow.count(transaction=tx) == 1
        await tx.rollback()

        assert await shadow.count() == 0

    @pytest.mark.asyncio
    async def test_explicit_author_leaves_slot(self, models):
        """An author passed in is written as-is and the slot is not touched."""
        user, shadow = models
        ctx = AuthorContext()
        ctx.set("User", "alice")
        writer = RevisionWriter(user, shadow, "user_id", author_field_name="author", author_context=ctx)

        revision = await writer.write(self.snapshot(user), author="bob")

        assert revision.author == "bob"
        assert ctx.peek("User") == "alice"
        assert writer.consume_author() == "alice"
        assert ctx.peek("User") is None
