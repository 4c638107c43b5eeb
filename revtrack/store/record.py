"""
Record instances returned by store models.

A Record keeps two value maps: the current (possibly modified) values and
the values as last persisted. Both hold decoded Python values, never the
encoded SQLite representation. Field getters and setters apply only to
attribute access; ``data_values`` and ``previous_values`` are raw.

The persisted map is a deep copy, so a JSON value edited in place still
shows up in changed().
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .model import Model
    from .store import Transaction


class Record:
    """One row of a model.

    Example:
        >>> user = await User.create({"name": "foo"})
        >>> user.name = "bar"
        >>> user.changed()
        ['name']
        >>> user.previous("name")
        'foo'
        >>> await user.save()
    """

    def __init__(
        self,
        model: Model,
        values: dict[str, Any],
        is_new_record: bool = True,
    ) -> None:
        object.__setattr__(self, "_model", model)
        object.__setattr__(self, "_data", dict(values))
        object.__setattr__(
            self, "_previous", {} if is_new_record else copy.deepcopy(values)
        )
        object.__setattr__(self, "_is_new", is_new_record)

    def __getattr__(self, name: str) -> Any:
        model = object.__getattribute__(self, "_model")
        if model.definition.get_field(name) is not None:
            return self.get(name)
        raise AttributeError(f"'{model.name}' record has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if self._model.definition.get_field(name) is not None:
            self.set(name, value)
        else:
            object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        return f"<{self._model.name} {self._data!r}>"

    @property
    def model(self) -> Model:
        return self._model

    @property
    def is_new_record(self) -> bool:
        return self._is_new

    @property
    def identity(self) -> Any:
        """Primary key value as persisted (current value for new records)."""
        pk = self._model.primary_key.name
        if self._is_new:
            return self._data.get(pk)
        return self._previous.get(pk)

    @property
    def data_values(self) -> dict[str, Any]:
        return dict(self._data)

    @property
    def previous_values(self) -> dict[str, Any]:
        """Values as last persisted; empty for records never saved."""
        return dict(self._previous)

    def get(self, name: str, raw: bool = False) -> Any:
        value = self._data.get(name)
        f = self._model.definition.get_field(name)
        if not raw and f is not None and f.getter is not None:
            return f.getter(value)
        return value

    def set(self, name: str, value: Any, raw: bool = False) -> None:
        f = self._model.definition.get_field(name)
        if f is None:
            raise AttributeError(f"'{self._model.name}' has no field '{name}'")
        if not raw and f.setter is not None:
            value = f.setter(value)
        self._data[name] = value

    def previous(self, name: str) -> Any:
        return self._previous.get(name)

    def changed(self) -> list[str]:
        """Names of fields whose value differs from the persisted state."""
        if self._is_new:
            return [k for k, v in self._data.items() if v is not None]
        return [k for k, v in self._data.items() if self._previous.get(k) != v]

    def to_dict(self) -> dict[str, Any]:
        return {name: self.get(name) for name in self._model.definition.get_field_names()}

    async def save(self, transaction: Transaction | None = None) -> Record:
        return await self._model.save_record(self, transaction=transaction)

    async def update(
        self,
        values: dict[str, Any],
        transaction: Transaction | None = None,
    ) -> Record:
        for name, value in values.items():
            self.set(name, value)
        return await self.save(transaction=transaction)

    async def destroy(self, transaction: Transaction | None = None) -> None:
        await self._model.destroy_record(self, transaction=transaction)

    async def reload(self, transaction: Transaction | None = None) -> Record:
        fresh = await self._model.find_by_pk(self.identity, transaction=transaction)
        if fresh is not None:
            self._mark_persisted(fresh.data_values)
        return self

    async def get_related(self, name: str, transaction: Transaction | None = None) -> Any:
        """Traverse an association declared with has_many/belongs_to."""
        return await self._model.get_related(self, name, transaction=transaction)

    def _mark_persisted(self, values: dict[str, Any] | None = None) -> None:
        if values is not None:
            object.__setattr__(self, "_data", dict(values))
        object.__setattr__(self, "_previous", copy.deepcopy(self._data))
        object.__setattr__(self, "_is_new", False)

    def _mark_destroyed(self) -> None:
        object.__setattr__(self, "_previous", {})
        object.__setattr__(self, "_is_new", True)
