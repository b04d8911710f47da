"""Explicit client-side state for entity collections.

A collection is an immutable tuple of slots. Every change produces a new
tuple, so the tuple held before a mutation is its rollback snapshot.

Slots are either ``Pending`` (created locally, waiting for the server to
assign an id) or ``Confirmed``. The transition functions in this module are
pure; ``EntityCollection`` owns the current tuple and notifies listeners
whenever it is replaced.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Literal, TypeVar, Union

from .models import RESOURCES, Entity

E = TypeVar("E", bound=Entity)

TEMP_ID_PREFIX = "temp-"


@dataclass(frozen=True)
class Pending(Generic[E]):
    local_id: str
    entity: E
    status: Literal["pending"] = "pending"

    @property
    def id(self) -> str:
        return self.local_id


@dataclass(frozen=True)
class Confirmed(Generic[E]):
    entity: E
    status: Literal["confirmed"] = "confirmed"

    @property
    def id(self) -> str:
        return self.entity.id


Slot = Union[Pending[E], Confirmed[E]]
Slots = tuple[Slot, ...]
Listener = Callable[[str, Slots], None]


def new_local_id(existing: Iterable[str] = (), now: Callable[[], float] = time.time) -> str:
    base = f"{TEMP_ID_PREFIX}{int(now() * 1000)}"
    taken = set(existing)
    if base not in taken:
        return base
    suffix = 1
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"


def confirmed(entities: Iterable[E]) -> Slots:
    return tuple(Confirmed(entity) for entity in entities)


def apply_create(slots: Slots, local_id: str, draft: E, *, prepend: bool = True) -> Slots:
    slot = Pending(local_id=local_id, entity=draft)
    return (slot, *slots) if prepend else (*slots, slot)


def apply_update(slots: Slots, entity: E) -> Slots:
    updated = []
    for slot in slots:
        if isinstance(slot, Confirmed) and slot.id == entity.id:
            updated.append(Confirmed(entity))
        else:
            updated.append(slot)
    return tuple(updated)


def apply_delete(slots: Slots, entity_id: str) -> Slots:
    return tuple(slot for slot in slots if slot.id != entity_id)


def commit_create(slots: Slots, local_id: str, entity: E) -> Slots:
    return tuple(
        Confirmed(entity) if isinstance(slot, Pending) and slot.local_id == local_id else slot
        for slot in slots
    )


def rollback(snapshot: Slots) -> Slots:
    return snapshot


class EntityCollection(Generic[E]):
    """Observable holder for one resource's slots."""

    def __init__(self, resource: str, model: type[E] | None = None, slots: Slots = ()) -> None:
        self.resource = resource
        self.model: type[E] = model or RESOURCES.get(resource, Entity)  # type: ignore[assignment]
        self._slots: Slots = tuple(slots)
        self._listeners: list[Listener] = []
        self.lock = asyncio.Lock()

    @property
    def slots(self) -> Slots:
        return self._slots

    @property
    def entities(self) -> list[E]:
        return [slot.entity for slot in self._slots]

    @property
    def ids(self) -> list[str]:
        return [slot.id for slot in self._slots]

    def get(self, entity_id: str) -> E | None:
        for slot in self._slots:
            if slot.id == entity_id:
                return slot.entity
        return None

    def find(self, predicate: Callable[[E], bool]) -> E | None:
        for slot in self._slots:
            if isinstance(slot, Confirmed) and predicate(slot.entity):
                return slot.entity
        return None

    def has_pending(self) -> bool:
        return any(isinstance(slot, Pending) for slot in self._slots)

    def replace(self, slots: Slots) -> None:
        self._slots = tuple(slots)
        for listener in list(self._listeners):
            listener(self.resource, self._slots)

    def load(self, entities: Iterable[E]) -> None:
        self.replace(confirmed(entities))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def __len__(self) -> int:
        return len(self._slots)


class EntityStore:
    """One collection per backend resource for the active store."""

    def __init__(self, resources: Iterable[str] | None = None) -> None:
        self._collections: dict[str, EntityCollection] = {}
        for resource in resources or RESOURCES:
            self._collections[resource] = EntityCollection(resource)

    def __getitem__(self, resource: str) -> EntityCollection:
        try:
            return self._collections[resource]
        except KeyError:
            raise KeyError(f"Unknown resource: {resource}") from None

    def __contains__(self, resource: str) -> bool:
        return resource in self._collections

    def collection(self, resource: str) -> EntityCollection:
        if resource not in self._collections:
            self._collections[resource] = EntityCollection(resource)
        return self._collections[resource]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        unsubscribers = [collection.subscribe(listener) for collection in self._collections.values()]

        def _unsubscribe() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return _unsubscribe

    def clear(self) -> None:
        for collection in self._collections.values():
            collection.replace(())
