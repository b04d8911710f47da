from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Mapping, Protocol, TypeVar

from .exceptions import ValidationError, empty_response, store_context_required
from .logger import get_logger, log_event
from .models import Entity
from .notifications import LoggingNotifier, Notifier, ToastLevel
from .state import (
    EntityCollection,
    EntityStore,
    Slots,
    apply_create,
    apply_delete,
    apply_update,
    commit_create,
    new_local_id,
    rollback,
)
from .ui_errors import GENERIC_FAILURE, to_user_facing_error

E = TypeVar("E", bound=Entity)

logger = get_logger(__name__)

StoreIdSource = Callable[[], "str | None"]
AppliedCallback = Callable[[], None]


class DataAccessor(Protocol):
    async def fetch(self, store_id: str, resource: str) -> list[dict[str, Any]]: ...

    async def create(self, store_id: str, resource: str, payload: Mapping[str, Any]) -> dict[str, Any]: ...

    async def update(self, resource: str, entity_id: str, payload: Mapping[str, Any]) -> dict[str, Any] | None: ...

    async def delete(self, resource: str, entity_id: str) -> None: ...


class MutationState(str, Enum):
    IDLE = "IDLE"
    SPECULATIVE_APPLIED = "SPECULATIVE_APPLIED"
    CONFIRMED = "CONFIRMED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass(frozen=True)
class MutationOutcome(Generic[E]):
    state: MutationState
    resource: str
    operation: str
    entity: E | None = None
    local_id: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.state == MutationState.CONFIRMED


class MutationCoordinator:
    """Applies entity changes locally first and reconciles them with the backend.

    Every mutation snapshots its collection, publishes the speculative state,
    awaits the remote call and then either keeps/commits the speculative state
    or restores the snapshot verbatim. Failures are reported through the
    notifier and returned as ``ROLLED_BACK`` outcomes; they are never raised.

    Mutations on the same collection are serialized: the next one takes its
    snapshot only after the previous one settled, so a rollback can never
    discard another mutation's change.
    """

    def __init__(
        self,
        data: DataAccessor,
        store: EntityStore,
        *,
        store_id: str | StoreIdSource | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.data = data
        self.store = store
        self._store_id = store_id
        self.notifier = notifier or LoggingNotifier()
        self._clock = clock
        self._resolved_ids: dict[str, str] = {}

    def resolve_store_id(self, operation: str) -> str:
        source = self._store_id
        store_id = source() if callable(source) else source
        if not store_id:
            log_event(logger, "mutation.precondition_failed", operation=operation, reason="store_id")
            raise store_context_required(operation)
        return store_id

    def resolve_id(self, entity_id: str) -> str:
        """Map a committed local id to the id the server assigned."""
        return self._resolved_ids.get(entity_id, entity_id)

    async def create(
        self,
        resource: str,
        draft: E | Mapping[str, Any],
        *,
        prepend: bool = True,
        on_applied: AppliedCallback | None = None,
        failure_message: str | None = None,
    ) -> MutationOutcome[E]:
        operation = f"{resource}.create"
        store_id = self.resolve_store_id(operation)
        collection = self.store[resource]

        async with collection.lock:
            local_id = new_local_id(collection.ids, now=self._clock)
            pending = _draft_entity(collection.model, draft, local_id)
            payload = pending.to_payload(exclude={"id"})

            async def _remote() -> Any:
                return await self.data.create(store_id, resource, payload)

            def _commit(slots: Slots, result: Any) -> tuple[Slots, E]:
                if not result:
                    raise empty_response(resource)
                entity = collection.model.model_validate(result)
                self._resolved_ids[local_id] = entity.id
                return commit_create(slots, local_id, entity), entity

            return await self._run(
                collection,
                operation,
                apply_create(collection.slots, local_id, pending, prepend=prepend),
                _remote,
                commit=_commit,
                on_applied=on_applied,
                failure_message=failure_message,
                local_id=local_id,
            )

    async def update(
        self,
        resource: str,
        entity: E,
        *,
        payload: Mapping[str, Any] | None = None,
        on_applied: AppliedCallback | None = None,
        failure_message: str | None = None,
    ) -> MutationOutcome[E]:
        operation = f"{resource}.update"
        collection = self.store[resource]

        async with collection.lock:
            entity_id = self.resolve_id(entity.id)
            if entity_id != entity.id:
                entity = entity.model_copy(update={"id": entity_id})
            _require_present(collection, entity_id, operation)
            body = dict(payload) if payload is not None else entity.to_payload()

            async def _remote() -> Any:
                return await self.data.update(resource, entity_id, body)

            return await self._run(
                collection,
                operation,
                apply_update(collection.slots, entity),
                _remote,
                on_applied=on_applied,
                failure_message=failure_message,
                entity=entity,
            )

    async def delete(
        self,
        resource: str,
        entity_id: str,
        *,
        on_applied: AppliedCallback | None = None,
        failure_message: str | None = None,
    ) -> MutationOutcome[E]:
        operation = f"{resource}.delete"
        collection = self.store[resource]

        async with collection.lock:
            entity_id = self.resolve_id(entity_id)
            _require_present(collection, entity_id, operation)
            removed = collection.get(entity_id)

            async def _remote() -> Any:
                return await self.data.delete(resource, entity_id)

            return await self._run(
                collection,
                operation,
                apply_delete(collection.slots, entity_id),
                _remote,
                on_applied=on_applied,
                failure_message=failure_message,
                entity=removed,
            )

    async def _run(
        self,
        collection: EntityCollection,
        operation: str,
        speculative: Slots,
        remote: Callable[[], Awaitable[Any]],
        *,
        commit: Callable[[Slots, Any], tuple[Slots, Any]] | None = None,
        on_applied: AppliedCallback | None = None,
        failure_message: str | None = None,
        entity: Entity | None = None,
        local_id: str | None = None,
    ) -> MutationOutcome:
        snapshot = collection.slots
        collection.replace(speculative)
        log_event(
            logger,
            "mutation.applied",
            level=logging.DEBUG,
            operation=operation,
            state=MutationState.SPECULATIVE_APPLIED.value,
            local_id=local_id,
        )
        if on_applied is not None:
            on_applied()

        try:
            result = await remote()
            if commit is not None:
                committed, entity = commit(collection.slots, result)
                collection.replace(committed)
        except Exception as exc:
            collection.replace(rollback(snapshot))
            log_event(
                logger,
                "mutation.rolled_back",
                level=logging.WARNING,
                operation=operation,
                error=type(exc).__name__,
                code=getattr(exc, "code", None),
                trace_id=getattr(exc, "trace_id", None),
            )
            message = to_user_facing_error(exc, failure_message or GENERIC_FAILURE).message
            self.notifier.notify(message, ToastLevel.ERROR)
            return MutationOutcome(
                state=MutationState.ROLLED_BACK,
                resource=collection.resource,
                operation=operation,
                local_id=local_id,
                error=exc,
            )
        except BaseException:
            collection.replace(rollback(snapshot))
            raise

        log_event(
            logger,
            "mutation.confirmed",
            operation=operation,
            entity_id=entity.id if entity is not None else None,
            local_id=local_id,
        )
        return MutationOutcome(
            state=MutationState.CONFIRMED,
            resource=collection.resource,
            operation=operation,
            entity=entity,
            local_id=local_id,
        )


def _draft_entity(model: type[E], draft: E | Mapping[str, Any], local_id: str) -> E:
    if isinstance(draft, Entity):
        return draft.model_copy(update={"id": local_id})
    values = {key: value for key, value in dict(draft).items() if key != "id"}
    return model.model_validate({**values, "id": local_id})


def _require_present(collection: EntityCollection, entity_id: str, operation: str) -> None:
    if collection.get(entity_id) is None:
        raise ValidationError(
            code="ENTITY_NOT_FOUND",
            message=f"{collection.resource} {entity_id} is not loaded",
            details={"operation": operation, "id": entity_id},
        )
