"""Optimistic-concurrency writes to a pass's live state.

Every mutation reads the pass, computes the next state and writes it back with
``UPDATE ... WHERE id = ? AND version = ?``. When another writer got there
first the update matches no row, and the mutation is recomputed against the
fresh state.
"""

import copy
import typing as t
from dataclasses import dataclass, field
from uuid import UUID

import structlog
from django.conf import settings
from django.db.models import F
from django.utils import timezone

from loyalty.exceptions import StateConflictError, UnknownPassError
from loyalty.models import IssuedPass

logger = structlog.get_logger(__name__)

T = t.TypeVar("T")


@dataclass
class StateUpdate(t.Generic[T]):
    """Result of a mutator: the next state plus any extra column updates."""

    state: dict[str, t.Any]
    fields: dict[str, t.Any] = field(default_factory=dict)
    outcome: T | None = None


def mutate_state(
    pass_id: UUID | str,
    mutator: t.Callable[[IssuedPass, dict[str, t.Any]], StateUpdate[T]],
    max_retries: int | None = None,
) -> tuple[IssuedPass, StateUpdate[T]]:
    """Apply a mutation to a pass's live state.

    The mutator receives the freshly read pass and a deep copy of its state. It
    may be called more than once and must not have side effects.

    Args:
        pass_id: The internal pass id.
        mutator: Computes the next state from the current one.
        max_retries: Conflict retries before giving up. Defaults to
            ``LOYALTY_STATE_MAX_RETRIES``.

    Returns:
        The refreshed pass and the update that was committed.

    Raises:
        UnknownPassError: If the pass does not exist.
        StateConflictError: If every attempt lost a race with a concurrent writer.
    """
    retries = settings.LOYALTY_STATE_MAX_RETRIES if max_retries is None else max_retries

    for attempt in range(retries + 1):
        issued_pass = IssuedPass.objects.filter(pk=pass_id).first()
        if issued_pass is None:
            raise UnknownPassError(f"Pass not found: {pass_id}")

        update = mutator(issued_pass, copy.deepcopy(issued_pass.current_state or {}))
        updated = IssuedPass.objects.filter(pk=issued_pass.pk, version=issued_pass.version).update(
            current_state=update.state,
            version=F("version") + 1,
            last_updated_at=timezone.now(),
            **update.fields,
        )
        if updated:
            issued_pass.refresh_from_db()
            logger.debug("pass_state_mutated", pass_id=str(issued_pass.pk), version=issued_pass.version)
            return issued_pass, update

        logger.info("pass_state_conflict", pass_id=str(pass_id), attempt=attempt + 1)

    logger.warning("pass_state_conflict_exhausted", pass_id=str(pass_id), retries=retries)
    raise StateConflictError(f"Concurrent updates to pass {pass_id}, giving up after {retries} retries")


def touch_pass(pass_id: UUID | str, **fields: t.Any) -> int:
    """Bump ``last_updated_at`` (and version) without changing the live state.

    Used when something outside the state changes what a device should show,
    so Apple devices re-fetch the pass.

    Returns:
        Number of rows updated.
    """
    return IssuedPass.objects.filter(pk=pass_id).update(
        version=F("version") + 1,
        last_updated_at=timezone.now(),
        **fields,
    )
