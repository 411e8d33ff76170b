"""Participation State Machine — pure transition table for per-(actor, room) eligibility.

Invariants:
    - transition() is PURE: no IO, no async, no side effects
    - Any (state, event) pair missing from TRANSITIONS raises InvalidTransitionError
    - PARTICIPANT_STALE is left only through a join (exactly one re-join per stale episode)
    - pending_tx_id is set only while a join is in flight

Design Decisions:
    - Ledger state is ground truth, local state a lagging cache: CHECKED_* events are
      accepted from every settled state so a fresh read can always correct belief
    - Record is a plain dataclass; the services layer owns locks, tracker wiring and IO
"""

from dataclasses import dataclass

from talk2me.core.domain_types import (
    Address, RoomId, TransactionId,
    ParticipationState as S, ParticipationEvent as E,
)
from talk2me.core.errors import InvalidTransitionError


TRANSITIONS: dict[tuple[S, E], S] = {
    # Participation-check read
    (S.UNKNOWN, E.CHECKED_PARTICIPANT): S.PARTICIPANT,
    (S.UNKNOWN, E.CHECKED_NOT_PARTICIPANT): S.NOT_PARTICIPANT,
    (S.NOT_PARTICIPANT, E.CHECKED_PARTICIPANT): S.PARTICIPANT,
    (S.NOT_PARTICIPANT, E.CHECKED_NOT_PARTICIPANT): S.NOT_PARTICIPANT,
    (S.PARTICIPANT, E.CHECKED_PARTICIPANT): S.PARTICIPANT,
    (S.PARTICIPANT, E.CHECKED_NOT_PARTICIPANT): S.NOT_PARTICIPANT,

    # Join lifecycle
    (S.NOT_PARTICIPANT, E.JOIN_SUBMITTED): S.JOIN_SUBMITTED,
    (S.PARTICIPANT_STALE, E.JOIN_SUBMITTED): S.JOIN_SUBMITTED,
    (S.JOIN_SUBMITTED, E.JOIN_SUBMIT_FAILED): S.NOT_PARTICIPANT,
    (S.JOIN_SUBMITTED, E.TX_CONFIRMING): S.JOIN_CONFIRMING,
    (S.JOIN_CONFIRMING, E.TX_CONFIRMED): S.PARTICIPANT,
    (S.JOIN_CONFIRMING, E.TX_FAILED): S.NOT_PARTICIPANT,

    # Ledger denied a read
    (S.PARTICIPANT, E.READ_DENIED): S.PARTICIPANT_STALE,
    (S.UNKNOWN, E.READ_DENIED): S.NOT_PARTICIPANT,
    (S.NOT_PARTICIPANT, E.READ_DENIED): S.NOT_PARTICIPANT,
}

JOIN_IN_FLIGHT = frozenset({S.JOIN_SUBMITTED, S.JOIN_CONFIRMING})
JOINABLE = frozenset({S.NOT_PARTICIPANT, S.PARTICIPANT_STALE})


def transition(state: S, event: E) -> S:
    """Next state for (state, event). Raises InvalidTransitionError if undefined."""
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(
            "Participation", state.value, event.value,
        ) from None


@dataclass
class ParticipationRecord:
    """Local belief about one (actor, room) pair."""
    actor: Address
    room_id: RoomId
    state: S = S.UNKNOWN
    pending_tx_id: TransactionId | None = None

    @property
    def join_in_flight(self) -> bool:
        return self.state in JOIN_IN_FLIGHT

    @property
    def can_read(self) -> bool:
        return self.state == S.PARTICIPANT

    def apply(self, event: E) -> S:
        """Advance in place; returns the new state."""
        self.state = transition(self.state, event)
        if not self.join_in_flight:
            self.pending_tx_id = None
        return self.state
