"""Ticket status transition table and pipeline stage grouping."""

from ticketflow.models.enums import Resolution, TicketStatus
from ticketflow.services.errors import InvalidTransition

S = TicketStatus

TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    S.NEW: frozenset({S.TRIAGED, S.CLOSED}),
    S.TRIAGED: frozenset({S.APPROVED, S.IN_PROGRESS, S.CLOSED}),
    S.APPROVED: frozenset({S.IN_PROGRESS, S.IN_REVIEW, S.CLOSED}),
    S.IN_PROGRESS: frozenset({S.IN_REVIEW, S.CLOSED}),
    S.IN_REVIEW: frozenset({S.USER_REVIEW, S.IN_PROGRESS, S.CLOSED}),
    S.USER_REVIEW: frozenset({S.RESOLVED, S.IN_PROGRESS, S.CLOSED}),
    S.RESOLVED: frozenset(),
    S.CLOSED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Resolutions rejectTicket may attach; "fixed" is reserved for reaching resolved
REJECT_RESOLUTIONS = frozenset(
    {
        Resolution.WONT_FIX,
        Resolution.DUPLICATE,
        Resolution.DEFERRED,
        Resolution.INVALID,
        Resolution.CANNOT_REPRODUCE,
    }
)

PIPELINE_STAGES: dict[str, frozenset[TicketStatus]] = {
    "untriaged": frozenset({S.NEW}),
    "yourDecision": frozenset({S.TRIAGED}),
    "agentWorking": frozenset({S.APPROVED, S.IN_PROGRESS}),
    "testing": frozenset({S.IN_REVIEW}),
    "userReview": frozenset({S.USER_REVIEW}),
    "done": frozenset({S.RESOLVED, S.CLOSED}),
}

OPEN_STATUSES = frozenset(TicketStatus) - TERMINAL_STATUSES


def _check_stage_partition() -> None:
    seen: set[TicketStatus] = set()
    for stage, statuses in PIPELINE_STAGES.items():
        overlap = seen & statuses
        if overlap:
            raise RuntimeError(f"Stage '{stage}' overlaps on {sorted(s.value for s in overlap)}")
        seen |= statuses
    missing = set(TicketStatus) - seen
    if missing:
        raise RuntimeError(f"Statuses missing from pipeline stages: {sorted(s.value for s in missing)}")


_check_stage_partition()


def allowed_next(current: str) -> list[str]:
    """Legal next statuses from ``current``, sorted for stable error messages."""
    return sorted(s.value for s in TRANSITIONS[TicketStatus(current)])


def can_transition(current: str, target: str) -> bool:
    try:
        return TicketStatus(target) in TRANSITIONS[TicketStatus(current)]
    except ValueError:
        return False


def validate_transition(current: str, target: str) -> None:
    """Raise InvalidTransition unless ``current -> target`` is a declared edge."""
    if not can_transition(current, target):
        raise InvalidTransition(current, target, allowed_next(current))


def stage_for(status: str) -> str:
    status = TicketStatus(status)
    for stage, statuses in PIPELINE_STAGES.items():
        if status in statuses:
            return stage
    raise ValueError(f"Unknown status: {status}")
