"""Session request statuses and the transition table between them."""

from __future__ import annotations

from typing import Dict, Optional, Tuple


REQUEST_STATUS_PENDING = "pending"
REQUEST_STATUS_APPROVED = "approved"
REQUEST_STATUS_REJECTED = "rejected"

REQUEST_STATUSES: Tuple[str, ...] = (
    REQUEST_STATUS_PENDING,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_REJECTED,
)

EVENT_APPROVE = "approve"
EVENT_REJECT = "reject"
EVENT_MATERIALIZE = "materialize"

# (from_status, event) -> to_status. Materialize leaves the status untouched and
# only links the created session. Nothing leaves `rejected`.
TRANSITIONS: Dict[Tuple[str, str], str] = {
    (REQUEST_STATUS_PENDING, EVENT_APPROVE): REQUEST_STATUS_APPROVED,
    (REQUEST_STATUS_PENDING, EVENT_REJECT): REQUEST_STATUS_REJECTED,
    (REQUEST_STATUS_APPROVED, EVENT_MATERIALIZE): REQUEST_STATUS_APPROVED,
}


def normalize_request_status(status: str | None) -> Optional[str]:
    normalized = str(status or "").strip().lower()
    if normalized in REQUEST_STATUSES:
        return normalized
    return None


def next_status(current: str, event: str) -> Optional[str]:
    return TRANSITIONS.get((current, event))


def source_status(event: str) -> str:
    for (from_status, candidate), _to_status in TRANSITIONS.items():
        if candidate == event:
            return from_status
    raise KeyError(event)


def is_terminal(status: str) -> bool:
    return not any(from_status == status for from_status, _event in TRANSITIONS)
