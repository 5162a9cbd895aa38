"""Engine error kinds surfaced to API callers."""

from __future__ import annotations

from typing import Any, Dict


class TalkboardError(RuntimeError):
    """Base class for errors the engine reports to its callers.

    Each kind carries an HTTP status code and a stable machine-readable code so
    the presentation layer can tell authorization, validation, concurrency and
    connectivity failures apart from a legitimately empty result.
    """

    status_code = 500
    code = "internal_error"

    def __init__(self, detail: str, **extra: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.extra = extra

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.detail, "code": self.code}
        payload.update(self.extra)
        return payload


class Unauthenticated(TalkboardError):
    status_code = 401
    code = "unauthenticated"


class Forbidden(TalkboardError):
    status_code = 403
    code = "forbidden"


class NotFound(TalkboardError):
    status_code = 404
    code = "not_found"


class ValidationError(TalkboardError):
    status_code = 422
    code = "validation_error"


class Conflict(TalkboardError):
    """A concurrent write won; the caller must re-fetch before acting again."""

    status_code = 409
    code = "conflict"

    def __init__(self, detail: str, **extra: Any) -> None:
        extra.setdefault("refetch", True)
        super().__init__(detail, **extra)


class PartialMaterialization(TalkboardError):
    """The session row exists but some of its associations were not written."""

    status_code = 409
    code = "partial_materialization"

    def __init__(self, detail: str, *, session_id: str, **extra: Any) -> None:
        super().__init__(detail, session_id=session_id, **extra)
        self.session_id = session_id


class OutcomeUnknown(TalkboardError):
    """The store did not confirm the outcome; the write may or may not have landed."""

    status_code = 504
    code = "outcome_unknown"

    def __init__(self, detail: str, **extra: Any) -> None:
        extra.setdefault("outcome", "unknown")
        super().__init__(detail, **extra)
