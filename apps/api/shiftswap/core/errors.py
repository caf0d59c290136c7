import logging
from contextlib import contextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, TimeoutError as PoolTimeout

log = logging.getLogger(__name__)


class SwapError(Exception):
    """Base class for every failure the swap engine reports to callers.

    Carries a machine readable ``code`` and a ``detail`` dict so callers can
    decide between retrying, refreshing their view, or giving up.
    """

    code = "swap_error"
    status_code = 400
    retryable = False

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = {k: v for k, v in detail.items() if v is not None}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "detail": {k: _jsonable(v) for k, v in self.detail.items()},
        }


class ValidationError(SwapError):
    code = "validation_error"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, reason: Optional[str] = None, **detail: Any):
        super().__init__(message, field=field, reason=reason, **detail)


class Unauthorized(SwapError):
    code = "unauthorized"
    status_code = 403

    def __init__(self, message: str, required_actor: Optional[str] = None, actor_id=None, **detail: Any):
        super().__init__(message, required_actor=required_actor, actor_id=actor_id, **detail)


class InvalidTransition(SwapError):
    """Status/actor mismatch; the caller is looking at stale state."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, current_status=None, event=None, allowed_events=None, **detail: Any):
        super().__init__(
            message,
            current_status=current_status,
            event=event,
            allowed_events=allowed_events,
            **detail,
        )


class Conflict(SwapError):
    code = "conflict"
    status_code = 409

    def __init__(self, message: str, shift_id=None, conflicting_request_id=None, **detail: Any):
        super().__init__(message, shift_id=shift_id, conflicting_request_id=conflicting_request_id, **detail)


class ShiftAlreadyCommitted(SwapError):
    """Lost the race for a shift. Expected under load: re-list and retry."""

    code = "shift_already_committed"
    status_code = 409
    retryable = True

    def __init__(self, shift_id, conflicting_request_id, **detail: Any):
        super().__init__(
            f"Shift {shift_id} is already part of swap request {conflicting_request_id}",
            shift_id=shift_id,
            conflicting_request_id=conflicting_request_id,
            **detail,
        )
        self.shift_id = shift_id
        self.conflicting_request_id = conflicting_request_id


class NotFound(SwapError):
    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, id=None):
        super().__init__(f"{resource} not found", resource=resource, id=id)


class StorageUnavailable(SwapError):
    code = "storage_unavailable"
    status_code = 503
    retryable = True


def _jsonable(v):
    if isinstance(v, (list, tuple, set)):
        return [_jsonable(x) for x in v]
    if isinstance(v, (str, int, float, bool)) or v is None:
        return v
    # UUIDs, enums
    return getattr(v, "value", None) or str(v)


def fail(error: dict, status: int) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": error})


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SwapError)
    async def _swap_error(request: Request, e: SwapError):
        if isinstance(e, StorageUnavailable):
            log.warning("%s %s: %s", request.method, request.url.path, e.message)
        return fail(e.to_dict(), status=e.status_code)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, e: Exception):
        log.exception("Unhandled error on %s %s", request.method, request.url.path)
        return fail({"code": "internal_error", "message": "Internal server error"}, status=500)


@contextmanager
def translate_storage_errors():
    """Turn driver-level timeouts and dropped connections into StorageUnavailable."""
    try:
        yield
    except (OperationalError, PoolTimeout) as e:
        log.warning("Storage error: %s", e)
        raise StorageUnavailable("Backing store is unavailable, retry later", reason=type(e).__name__) from e
