"""Domain error system + RFC7807 handler registration.

Every error leaving a service is a DomainError subclass carrying an HTTP status,
a stable machine ``code`` and a human readable ``detail``. The handlers below
render them as application/problem+json.
"""
from __future__ import annotations

import traceback
import uuid
from collections.abc import Callable
from typing import Any

from flask import request
from werkzeug.wrappers.response import Response

from .app_authz import AuthzError
from .app_sessions import SessionError
from .audit_events import record_audit_event
from .http_errors import (
    bad_request,
    conflict,
    forbidden,
    internal_server_error,
    not_found,
    payload_too_large,
    too_many_requests,
    unauthorized,
    unprocessable_entity,
    unsupported_media_type,
)
from .pagination import PaginationError


class DomainError(Exception):
    def __init__(self, status: int, code: str, detail: str | None = None, **extra: Any):
        self.status = status
        self.code = code
        self.detail = detail or code
        self.extra = extra
        super().__init__(self.detail)


class ValidationError(DomainError):
    def __init__(self, errors: Any, detail: str = "validation_error", **extra: Any):
        super().__init__(422, "validation_error", detail, errors=errors, **extra)
        self.errors = errors


class NotFoundError(DomainError):
    def __init__(self, detail: str = "not_found", **extra: Any):
        super().__init__(404, "not_found", detail, **extra)


class ConflictError(DomainError):
    def __init__(self, detail: str = "conflict", **extra: Any):
        super().__init__(409, "conflict", detail, **extra)


class RateLimitError(DomainError):
    def __init__(self, retry_after: int, detail: str = "rate_limited"):
        super().__init__(429, "rate_limited", detail, retry_after=retry_after)
        self.retry_after = retry_after


# ---- Request admission ----
class AdmissionError(DomainError):
    """Base for submission rejections; subclasses pin status and code."""

    status_code = 400
    error_code = "admission_rejected"

    def __init__(self, detail: str | None = None, **extra: Any):
        super().__init__(self.status_code, self.error_code, detail, **extra)


class InvalidRequestType(AdmissionError):
    status_code = 403
    error_code = "invalid_request_type"


class OutsideSubmissionWindow(AdmissionError):
    status_code = 403
    error_code = "outside_submission_window"


class InvalidSubSector(AdmissionError):
    status_code = 409
    error_code = "invalid_sub_sector"


class InvalidServiceOption(AdmissionError):
    status_code = 409
    error_code = "invalid_service_option"


class ImageRequired(AdmissionError):
    status_code = 409
    error_code = "image_required"


class DuplicateInPeriod(AdmissionError):
    status_code = 403
    error_code = "duplicate_in_period"


class ImageTooLarge(AdmissionError):
    status_code = 413
    error_code = "image_too_large"


class UnsupportedImageType(AdmissionError):
    status_code = 415
    error_code = "unsupported_image_type"


class StorageFailure(AdmissionError):
    status_code = 500
    error_code = "storage_failure"


_STATUS_HELPERS: dict[int, Callable[..., Response]] = {
    400: bad_request,
    401: unauthorized,
    403: forbidden,
    404: not_found,
    409: conflict,
    413: payload_too_large,
    415: unsupported_media_type,
    429: too_many_requests,
}


def _emit_problem(resp_payload: dict[str, Any]) -> None:
    record_audit_event(
        "problem_response",
        type=resp_payload.get("type"),
        status=resp_payload.get("status"),
        detail=resp_payload.get("detail"),
        path=request.path,
    )


def register_error_handlers(app: Any) -> None:  # pragma: no cover - integration path
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(SessionError)
    def _h_session(err: SessionError) -> Response:
        resp = unauthorized(detail=str(err) or "authentication_required")
        _emit_problem(resp.get_json())
        return resp

    @app.errorhandler(AuthzError)
    def _h_authz(err: AuthzError) -> Response:
        required = getattr(err, "required", None)
        extra = {"required_role": required} if required else {}
        resp = forbidden(detail=str(err) or "forbidden", **extra)
        _emit_problem(resp.get_json())
        return resp

    @app.errorhandler(DomainError)
    def _h_domain(err: DomainError) -> Response:
        if err.status == 422:
            others = {k: v for k, v in err.extra.items() if k != "errors"}
            resp = unprocessable_entity(err.extra.get("errors") or [], detail=err.detail, code=err.code, **others)
        elif err.status >= 500:
            incident_id = str(uuid.uuid4())
            app.logger.error("Domain failure code=%s incident_id=%s path=%s detail=%s", err.code, incident_id, request.path, err.detail)
            resp = internal_server_error(detail=err.detail, incident_id=incident_id, code=err.code)
        else:
            helper = _STATUS_HELPERS.get(err.status, bad_request)
            resp = helper(detail=err.detail, code=err.code, **err.extra)
        _emit_problem(resp.get_json())
        return resp

    @app.errorhandler(HTTPException)
    def _h_http(ex: HTTPException) -> Response:
        status = ex.code or 500
        helper = _STATUS_HELPERS.get(status)
        if helper:
            resp = helper(detail=ex.description)
        elif status >= 500:
            resp = internal_server_error()
        else:
            resp = bad_request(detail=str(ex.description))
            resp.status_code = status
        _emit_problem(resp.get_json())
        return resp

    @app.errorhandler(PaginationError)
    def _h_pagination(err: PaginationError) -> Response:
        resp = bad_request(detail=str(err) or "bad_request")
        _emit_problem(resp.get_json())
        return resp

    @app.errorhandler(Exception)
    def _h_exception(ex: Exception) -> Response:
        incident_id = str(uuid.uuid4())
        app.logger.error("Unhandled exception incident_id=%s path=%s\n%s", incident_id, request.path, traceback.format_exc())
        resp = internal_server_error(incident_id=incident_id)
        record_audit_event("incident", incident_id=incident_id, path=request.path)
        _emit_problem(resp.get_json())
        return resp


__all__ = [
    "DomainError", "ValidationError", "NotFoundError", "ConflictError", "RateLimitError",
    "AdmissionError", "InvalidRequestType", "OutsideSubmissionWindow", "InvalidSubSector",
    "InvalidServiceOption", "ImageRequired", "DuplicateInPeriod", "ImageTooLarge",
    "UnsupportedImageType", "StorageFailure", "register_error_handlers",
]
