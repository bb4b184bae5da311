"""Request admission: validation pipeline + locked number allocation.

``submit`` runs the checks in a fixed order and stops at the first failure:

1. request type exists
2. submission window (admin timezone) allows now
3. sub-sector exists
4. option exists and belongs to the type
5. image present when the option's form requires one
6. no other request for the same slot in the current duplicate period
7. image size and type

It then stores the image (outside the transaction) and, in one transaction,
locks the type and option rows, re-runs the duplicate check, allocates the
next request number from the option counter and inserts the request. Any
failure rolls the whole unit back and removes the stored image again.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .api_types import IssueImageRequirement
from .audit_events import record_audit_event
from .errors import (
    AdmissionError,
    DuplicateInPeriod,
    ImageRequired,
    ImageTooLarge,
    InvalidRequestType,
    InvalidServiceOption,
    InvalidSubSector,
    OutsideSubmissionWindow,
    StorageFailure,
    UnsupportedImageType,
)
from .metrics import increment
from .models import Request, RequestType, ServiceOption, SubSector, utcnow
from .numbering import clamp_padding, derive_prefix, first_sequence, format_request_number
from .periods import PERIOD_LABELS, as_utc, duplicate_period_bounds, normalize_duplicate_period
from .storage import REQUEST_IMAGE_MIMES, REQUEST_IMAGES, UploadStore
from .time_window import WindowRule, evaluate_window
from .validation import Fields

log = logging.getLogger("civicdesk.admission")

DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024
MIN_DESCRIPTION_LENGTH = 10


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    mimetype: str
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Submission:
    request_type_id: int
    service_option_id: int
    house_no: str
    street_no: str
    sub_sector_id: int
    description: str = ""
    image: ImageUpload | None = None


def parse_submission(values: Mapping[str, Any], image: ImageUpload | None = None) -> Submission:
    """Shape-check a camelCase payload (form fields or JSON) into a Submission."""
    f = Fields(values)
    type_id = f.integer("requestTypeId")
    option_id = f.integer("requestTypeOptionId")
    house = f.string("houseNo", max_len=50)
    street = f.string("streetNo", max_len=50)
    sector_id = f.integer("subSectorId")
    raw_desc = values.get("description")
    description = ""
    if not isinstance(raw_desc, str) or raw_desc.strip():
        description = f.string("description", required=False, min_len=MIN_DESCRIPTION_LENGTH) or ""
    f.raise_if_errors()
    return Submission(
        request_type_id=type_id,  # type: ignore[arg-type]
        service_option_id=option_id,  # type: ignore[arg-type]
        house_no=house,  # type: ignore[arg-type]
        street_no=street,  # type: ignore[arg-type]
        sub_sector_id=sector_id,  # type: ignore[arg-type]
        description=description,
        image=image,
    )


def image_requirement(option: ServiceOption) -> IssueImageRequirement:
    if option.option_kind != "form":
        return "none"
    value = (option.config or {}).get("issueImage")
    if value in ("none", "optional", "required"):
        return value
    return "optional"


def _reject(err: AdmissionError, *, user_id: int, scope: str) -> AdmissionError:
    log.warning("REJECTED user_id=%s scope=%r code=%s reason=%s", user_id, scope, err.code, err.detail)
    increment("requests.rejected", {"reason": err.code})
    return err


def _check_duplicate(db: Session, sub: Submission, rt: RequestType, option: ServiceOption, now: datetime) -> None:
    period = normalize_duplicate_period(rt.duplicate_restriction_period)
    bounds = duplicate_period_bounds(period, now)
    if bounds is None:
        return
    start, end = bounds
    hit = db.execute(
        select(Request.id)
        .where(
            Request.request_type_id == sub.request_type_id,
            Request.service_option_id == sub.service_option_id,
            Request.house_no == sub.house_no.strip(),
            Request.street_no == sub.street_no.strip(),
            Request.sub_sector_id == sub.sub_sector_id,
            Request.created_at >= start,
            Request.created_at < end,
        )
        .limit(1)
    ).first()
    if hit is None:
        return
    label = PERIOD_LABELS[period]
    scope = (option.label or "").strip() or rt.name
    raise DuplicateInPeriod(
        f"Only one {scope} request per {label} is allowed for the same house, street and sector. "
        f"There is already a request for this address in this {label}.",
        period=period,
    )


def validate_image(image: ImageUpload, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> str:
    """Return the stored extension for an acceptable image."""
    if image.size > max_bytes:
        raise ImageTooLarge(f"Issue image too large (max {max_bytes // (1024 * 1024)}MB)", max_bytes=max_bytes)
    ext = REQUEST_IMAGE_MIMES.get((image.mimetype or "").lower())
    if ext is None:
        raise UnsupportedImageType("Issue image must be PNG, JPEG, WebP, or GIF")
    return ext


def _number_taken(db: Session, number: str) -> bool:
    return db.execute(select(Request.id).where(Request.request_number == number).limit(1)).first() is not None


def _allocate_and_insert(
    db: Session, sub: Submission, *, user_id: int, image_url: str | None, now: datetime
) -> Request:
    locked_type = db.execute(
        select(RequestType)
        .where(RequestType.id == sub.request_type_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if locked_type is None:
        raise InvalidRequestType("Invalid request type")
    option = db.execute(
        select(ServiceOption)
        .where(ServiceOption.id == sub.service_option_id, ServiceOption.request_type_id == sub.request_type_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if option is None:
        raise InvalidServiceOption("Invalid service option selected")

    # the option lock serialises this slot; a concurrent duplicate is visible now
    _check_duplicate(db, sub, locked_type, option, now)

    prefix = derive_prefix(option.label, option.request_number_prefix)
    padding = clamp_padding(option.request_number_padding)
    seq = first_sequence(option.request_number_next)
    number = format_request_number(prefix, seq, padding)
    while _number_taken(db, number):
        seq += 1
        number = format_request_number(prefix, seq, padding)
    option.request_number_next = seq + 1

    req = Request(
        request_type_id=sub.request_type_id,
        service_option_id=sub.service_option_id,
        request_number=number,
        description=sub.description,
        issue_image_url=image_url,
        house_no=sub.house_no.strip(),
        street_no=sub.street_no.strip(),
        sub_sector_id=sub.sub_sector_id,
        status="pending",
        user_id=user_id,
        created_at=now,
        updated_at=now,
    )
    db.add(req)
    db.flush()
    return req


def submit(
    db: Session,
    sub: Submission,
    *,
    user_id: int,
    admin_tz: str,
    store: UploadStore,
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    now: datetime | None = None,
) -> Request:
    now = as_utc(now or utcnow())
    rt = db.get(RequestType, sub.request_type_id)
    if rt is None:
        raise _reject(InvalidRequestType("Invalid request type"), user_id=user_id, scope=str(sub.request_type_id))
    log.info(
        "attempt user_id=%s request_type_id=%s request_type=%r time_utc=%s admin_tz=%s",
        user_id, rt.id, rt.name, now.isoformat(), admin_tz,
    )

    rule = WindowRule.from_fields(rt.restriction_start_time, rt.restriction_end_time, rt.restriction_days)
    decision = evaluate_window(rule, now, admin_tz, label=rt.name)
    if not decision.allowed:
        raise _reject(
            OutsideSubmissionWindow(decision.reason, window=decision.kind), user_id=user_id, scope=rt.name
        )
    if decision.kind == "allowed":
        log.debug("window %s (%s) allows submission", rule.describe(), admin_tz)

    if db.get(SubSector, sub.sub_sector_id) is None:
        raise _reject(InvalidSubSector("Invalid sub sector"), user_id=user_id, scope=rt.name)

    option = db.execute(
        select(ServiceOption).where(
            ServiceOption.id == sub.service_option_id, ServiceOption.request_type_id == rt.id
        )
    ).scalar_one_or_none()
    if option is None:
        raise _reject(InvalidServiceOption("Invalid service option selected"), user_id=user_id, scope=rt.name)

    if image_requirement(option) == "required" and sub.image is None:
        raise _reject(
            ImageRequired("Please upload an issue image for this service"), user_id=user_id, scope=option.label
        )

    try:
        _check_duplicate(db, sub, rt, option, now)
        ext = validate_image(sub.image, max_image_bytes) if sub.image is not None else None
    except AdmissionError as err:
        raise _reject(err, user_id=user_id, scope=option.label) from None

    image_url: str | None = None
    if sub.image is not None and ext is not None:
        try:
            image_url = store.save_bytes(REQUEST_IMAGES, sub.image.data, ext)
        except OSError as e:
            log.error("image store failed user_id=%s: %s", user_id, e)
            raise StorageFailure("Could not store the issue image") from e

    try:
        req = _allocate_and_insert(db, sub, user_id=user_id, image_url=image_url, now=now)
        db.commit()
    except AdmissionError as err:
        db.rollback()
        store.delete(image_url)
        raise _reject(err, user_id=user_id, scope=option.label) from None
    except SQLAlchemyError as e:
        db.rollback()
        store.delete(image_url)
        log.error("allocation failed user_id=%s option_id=%s: %s", user_id, sub.service_option_id, e)
        increment("requests.rejected", {"reason": StorageFailure.error_code})
        raise StorageFailure("Could not save the request") from e

    log.info(
        "SUCCESS request_id=%s number=%s user_id=%s request_type=%r",
        req.id, req.request_number, user_id, rt.name,
    )
    increment("requests.submitted", {"request_type": rt.slug})
    record_audit_event("request_submitted", user_id, request_id=req.id, request_number=req.request_number)
    return req


__all__ = [
    "ImageUpload",
    "Submission",
    "parse_submission",
    "image_requirement",
    "validate_image",
    "submit",
]
