"""Service options: the selectable entries under a request type.

An option's ``config`` shape depends on its kind. Its numbering counter
(``request_number_next``) is owned by the admission service and cannot be
written through this API; prefix and padding can.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .api_types import OPTION_KINDS, ServiceOptionPayload
from .errors import ConflictError, DomainError, NotFoundError
from .models import Request, RequestType, ServiceOption
from .numbering import MAX_PADDING, MIN_PADDING
from .serializers import service_option_payload
from .storage import MAX_OPTION_IMAGE_BYTES, REQUEST_IMAGE_MIMES, SERVICE_OPTION_IMAGES, UploadStore
from .validation import Fields


def slugify_label(label: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")[:120] or "option"


def _check_config(f: Fields, kind: str, config: Any) -> None:
    if config is None:
        return
    if not isinstance(config, dict):
        f.error("config", "config must be an object")
        return
    if kind == "form":
        value = config.get("issueImage")
        if value is not None and value not in ("none", "optional", "required"):
            f.error("config", "config.issueImage must be none, optional or required")
    elif kind == "list":
        if not isinstance(config.get("listKey"), str):
            f.error("config", "config.listKey is required for list options")
    elif kind == "rules":
        rules = config.get("rules")
        if rules is not None and not (
            isinstance(rules, list) and all(isinstance(r, dict) and isinstance(r.get("description"), str) for r in rules)
        ):
            f.error("config", "config.rules must be a list of {description}")
        if rules is None and not isinstance(config.get("content"), str):
            f.error("config", "config.content or config.rules is required for rules options")
    elif kind == "link":
        if not isinstance(config.get("url"), str):
            f.error("config", "config.url is required for link options")
    elif kind == "phone":
        if not isinstance(config.get("phoneNumber"), str):
            f.error("config", "config.phoneNumber is required for phone options")


def _load(db: Session, option_id: int) -> ServiceOption:
    o = db.get(ServiceOption, option_id)
    if o is None:
        raise NotFoundError("Option not found")
    return o


def list_for_type(db: Session, *, type_id: int) -> list[ServiceOptionPayload]:
    rows = db.execute(
        select(ServiceOption)
        .where(ServiceOption.request_type_id == type_id)
        .order_by(ServiceOption.display_order, ServiceOption.id)
    ).scalars()
    return [service_option_payload(o) for o in rows]


def list_options(db: Session, *, type_id: int | None = None) -> list[ServiceOptionPayload]:
    if type_id is not None:
        return list_for_type(db, type_id=type_id)
    rows = db.execute(
        select(ServiceOption).order_by(
            ServiceOption.request_type_id, ServiceOption.display_order, ServiceOption.id
        )
    ).scalars()
    return [service_option_payload(o) for o in rows]


def get_option(db: Session, *, option_id: int) -> ServiceOptionPayload:
    return service_option_payload(_load(db, option_id))


def _apply(db: Session, o: ServiceOption, f: Fields, *, creating: bool) -> None:
    type_id = f.integer("requestTypeId", required=creating)
    label = f.string("label", required=creating, max_len=200)
    kind = f.choice("optionType", OPTION_KINDS, required=creating)
    slug = f.string("slug", required=False, max_len=120) if f.body.get("slug") else None
    prefix_present = f.present("requestNumberPrefix")
    prefix = f.string("requestNumberPrefix", required=False, min_len=0, max_len=20)
    padding = f.integer("requestNumberPadding", required=False, minimum=MIN_PADDING, maximum=MAX_PADDING)
    order = f.integer("displayOrder", required=False)
    config_present = f.present("config")
    config = f.body.get("config")
    effective_kind = kind or o.option_kind
    if config_present:
        _check_config(f, effective_kind, config)
    elif kind is not None and kind != o.option_kind:
        _check_config(f, effective_kind, o.config)
    f.raise_if_errors()

    if type_id is not None:
        if db.get(RequestType, type_id) is None:
            raise ConflictError("Invalid request type")
        o.request_type_id = type_id
    if label is not None:
        o.label = label
    if kind is not None:
        o.option_kind = kind
    if config_present:
        o.config = config
    if slug is not None:
        o.slug = slug
    elif creating:
        o.slug = slugify_label(o.label)
    if prefix_present:
        o.request_number_prefix = (prefix or "").upper() or None
    if padding is not None:
        o.request_number_padding = padding
    if order is not None:
        o.display_order = order
    if f.present("imageUrl"):
        o.image_url = f.body.get("imageUrl") or None


def create_option(db: Session, *, payload: Mapping[str, Any]) -> ServiceOptionPayload:
    o = ServiceOption(request_number_padding=4, request_number_next=1, display_order=0, option_kind="form")
    _apply(db, o, Fields(payload), creating=True)
    db.add(o)
    db.commit()
    return service_option_payload(o)


def update_option(db: Session, *, option_id: int, payload: Mapping[str, Any]) -> ServiceOptionPayload:
    o = _load(db, option_id)
    _apply(db, o, Fields(payload), creating=False)
    db.commit()
    return service_option_payload(o)


def delete_option(db: Session, *, option_id: int) -> None:
    o = _load(db, option_id)
    # historical requests keep their number but lose the option link
    db.execute(update(Request).where(Request.service_option_id == o.id).values(service_option_id=None))
    db.delete(o)
    db.commit()


def store_option_image(store: UploadStore, *, data: bytes, mimetype: str) -> dict[str, str]:
    if len(data) > MAX_OPTION_IMAGE_BYTES:
        raise DomainError(413, "file_too_large", "Image too large (max 2MB)")
    ext = REQUEST_IMAGE_MIMES.get((mimetype or "").lower())
    if ext is None:
        raise DomainError(415, "unsupported_file_type", "Allowed: PNG, JPEG, WebP, GIF")
    return {"url": store.save_bytes(SERVICE_OPTION_IMAGES, data, ext)}


__all__ = [
    "slugify_label",
    "list_for_type",
    "list_options",
    "get_option",
    "create_option",
    "update_option",
    "delete_option",
    "store_option_image",
]
