"""Row -> camelCase JSON projections shared by the services."""
from __future__ import annotations

from datetime import datetime

from .api_types import (
    BulletinPayload,
    RequestId,
    RequestPayload,
    RequestTypeId,
    RequestTypePayload,
    ServiceOptionId,
    ServiceOptionPayload,
    SubSectorId,
    SubSectorPayload,
    UserId,
    UserPayload,
)
from .models import DailyBulletin, Request, RequestType, ServiceOption, SubSector, User
from .periods import as_utc


def iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def sub_sector_payload(s: SubSector) -> SubSectorPayload:
    return {
        "id": SubSectorId(s.id),
        "name": s.name,
        "code": s.code,
        "displayOrder": s.display_order or 0,
    }


def user_payload(u: User, sub_sector: SubSector | None = None) -> UserPayload:
    # password_hash and refresh_token_jti never leave the service layer
    out: UserPayload = {
        "id": UserId(u.id),
        "email": u.email,
        "fullName": u.full_name,
        "phoneCountryCode": u.phone_country_code,
        "phoneNumber": u.phone_number,
        "houseNo": u.house_no,
        "streetNo": u.street_no,
        "subSectorId": SubSectorId(u.sub_sector_id),
        "idCardFront": u.id_card_front,
        "idCardBack": u.id_card_back,
        "profileImage": u.profile_image,
        "role": u.role,
        "approvalStatus": u.approval_status,
        "accountStatus": u.account_status,
        "createdAt": iso(u.created_at),
    }
    if sub_sector is not None:
        out["subSector"] = sub_sector_payload(sub_sector)
    return out


def request_type_payload(t: RequestType) -> RequestTypePayload:
    return {
        "id": RequestTypeId(t.id),
        "name": t.name,
        "slug": t.slug,
        "displayOrder": t.display_order or 0,
        "iconUrl": t.icon_url,
        "restrictionStartTime": t.restriction_start_time,
        "restrictionEndTime": t.restriction_end_time,
        "restrictionDays": t.restriction_days,
        "duplicateRestrictionPeriod": t.duplicate_restriction_period or "none",
        "underConstruction": bool(t.under_construction),
        "underConstructionMessage": t.under_construction_message,
        "createdAt": iso(t.created_at),
    }


def service_option_payload(o: ServiceOption) -> ServiceOptionPayload:
    return {
        "id": ServiceOptionId(o.id),
        "requestTypeId": RequestTypeId(o.request_type_id),
        "label": o.label,
        "slug": o.slug,
        "optionType": o.option_kind,  # type: ignore[typeddict-item]
        "config": o.config,
        "requestNumberPrefix": o.request_number_prefix,
        "requestNumberPadding": o.request_number_padding,
        "requestNumberNext": o.request_number_next,
        "displayOrder": o.display_order or 0,
        "imageUrl": o.image_url,
        "createdAt": iso(o.created_at),
    }


def request_payload(
    r: Request,
    *,
    request_type: RequestType | None = None,
    option: ServiceOption | None = None,
    user: User | None = None,
) -> RequestPayload:
    out: RequestPayload = {
        "id": RequestId(r.id),
        "requestNumber": r.request_number,
        "requestTypeId": RequestTypeId(r.request_type_id),
        "requestTypeOptionId": ServiceOptionId(r.service_option_id) if r.service_option_id else None,
        "description": r.description or "",
        "issueImageUrl": r.issue_image_url,
        "houseNo": r.house_no,
        "streetNo": r.street_no,
        "subSectorId": SubSectorId(r.sub_sector_id),
        "status": r.status,  # type: ignore[typeddict-item]
        "userId": UserId(r.user_id),
        "createdAt": iso(r.created_at),
        "updatedAt": iso(r.updated_at),
    }
    if request_type is not None:
        out["requestType"] = request_type_payload(request_type)
    if option is not None:
        out["requestTypeOption"] = service_option_payload(option)
    if user is not None:
        out["user"] = user_payload(user)
    return out


def bulletin_payload(b: DailyBulletin) -> BulletinPayload:
    return {
        "id": b.id,
        "date": b.date.isoformat(),
        "title": b.title,
        "description": b.description,
        "filePath": b.file_path,
        "fileType": b.file_type,
        "createdAt": iso(b.created_at),
        "updatedAt": iso(b.updated_at),
    }
