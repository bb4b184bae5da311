"""JSON contracts for API payloads.

Keys are camelCase on the wire. These TypedDicts document the shapes produced
by the service serializers; runtime behavior does not depend on them.
"""

from __future__ import annotations

from typing import Literal, NewType, NotRequired, TypedDict

# --- Identifier NewTypes ---
UserId = NewType("UserId", int)
SubSectorId = NewType("SubSectorId", int)
RequestTypeId = NewType("RequestTypeId", int)
ServiceOptionId = NewType("ServiceOptionId", int)
RequestId = NewType("RequestId", int)

RequestStatus = Literal["pending", "cancelled", "in_progress", "completed", "done"]
REQUEST_STATUSES: tuple[RequestStatus, ...] = ("pending", "cancelled", "in_progress", "completed", "done")
# statuses accepted on writes; "done" only survives on legacy rows
WRITABLE_STATUSES: tuple[RequestStatus, ...] = ("pending", "cancelled", "in_progress", "completed")
COMPLETED_STATUSES: tuple[RequestStatus, ...] = ("completed", "done")
OPEN_STATUSES: tuple[RequestStatus, ...] = ("pending", "in_progress")

OptionKind = Literal["form", "list", "rules", "notification", "link", "phone"]
OPTION_KINDS: tuple[OptionKind, ...] = ("form", "list", "rules", "notification", "link", "phone")

IssueImageRequirement = Literal["none", "optional", "required"]


def is_completed(status: str | None) -> bool:
    return status in COMPLETED_STATUSES


class SubSectorPayload(TypedDict):
    id: SubSectorId
    name: str
    code: str
    displayOrder: int


class UserPayload(TypedDict):
    id: UserId
    email: str
    fullName: str
    phoneCountryCode: str
    phoneNumber: str
    houseNo: str
    streetNo: str
    subSectorId: SubSectorId
    subSector: NotRequired[SubSectorPayload | None]
    idCardFront: str | None
    idCardBack: str | None
    profileImage: str | None
    role: str
    approvalStatus: str
    accountStatus: str
    createdAt: str | None
    requestCount: NotRequired[int]


class RequestTypePayload(TypedDict):
    id: RequestTypeId
    name: str
    slug: str
    displayOrder: int
    iconUrl: str | None
    restrictionStartTime: str | None
    restrictionEndTime: str | None
    restrictionDays: str | None
    duplicateRestrictionPeriod: str
    underConstruction: bool
    underConstructionMessage: str | None
    createdAt: str | None


class ServiceOptionPayload(TypedDict):
    id: ServiceOptionId
    requestTypeId: RequestTypeId
    label: str
    slug: str | None
    optionType: OptionKind
    config: dict | None
    requestNumberPrefix: str | None
    requestNumberPadding: int
    requestNumberNext: int
    displayOrder: int
    imageUrl: str | None
    createdAt: str | None


class RequestPayload(TypedDict):
    id: RequestId
    requestNumber: str | None
    requestTypeId: RequestTypeId
    requestTypeOptionId: ServiceOptionId | None
    description: str
    issueImageUrl: str | None
    houseNo: str
    streetNo: str
    subSectorId: SubSectorId
    status: RequestStatus
    userId: UserId
    createdAt: str | None
    updatedAt: str | None
    requestType: NotRequired[RequestTypePayload | None]
    requestTypeOption: NotRequired[ServiceOptionPayload | None]
    user: NotRequired[UserPayload | None]


class TypeCount(TypedDict):
    requestTypeId: RequestTypeId
    name: str
    slug: str
    count: int


class StatsSummary(TypedDict):
    total: int
    byType: list[TypeCount]


class DailyCount(TypedDict):
    date: str
    count: int


class BulletinPayload(TypedDict):
    id: int
    date: str
    title: str
    description: str | None
    filePath: str
    fileType: str
    createdAt: str | None
    updatedAt: str | None


class TokenPairResponse(TypedDict):
    accessToken: str
    refreshToken: str
    tokenType: Literal["Bearer"]
    expiresIn: int
    user: UserPayload


__all__ = [
    "UserId",
    "SubSectorId",
    "RequestTypeId",
    "ServiceOptionId",
    "RequestId",
    "RequestStatus",
    "REQUEST_STATUSES",
    "WRITABLE_STATUSES",
    "COMPLETED_STATUSES",
    "OPEN_STATUSES",
    "OptionKind",
    "OPTION_KINDS",
    "IssueImageRequirement",
    "is_completed",
    "SubSectorPayload",
    "UserPayload",
    "RequestTypePayload",
    "ServiceOptionPayload",
    "RequestPayload",
    "StatsSummary",
    "DailyCount",
    "BulletinPayload",
    "TokenPairResponse",
]
