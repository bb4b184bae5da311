"""SQLAlchemy models (relationships resolved explicitly in repos/services)"""

from datetime import UTC, date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


# --- Address book ---
class SubSector(Base):
    __tablename__ = "sub_sectors"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    code: Mapped[str] = mapped_column(String(20), unique=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)


# --- Accounts ---
class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(200), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    full_name: Mapped[str] = mapped_column(String(100))
    phone_country_code: Mapped[str] = mapped_column(String(10))
    phone_number: Mapped[str] = mapped_column(String(20))
    house_no: Mapped[str] = mapped_column(String(50))
    street_no: Mapped[str] = mapped_column(String(50))
    sub_sector_id: Mapped[int] = mapped_column(ForeignKey("sub_sectors.id"))
    id_card_front: Mapped[str] = mapped_column(String(255), nullable=True)
    id_card_back: Mapped[str] = mapped_column(String(255), nullable=True)
    profile_image: Mapped[str] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="user")  # user, admin
    approval_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, approved, rejected
    account_status: Mapped[str] = mapped_column(String(20), default="active")  # active, deactivated
    refresh_token_jti: Mapped[str] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_users_sub_sector_house", "sub_sector_id", "house_no"),)


# --- Service catalogue ---
class RequestType(Base):
    __tablename__ = "request_types"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    slug: Mapped[str] = mapped_column(String(50), unique=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    icon_url: Mapped[str] = mapped_column(String(500), nullable=True)
    # "HH:mm" interpreted in the admin timezone; NULL = unrestricted
    restriction_start_time: Mapped[str] = mapped_column(String(5), nullable=True)
    restriction_end_time: Mapped[str] = mapped_column(String(5), nullable=True)
    # comma separated weekdays, 0=Sun .. 6=Sat
    restriction_days: Mapped[str] = mapped_column(String(20), nullable=True)
    duplicate_restriction_period: Mapped[str] = mapped_column(String(10), nullable=True, default="none")
    under_construction: Mapped[bool] = mapped_column(Boolean, default=False)
    under_construction_message: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ServiceOption(Base):
    __tablename__ = "service_options"
    id: Mapped[int] = mapped_column(primary_key=True)
    request_type_id: Mapped[int] = mapped_column(ForeignKey("request_types.id", ondelete="CASCADE"))
    label: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(120), nullable=True)
    option_kind: Mapped[str] = mapped_column(String(20))  # form, list, rules, notification, link, phone
    config: Mapped[dict] = mapped_column(JSON, nullable=True)
    request_number_prefix: Mapped[str] = mapped_column(String(20), nullable=True)
    request_number_padding: Mapped[int] = mapped_column(Integer, default=4)
    request_number_next: Mapped[int] = mapped_column(Integer, default=1)
    display_order: Mapped[int] = mapped_column(Integer, default=0)
    image_url: Mapped[str] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_service_options_type_order", "request_type_id", "display_order"),)


# --- Requests ---
class Request(Base):
    __tablename__ = "requests"
    id: Mapped[int] = mapped_column(primary_key=True)
    request_type_id: Mapped[int] = mapped_column(ForeignKey("request_types.id", ondelete="RESTRICT"))
    service_option_id: Mapped[int] = mapped_column(
        ForeignKey("service_options.id", ondelete="SET NULL"), nullable=True
    )
    # legacy rows may carry NULL
    request_number: Mapped[str] = mapped_column(String(40), unique=True, nullable=True)
    description: Mapped[str] = mapped_column(Text, default="")
    issue_image_url: Mapped[str] = mapped_column(String(500), nullable=True)
    house_no: Mapped[str] = mapped_column(String(50))
    street_no: Mapped[str] = mapped_column(String(50))
    sub_sector_id: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), default="pending")
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_requests_service_option_id", "service_option_id"),
        Index(
            "ix_requests_duplicate_slot",
            "request_type_id",
            "service_option_id",
            "house_no",
            "street_no",
            "sub_sector_id",
            "created_at",
        ),
        Index("ix_requests_user_created", "user_id", "created_at"),
    )


# --- Bulletins ---
class DailyBulletin(Base):
    __tablename__ = "daily_bulletins"
    id: Mapped[int] = mapped_column(primary_key=True)
    date: Mapped[date] = mapped_column(Date, unique=True)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, nullable=True)
    file_path: Mapped[str] = mapped_column(String(512))
    file_type: Mapped[str] = mapped_column(String(10))  # pdf, csv, excel
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
