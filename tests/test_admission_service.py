"""Admission pipeline: check order, duplicate policy, numbering and rollback."""

from __future__ import annotations

import os
import threading
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from civicdesk import admission_service
from civicdesk.admission_service import ImageUpload, Submission, parse_submission, submit
from civicdesk.db import get_new_session
from civicdesk.errors import (
    DuplicateInPeriod,
    ImageRequired,
    ImageTooLarge,
    InvalidRequestType,
    InvalidServiceOption,
    InvalidSubSector,
    OutsideSubmissionWindow,
    StorageFailure,
    UnsupportedImageType,
    ValidationError,
)
from civicdesk.metrics import set_metrics
from civicdesk.models import Request
from civicdesk.storage import REQUEST_IMAGES, UploadStore

TZ = "Asia/Karachi"
MONDAY_NOON_PKT = datetime(2024, 6, 3, 7, 0, tzinfo=UTC)
PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 64


class RecordingMetrics:
    def __init__(self):
        self.calls = []

    def increment(self, name, tags=None):
        self.calls.append((name, dict(tags or {})))


@pytest.fixture
def metrics():
    m = RecordingMetrics()
    set_metrics(m)
    return m


@pytest.fixture
def store(tmp_path):
    return UploadStore(str(tmp_path / "uploads"))


@pytest.fixture
def catalogue(factory):
    rt = factory.request_type(name="Water", slug="water")
    opt = factory.option(rt, label="Water Tanker")
    resident = factory.user()
    return rt, opt, resident


def _sub(rt, opt, sector_id, house="12", street="4", image=None):
    return Submission(
        request_type_id=rt.id,
        service_option_id=opt.id,
        house_no=house,
        street_no=street,
        sub_sector_id=sector_id,
        image=image,
    )


def _files(store):
    folder = os.path.join(store.root, REQUEST_IMAGES)
    return os.listdir(folder) if os.path.isdir(folder) else []


def test_numbers_allocated_from_option_counter(db, factory, catalogue, store, metrics):
    rt, opt, resident = catalogue
    sector = factory.sub_sector_id()
    first = submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=MONDAY_NOON_PKT)
    second = submit(
        db, _sub(rt, opt, sector, house="13"), user_id=resident.id, admin_tz=TZ, store=store, now=MONDAY_NOON_PKT
    )
    assert first.request_number == "WATERT#0001"
    assert second.request_number == "WATERT#0002"
    assert first.status == "pending"
    assert opt.request_number_next == 3
    assert ("requests.submitted", {"request_type": "water"}) in metrics.calls


def test_configured_prefix_and_padding(db, factory, store):
    rt = factory.request_type()
    opt = factory.option(rt, label="Garbage pickup", prefix="gb", padding=3, next_value=41)
    resident = factory.user()
    req = submit(db, _sub(rt, opt, factory.sub_sector_id()), user_id=resident.id, admin_tz=TZ, store=store)
    assert req.request_number == "GB#041"
    assert opt.request_number_next == 42


def test_taken_numbers_are_skipped(db, factory, store):
    rt = factory.request_type()
    opt = factory.option(rt, label="Drain", prefix="DR")
    resident = factory.user()
    factory.request(user=resident, request_type=rt, option=opt, request_number="DR#0001", house_no="99")
    req = submit(db, _sub(rt, opt, factory.sub_sector_id()), user_id=resident.id, admin_tz=TZ, store=store)
    assert req.request_number == "DR#0002"
    assert opt.request_number_next == 3


def test_unknown_type_rejected_and_counted(db, factory, catalogue, store, metrics):
    _, opt, resident = catalogue
    sub = Submission(request_type_id=999999, service_option_id=opt.id, house_no="1", street_no="1", sub_sector_id=1)
    with pytest.raises(InvalidRequestType) as exc:
        submit(db, sub, user_id=resident.id, admin_tz=TZ, store=store)
    assert exc.value.status == 403
    assert ("requests.rejected", {"reason": "invalid_request_type"}) in metrics.calls


def test_window_checked_before_sub_sector(db, factory, store):
    rt = factory.request_type(name="Water", restriction_start_time="09:00", restriction_end_time="17:00")
    opt = factory.option(rt)
    resident = factory.user()
    late = datetime(2024, 6, 3, 13, 0, tzinfo=UTC)  # 18:00 in Karachi
    with pytest.raises(OutsideSubmissionWindow) as exc:
        submit(db, _sub(rt, opt, 999999), user_id=resident.id, admin_tz=TZ, store=store, now=late)
    assert exc.value.detail == "Water request window: allowed only between 09:00 and 17:00."
    assert exc.value.status == 403
    # inside the window the bad sub-sector is what fails
    with pytest.raises(InvalidSubSector):
        submit(db, _sub(rt, opt, 999999), user_id=resident.id, admin_tz=TZ, store=store, now=MONDAY_NOON_PKT)


def test_option_must_belong_to_type(db, factory, catalogue, store):
    rt, _, resident = catalogue
    other = factory.option(factory.request_type(), label="Elsewhere")
    with pytest.raises(InvalidServiceOption) as exc:
        submit(db, _sub(rt, other, factory.sub_sector_id()), user_id=resident.id, admin_tz=TZ, store=store)
    assert exc.value.status == 409


def test_required_image(db, factory, store):
    rt = factory.request_type()
    opt = factory.option(rt, config={"issueImage": "required"})
    resident = factory.user()
    with pytest.raises(ImageRequired):
        submit(db, _sub(rt, opt, factory.sub_sector_id()), user_id=resident.id, admin_tz=TZ, store=store)
    req = submit(
        db,
        _sub(rt, opt, factory.sub_sector_id(), image=ImageUpload(PNG, "image/png", "leak.png")),
        user_id=resident.id,
        admin_tz=TZ,
        store=store,
    )
    assert req.issue_image_url.startswith("/uploads/request-images/")
    assert req.issue_image_url.endswith(".png")
    assert os.path.isfile(store.path_for(req.issue_image_url))


def test_duplicate_in_week(db, factory, store):
    rt = factory.request_type(name="Water", duplicate_restriction_period="week")
    opt = factory.option(rt, label="Water Tanker")
    resident = factory.user()
    sector = factory.sub_sector_id()
    wednesday = datetime(2024, 6, 5, 10, tzinfo=UTC)
    submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=MONDAY_NOON_PKT)
    with pytest.raises(DuplicateInPeriod) as exc:
        submit(db, _sub(rt, opt, sector, house=" 12 "), user_id=resident.id, admin_tz=TZ, store=store, now=wednesday)
    assert "Only one Water Tanker request per calendar week" in exc.value.detail
    # another house, or the following week, is fine
    submit(db, _sub(rt, opt, sector, house="14"), user_id=resident.id, admin_tz=TZ, store=store, now=wednesday)
    submit(
        db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=MONDAY_NOON_PKT + timedelta(days=7)
    )


def test_image_limits(db, factory, catalogue, store):
    rt, opt, resident = catalogue
    sector = factory.sub_sector_id()
    big = ImageUpload(b"0" * 2048, "image/png")
    with pytest.raises(ImageTooLarge) as exc:
        submit(db, _sub(rt, opt, sector, image=big), user_id=resident.id, admin_tz=TZ, store=store, max_image_bytes=1024)
    assert exc.value.status == 413
    with pytest.raises(UnsupportedImageType) as exc2:
        submit(db, _sub(rt, opt, sector, image=ImageUpload(b"%PDF", "application/pdf")), user_id=resident.id, admin_tz=TZ, store=store)
    assert exc2.value.status == 415
    assert _files(store) == []


def test_race_lost_under_lock_rolls_back_and_removes_image(db, factory, catalogue, store, monkeypatch):
    rt, opt, resident = catalogue
    real_check = admission_service._check_duplicate
    calls = []

    def check_then_lose(*args):
        calls.append(1)
        if len(calls) > 1:
            raise DuplicateInPeriod("raced")
        return real_check(*args)

    monkeypatch.setattr(admission_service, "_check_duplicate", check_then_lose)
    sub = _sub(rt, opt, factory.sub_sector_id(), image=ImageUpload(PNG, "image/png"))
    with pytest.raises(DuplicateInPeriod):
        submit(db, sub, user_id=resident.id, admin_tz=TZ, store=store)
    assert _files(store) == []
    assert db.execute(select(func.count(Request.id))).scalar_one() == 0
    assert opt.request_number_next == 1


def test_database_failure_becomes_storage_failure(db, factory, catalogue, store, monkeypatch):
    rt, opt, resident = catalogue

    def boom(*args, **kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(admission_service, "_allocate_and_insert", boom)
    sub = _sub(rt, opt, factory.sub_sector_id(), image=ImageUpload(PNG, "image/png"))
    with pytest.raises(StorageFailure) as exc:
        submit(db, sub, user_id=resident.id, admin_tz=TZ, store=store)
    assert exc.value.status == 500
    assert _files(store) == []


def test_parse_submission_collects_field_errors():
    with pytest.raises(ValidationError) as exc:
        parse_submission({"requestTypeId": "abc", "houseNo": "", "description": "short"})
    fields = {e["field"] for e in exc.value.errors}
    assert {"requestTypeId", "requestTypeOptionId", "houseNo", "streetNo", "subSectorId", "description"} <= fields


def test_parse_submission_accepts_form_strings():
    sub = parse_submission(
        {
            "requestTypeId": "3",
            "requestTypeOptionId": "7",
            "houseNo": " 12 ",
            "streetNo": "4",
            "subSectorId": "2",
            "description": "",
        }
    )
    assert (sub.request_type_id, sub.service_option_id, sub.sub_sector_id) == (3, 7, 2)
    assert sub.house_no == "12"
    assert sub.description == ""


@pytest.mark.parametrize("description", [12345, ["a long enough text"], {"text": "a long enough text"}])
def test_parse_submission_rejects_non_text_description(description):
    body = {
        "requestTypeId": 1,
        "requestTypeOptionId": 1,
        "houseNo": "12",
        "streetNo": "4",
        "subSectorId": 1,
        "description": description,
    }
    with pytest.raises(ValidationError) as exc:
        parse_submission(body)
    assert [e["field"] for e in exc.value.errors] == ["description"]


def test_label_derived_prefix(db, factory, store):
    rt = factory.request_type(name="Water")
    opt = factory.option(rt, label="Order Water Tanker")
    resident = factory.user()
    sector = factory.sub_sector_id()
    first = submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store)
    second = submit(db, _sub(rt, opt, sector, house="13"), user_id=resident.id, admin_tz=TZ, store=store)
    assert (first.request_number, second.request_number) == ("ORDERW#0001", "ORDERW#0002")


def test_weekday_window_in_admin_timezone(db, factory, store):
    rt = factory.request_type(
        name="Water", restriction_start_time="09:00", restriction_end_time="17:00", restriction_days="1,2,3,4,5"
    )
    opt = factory.option(rt)
    resident = factory.user()
    sector = factory.sub_sector_id()
    # Karachi is UTC+5 all year
    before_open = datetime(2024, 6, 3, 3, 59, 59, tzinfo=UTC)
    at_open = datetime(2024, 6, 3, 4, 0, tzinfo=UTC)
    saturday = datetime(2024, 6, 8, 5, 0, tzinfo=UTC)
    with pytest.raises(OutsideSubmissionWindow):
        submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=before_open)
    with pytest.raises(OutsideSubmissionWindow):
        submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=saturday)
    req = submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=at_open)
    assert req.request_number.endswith("#0001")


def test_duplicate_in_utc_day(db, factory, store):
    rt = factory.request_type(name="Water", duplicate_restriction_period="day")
    opt = factory.option(rt)
    resident = factory.user()
    sector = factory.sub_sector_id()
    morning = datetime(2024, 6, 3, 7, 0, tzinfo=UTC)
    late_evening = datetime(2024, 6, 3, 23, 30, tzinfo=UTC)  # already June 4th in Karachi
    next_day = datetime(2024, 6, 4, 0, 10, tzinfo=UTC)
    submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=morning)
    with pytest.raises(DuplicateInPeriod) as exc:
        submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=late_evening)
    assert exc.value.status == 409
    req = submit(db, _sub(rt, opt, sector), user_id=resident.id, admin_tz=TZ, store=store, now=next_day)
    assert req.request_number.endswith("#0002")


def test_concurrent_submissions_get_distinct_numbers(db, factory, store):
    rt = factory.request_type(name="Water")
    opt = factory.option(rt, label="Water Tanker", prefix="WT")
    resident = factory.user()
    sector = factory.sub_sector_id()
    type_id, option_id, user_id = rt.id, opt.id, resident.id
    db.commit()
    workers = 8
    barrier = threading.Barrier(workers)
    numbers, failures = [], []
    lock = threading.Lock()

    def worker(i):
        session = get_new_session()
        sub = Submission(
            request_type_id=type_id, service_option_id=option_id, house_no=str(100 + i), street_no="4", sub_sector_id=sector
        )
        try:
            barrier.wait()
            req = submit(session, sub, user_id=user_id, admin_tz=TZ, store=store)
            with lock:
                numbers.append(req.request_number)
        except StorageFailure:
            # sqlite may refuse a concurrent writer outright; that submission simply fails
            with lock:
                failures.append(i)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert numbers
    assert len(numbers) + len(failures) == workers
    assert len(set(numbers)) == len(numbers)
    stored = db.execute(select(Request.request_number).where(Request.service_option_id == option_id)).scalars().all()
    assert sorted(stored) == sorted(numbers)
