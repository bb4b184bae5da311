from datetime import UTC, datetime

import pytest

from civicdesk.report_service import ReportService, aging_bucket, growth, pct

ADMIN_HEADERS = {"X-User-Role": "admin", "X-User-Id": "1"}

NOW = datetime(2026, 3, 18, 12, 0, tzinfo=UTC)


def at(day, hour=10):
    return datetime(2026, 3, day, hour, 0, tzinfo=UTC)


@pytest.fixture
def march(factory, db):
    water = factory.request_type(name="Water", slug="water")
    tanker = factory.option(water, label="Order Water Tanker", slug="order_water_tanker")
    a = factory.user(full_name="Resident A", house_no="12", created_at=at(5))
    b = factory.user(
        full_name="Resident B",
        house_no="30",
        sub_sector_id=factory.sub_sector_id("B"),
        created_at=datetime(2026, 2, 20, tzinfo=UTC),
    )
    delivered = factory.request(user=a, request_type=water, option=tanker, status="completed", created_at=at(10, 8))
    delivered.updated_at = at(10, 20)
    factory.request(user=a, request_type=water, option=tanker, status="pending", created_at=at(16, 9))
    factory.request(user=b, request_type=water, status="cancelled", created_at=at(17))
    legacy = factory.request(user=b, request_type=water, status="done", created_at=at(2))
    legacy.updated_at = at(3)
    db.commit()
    factory.request(user=b, request_type=water, created_at=datetime(2026, 2, 15, tzinfo=UTC))


def test_dashboard_month_insights(db, march):
    report = ReportService(db, now=NOW).dashboard("month")
    assert report["filter"] == {"period": "month", "from": "2026-03-01", "to": "2026-03-31"}
    insights = report["insights"]
    assert insights["completionRate"] == 50.0
    assert insights["cancellationRate"] == 25.0
    assert insights["backlogCount"] == 1
    assert insights["avgResolutionHours"] == 18.0
    assert insights["requestsGrowthPercent"] == 300.0
    assert insights["usersGrowthPercent"] == 0
    assert insights["topSubSectorByRequests"]["requestsCount"] == 2


def test_dashboard_summaries(db, march):
    report = ReportService(db, now=NOW).dashboard("month")
    assert report["usersSummary"]["totalUsers"] == 1
    assert report["usersBySubSectorHouse"][0]["userName"] == "Resident A"
    assert report["usersBySubSectorHouse"][0]["usersInHouse"] == 1
    requests = report["requestsSummary"]
    assert requests["totalRequests"] == 4
    assert [s["status"] for s in requests["byStatus"]] == ["cancelled", "completed", "done", "pending"]
    assert {s["subSectorName"]: s["requestsCount"] for s in requests["bySubSector"]} == {"Sector A": 2, "Sector B": 2}
    first_group = report["requestsPerHouseDateStatus"][0]
    assert first_group["date"] == "2026-03-17"


def test_dashboard_tanker_summary(db, march):
    tanker = ReportService(db, now=NOW).dashboard("month")["tankerSummary"]
    assert (tanker["requested"], tanker["delivered"], tanker["pending"], tanker["cancelled"]) == (2, 1, 1, 0)
    assert tanker["bySubSector"] == [
        {"subSectorId": tanker["bySubSector"][0]["subSectorId"], "subSectorName": "Sector A", "requested": 2, "delivered": 1, "pending": 1}
    ]
    assert [r["status"] for r in tanker["requests"]] == ["pending", "completed"]
    assert tanker["requests"][0]["mobileNo"] == "+92 3001234567"


def test_dashboard_analytics(db, march):
    analytics = ReportService(db, now=NOW).dashboard("month")["analytics"]
    assert [d["date"] for d in analytics["dailyTrend"]] == ["2026-03-02", "2026-03-10", "2026-03-16", "2026-03-17"]
    aging = {b["bucket"]: b["count"] for b in analytics["agingBuckets"]}
    assert aging == {"0-1 day": 0, "2-3 days": 1, "4-7 days": 0, "8+ days": 0}
    hourly = {h["hour"]: h["count"] for h in analytics["hourlyDemand"]}
    assert len(hourly) == 24
    assert hourly[10] == 2 and hourly[8] == 1 and hourly[9] == 1
    options = {o["serviceOptionLabel"]: o["requestsCount"] for o in analytics["topServiceOptions"]}
    assert options == {"Order Water Tanker": 2, "General": 2}
    assert len(analytics["repeatDemandHouses"]) == 2
    mix = {m["subSectorName"]: m for m in analytics["statusMixBySubSector"]}
    assert mix["Sector B"]["completedCount"] == 1
    assert mix["Sector B"]["cancelledCount"] == 1
    assert mix["Sector B"]["completionRate"] == 50.0


def test_dashboard_custom_and_fallback_periods(db, march):
    svc = ReportService(db, now=NOW)
    custom = svc.dashboard("custom", "2026-03-17", "2026-03-10")
    assert custom["filter"] == {"period": "custom", "from": "2026-03-10", "to": "2026-03-17"}
    assert custom["requestsSummary"]["totalRequests"] == 3
    assert svc.dashboard("custom", "bad", None)["filter"]["period"] == "month"
    assert svc.dashboard("bogus")["filter"]["period"] == "month"
    week = svc.dashboard("week")
    assert week["filter"]["from"] == "2026-03-16"
    assert week["requestsSummary"]["totalRequests"] == 2
    assert svc.dashboard("today")["requestsSummary"]["totalRequests"] == 0


def test_empty_dashboard(db):
    report = ReportService(db, now=NOW).dashboard("today")
    assert report["insights"]["completionRate"] == 0
    assert report["insights"]["topSubSectorByRequests"] is None
    assert report["tankerSummary"]["requests"] == []


def test_dashboard_endpoint(client, march):
    r = client.get("/requests/reports/dashboard?period=custom&from=2026-03-01&to=2026-03-31", headers=ADMIN_HEADERS)
    assert r.status_code == 200
    assert r.get_json()["requestsSummary"]["totalRequests"] == 4
    assert client.get("/requests/reports/dashboard", headers={"X-User-Role": "user", "X-User-Id": "2"}).status_code == 403


@pytest.mark.parametrize(
    "days,bucket",
    [(0.5, "0-1 day"), (1, "0-1 day"), (2.5, "2-3 days"), (7, "4-7 days"), (7.01, "8+ days")],
)
def test_aging_bucket(days, bucket):
    assert aging_bucket(days) == bucket


def test_rates():
    assert pct(1, 3) == 33.3
    assert pct(5, 0) == 0
    assert growth(3, 0) == 100
    assert growth(0, 0) == 0
    assert growth(1, 4) == -75.0
