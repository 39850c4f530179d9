from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from almanac import analytics, repository
from almanac.errors import AggregationFailed, NotFound

pytestmark = pytest.mark.usefixtures("ctx")

NOW = datetime(2024, 6, 15, 12, 0)


def _ts(dt):
    return dt.replace(tzinfo=timezone.utc).timestamp()


def _reading(garden, when, **values):
    values.setdefault("humidity", 50)
    values["timestamp"] = _ts(when)
    return repository.record_weather(garden.owner_id, garden.id, values)


def test_zero_gardens_gives_empty_stats():
    stats = analytics.compute_stats("u1", now=NOW)

    assert stats == {
        "period": "last_30_days",
        "total_gardens": 0,
        "gardens_reporting": 0,
        "total_readings": 0,
        "average_temperature": None,
        "average_humidity": None,
        "total_precipitation": 0,
        "weather_alerts": 0,
        "total_plants": 0,
        "active_plants": 0,
        "plants_needing_attention": 0,
        "recent_activities": 0,
        "average_health_score": 0,
        "gardens": [],
    }


def test_gardens_without_readings_are_counted_but_not_averaged():
    repository.create_garden("u1", {"name": "Backyard"})

    stats = analytics.compute_stats("u1", now=NOW)

    assert stats["total_gardens"] == 1
    assert stats["gardens_reporting"] == 0
    assert stats["average_temperature"] is None
    assert stats["gardens"][0]["alerts"] == []


def test_metrics_fold_across_own_gardens_only():
    backyard = repository.create_garden("u1", {"name": "Backyard"})
    greenhouse = repository.create_garden("u1", {"name": "Greenhouse"})
    other = repository.create_garden("u2", {"name": "Allotment"})

    _reading(backyard, NOW - timedelta(days=2), temperature=10, humidity=40, precipitation=1.5)
    _reading(backyard, NOW - timedelta(days=1), temperature=20, humidity=60, precipitation=0.5)
    _reading(greenhouse, NOW - timedelta(hours=3), temperature=24, humidity=80)
    _reading(other, NOW - timedelta(hours=1), temperature=-5, humidity=10, precipitation=30)

    stats = analytics.compute_stats("u1", now=NOW)

    assert stats["total_gardens"] == 2
    assert stats["gardens_reporting"] == 2
    assert stats["total_readings"] == 3
    # Mean of per-garden means: (15 + 24) / 2 and (50 + 80) / 2.
    assert stats["average_temperature"] == 19.5
    assert stats["average_humidity"] == 65.0
    assert stats["total_precipitation"] == 2.0
    assert stats["weather_alerts"] == 0
    assert [g["name"] for g in stats["gardens"]] == ["Backyard", "Greenhouse"]
    assert stats["gardens"][0]["avg_temp"] == 15.0
    assert stats["gardens"][0]["readings"] == 2


def test_readings_outside_period_are_ignored():
    garden = repository.create_garden("u1", {"name": "Backyard"})
    _reading(garden, NOW - timedelta(days=20), temperature=10)
    _reading(garden, NOW - timedelta(days=60), temperature=30)

    assert analytics.compute_stats("u1", days=7, now=NOW)["total_readings"] == 0
    assert analytics.compute_stats("u1", days=30, now=NOW)["total_readings"] == 1
    assert analytics.compute_stats("u1", days=90, now=NOW)["total_readings"] == 2


def test_alerts_use_latest_reading_and_garden_settings():
    garden = repository.create_garden("u1", {"name": "Backyard"})
    repository.update_settings("u1", garden.id, {"frost_threshold": 2, "max_wind_speed": 30})
    _reading(garden, NOW - timedelta(days=1), temperature=40, humidity=50)
    _reading(garden, NOW - timedelta(hours=1), temperature=1, humidity=20, wind_speed=35)

    stats = analytics.compute_stats("u1", now=NOW)

    assert stats["gardens"][0]["alerts"] == ["frost", "low_humidity", "high_wind"]
    assert stats["weather_alerts"] == 3


def test_disabled_threshold_raises_no_alert():
    garden = repository.create_garden("u1", {"name": "Backyard"})
    repository.update_settings("u1", garden.id, {"heat_threshold": None})
    _reading(garden, NOW - timedelta(hours=1), temperature=45)

    assert analytics.compute_stats("u1", now=NOW)["weather_alerts"] == 0


def test_unreadable_weather_history_fails_whole_aggregation(monkeypatch):
    repository.create_garden("u1", {"name": "Backyard"})
    repository.create_garden("u1", {"name": "Greenhouse"})

    def broken(user_id, garden_id, since):
        raise OperationalError("SELECT ...", {}, Exception("database is locked"))

    monkeypatch.setattr(repository, "weather_history", broken)

    with pytest.raises(AggregationFailed):
        analytics.compute_stats("u1", now=NOW)


def test_plant_metrics_fold_across_own_gardens_only():
    backyard = repository.create_garden("u1", {"name": "Backyard"})
    greenhouse = repository.create_garden("u1", {"name": "Greenhouse"})
    other = repository.create_garden("u2", {"name": "Allotment"})
    repository.create_plant("u1", backyard.id, {"plant_type": "Tomato", "health_status": "excellent"})
    repository.create_plant("u1", backyard.id, {"plant_type": "Basil", "health_status": "fair"})
    repository.create_plant("u1", greenhouse.id, {"plant_type": "Pepper"})
    repository.create_plant("u1", greenhouse.id, {"plant_type": "Chili", "health_status": "poor"})
    repository.create_plant("u2", other.id, {"plant_type": "Kale", "health_status": "poor"})

    stats = analytics.compute_stats("u1", now=NOW)

    assert stats["total_plants"] == 4
    assert stats["active_plants"] == 2
    assert stats["plants_needing_attention"] == 2
    # (100 + 60 + 80 + 40) / 4
    assert stats["average_health_score"] == 70
    assert [(g["plants"], g["plants_needing_attention"]) for g in stats["gardens"]] == \
        [(2, 1), (2, 1)]


def test_average_health_score_rounds_halves_up():
    snapshot = analytics.GardenSnapshot(1, "Backyard", {}, (), plants=(
        SimpleNamespace(health_status="excellent"),
        SimpleNamespace(health_status="excellent"),
        SimpleNamespace(health_status="good"),
        SimpleNamespace(health_status="wilting"),
    ))
    # (100 + 100 + 80 + 50) / 4 == 82.5
    assert analytics.METRICS["average_health_score"]([snapshot]) == 83


def test_recent_activities_cover_last_week_whatever_the_period():
    garden = repository.create_garden("u1", {"name": "Backyard"})
    for days_ago in (1, 6, 8, 20):
        repository.log_activity("u1", garden.id, {
            "type": "watering", "description": "Watered beds",
            "timestamp": _ts(NOW - timedelta(days=days_ago)),
        })

    assert analytics.compute_stats("u1", days=7, now=NOW)["recent_activities"] == 2
    assert analytics.compute_stats("u1", days=90, now=NOW)["recent_activities"] == 2


def test_unreadable_plants_fail_whole_aggregation(monkeypatch):
    repository.create_garden("u1", {"name": "Backyard"})

    def broken(user_id, garden_id):
        raise OperationalError("SELECT ...", {}, Exception("database is locked"))

    monkeypatch.setattr(repository, "garden_plants", broken)

    with pytest.raises(AggregationFailed):
        analytics.compute_stats("u1", now=NOW)


def test_metric_registry_is_complete_and_pure():
    assert list(analytics.METRICS) == [
        "total_gardens", "gardens_reporting", "total_readings", "average_temperature",
        "average_humidity", "total_precipitation", "weather_alerts", "total_plants",
        "active_plants", "plants_needing_attention", "recent_activities", "average_health_score",
    ]
    snapshots = [analytics.GardenSnapshot(1, "Backyard", {}, ())]
    assert {name: fn(snapshots) for name, fn in analytics.METRICS.items()} == \
        {name: fn(snapshots) for name, fn in analytics.METRICS.items()}


@pytest.mark.parametrize("value, expected", [
    ("7", 7), ("30", 30), ("90", 90), (None, 30), ("14", 30), ("abc", 30),
])
def test_normalize_period(value, expected):
    assert analytics.normalize_period(value) == expected


def test_daily_trends_group_by_day():
    garden = repository.create_garden("u1", {"name": "Backyard"})
    day1 = datetime(2024, 6, 13, 8, 0)
    day2 = datetime(2024, 6, 14, 9, 0)
    _reading(garden, day1, temperature=10, humidity=40, precipitation=1)
    _reading(garden, day1 + timedelta(hours=6), temperature=20, humidity=60, precipitation=2)
    _reading(garden, day2, temperature=18, humidity=70)

    trends = analytics.daily_trends("u1", garden.id, days=7, now=NOW)

    assert trends == [
        {"date": "2024-06-13", "avg_temp": 15.0, "total_precip": 3.0, "avg_humidity": 50.0},
        {"date": "2024-06-14", "avg_temp": 18.0, "total_precip": 0.0, "avg_humidity": 70.0},
    ]


def test_daily_trends_for_other_users_garden_is_not_found():
    garden = repository.create_garden("u2", {"name": "Allotment"})
    with pytest.raises(NotFound):
        analytics.daily_trends("u1", garden.id, now=NOW)
