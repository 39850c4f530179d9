"""Dashboard statistics folded across one user's gardens.

Each entry of ``METRICS`` is a pure function of the user's garden snapshots.
If the plants, activity log or weather history of any garden cannot be read
the whole computation fails with ``AggregationFailed``; partial numbers are
never returned.
"""
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError

from . import repository
from .errors import AggregationFailed
from .models import utcnow

log = logging.getLogger(__name__)

PERIODS = (7, 30, 90)
DEFAULT_PERIOD = 30
RECENT_ACTIVITY_DAYS = 7
HEALTH_SCORES = {"excellent": 100, "good": 80, "fair": 60, "poor": 40}
HEALTHY = ("excellent", "good")


@dataclass(frozen=True)
class GardenSnapshot:
    garden_id: int
    name: str
    settings: dict
    readings: tuple
    plants: tuple = ()
    activities: tuple = ()


def normalize_period(value):
    """Map a requested period to 7, 30 or 90 days; anything else means 30."""
    try:
        days = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PERIOD
    return days if days in PERIODS else DEFAULT_PERIOD


def _mean(values):
    values = [v for v in values if v is not None]
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _avg_of(snapshot, attr):
    return _mean([getattr(r, attr) for r in snapshot.readings])


def garden_alerts(snapshot):
    """Alerts raised by the latest reading against the garden's thresholds."""
    if not snapshot.readings:
        return []
    latest = snapshot.readings[-1]
    s = snapshot.settings
    alerts = []
    if s.get("frost_threshold") is not None and latest.temperature <= s["frost_threshold"]:
        alerts.append("frost")
    if s.get("heat_threshold") is not None and latest.temperature >= s["heat_threshold"]:
        alerts.append("heat")
    if s.get("min_humidity") is not None and latest.humidity < s["min_humidity"]:
        alerts.append("low_humidity")
    if s.get("max_wind_speed") is not None and latest.wind_speed >= s["max_wind_speed"]:
        alerts.append("high_wind")
    return alerts


def _total_gardens(snapshots):
    return len(snapshots)


def _gardens_reporting(snapshots):
    return sum(1 for s in snapshots if s.readings)


def _total_readings(snapshots):
    return sum(len(s.readings) for s in snapshots)


def _average_temperature(snapshots):
    return _mean([_avg_of(s, "temperature") for s in snapshots])


def _average_humidity(snapshots):
    return _mean([_avg_of(s, "humidity") for s in snapshots])


def _total_precipitation(snapshots):
    return round(sum(r.precipitation for s in snapshots for r in s.readings), 2)


def _weather_alerts(snapshots):
    return sum(len(garden_alerts(s)) for s in snapshots)


def _plants(snapshots):
    return [p for s in snapshots for p in s.plants]


def _total_plants(snapshots):
    return len(_plants(snapshots))


def _active_plants(snapshots):
    return sum(1 for p in _plants(snapshots) if p.health_status in HEALTHY)


def _plants_needing_attention(snapshots):
    return sum(1 for p in _plants(snapshots) if p.health_status not in HEALTHY)


def _recent_activities(snapshots):
    return sum(len(s.activities) for s in snapshots)


def _average_health_score(snapshots):
    scores = [HEALTH_SCORES.get(p.health_status, 50) for p in _plants(snapshots)]
    if not scores:
        return 0
    # halves round up
    return math.floor(sum(scores) / len(scores) + 0.5)


METRICS = OrderedDict([
    ("total_gardens", _total_gardens),
    ("gardens_reporting", _gardens_reporting),
    ("total_readings", _total_readings),
    ("average_temperature", _average_temperature),
    ("average_humidity", _average_humidity),
    ("total_precipitation", _total_precipitation),
    ("weather_alerts", _weather_alerts),
    ("total_plants", _total_plants),
    ("active_plants", _active_plants),
    ("plants_needing_attention", _plants_needing_attention),
    ("recent_activities", _recent_activities),
    ("average_health_score", _average_health_score),
])


def _garden_summary(snapshot):
    return {
        "id": snapshot.garden_id,
        "name": snapshot.name,
        "readings": len(snapshot.readings),
        "avg_temp": _avg_of(snapshot, "temperature"),
        "avg_humidity": _avg_of(snapshot, "humidity"),
        "total_precip": round(sum(r.precipitation for r in snapshot.readings), 2),
        "alerts": garden_alerts(snapshot),
        "plants": len(snapshot.plants),
        "plants_needing_attention": _plants_needing_attention([snapshot]),
    }


def _snapshots(user_id, since, activity_since):
    snapshots = []
    for garden in repository.list_gardens(user_id):
        try:
            readings = repository.weather_history(user_id, garden.id, since)
            plants = repository.garden_plants(user_id, garden.id)
            activities = repository.recent_activities(user_id, garden.id, activity_since)
        except SQLAlchemyError as e:
            log.error("Garden data unavailable for garden %s (user %s): %s",
                      garden.id, user_id, e)
            raise AggregationFailed() from e
        settings = garden.settings.to_dict() if garden.settings else {}
        snapshots.append(GardenSnapshot(garden.id, garden.name, settings, tuple(readings),
                                        tuple(plants), tuple(activities)))
    return snapshots


def compute_stats(user_id, days=DEFAULT_PERIOD, now=None):
    days = normalize_period(days)
    now = now or utcnow()
    snapshots = _snapshots(user_id, now - timedelta(days=days),
                           now - timedelta(days=RECENT_ACTIVITY_DAYS))

    stats = {"period": f"last_{days}_days"}
    for name, fn in METRICS.items():
        stats[name] = fn(snapshots)
    stats["gardens"] = [_garden_summary(s) for s in snapshots]
    return stats


def daily_trends(user_id, garden_id, days=DEFAULT_PERIOD, now=None):
    days = normalize_period(days)
    garden = repository.get_garden(user_id, garden_id)
    since = (now or utcnow()) - timedelta(days=days)

    by_day = OrderedDict()
    for r in repository.weather_history(user_id, garden.id, since):
        by_day.setdefault(r.recorded_at.date().isoformat(), []).append(r)

    return [{
        "date": day,
        "avg_temp": _mean([r.temperature for r in rows]),
        "total_precip": round(sum(r.precipitation for r in rows), 2),
        "avg_humidity": _mean([r.humidity for r in rows]),
    } for day, rows in by_day.items()]
