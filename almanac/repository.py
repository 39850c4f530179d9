"""Owner-scoped access to gardens, their settings, plants, activity logs and weather readings.

Every public function except ``ingest_weather`` takes the caller's user id as its
first argument and filters on it in the query itself. A garden owned by somebody
else is reported exactly like a garden that does not exist.
"""
import logging
import math
import numbers
from datetime import date, datetime, timezone

from .errors import NotFound, ValidationError
from .models import ActivityLog, Garden, GardenSettings, Plant, WeatherReading, db, utcnow

log = logging.getLogger(__name__)

LIGHT_CONDITIONS = ("full_sun", "partial_sun", "partial_shade", "full_shade")
IRRIGATION_TYPES = ("manual", "drip", "sprinkler", "none")
UNITS = ("metric", "imperial")
HEALTH_STATUSES = ("excellent", "good", "fair", "poor")
GROWTH_STAGES = ("seed", "seedling", "vegetative", "flowering", "fruiting", "harvest")
ACTIVITY_TYPES = ("watering", "pruning", "planting", "harvest", "observation",
                  "fertilizing", "pest_control")

# Text attributes and their maximum length.
_TEXT_FIELDS = {
    "name": 200,
    "description": None,
    "location": 200,
    "size": 100,
    "soil_type": 100,
}
_GARDEN_FIELDS = tuple(_TEXT_FIELDS) + ("latitude", "longitude", "light_conditions", "irrigation_type")
_SETTINGS_FIELDS = ("units", "frost_threshold", "heat_threshold", "min_humidity",
                    "max_wind_speed", "notifications_enabled")


def _is_number(value):
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _check_range(errors, key, value, low, high, nullable=True):
    if value is None:
        if not nullable:
            errors[key] = "is required"
    elif not _is_number(value):
        errors[key] = "must be a number"
    elif not math.isfinite(value):
        errors[key] = "must be a finite number"
    elif high is None and low is not None and value < low:
        errors[key] = f"must be at least {low}"
    elif high is not None and not low <= value <= high:
        errors[key] = f"must be between {low} and {high}"


def _clean_text(values, errors, fields):
    """Strip text values in place; blank strings become None."""
    for key, max_len in fields.items():
        if key not in values:
            continue
        value = values[key]
        if value is None or (isinstance(value, str) and not value.strip()):
            values[key] = None
        elif not isinstance(value, str):
            errors[key] = "must be a string"
        else:
            values[key] = value.strip()
            if max_len and len(values[key]) > max_len:
                errors[key] = f"must be at most {max_len} characters"


def _parse_timestamp(errors, ts):
    """Unix seconds to naive UTC; missing means now."""
    if ts is None:
        return utcnow()
    if not _is_number(ts):
        errors["timestamp"] = "must be a unix timestamp"
        return None
    try:
        return datetime.fromtimestamp(ts, timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        errors["timestamp"] = "out of range"
        return None


def _clean_garden_attrs(attrs, creating):
    if not isinstance(attrs, dict):
        raise ValidationError({}, "Request body must be a JSON object")

    values = {k: attrs[k] for k in _GARDEN_FIELDS if k in attrs}
    errors = {}

    _clean_text(values, errors, _TEXT_FIELDS)

    if (creating or "name" in values) and not values.get("name") and "name" not in errors:
        errors["name"] = "Missing required field: name"

    if "latitude" in values:
        _check_range(errors, "latitude", values["latitude"], -90, 90)
    if "longitude" in values:
        _check_range(errors, "longitude", values["longitude"], -180, 180)

    for key in ("light_conditions", "irrigation_type"):
        if values.get(key) == "":
            values[key] = None

    if values.get("light_conditions") not in (None,) + LIGHT_CONDITIONS:
        errors["light_conditions"] = f"must be one of {', '.join(LIGHT_CONDITIONS)}"
    if "irrigation_type" in values:
        if values["irrigation_type"] is None:
            values["irrigation_type"] = "manual"
        elif values["irrigation_type"] not in IRRIGATION_TYPES:
            errors["irrigation_type"] = f"must be one of {', '.join(IRRIGATION_TYPES)}"

    if errors:
        raise ValidationError(errors)
    return values


def _owned(user_id, garden_id, lock=False):
    query = Garden.query.filter_by(id=garden_id, owner_id=user_id)
    if lock:
        query = query.with_for_update()
    garden = query.first()
    if garden is None:
        raise NotFound()
    return garden


# --- Gardens ----------------------------------------------------------

def list_gardens(user_id):
    return (Garden.query
            .filter_by(owner_id=user_id)
            .order_by(Garden.created_at.asc(), Garden.id.asc())
            .all())


def get_garden(user_id, garden_id):
    return _owned(user_id, garden_id)


def create_garden(user_id, attrs):
    values = _clean_garden_attrs(attrs, creating=True)
    garden = Garden(owner_id=user_id, **values)
    garden.settings = GardenSettings()
    db.session.add(garden)
    db.session.commit()
    log.info("Created garden %s for user %s", garden.id, user_id)
    return garden


def update_garden(user_id, garden_id, attrs):
    values = _clean_garden_attrs(attrs, creating=False)
    garden = _owned(user_id, garden_id, lock=True)
    for key, value in values.items():
        setattr(garden, key, value)
    db.session.commit()
    return garden


def delete_garden(user_id, garden_id):
    garden = _owned(user_id, garden_id, lock=True)
    db.session.delete(garden)
    db.session.commit()
    log.info("Deleted garden %s for user %s", garden_id, user_id)


# --- Settings ---------------------------------------------------------

def _clean_settings_patch(patch):
    if not isinstance(patch, dict):
        raise ValidationError({}, "Request body must be a JSON object")

    errors = {k: "unknown setting" for k in patch if k not in _SETTINGS_FIELDS}
    if "units" in patch and patch["units"] not in UNITS:
        errors["units"] = f"must be one of {', '.join(UNITS)}"
    if "frost_threshold" in patch:
        _check_range(errors, "frost_threshold", patch["frost_threshold"], None, None)
    if "heat_threshold" in patch:
        _check_range(errors, "heat_threshold", patch["heat_threshold"], None, None)
    if "min_humidity" in patch:
        _check_range(errors, "min_humidity", patch["min_humidity"], 0, 100)
    if "max_wind_speed" in patch:
        _check_range(errors, "max_wind_speed", patch["max_wind_speed"], 0, None)
    if "notifications_enabled" in patch and not isinstance(patch["notifications_enabled"], bool):
        errors["notifications_enabled"] = "must be a boolean"

    if errors:
        raise ValidationError(errors)
    return {k: patch[k] for k in _SETTINGS_FIELDS if k in patch}


def get_settings(user_id, garden_id):
    return _owned(user_id, garden_id).settings


def update_settings(user_id, garden_id, patch):
    values = _clean_settings_patch(patch)
    garden = _owned(user_id, garden_id, lock=True)
    settings = garden.settings
    if settings is None:
        settings = garden.settings = GardenSettings()

    frost = values.get("frost_threshold", settings.frost_threshold)
    heat = values.get("heat_threshold", settings.heat_threshold)
    if frost is not None and heat is not None and frost >= heat:
        db.session.rollback()
        raise ValidationError({"frost_threshold": "must be below heat_threshold"})

    for key, value in values.items():
        setattr(settings, key, value)
    db.session.commit()
    return settings


# --- Weather ----------------------------------------------------------

def _clean_reading(reading):
    if not isinstance(reading, dict):
        raise ValidationError({}, "Reading must be a JSON object")

    errors = {}
    _check_range(errors, "temperature", reading.get("temperature"), -100, 100, nullable=False)
    _check_range(errors, "humidity", reading.get("humidity"), 0, 100, nullable=False)
    _check_range(errors, "wind_speed", reading.get("wind_speed"), 0, None)
    _check_range(errors, "precipitation", reading.get("precipitation"), 0, None)

    condition = reading.get("condition")
    if condition is not None and not isinstance(condition, str):
        errors["condition"] = "must be a string"

    recorded_at = _parse_timestamp(errors, reading.get("timestamp"))

    if errors:
        raise ValidationError(errors)
    return WeatherReading(
        recorded_at=recorded_at,
        temperature=reading["temperature"],
        humidity=reading["humidity"],
        wind_speed=reading.get("wind_speed") or 0.0,
        precipitation=reading.get("precipitation") or 0.0,
        condition=condition,
    )


def record_weather(user_id, garden_id, reading):
    row = _clean_reading(reading)
    garden = _owned(user_id, garden_id)
    row.garden_id = garden.id
    db.session.add(row)
    db.session.commit()
    return row


def ingest_weather(garden_id, reading):
    """Store a reading published by a garden's weather station.

    Stations are not users, so this is the one write that is not owner
    scoped. Returns None when the garden is unknown.
    """
    row = _clean_reading(reading)
    if db.session.get(Garden, garden_id) is None:
        return None
    row.garden_id = garden_id
    db.session.add(row)
    db.session.commit()
    return row


def weather_history(user_id, garden_id, since):
    return (WeatherReading.query
            .join(Garden, WeatherReading.garden_id == Garden.id)
            .filter(Garden.id == garden_id,
                    Garden.owner_id == user_id,
                    WeatherReading.recorded_at >= since)
            .order_by(WeatherReading.recorded_at.asc(), WeatherReading.id.asc())
            .all())


# --- Plants -----------------------------------------------------------

_PLANT_TEXT_FIELDS = {"plant_type": 100, "variety": 100, "notes": None}
_PLANT_FIELDS = tuple(_PLANT_TEXT_FIELDS) + ("planting_date", "health_status", "stage")


def _clean_plant_attrs(attrs, creating):
    if not isinstance(attrs, dict):
        raise ValidationError({}, "Request body must be a JSON object")

    values = {k: attrs[k] for k in _PLANT_FIELDS if k in attrs}
    errors = {}
    _clean_text(values, errors, _PLANT_TEXT_FIELDS)

    if (creating or "plant_type" in values) and not values.get("plant_type") \
            and "plant_type" not in errors:
        errors["plant_type"] = "Missing required field: plant_type"

    if values.get("planting_date") is not None:
        try:
            values["planting_date"] = date.fromisoformat(values["planting_date"])
        except (TypeError, ValueError):
            errors["planting_date"] = "must be a YYYY-MM-DD date"
    elif creating or "planting_date" in values:
        values["planting_date"] = utcnow().date()

    for key, choices, default in (("health_status", HEALTH_STATUSES, "good"),
                                  ("stage", GROWTH_STAGES, "seed")):
        if values.get(key) in (None, ""):
            if key in values:
                values[key] = default
        elif values[key] not in choices:
            errors[key] = f"must be one of {', '.join(choices)}"

    if errors:
        raise ValidationError(errors)
    return values


def _owned_plant(user_id, garden_id, plant_id, lock=False):
    garden = _owned(user_id, garden_id, lock=lock)
    plant = Plant.query.filter_by(id=plant_id, garden_id=garden.id).first()
    if plant is None:
        raise NotFound("Plant not found")
    return plant


def list_plants(user_id, garden_id):
    garden = _owned(user_id, garden_id)
    return (Plant.query
            .filter_by(garden_id=garden.id)
            .order_by(Plant.created_at.asc(), Plant.id.asc())
            .all())


def create_plant(user_id, garden_id, attrs):
    values = _clean_plant_attrs(attrs, creating=True)
    garden = _owned(user_id, garden_id, lock=True)
    plant = Plant(garden_id=garden.id, **values)
    db.session.add(plant)
    db.session.commit()
    return plant


def update_plant(user_id, garden_id, plant_id, attrs):
    values = _clean_plant_attrs(attrs, creating=False)
    plant = _owned_plant(user_id, garden_id, plant_id, lock=True)
    for key, value in values.items():
        setattr(plant, key, value)
    db.session.commit()
    return plant


def delete_plant(user_id, garden_id, plant_id):
    plant = _owned_plant(user_id, garden_id, plant_id, lock=True)
    db.session.delete(plant)
    db.session.commit()


def garden_plants(user_id, garden_id):
    """All plants of an owned garden; an unowned garden simply has none."""
    return (Plant.query
            .join(Garden, Plant.garden_id == Garden.id)
            .filter(Garden.id == garden_id, Garden.owner_id == user_id)
            .order_by(Plant.id.asc())
            .all())


# --- Activities -------------------------------------------------------

def _clean_activity(attrs):
    if not isinstance(attrs, dict):
        raise ValidationError({}, "Request body must be a JSON object")

    values = {k: attrs.get(k) for k in ("description", "notes")}
    errors = {}
    _clean_text(values, errors, {"description": None, "notes": None})
    if not values["description"] and "description" not in errors:
        errors["description"] = "Missing required field: description"

    if attrs.get("type") not in ACTIVITY_TYPES:
        errors["type"] = f"must be one of {', '.join(ACTIVITY_TYPES)}"
    values["type"] = attrs.get("type")

    plant_id = attrs.get("plant_id")
    if plant_id is not None and (not isinstance(plant_id, int) or isinstance(plant_id, bool)):
        errors["plant_id"] = "must be an integer"
    values["plant_id"] = plant_id

    values["timestamp"] = _parse_timestamp(errors, attrs.get("timestamp"))

    if errors:
        raise ValidationError(errors)
    return values


def log_activity(user_id, garden_id, attrs):
    values = _clean_activity(attrs)
    garden = _owned(user_id, garden_id, lock=True)
    if values["plant_id"] is not None and \
            Plant.query.filter_by(id=values["plant_id"], garden_id=garden.id).first() is None:
        db.session.rollback()
        raise ValidationError({"plant_id": "no such plant in this garden"})
    activity = ActivityLog(garden_id=garden.id, **values)
    db.session.add(activity)
    db.session.commit()
    return activity


def list_activities(user_id, garden_id, limit=20):
    garden = _owned(user_id, garden_id)
    return (ActivityLog.query
            .filter_by(garden_id=garden.id)
            .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
            .limit(limit)
            .all())


def recent_activities(user_id, garden_id, since):
    return (ActivityLog.query
            .join(Garden, ActivityLog.garden_id == Garden.id)
            .filter(Garden.id == garden_id,
                    Garden.owner_id == user_id,
                    ActivityLog.timestamp >= since)
            .order_by(ActivityLog.timestamp.asc(), ActivityLog.id.asc())
            .all())
