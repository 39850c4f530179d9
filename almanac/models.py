from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates

db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value is not None else None


class Garden(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(255), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(200))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    size = db.Column(db.String(100))
    soil_type = db.Column(db.String(100))
    light_conditions = db.Column(db.String(20))
    irrigation_type = db.Column(db.String(20), nullable=False, default="manual")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    settings = db.relationship('GardenSettings', backref='garden', uselist=False,
                               cascade="all, delete-orphan", lazy=True)
    readings = db.relationship('WeatherReading', backref='garden',
                               cascade="all, delete-orphan", lazy=True)
    plants = db.relationship('Plant', backref='garden',
                             cascade="all, delete-orphan", lazy=True)
    activities = db.relationship('ActivityLog', backref='garden',
                                 cascade="all, delete-orphan", lazy=True)

    @validates("owner_id")
    def _owner_is_immutable(self, key, value):
        if self.owner_id is not None and value != self.owner_id:
            raise ValueError("Garden owner cannot be changed")
        return value

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "size": self.size,
            "soil_type": self.soil_type,
            "light_conditions": self.light_conditions,
            "irrigation_type": self.irrigation_type,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "settings": self.settings.to_dict() if self.settings else None,
        }


class GardenSettings(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    garden_id = db.Column(db.Integer, db.ForeignKey('garden.id'), nullable=False, unique=True)
    units = db.Column(db.String(10), nullable=False, default="metric")
    frost_threshold = db.Column(db.Float, default=0.0)    # °C
    heat_threshold = db.Column(db.Float, default=35.0)    # °C
    min_humidity = db.Column(db.Float, default=30.0)      # %
    max_wind_speed = db.Column(db.Float, default=50.0)    # km/h
    notifications_enabled = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "units": self.units,
            "frost_threshold": self.frost_threshold,
            "heat_threshold": self.heat_threshold,
            "min_humidity": self.min_humidity,
            "max_wind_speed": self.max_wind_speed,
            "notifications_enabled": self.notifications_enabled,
        }


class WeatherReading(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    garden_id = db.Column(db.Integer, db.ForeignKey('garden.id'), nullable=False, index=True)
    recorded_at = db.Column(db.DateTime, nullable=False, index=True)  # naive UTC
    temperature = db.Column(db.Float, nullable=False)
    humidity = db.Column(db.Float, nullable=False)
    wind_speed = db.Column(db.Float, nullable=False, default=0.0)
    precipitation = db.Column(db.Float, nullable=False, default=0.0)
    condition = db.Column(db.String(100))

    def to_dict(self):
        return {
            "id": self.id,
            "garden_id": self.garden_id,
            "recorded_at": _iso(self.recorded_at),
            "temperature": self.temperature,
            "humidity": self.humidity,
            "wind_speed": self.wind_speed,
            "precipitation": self.precipitation,
            "condition": self.condition,
        }


class Plant(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    garden_id = db.Column(db.Integer, db.ForeignKey('garden.id'), nullable=False, index=True)
    plant_type = db.Column(db.String(100), nullable=False)
    variety = db.Column(db.String(100))
    planting_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text)
    health_status = db.Column(db.String(20), nullable=False, default="good", index=True)
    stage = db.Column(db.String(20), nullable=False, default="seed")
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    # Deleting a plant keeps its log entries; their plant_id is cleared.
    activities = db.relationship('ActivityLog', backref='plant', lazy=True)

    def to_dict(self):
        return {
            "id": self.id,
            "garden_id": self.garden_id,
            "plant_type": self.plant_type,
            "variety": self.variety,
            "planting_date": _iso(self.planting_date),
            "notes": self.notes,
            "health_status": self.health_status,
            "stage": self.stage,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ActivityLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    garden_id = db.Column(db.Integer, db.ForeignKey('garden.id'), nullable=False, index=True)
    plant_id = db.Column(db.Integer, db.ForeignKey('plant.id'), index=True)
    type = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False, index=True)  # naive UTC
    notes = db.Column(db.Text)

    def to_dict(self):
        return {
            "id": self.id,
            "garden_id": self.garden_id,
            "plant_id": self.plant_id,
            "type": self.type,
            "description": self.description,
            "timestamp": _iso(self.timestamp),
            "notes": self.notes,
        }
