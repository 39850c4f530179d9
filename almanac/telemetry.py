import json
import logging

from flask_mqtt import Mqtt
from sqlalchemy.exc import SQLAlchemyError

from . import repository
from .errors import ValidationError
from .models import db

log = logging.getLogger(__name__)

WEATHER_TOPIC = "garden/+/weather"


def store_weather_message(msg):
    """Persist one ``garden/<id>/weather`` message. Needs an app context."""
    try:
        garden_id = int(msg.topic.split("/")[1])
        data = json.loads(msg.payload)
    except (IndexError, ValueError) as e:
        log.warning("Error processing message: %s, Topic: %s, Payload: %r", e, msg.topic, msg.payload)
        return None

    try:
        row = repository.ingest_weather(garden_id, data)
    except ValidationError as e:
        log.warning("Invalid reading for garden %s: %s", garden_id, e.fields)
        return None
    except SQLAlchemyError as e:
        db.session.rollback()
        log.warning("Could not store reading for garden %s: %s", garden_id, e)
        return None

    if row is None:
        log.warning("Received reading for unknown garden ID: %s", garden_id)
        return None
    log.debug("Stored weather reading for garden %s", garden_id)
    return row


def init_mqtt(app):
    mqtt = Mqtt(app)

    @mqtt.on_connect()
    def handle_connect(*_):
        mqtt.subscribe(WEATHER_TOPIC)

    @mqtt.on_message()
    def handle_message(_, __, msg):
        with app.app_context():
            store_weather_message(msg)

    return mqtt
