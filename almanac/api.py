import logging

from flask import Blueprint, g, jsonify, request
from werkzeug.exceptions import HTTPException

from . import analytics, repository
from .errors import AlmanacError, ValidationError
from .identity import authenticated
from .models import db

log = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError({}, "Request body must be a JSON object")
    return data


# --- Error translation ----------------------------------------------

@api.app_errorhandler(AlmanacError)
def handle_almanac_error(e):
    body = {"error": e.message}
    if isinstance(e, ValidationError) and e.fields:
        body["fields"] = e.fields
    return jsonify(body), e.status_code


@api.app_errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify({"error": e.name}), e.code


@api.app_errorhandler(Exception)
def handle_unexpected_error(e):
    db.session.rollback()
    log.error("Unhandled error in %s (user %s): %s",
              request.endpoint, g.get("user_id"), e, exc_info=e)
    return jsonify({"error": "Internal server error"}), 500


# --- Analytics ------------------------------------------------------

@api.route("/analytics", methods=["GET"])
@authenticated
def get_analytics(user_id):
    stats = analytics.compute_stats(user_id, request.args.get("period"))
    return jsonify({"success": True, "stats": stats})


# --- Gardens --------------------------------------------------------

@api.route("/gardens", methods=["GET"])
@authenticated
def list_gardens(user_id):
    gardens = [garden.to_dict() for garden in repository.list_gardens(user_id)]
    return jsonify({"success": True, "gardens": gardens})


@api.route("/gardens", methods=["POST"])
@authenticated
def create_garden(user_id):
    garden = repository.create_garden(user_id, _json_body())
    return jsonify({"success": True, "garden": garden.to_dict()}), 201


@api.route("/gardens/<int:garden_id>", methods=["GET"])
@authenticated
def get_garden(user_id, garden_id):
    garden = repository.get_garden(user_id, garden_id)
    return jsonify({"success": True, "garden": garden.to_dict()})


@api.route("/gardens/<int:garden_id>", methods=["PATCH"])
@authenticated
def update_garden(user_id, garden_id):
    garden = repository.update_garden(user_id, garden_id, _json_body())
    return jsonify({"success": True, "garden": garden.to_dict()})


@api.route("/gardens/<int:garden_id>", methods=["DELETE"])
@authenticated
def delete_garden(user_id, garden_id):
    repository.delete_garden(user_id, garden_id)
    return jsonify({"success": True})


@api.route("/gardens/<int:garden_id>/settings", methods=["GET"])
@authenticated
def get_settings(user_id, garden_id):
    settings = repository.get_settings(user_id, garden_id)
    return jsonify({"success": True, "settings": settings.to_dict()})


@api.route("/gardens/<int:garden_id>/settings", methods=["PATCH"])
@authenticated
def update_settings(user_id, garden_id):
    settings = repository.update_settings(user_id, garden_id, _json_body())
    return jsonify({"success": True, "settings": settings.to_dict()})


# --- Plants and activities ------------------------------------------

@api.route("/gardens/<int:garden_id>/plants", methods=["GET"])
@authenticated
def list_plants(user_id, garden_id):
    plants = [plant.to_dict() for plant in repository.list_plants(user_id, garden_id)]
    return jsonify({"success": True, "plants": plants})


@api.route("/gardens/<int:garden_id>/plants", methods=["POST"])
@authenticated
def create_plant(user_id, garden_id):
    plant = repository.create_plant(user_id, garden_id, _json_body())
    return jsonify({"success": True, "plant": plant.to_dict()}), 201


@api.route("/gardens/<int:garden_id>/plants/<int:plant_id>", methods=["PATCH"])
@authenticated
def update_plant(user_id, garden_id, plant_id):
    plant = repository.update_plant(user_id, garden_id, plant_id, _json_body())
    return jsonify({"success": True, "plant": plant.to_dict()})


@api.route("/gardens/<int:garden_id>/plants/<int:plant_id>", methods=["DELETE"])
@authenticated
def delete_plant(user_id, garden_id, plant_id):
    repository.delete_plant(user_id, garden_id, plant_id)
    return jsonify({"success": True})


@api.route("/gardens/<int:garden_id>/activities", methods=["GET"])
@authenticated
def list_activities(user_id, garden_id):
    activities = [a.to_dict() for a in repository.list_activities(user_id, garden_id)]
    return jsonify({"success": True, "activities": activities})


@api.route("/gardens/<int:garden_id>/activities", methods=["POST"])
@authenticated
def log_activity(user_id, garden_id):
    activity = repository.log_activity(user_id, garden_id, _json_body())
    return jsonify({"success": True, "activity": activity.to_dict()}), 201


# --- Weather --------------------------------------------------------

@api.route("/gardens/<int:garden_id>/weather", methods=["POST"])
@authenticated
def record_weather(user_id, garden_id):
    reading = repository.record_weather(user_id, garden_id, _json_body())
    return jsonify({"success": True, "reading": reading.to_dict()}), 201


@api.route("/gardens/<int:garden_id>/weather/trends", methods=["GET"])
@authenticated
def weather_trends(user_id, garden_id):
    days = analytics.normalize_period(request.args.get("period"))
    trends = analytics.daily_trends(user_id, garden_id, days)
    return jsonify({"success": True, "period": f"last_{days}_days", "trends": trends})
