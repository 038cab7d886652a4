# weather.py
from flask import request, current_app
from flask_smorest import Blueprint
from dateutil import parser as dtparser
from sqlalchemy import func
import pytz

from audit import log_deletion, log_invalid
from auth import TEACHERS, READERS, WRITERS, require_roles
from db import db
from errors import ValidationError, NotFoundError
from filters import APIFeatures
from models import Weather, violates_sanity_bounds
from schemas import WeatherSchema, PrecipitationSchema, MaxTemperatureSchema, field_map
from utils import utcnow, to_naive_utc, parse_datetime, months_ago, one_second_window

blp = Blueprint(
    "Weather",
    "weather",
    url_prefix="/api/v1/weather",
    description="Weather readings collected by sensors",
)

ITEM_SCHEMA = WeatherSchema()
WEATHER_FIELDS = field_map(WeatherSchema)
WRITABLE_FIELDS = [name for name, f in ITEM_SCHEMA.fields.items() if not f.dump_only]

INVALID_READING = "Invalid weather readings, document will not be saved."

# Window used by the max-precipitation report
PRECIPITATION_MONTHS = 5

# ----------------- Helpers -----------------

def _get_reading_or_404(reading_id):
    reading = db.session.get(Weather, reading_id)
    if not reading:
        raise NotFoundError("No document found with that ID")
    return reading


def _would_be(reading, values):
    """The document `reading` would become after applying `values`."""
    merged = {name: getattr(reading, name) for name in ITEM_SCHEMA.fields}
    merged.update(values)
    return merged


def _reject_if_insane(values, document_id=None):
    """Log and refuse a write whose humidity/temperature are out of bounds."""
    if violates_sanity_bounds(values.get("humidity"), values.get("temperature")):
        log_invalid(values, document_id)
        current_app.logger.warning("rejected invalid reading from %s", values.get("device_name"))
        raise ValidationError(INVALID_READING)


def _envelope(reading, status_code=200):
    return {"status": "success", "data": {"weather": ITEM_SCHEMA.dump(reading)}}, status_code

# ----------------- List / get -----------------

@blp.route("", methods=["GET"])
@require_roles(READERS)
@blp.doc(parameters=[
    {"in": "query", "name": "sort", "schema": {"type": "string"}, "example": "-time,deviceName",
     "description": "Comma-separated fields, '-' prefix for descending (default -createdAt)"},
    {"in": "query", "name": "fields", "schema": {"type": "string"}, "example": "deviceName,time,temperature"},
    {"in": "query", "name": "page", "schema": {"type": "integer", "default": 1}},
    {"in": "query", "name": "limit", "schema": {"type": "integer", "default": 100}},
    {"in": "query", "name": "temperature[gte]", "schema": {"type": "number"},
     "description": "Any field accepts [gte], [gt], [lte] or [lt]; plain names filter on equality"},
])
def list_weather():
    """
    List readings.

    Every query parameter other than `page`, `sort`, `limit` and `fields`
    filters on the field of the same name.
    """
    features = (
        APIFeatures(Weather.query, request.args, Weather, WEATHER_FIELDS)
        .filter()
        .sort()
        .limit_fields()
        .paginate()
    )
    readings = features.query.all()
    data = WeatherSchema(many=True, only=features.fields).dump(readings)
    return {"status": "success", "results": len(data), "data": {"weather": data}}, 200


@blp.route("/<int:reading_id>", methods=["GET"])
@require_roles(READERS)
def get_weather(reading_id):
    return _envelope(_get_reading_or_404(reading_id))

# ----------------- Create -----------------

@blp.route("", methods=["POST"])
@require_roles(WRITERS)
@blp.arguments(WeatherSchema)
def create_weather(body):
    _reject_if_insane(body)
    reading = Weather(**body)
    db.session.add(reading)
    db.session.commit()
    return _envelope(reading, 201)


@blp.route("/batch", methods=["POST"])
@require_roles(WRITERS)
@blp.arguments(WeatherSchema(many=True))
def create_many_weather(body):
    """
    Insert a JSON array of readings.

    Readings failing the humidity/temperature bounds are logged and reported
    under `errors`; the rest are stored.
    """
    if not body:
        raise ValidationError("Please provide at least one reading")

    valid, errors = [], []
    for index, values in enumerate(body):
        if violates_sanity_bounds(values.get("humidity"), values.get("temperature")):
            log_invalid(values)
            errors.append({"index": index, "error": INVALID_READING})
        else:
            valid.append(values)

    if not valid:
        raise ValidationError(INVALID_READING)

    created = [Weather(**values) for values in valid]
    db.session.add_all(created)
    db.session.commit()

    return {
        "status": "success",
        "records": len(created),
        "data": {"weather": WeatherSchema(many=True).dump(created)},
        "errors": errors,
    }, (207 if errors else 201)

# ----------------- Update / delete -----------------

@blp.route("/<int:reading_id>", methods=["PUT"])
@require_roles(TEACHERS)
@blp.arguments(WeatherSchema)
def replace_weather(body, reading_id):
    reading = _get_reading_or_404(reading_id)
    # Optional fields left out of the body are cleared
    values = {name: body.get(name) for name in WRITABLE_FIELDS}
    _reject_if_insane(_would_be(reading, values), reading.id)
    for k, v in values.items():
        setattr(reading, k, v)
    db.session.commit()
    return _envelope(reading)


@blp.route("/<int:reading_id>", methods=["PATCH"])
@require_roles(TEACHERS)
@blp.arguments(WeatherSchema(partial=True))
def update_weather(body, reading_id):
    reading = _get_reading_or_404(reading_id)
    _reject_if_insane(_would_be(reading, body), reading.id)
    for k, v in body.items():
        setattr(reading, k, v)
    db.session.commit()
    return _envelope(reading)


@blp.route("/update-precipitation/<int:reading_id>", methods=["PATCH"])
@require_roles(TEACHERS)
@blp.arguments(PrecipitationSchema)
def update_precipitation(body, reading_id):
    if "precipitation" not in body:
        raise ValidationError("No precipitation value provided for update")
    reading = _get_reading_or_404(reading_id)
    reading.precipitation = body["precipitation"]
    db.session.commit()
    return _envelope(reading)


@blp.route("/<int:reading_id>", methods=["DELETE"])
@require_roles(TEACHERS)
def delete_weather(reading_id):
    reading = _get_reading_or_404(reading_id)
    # Two separate commits: the log entry survives even if the delete fails
    log_deletion(reading)
    db.session.delete(reading)
    db.session.commit()
    return "", 204

# ----------------- Reports -----------------

@blp.route("/max-precipitation/<sensor_name>", methods=["GET"])
@require_roles(READERS)
def get_max_precipitation(sensor_name):
    """Highest precipitation recorded by one sensor over the last five calendar months."""
    now = utcnow()
    since = months_ago(now, PRECIPITATION_MONTHS)
    reading = (
        Weather.query
        .filter(
            Weather.device_name == sensor_name,
            Weather.time >= since,
            Weather.time <= now,
            Weather.precipitation.isnot(None),
        )
        .order_by(Weather.precipitation.desc(), Weather.id.asc())
        .first()
    )
    if not reading:
        raise NotFoundError("No precipitation record found for the specified sensor in the last five months")

    data = WeatherSchema(only=("device_name", "time", "precipitation")).dump(reading)
    return {"status": "success", "data": data}, 200


@blp.route("/max-temp", methods=["GET"])
@require_roles(READERS)
@blp.doc(parameters=[
    {"in": "query", "name": "startDate", "required": True, "schema": {"type": "string", "format": "date-time"}},
    {"in": "query", "name": "endDate", "required": True, "schema": {"type": "string", "format": "date-time"}},
])
def get_max_temp():
    """
    Hottest reading per sensor between startDate and endDate, ordered by sensor name.

    When a sensor hit its maximum more than once, the earliest reading wins.
    """
    start_raw, end_raw = request.args.get("startDate"), request.args.get("endDate")
    if not start_raw or not end_raw:
        raise ValidationError("Please provide startDate and endDate")
    start, end = parse_datetime(start_raw), parse_datetime(end_raw)
    if start is None or end is None:
        raise ValidationError("Invalid date format")

    rank = func.row_number().over(
        partition_by=Weather.device_name,
        order_by=(Weather.temperature.desc(), Weather.time.asc(), Weather.id.asc()),
    ).label("rank")
    ranked = (
        db.session.query(Weather.device_name, Weather.time, Weather.temperature, rank)
        .filter(Weather.time >= start, Weather.time <= end)
        .subquery()
    )
    rows = (
        db.session.query(ranked.c.device_name, ranked.c.time, ranked.c.temperature)
        .filter(ranked.c.rank == 1)
        .order_by(ranked.c.device_name)
        .all()
    )
    if not rows:
        raise NotFoundError("No temperature readings found for the specified date range")

    data = MaxTemperatureSchema(many=True).dump(
        [{"sensor_name": r.device_name, "time": r.time, "temperature": r.temperature} for r in rows]
    )
    return {"status": "success", "data": data}, 200


@blp.route("/weather-stats/<sensor_name>", methods=["GET"])
@require_roles(READERS)
@blp.doc(parameters=[
    {"in": "query", "name": "date", "required": True, "schema": {"type": "string", "format": "date"},
     "example": "2024-03-01"},
    {"in": "query", "name": "time", "required": True, "schema": {"type": "string"}, "example": "10:15:00"},
    {"in": "query", "name": "timezone", "schema": {"type": "string", "default": "UTC"},
     "description": "IANA timezone the date/time are expressed in"},
])
def get_weather_stats(sensor_name):
    """Reading taken by a sensor during the second starting at date + time."""
    date_raw, time_raw = request.args.get("date"), request.args.get("time")
    if not date_raw or not time_raw:
        raise ValidationError("Please provide date and time")

    tzname = request.args.get("timezone") or "UTC"
    try:
        tz = pytz.timezone(tzname)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Invalid timezone '{tzname}'. Use a valid IANA name, e.g., 'UTC'.")

    try:
        instant = dtparser.isoparse(f"{date_raw}T{time_raw}")
    except ValueError:
        raise ValidationError("Invalid date/time. Expect date like 2024-03-01 and time like 10:15:00.")
    if instant.tzinfo is None or instant.tzinfo.utcoffset(instant) is None:
        instant = tz.localize(instant)

    start, end = one_second_window(to_naive_utc(instant))
    reading = (
        Weather.query
        .filter(Weather.device_name == sensor_name, Weather.time >= start, Weather.time < end)
        .order_by(Weather.id.asc())
        .first()
    )
    if not reading:
        raise NotFoundError("No reading found for the specified date and time")

    data = WeatherSchema(
        only=("temperature", "atmospheric_pressure", "solar_radiation", "precipitation")
    ).dump(reading)
    return {"status": "success", "data": {"weatherReading": data}}, 200
