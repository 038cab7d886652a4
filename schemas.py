from marshmallow import (
    Schema, fields, validate, post_load, validates_schema, EXCLUDE,
    ValidationError as SchemaValidationError,
)

from models import ROLES, READING_BOUNDS
from utils import to_naive_utc

_BOUNDS = {attr: (low, high, message) for attr, low, high, message in READING_BOUNDS}


def _bounded(attr, data_key, **kwargs):
    """Float field validated against the READING_BOUNDS entry for `attr`."""
    low, high, message = _BOUNDS[attr]
    return fields.Float(
        data_key=data_key,
        validate=validate.Range(min=low, max=high, error=message),
        **kwargs,
    )


def _naive_datetimes(data, *names):
    for name in names:
        if data.get(name) is not None:
            data[name] = to_naive_utc(data[name])
    return data


# ----------------- Users -----------------

class UserSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Int(dump_only=True)
    name = fields.Str()
    email = fields.Email(error_messages={"invalid": "Please provide a valid email"})
    role = fields.Str(validate=validate.OneOf(ROLES))
    password_changed_at = fields.DateTime(dump_only=True, data_key="passwordChangedAt")
    last_logged_in = fields.DateTime(dump_only=True, data_key="lastLoggedIn")
    created_at = fields.DateTime(dump_only=True, data_key="createdAt")
    updated_at = fields.DateTime(dump_only=True, data_key="updatedAt")

    @post_load
    def lowercase_email(self, data, **kwargs):
        if data.get("email"):
            data["email"] = data["email"].lower()
        return data


class SignupSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.Str(required=True, error_messages={"required": "Please tell us your name!"})
    email = fields.Email(
        required=True,
        error_messages={"required": "Please provide your email", "invalid": "Please provide a valid email"},
    )
    password = fields.Str(
        required=True, load_only=True, validate=validate.Length(min=8),
        error_messages={"required": "Please provide password"},
    )
    password_confirm = fields.Str(
        required=True, load_only=True, data_key="passwordConfirm",
        error_messages={"required": "Please confirm your password"},
    )
    role = fields.Str(validate=validate.OneOf(ROLES))
    password_changed_at = fields.DateTime(data_key="passwordChangedAt")
    last_logged_in = fields.DateTime(data_key="lastLoggedIn")

    @validates_schema
    def passwords_match(self, data, **kwargs):
        if data.get("password") != data.get("password_confirm"):
            raise SchemaValidationError("Passwords are not the same!", "passwordConfirm")

    @post_load
    def normalize(self, data, **kwargs):
        data["email"] = data["email"].lower()
        data.pop("password_confirm", None)
        return _naive_datetimes(data, "password_changed_at", "last_logged_in")


class CreateUserSchema(SignupSchema):
    role = fields.Str(required=True, validate=validate.OneOf(ROLES))


class LoginSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    # Missing credentials are answered by the view so it can reset the cookie
    email = fields.Str(load_default=None)
    password = fields.Str(load_default=None, load_only=True)


class UpdateMeSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    name = fields.Str()
    email = fields.Email(error_messages={"invalid": "Please provide a valid email"})
    # Accepted only so the view can refuse them with a clear message
    password = fields.Str(load_only=True)
    password_confirm = fields.Str(load_only=True, data_key="passwordConfirm")

    @post_load
    def lowercase_email(self, data, **kwargs):
        if data.get("email"):
            data["email"] = data["email"].lower()
        return data


class UpdatePasswordSchema(Schema):
    password_current = fields.Str(required=True, load_only=True, data_key="passwordCurrent")
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=8))
    password_confirm = fields.Str(required=True, load_only=True, data_key="passwordConfirm")

    @validates_schema
    def passwords_match(self, data, **kwargs):
        if data.get("password") != data.get("password_confirm"):
            raise SchemaValidationError("Passwords are not the same!", "passwordConfirm")


# ----------------- Weather readings -----------------

class WeatherSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Int(dump_only=True)
    device_name = fields.Str(
        required=True, data_key="deviceName",
        error_messages={"required": "Device name is required"},
    )
    time = fields.DateTime(
        required=True, error_messages={"required": "Time of data collection is required"},
        metadata={"description": "ISO 8601 datetime"},
    )
    temperature = fields.Float(required=True, error_messages={"required": "Temperature is required"})
    humidity = fields.Float(required=True, error_messages={"required": "A weather reading should have humidity"})
    longitude = _bounded("longitude", "longitude", required=True,
                         error_messages={"required": "Longitude is required"})
    latitude = _bounded("latitude", "latitude", allow_none=True)
    atmospheric_pressure = _bounded("atmospheric_pressure", "atmosphericPressure", allow_none=True)
    solar_radiation = _bounded("solar_radiation", "solarRadiation", allow_none=True)
    max_wind_speed = _bounded("max_wind_speed", "maxWindSpeed", allow_none=True)
    vapor_pressure = _bounded("vapor_pressure", "vaporPressure", allow_none=True)
    wind_direction = _bounded("wind_direction", "windDirection", allow_none=True)
    precipitation = _bounded("precipitation", "precipitation", allow_none=True)

    created_at = fields.DateTime(dump_only=True, data_key="createdAt")
    version_id = fields.Int(dump_only=True, data_key="__v")

    @post_load
    def naive_time(self, data, **kwargs):
        return _naive_datetimes(data, "time")


class PrecipitationSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    # Presence is checked by the view
    precipitation = _bounded("precipitation", "precipitation")


class MaxTemperatureSchema(Schema):
    sensor_name = fields.Str(data_key="sensorName")
    time = fields.DateTime()
    temperature = fields.Float()


# Wire name -> model attribute, used by the query builder
def field_map(schema_cls):
    return {
        (field.data_key or name): name
        for name, field in schema_cls().fields.items()
        if not field.load_only
    }


# Reading snapshots stored in the audit log carry every field, version marker included
def reading_snapshot(obj_or_dict):
    return WeatherSchema().dump(obj_or_dict)
