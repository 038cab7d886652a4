from werkzeug.security import generate_password_hash, check_password_hash

from db import db
from utils import utcnow, ensure_aware_utc

ROLES = ("teacher", "student", "sensor")

LOG_DELETION = "deletion"
LOG_INVALID = "invalid-data-deletion"

# Declarative bounds for optional/required numeric reading fields:
# (attribute, minimum, maximum, error message). None means unbounded.
READING_BOUNDS = (
    ("latitude", -180, 180, "Latitude must be between -180 and 180"),
    ("longitude", -180, 180, "Longitude must be between -180 and 180"),
    ("wind_direction", 0, 360, "Wind direction must be within 0-360 degrees"),
    ("atmospheric_pressure", 0, None, "Atmospheric pressure cannot be negative"),
    ("solar_radiation", 0, None, "Solar radiation cannot be negative"),
    ("max_wind_speed", 0, None, "Wind speed cannot be negative"),
    ("vapor_pressure", 0, None, "Vapor pressure cannot be negative"),
    ("precipitation", 0, None, "Precipitation cannot be negative"),
)

# Readings outside these limits are never stored; they go to the audit log.
MAX_HUMIDITY = 100
MIN_TEMPERATURE = -50
MAX_TEMPERATURE = 60


def violates_sanity_bounds(humidity, temperature) -> bool:
    if humidity is not None and humidity > MAX_HUMIDITY:
        return True
    if temperature is not None and not (MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE):
        return True
    return False


class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="teacher")  # teacher, student, sensor
    password_hash = db.Column(db.String(255), nullable=False)
    password_changed_at = db.Column(db.DateTime, nullable=True)
    last_logged_in = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def set_password(self, raw_password):
        self.password_hash = generate_password_hash(raw_password)

    def correct_password(self, candidate):
        return check_password_hash(self.password_hash, candidate)

    def changed_password_after(self, issued_at: int) -> bool:
        """True when the password changed after a token with this `iat` was issued."""
        if self.password_changed_at is None:
            return False
        changed = int(ensure_aware_utc(self.password_changed_at).timestamp())
        return issued_at < changed


class Weather(db.Model):
    __tablename__ = "weather"
    id = db.Column(db.Integer, primary_key=True)
    device_name = db.Column(db.String(128), nullable=False, index=True)

    # When the reading was taken, naive UTC
    time = db.Column(db.DateTime, nullable=False, index=True)

    temperature = db.Column(db.Float, nullable=False)
    humidity = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    latitude = db.Column(db.Float, nullable=True)

    atmospheric_pressure = db.Column(db.Float, nullable=True)
    solar_radiation = db.Column(db.Float, nullable=True)
    max_wind_speed = db.Column(db.Float, nullable=True)
    vapor_pressure = db.Column(db.Float, nullable=True)
    wind_direction = db.Column(db.Float, nullable=True)
    precipitation = db.Column(db.Float, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    # Internal revision counter, hidden from responses unless projected
    version_id = db.Column(db.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def is_sane(self) -> bool:
        return not violates_sanity_bounds(self.humidity, self.temperature)


class Log(db.Model):
    __tablename__ = "logs"
    id = db.Column(db.Integer, primary_key=True)
    # Reading the entry refers to; no foreign key since the reading is usually gone
    document_id = db.Column(db.Integer, nullable=True, index=True)
    document = db.Column(db.JSON, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    type = db.Column(db.String(32), nullable=False, index=True)
