"""Seed development data.

    python seed.py                       # default teacher / student / sensor accounts
    python seed.py --import readings.json
    python seed.py --delete              # remove every reading
"""
import argparse
import json

from app import create_app, db
from models import User, Weather, violates_sanity_bounds
from schemas import WeatherSchema

DEFAULT_USERS = (
    ("Teacher", "teacher@weather.io", "TeacherPass123!", "teacher"),
    ("Student", "student@weather.io", "StudentPass123!", "student"),
    ("Woodford Sensor", "woodford@weather.io", "SensorPass123!", "sensor"),
)


def seed_users():
    for name, email, password, role in DEFAULT_USERS:
        if not User.query.filter_by(email=email).first():
            user = User(name=name, email=email, role=role)
            user.set_password(password)
            db.session.add(user)
    db.session.commit()
    print("Seeded users: " + ", ".join(email for _, email, _, _ in DEFAULT_USERS))


def import_readings(path):
    with open(path, encoding="utf-8") as fh:
        raw = json.load(fh)
    items = WeatherSchema(many=True).load(raw)
    readings = [Weather(**item) for item in items
                if not violates_sanity_bounds(item.get("humidity"), item.get("temperature"))]
    db.session.add_all(readings)
    db.session.commit()
    print(f"Imported {len(readings)} readings ({len(items) - len(readings)} skipped as invalid)")


def delete_readings():
    deleted = Weather.query.delete()
    db.session.commit()
    print(f"Deleted {deleted} readings")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--import", dest="import_path", metavar="FILE", help="JSON array of readings")
    group.add_argument("--delete", action="store_true", help="delete all readings")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.import_path:
            import_readings(args.import_path)
        elif args.delete:
            delete_readings()
        else:
            seed_users()
