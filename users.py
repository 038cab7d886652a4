# users.py
from flask import request, g, current_app
from flask_smorest import Blueprint

from auth import TEACHERS, require_roles, create_user
from db import db
from errors import ValidationError, NotFoundError, ConflictError
from models import User, ROLES
from schemas import UserSchema, CreateUserSchema
from utils import parse_datetime, utc_day_range, utcnow

blp = Blueprint(
    "Users",
    "users",
    url_prefix="/api/v1/users",
    description="User administration (teachers only)",
)

USER_SCHEMA = UserSchema()
USERS_SCHEMA = UserSchema(many=True)

_DATE_RANGE_PARAMS = [
    {"in": "query", "name": "startDate", "required": True, "schema": {"type": "string", "format": "date"}},
    {"in": "query", "name": "endDate", "required": True, "schema": {"type": "string", "format": "date"}},
]


def _utc_day_range_args():
    """startDate/endDate query params widened to whole UTC days."""
    start_raw = request.args.get("startDate")
    end_raw = request.args.get("endDate")
    if not start_raw or not end_raw:
        raise ValidationError("Please provide startDate and endDate")
    start, end = parse_datetime(start_raw), parse_datetime(end_raw)
    if start is None or end is None:
        raise ValidationError("Invalid date format")
    return utc_day_range(start, end)


def _get_user_or_404(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("No user found with that ID")
    return user


@blp.route("/create-user", methods=["POST"])
@require_roles(TEACHERS)
@blp.arguments(CreateUserSchema)
def create_user_as_teacher(body):
    user = create_user(body)
    current_app.logger.info("user %s created by teacher %s", user.id, g.current_user.id)
    return {"status": "success", "data": {"user": USER_SCHEMA.dump(user)}}, 201


@blp.route("/last-login", methods=["DELETE"])
@require_roles(TEACHERS)
@blp.doc(parameters=_DATE_RANGE_PARAMS)
def delete_students_by_last_login():
    """Delete students whose last login falls within the UTC day range (never the caller)."""
    start, end = _utc_day_range_args()
    deleted = (
        User.query
        .filter(
            User.role == "student",
            User.last_logged_in >= start,
            User.last_logged_in <= end,
            User.id != g.current_user.id,
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()

    if deleted == 0:
        raise NotFoundError("No users found with the specified role and date range.")
    current_app.logger.info("deleted %d students last logged in %s..%s", deleted, start, end)
    return "", 204


@blp.route("/update-role", methods=["PATCH"])
@require_roles(TEACHERS)
@blp.doc(parameters=_DATE_RANGE_PARAMS + [
    {"in": "query", "name": "newRole", "required": True, "schema": {"type": "string", "enum": list(ROLES)}},
])
def update_users_role():
    """Set `newRole` on every user created within the UTC day range."""
    new_role = request.args.get("newRole")
    if not request.args.get("startDate") or not request.args.get("endDate") or not new_role:
        raise ValidationError("Please provide startDate, endDate, and newRole")
    if new_role not in ROLES:
        raise ValidationError("Invalid role specified")
    start, end = _utc_day_range_args()

    updated = (
        User.query
        .filter(User.created_at >= start, User.created_at <= end, User.role != new_role)
        .update({"role": new_role, "updated_at": utcnow()}, synchronize_session=False)
    )
    db.session.commit()

    if updated == 0:
        return {
            "status": "not found",
            "message": "No users found with creation dates within the specified range",
        }, 404
    current_app.logger.info("role of %d users set to %s", updated, new_role)
    return {"status": "success", "message": f"{updated} users' roles updated successfully"}, 200


@blp.route("", methods=["GET"])
@require_roles(TEACHERS)
def list_users():
    users = User.query.order_by(User.id).all()
    return {"status": "success", "results": len(users), "data": {"users": USERS_SCHEMA.dump(users)}}, 200


@blp.route("/<int:user_id>", methods=["GET"])
@require_roles(TEACHERS)
def get_user(user_id):
    user = _get_user_or_404(user_id)
    return {"status": "success", "data": {"user": USER_SCHEMA.dump(user)}}, 200


@blp.route("/<int:user_id>", methods=["PATCH"])
@require_roles(TEACHERS)
@blp.arguments(UserSchema)
def update_user(body, user_id):
    user = _get_user_or_404(user_id)
    if "email" in body and body["email"] != user.email:
        if User.query.filter_by(email=body["email"]).first():
            raise ConflictError("User email already existed.")
    for k, v in body.items():
        setattr(user, k, v)
    db.session.commit()
    return {"status": "success", "data": {"user": USER_SCHEMA.dump(user)}}, 200
