from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import NamedTuple

from flask import request, jsonify, g, current_app, after_this_request
from flask_smorest import Blueprint
from sqlalchemy.exc import IntegrityError

from db import db
from errors import Unauthenticated, Forbidden, ValidationError, ConflictError
from models import User
from schemas import (
    UserSchema, SignupSchema, LoginSchema, UpdateMeSchema, UpdatePasswordSchema,
)
from tokens import issue_token, verify_token
from utils import utcnow

blp = Blueprint("Auth", "auth", url_prefix="/api/v1/users", description="Authentication endpoints")

USER_SCHEMA = UserSchema()

# ----------------- Middleware chain -----------------


class RoleGate(NamedTuple):
    allowed_roles: frozenset


TEACHERS = RoleGate(frozenset({"teacher"}))
READERS = RoleGate(frozenset({"teacher", "student"}))
WRITERS = RoleGate(frozenset({"teacher", "sensor"}))


def _extract_token():
    """Bearer header first, then the session cookie."""
    token = None
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer"):
        parts = header.split(" ")
        token = parts[1] if len(parts) > 1 else None
    else:
        token = request.cookies.get(current_app.config["JWT_ACCESS_COOKIE_NAME"])

    if not token or token == current_app.config["JWT_LOGOUT_SENTINEL"]:
        raise Unauthenticated("You are not logged in! Please log in to get access.")
    return token


def protect():
    """Resolve the acting user from the request credentials and attach it to `g`."""
    claims = verify_token(_extract_token())

    try:
        user = db.session.get(User, int(claims.subject))
    except (TypeError, ValueError):
        user = None
    if user is None:
        raise Unauthenticated("The user belonging to this token no longer exists.")

    if user.changed_password_after(claims.issued_at):
        raise Unauthenticated("User recently changed password! Please log in again.")

    g.current_user = user
    return user


def check_role(user, gate: RoleGate):
    if user.role not in gate.allowed_roles:
        raise Forbidden("You do not have permission to perform this action")


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        protect()
        return fn(*args, **kwargs)
    return wrapper


def require_roles(gate: RoleGate):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            check_role(protect(), gate)
            return fn(*args, **kwargs)
        return wrapper
    return decorator


# ----------------- Session cookie -----------------

def _set_session_cookie(response, value, lifetime: timedelta):
    response.set_cookie(
        current_app.config["JWT_ACCESS_COOKIE_NAME"],
        value,
        expires=datetime.now(timezone.utc) + lifetime,
        httponly=True,
    )
    return response


def _reset_cookie_after_request(seconds):
    """Overwrite the session cookie with the logout sentinel on whatever response goes out."""
    @after_this_request
    def reset(response):
        return _set_session_cookie(
            response, current_app.config["JWT_LOGOUT_SENTINEL"], timedelta(seconds=seconds)
        )


def send_token(user, status_code):
    token = issue_token(user.id)
    response = jsonify({"status": "success", "token": token, "data": {"user": USER_SCHEMA.dump(user)}})
    response.status_code = status_code
    return _set_session_cookie(response, token, current_app.config["JWT_COOKIE_EXPIRES_IN"])


def create_user(body):
    """Insert a user from a loaded SignupSchema/CreateUserSchema payload."""
    if User.query.filter_by(email=body["email"]).first():
        raise ConflictError("User email already existed.")
    password = body.pop("password")
    user = User(**body)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("User email already existed.")
    return user


# ----------------- Endpoints -----------------

@blp.route("/signup", methods=["POST"])
@blp.doc(security=[])
@blp.arguments(SignupSchema)
def signup(body):
    user = create_user(body)
    current_app.logger.info("signup: user %s (%s)", user.id, user.role)
    return send_token(user, 201)


@blp.route("/login", methods=["POST"])
@blp.doc(security=[])
@blp.arguments(LoginSchema)
def login(body):
    email, password = body.get("email"), body.get("password")
    if not email or not password:
        _reset_cookie_after_request(3)
        raise ValidationError("Please provide email and password!")

    user = User.query.filter_by(email=email.lower()).first()
    if not user or not user.correct_password(password):
        _reset_cookie_after_request(3)
        raise Unauthenticated("Incorrect email or password")

    user.last_logged_in = utcnow()
    db.session.commit()
    current_app.logger.info("login: user %s", user.id)
    return send_token(user, 200)


@blp.route("/logout", methods=["GET"])
@blp.doc(security=[])
def logout():
    response = jsonify({"status": "success"})
    return _set_session_cookie(response, current_app.config["JWT_LOGOUT_SENTINEL"], timedelta(seconds=10))


@blp.route("/updateMe", methods=["PATCH"])
@login_required
@blp.arguments(UpdateMeSchema)
def update_me(body):
    if body.get("password") or body.get("password_confirm"):
        raise ValidationError("This route is not for password updates. Please use /updateMyPassword.")

    user = g.current_user
    if "email" in body and body["email"] != user.email:
        if User.query.filter_by(email=body["email"]).first():
            raise ConflictError("User email already existed.")
    for key in ("name", "email"):
        if key in body:
            setattr(user, key, body[key])
    db.session.commit()
    return {"status": "success", "data": {"user": USER_SCHEMA.dump(user)}}, 200


@blp.route("/updateMyPassword", methods=["PATCH"])
@login_required
@blp.arguments(UpdatePasswordSchema)
def update_my_password(body):
    user = g.current_user
    if not user.correct_password(body["password_current"]):
        raise Unauthenticated("Your current password is wrong.")

    user.set_password(body["password"])
    # Tokens issued before this second stop working in protect()
    user.password_changed_at = utcnow()
    db.session.commit()
    current_app.logger.info("password changed: user %s", user.id)
    return send_token(user, 200)
