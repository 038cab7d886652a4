import os
from datetime import timedelta


def _database_uri():
    # DATABASE_URL may carry a <PASSWORD> placeholder filled from DATABASE_PASSWORD
    uri = os.getenv("DATABASE_URL", "sqlite:///weather.db")
    password = os.getenv("DATABASE_PASSWORD")
    if password:
        uri = uri.replace("<PASSWORD>", password)
    return uri


class Config:
    API_TITLE = "Weather Readings API"
    API_VERSION = "1.0.0"
    OPENAPI_VERSION = "3.0.3"
    OPENAPI_URL_PREFIX = "/"
    OPENAPI_JSON_PATH = "docs.json"
    OPENAPI_SWAGGER_UI_PATH = "/docs"
    OPENAPI_SWAGGER_UI_URL = "https://cdn.jsdelivr.net/npm/swagger-ui-dist/"
    SQLALCHEMY_DATABASE_URI = _database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PROPAGATE_EXCEPTIONS = True

    # "development" answers errors with details and logs every request
    APP_ENV = os.getenv("APP_ENV", "production")

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-this-in-prod")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=int(os.getenv("JWT_EXPIRES_IN", "90")))
    JWT_COOKIE_EXPIRES_IN = timedelta(days=int(os.getenv("JWT_COOKIE_EXPIRES_IN", "90")))
    JWT_ACCESS_COOKIE_NAME = "jwt"
    JWT_LOGOUT_SENTINEL = "loggedout"

    API_SPEC_OPTIONS = {
        "components": {
            "securitySchemes": {
                "bearerAuth": {
                    "type": "http",
                    "scheme": "bearer",
                    "bearerFormat": "JWT",
                }
            }
        },
        # Apply JWT globally by default
        "security": [{"bearerAuth": []}],
    }
