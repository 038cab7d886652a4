# errors.py
# Operational errors raised by handlers and the auth chain.
# app.py turns every AppError into the JSON error envelope.


class AppError(Exception):
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self):
        return "fail" if str(self.status_code).startswith("4") else "error"


class ValidationError(AppError):
    status_code = 400


class ConflictError(AppError):
    # duplicate unique keys are reported as bad requests
    status_code = 400


class AuthError(AppError):
    pass


class Unauthenticated(AuthError):
    status_code = 401


class Forbidden(AuthError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class InternalError(AppError):
    status_code = 500
