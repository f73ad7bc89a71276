"""
Lifecycle error taxonomy.

Services raise these; the handlers registered in ``register_error_handlers``
turn them into the usual ``{"success": False, "message": ...}`` JSON body.
Borrower-facing messages stay short and never carry stack details.
"""
from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException


class LifecycleError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message, "error": self.code}
        body.update(self.extra)
        return body


class ValidationError(LifecycleError):
    status_code = 400
    code = "validation_error"


class NotFound(LifecycleError):
    status_code = 404
    code = "not_found"


class InvalidTransition(LifecycleError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, message: str, current_state: str | None = None):
        super().__init__(message, current_state=current_state)
        self.current_state = current_state


class Conflict(LifecycleError):
    status_code = 409
    code = "conflict"

    def __init__(self, message: str = "Kayıt başka bir işlem tarafından değiştirildi"):
        super().__init__(message, hint="refresh_and_retry")


class Forbidden(LifecycleError):
    status_code = 403
    code = "forbidden"


class DependencyUnavailable(LifecycleError):
    """Side-effect sink down. Logged, never returned to the borrower."""
    status_code = 503
    code = "dependency_unavailable"


def register_error_handlers(app):
    @app.errorhandler(LifecycleError)
    def _lifecycle_error(exc: LifecycleError):
        if isinstance(exc, Conflict):
            current_app.logger.info(f"[errors] conflict: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return jsonify({"success": False, "message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def _unhandled(exc: Exception):
        current_app.logger.exception(f"[errors] unhandled: {exc}")
        return jsonify({"success": False, "message": "Beklenmeyen bir hata oluştu"}), 500
