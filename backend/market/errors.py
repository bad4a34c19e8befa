# Overview: Service-layer exception hierarchy mapped onto HTTP status codes by the routes.


class MarketError(Exception):
    """Base class for business errors raised by the service layer."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(MarketError):
    """400-level input or business rule problem."""
    status_code = 400


class NotFoundError(MarketError):
    """
    404: entity absent, or present but not visible to the caller.

    Orders and addresses of other users are reported as missing rather
    than forbidden so their existence is not disclosed.
    """
    status_code = 404


class ForbiddenError(MarketError):
    """403: authenticated caller may see the entity but not change it."""
    status_code = 403


class ServiceUnavailableError(MarketError):
    """500: a required collaborator (payment gateway, config) failed."""
    status_code = 500
