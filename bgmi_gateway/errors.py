"""Error taxonomy raised by the gateway and converted to HTTP responses."""


class GatewayError(Exception):
    """Base class for failures reported back to the client."""

    status = 500
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GatewayError):
    status = 400
    default_message = "Invalid request."


class Unauthorized(GatewayError):
    status = 401
    default_message = "Invalid credentials."


class Forbidden(GatewayError):
    status = 403
    default_message = "Not allowed."


class NotFound(GatewayError):
    status = 404
    default_message = "Not found."


class Conflict(GatewayError):
    status = 409
    default_message = "Already exists."


class ConfigError(GatewayError):
    status = 500
    default_message = "Server misconfiguration."


class InternalError(GatewayError):
    status = 500
    default_message = "Internal server error."


class Unavailable(GatewayError):
    status = 503
    default_message = "Database is not connected yet. Please retry shortly."
