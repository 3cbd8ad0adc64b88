"""Gateway error taxonomy.

Every failure in the request pipeline is raised as a GatewayError and
turned into exactly one JSON response at the HTTP boundary.
"""


class GatewayError(Exception):
    """A failure surfaced to the caller as ``{"error": message, **extra}``."""

    status_code: int = 500

    def __init__(self, message: str, extra: dict | None = None, headers: dict | None = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}
        self.headers = headers or {}

    def to_body(self) -> dict:
        return {"error": self.message, **self.extra}


class ClientInputError(GatewayError):
    status_code = 400


class ConfigurationError(GatewayError):
    status_code = 500


class RateLimitExceeded(GatewayError):
    status_code = 429


class UpstreamRejected(GatewayError):
    status_code = 400


class TransportFailure(GatewayError):
    status_code = 500
