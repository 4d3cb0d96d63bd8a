"""Error taxonomy for the subscriber module."""
from typing import Optional


class SubscriberError(Exception):
    """Base class for all subscriber errors."""


class ConfigurationError(SubscriberError):
    """Required configuration is missing or invalid. Always fatal."""


class InvalidGridUrlError(ConfigurationError):
    """Event Grid URL is not of the form '<protocol>://<moduleName>:<portNo>'."""


class UnknownEventSchemaError(ConfigurationError):
    """Delivery schema string does not name a supported schema."""

    def __init__(self, value: str, accepted: list[str]):
        self.value = value
        self.accepted = accepted
        super().__init__(
            f"Unknown event delivery schema '{value}'. Accepted values: {', '.join(accepted)}"
        )


class SecurityDaemonError(SubscriberError):
    """The IoT Edge workload API failed or returned an unusable response."""


class EventGridApiError(SubscriberError):
    """The Event Grid module answered with a non-success status."""

    def __init__(self, operation: str, status_code: int, body: Optional[str] = None):
        self.operation = operation
        self.status_code = status_code
        self.body = body
        message = f"{operation} failed with status {status_code}"
        if body:
            message = f"{message}: {body}"
        super().__init__(message)
