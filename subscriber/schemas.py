from enum import Enum as PyEnum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from subscriber.errors import InvalidGridUrlError, UnknownEventSchemaError


class EventDeliverySchema(str, PyEnum):
    EVENT_GRID_SCHEMA = "EventGridSchema"
    CUSTOM_EVENT_SCHEMA = "CustomEventSchema"
    CLOUD_EVENT_SCHEMA_V1_0 = "CloudEventSchemaV1_0"

    @classmethod
    def parse(cls, value: str) -> "EventDeliverySchema":
        """
        Resolve a delivery schema name case-insensitively.

        Examples:
            >>> EventDeliverySchema.parse("eventgridschema")
            <EventDeliverySchema.EVENT_GRID_SCHEMA: 'EventGridSchema'>

        Raises:
            UnknownEventSchemaError: If the value is not one of the accepted names
        """
        schema = _DELIVERY_SCHEMAS.get(value.strip().lower()) if value else None
        if schema is None:
            raise UnknownEventSchemaError(value, [s.value for s in cls])
        return schema


_DELIVERY_SCHEMAS: Dict[str, EventDeliverySchema] = {
    schema.value.lower(): schema for schema in EventDeliverySchema
}


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WebHookDestinationProperties(_ApiModel):
    endpoint_url: str = Field(alias="endpointUrl")


class WebHookDestination(_ApiModel):
    endpoint_type: Literal["WebHook"] = Field(default="WebHook", alias="endpointType")
    properties: WebHookDestinationProperties


class EventSubscriptionProperties(_ApiModel):
    topic: Optional[str] = None
    event_delivery_schema: EventDeliverySchema = Field(alias="eventDeliverySchema")
    destination: WebHookDestination


class EventSubscription(_ApiModel):
    """
    Webhook subscription descriptor sent to the Event Grid module.

    Example:
        {
            "name": "sampleSubscription1",
            "properties": {
                "topic": "sampleTopic1",
                "eventDeliverySchema": "EventGridSchema",
                "destination": {
                    "endpointType": "WebHook",
                    "properties": {"endpointUrl": "https://subscriber:4430/api/subscriber"}
                }
            }
        }
    """
    name: str
    properties: EventSubscriptionProperties

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class Topic(_ApiModel):
    """Topic resource as returned by the Event Grid module."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    name: str
    type: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)


def parse_grid_url(url: str) -> tuple[str, int]:
    """
    Split an Event Grid URL into base URL and port.

    Expected format: "<protocol>://<moduleName>:<portNo>"

    Returns:
        Tuple of (base_url, port)

    Raises:
        InvalidGridUrlError: If the URL does not split into exactly three
            ':'-separated tokens or the port is not a number

    Examples:
        >>> parse_grid_url("https://eventgridmodule:4438")
        ('https://eventgridmodule', 4438)
    """
    tokens = url.split(":")

    if len(tokens) != 3:
        raise InvalidGridUrlError(
            f"URL should be of the form '<protocol>://<moduleName>:<portNo>', got '{url}'"
        )

    try:
        port = int(tokens[2])
    except ValueError:
        raise InvalidGridUrlError(f"Port in URL '{url}' is not a number") from None

    return f"{tokens[0]}:{tokens[1]}", port
