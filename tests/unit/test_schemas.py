"""
Unit tests for subscription descriptors, delivery schema parsing and URL parsing.
Run: pytest tests/unit/test_schemas.py -v
"""
import pytest

from subscriber.errors import ConfigurationError, InvalidGridUrlError, UnknownEventSchemaError
from subscriber.handlers.registration import create_event_subscription
from subscriber.host_settings import (
    GridConfiguration,
    SubscriptionConfiguration,
    TopicConfiguration,
)
from subscriber.schemas import EventDeliverySchema, parse_grid_url


def _grid(event_schema: str = "EventGridSchema") -> GridConfiguration:
    return GridConfiguration(
        url="https://eventgridmodule:4438",
        topic=TopicConfiguration(name="T"),
        subscription=SubscriptionConfiguration(name="S", url="U", event_schema=event_schema),
    )


class TestEventDeliverySchema:
    """Tests for the closed delivery schema mapping."""

    @pytest.mark.parametrize("value", ["EventGridSchema", "eventgridschema", "EVENTGRIDSCHEMA", "eventGridSchema"])
    def test_parse_is_case_insensitive(self, value):
        assert EventDeliverySchema.parse(value) is EventDeliverySchema.EVENT_GRID_SCHEMA

    def test_parse_other_schemas(self):
        assert EventDeliverySchema.parse("customeventschema") is EventDeliverySchema.CUSTOM_EVENT_SCHEMA
        assert EventDeliverySchema.parse("CloudEventSchemaV1_0") is EventDeliverySchema.CLOUD_EVENT_SCHEMA_V1_0

    def test_unknown_schema_raises_named_error(self):
        with pytest.raises(UnknownEventSchemaError) as exc_info:
            EventDeliverySchema.parse("XmlSchema")

        assert exc_info.value.value == "XmlSchema"
        assert "EventGridSchema" in str(exc_info.value)

    def test_unknown_schema_is_a_configuration_error(self):
        with pytest.raises(ConfigurationError):
            EventDeliverySchema.parse("")


class TestCreateEventSubscription:
    """Tests for building the webhook subscription descriptor."""

    def test_descriptor_fields(self):
        subscription = create_event_subscription(_grid())

        assert subscription.name == "S"
        assert subscription.properties.topic == "T"
        assert subscription.properties.destination.endpoint_type == "WebHook"
        assert subscription.properties.destination.properties.endpoint_url == "U"
        assert subscription.properties.event_delivery_schema is EventDeliverySchema.EVENT_GRID_SCHEMA

    def test_lowercase_schema_accepted(self):
        subscription = create_event_subscription(_grid("eventgridschema"))

        assert subscription.properties.event_delivery_schema is EventDeliverySchema.EVENT_GRID_SCHEMA

    def test_invalid_schema_is_fatal(self):
        with pytest.raises(UnknownEventSchemaError):
            create_event_subscription(_grid("NotASchema"))

    def test_api_payload_uses_wire_names(self):
        payload = create_event_subscription(_grid()).to_api()

        assert payload == {
            "name": "S",
            "properties": {
                "topic": "T",
                "eventDeliverySchema": "EventGridSchema",
                "destination": {
                    "endpointType": "WebHook",
                    "properties": {"endpointUrl": "U"},
                },
            },
        }


class TestParseGridUrl:
    """Tests for parse_grid_url."""

    def test_valid_url_returns_base_and_port(self):
        assert parse_grid_url("https://eventgridmodule:4438") == ("https://eventgridmodule", 4438)

    @pytest.mark.parametrize("url", [
        "https://eventgridmodule",
        "eventgridmodule:4438",
        "https://eventgridmodule:4438:1",
        "",
    ])
    def test_wrong_token_count_raises(self, url):
        with pytest.raises(InvalidGridUrlError) as exc_info:
            parse_grid_url(url)

        assert "<protocol>://<moduleName>:<portNo>" in str(exc_info.value)

    def test_non_numeric_port_raises(self):
        with pytest.raises(InvalidGridUrlError):
            parse_grid_url("https://eventgridmodule:port")
