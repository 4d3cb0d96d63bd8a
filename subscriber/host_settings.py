"""
Host configuration: HostSettings.json overlaid with environment variables.

Keys live under a "configuration" root and are matched case-insensitively.
An environment variable such as ``configuration__eventGrid__url`` (or
``configuration:eventGrid:url``) overrides the file value at the same path.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from subscriber.errors import ConfigurationError


ROOT_SECTION = "configuration"
GRID_SECTION = f"{ROOT_SECTION}:eventGrid"


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class TopicConfiguration(_Section):
    name: Optional[str] = None


class SubscriptionConfiguration(_Section):
    name: Optional[str] = None
    event_schema: Optional[str] = Field(default=None, alias="eventschema")
    url: Optional[str] = None


class GridConfiguration(_Section):
    url: Optional[str] = None
    topic: Optional[TopicConfiguration] = None
    subscription: Optional[SubscriptionConfiguration] = None


class HostConfiguration(_Section):
    create_event_grid_subscription: bool = Field(
        default=False, alias="createeventgridsubscription"
    )
    event_grid: Optional[GridConfiguration] = Field(default=None, alias="eventgrid")


def load_host_configuration(
    path: str | Path,
    environ: Optional[Mapping[str, str]] = None,
) -> HostConfiguration:
    """
    Load the host configuration snapshot.

    Args:
        path: HostSettings.json location (must exist)
        environ: Environment to read overrides from (defaults to os.environ)

    Raises:
        ConfigurationError: If the file is missing, is not valid JSON or
            holds values of the wrong type
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file '{path}' was not found")

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Configuration file '{path}' is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise ConfigurationError(f"Configuration file '{path}' must contain a JSON object")

    data = _lower_keys(document)
    _apply_environment_overrides(data, os.environ if environ is None else environ)

    section = data.get(ROOT_SECTION) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Please configure the section {ROOT_SECTION}")

    try:
        return HostConfiguration.model_validate(section)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid value in section {ROOT_SECTION}: {e}") from e


def validate_grid_configuration(grid: Optional[GridConfiguration]) -> GridConfiguration:
    """
    Check the Event Grid section, stopping at the first missing key.

    Order: section, url, topic name, subscription, subscription name,
    subscription url, subscription eventSchema.

    Raises:
        ConfigurationError: Naming the first missing key path
    """
    if grid is None:
        raise ConfigurationError(
            f"GridConfiguration is null. Please configure the section {GRID_SECTION}"
        )

    if not grid.url:
        raise ConfigurationError(f"Please configure the section {GRID_SECTION}:url")

    if grid.topic is None or not grid.topic.name:
        raise ConfigurationError(f"Please configure {GRID_SECTION}:topic:name")

    subscription = grid.subscription
    if subscription is None:
        raise ConfigurationError(f"Please configure {GRID_SECTION}:subscription")

    if not subscription.name:
        raise ConfigurationError(f"Please configure {GRID_SECTION}:subscription:name")

    if not subscription.url:
        raise ConfigurationError(f"Please configure {GRID_SECTION}:subscription:url")

    if not subscription.event_schema:
        raise ConfigurationError(f"Please configure {GRID_SECTION}:subscription:eventSchema")

    return grid


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key).lower(): _lower_keys(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def _apply_environment_overrides(data: Dict[str, Any], environ: Mapping[str, str]) -> None:
    """Overlay ``configuration``-rooted environment variables onto the file data."""
    for name, value in environ.items():
        path = name.replace("__", ":").lower().split(":")
        if len(path) < 2 or path[0] != ROOT_SECTION or not all(path):
            continue

        node = data
        for key in path[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[path[-1]] = value
