"""Configuration loading and validation for the YAML config file."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from bledomctl.core.errors import ConfigLoadError, ConfigValidationError
from bledomctl.core.model import DeviceConfig, QueueSettings, TransportSettings

_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ConfigValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedConfig:
    config: DeviceConfig
    source: str | None


def default_config_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "bledomctl/config.yaml"


def _load_schema_validator() -> Any:
    schema_text = resources.files("bledomctl.schemas").joinpath("config.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigLoadError(f"Could not read config file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at root")
    return loaded


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ConfigValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "on"}:
            return True
        if lowered in {"false", "no", "off"}:
            return False
    raise ConfigValidationError(f"{context} must be boolean true/false")


def _normalize_identity(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def build_config(doc: dict[str, Any], source: Path | str = "<config>") -> DeviceConfig:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ConfigValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    device = doc.get("device", {})
    transport_doc = doc.get("transport", {})
    queue_doc = doc.get("queue", {})
    defaults = TransportSettings()

    transport = TransportSettings(
        service_uuid=_normalize_uuid(
            transport_doc.get("service_uuid", defaults.service_uuid),
            context="transport.service_uuid",
        ),
        write_char_uuid=_normalize_uuid(
            transport_doc.get("write_char_uuid", defaults.write_char_uuid),
            context="transport.write_char_uuid",
        ),
        write_with_response=_normalize_bool(
            transport_doc.get("write_with_response", defaults.write_with_response),
            context="transport.write_with_response",
        ),
        connect_timeout_s=float(transport_doc.get("connect_timeout_s", defaults.connect_timeout_s)),
    )
    queue = QueueSettings(
        ready_timeout_s=float(queue_doc.get("ready_timeout_s", QueueSettings.ready_timeout_s)),
        poll_interval_s=float(queue_doc.get("poll_interval_s", QueueSettings.poll_interval_s)),
    )
    if queue.poll_interval_s > queue.ready_timeout_s:
        raise ConfigValidationError(
            f"queue.poll_interval_s ({queue.poll_interval_s}) exceeds queue.ready_timeout_s ({queue.ready_timeout_s})"
        )

    return DeviceConfig(
        uuid=_normalize_identity(device.get("uuid")),
        name=device.get("name"),
        transport=transport,
        queue=queue,
    )


def load_config(path: Path | None = None) -> LoadedConfig:
    """Load the config from ``path`` or the XDG default location.

    A missing default file yields the built-in defaults; a missing explicit path
    is an error.
    """
    if path is None:
        path = default_config_path()
        if not path.exists():
            LOGGER.debug("No config file at %s, using defaults", path)
            return LoadedConfig(config=DeviceConfig(), source=None)

    doc = _read_yaml(path)
    return LoadedConfig(config=build_config(doc, path), source=str(path))
