from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .registry import DeviceRecord, DeviceRegistry

logger = logging.getLogger("knxbridge.config")

DEFAULT_CONFIG_FILE = "bluehome.conf"
DEFAULT_KEEPALIVE = 3000


class ConfigError(ValueError):
    """Raised when the configuration file contains an invalid entry."""


@dataclass(slots=True)
class BridgeConfig:
    """Settings for one bridge process, reloaded on every start."""

    address: str = ""
    client_id: str = ""
    qos: int = 0
    timeout: int = 0
    username: str = ""
    password: str = ""
    solar_ip: str = ""
    bus_host: Optional[str] = None
    keepalive: int = DEFAULT_KEEPALIVE
    devices: List[DeviceRecord] = field(default_factory=list)

    def validate(self) -> None:
        if not self.address:
            raise ConfigError("ADDRESS (MQTT broker URI) is required")
        if self.qos not in (0, 1, 2):
            raise ConfigError(f"QOS must be 0, 1 or 2, not {self.qos}")

    def build_registry(self) -> DeviceRegistry:
        return DeviceRegistry(self.devices)


def _parse_int(key: str, text: str) -> int:
    try:
        return int(text.strip(), 0)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{text.strip()}'")


def _parse_device(text: str, lineno: int) -> DeviceRecord:
    parts = text.strip().split(None, 3)
    if len(parts) < 4:
        raise ConfigError(
            f"line {lineno}: DEVICE needs '<knx-addr> <name> <event> <measurement>'"
        )
    knx, name, event, measurement = parts
    return DeviceRecord(
        group_address=knx,
        name=name,
        event=event,
        measurement=measurement.strip(),
    )


def parse_flat_config(text: str) -> BridgeConfig:
    """Parse the line-oriented KEY=value configuration format."""
    config = BridgeConfig()
    for lineno, raw_line in enumerate(text.splitlines(), start=1):
        if raw_line.startswith("#") or not raw_line.strip():
            continue
        if "=" not in raw_line:
            logger.debug("Ignoring line %d without '=': %s", lineno, raw_line)
            continue
        key, value = raw_line.split("=", 1)
        key = key.strip()
        if key == "ADDRESS":
            config.address = value.strip()
        elif key == "CLIENTID":
            config.client_id = value.strip()
        elif key == "QOS":
            config.qos = _parse_int(key, value)
        elif key == "TIMEOUT":
            config.timeout = _parse_int(key, value)
        elif key == "USERNAME":
            config.username = value.strip()
        elif key == "PASSWORD":
            config.password = value.strip()
        elif key == "SOLAR_IP":
            config.solar_ip = value.strip()
        elif key == "DEVICE":
            config.devices.append(_parse_device(value, lineno))
        else:
            logger.debug("Ignoring unknown key %s on line %d", key, lineno)
    return config


def _to_device(data: Dict[str, Any]) -> DeviceRecord:
    try:
        return DeviceRecord(
            group_address=str(data["knx"]),
            name=str(data["name"]),
            event=str(data["event"]),
            measurement=str(data["type"]),
        )
    except KeyError as exc:
        raise ConfigError(f"device entry is missing {exc}")


def _yaml_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be an integer, got '{value}'")
    if isinstance(value, int):
        return value
    return _parse_int(key, str(value))


def parse_yaml_config(text: str) -> BridgeConfig:
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML: {exc}")
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be an object/dict")

    mqtt = raw.get("mqtt", {}) or {}
    if not isinstance(mqtt, dict):
        raise ConfigError("'mqtt' section must be an object/dict")
    devices = raw.get("devices", []) or []
    if not isinstance(devices, list) or not all(isinstance(item, dict) for item in devices):
        raise ConfigError("'devices' must be a list of objects")
    return BridgeConfig(
        address=str(mqtt.get("address", "")),
        client_id=str(mqtt.get("clientid", "")),
        qos=_yaml_int("qos", mqtt.get("qos", 0)),
        timeout=_yaml_int("timeout", mqtt.get("timeout", 0)),
        username=str(mqtt.get("username", "")),
        password=str(mqtt.get("password", "")),
        keepalive=_yaml_int("keepalive", mqtt.get("keepalive", DEFAULT_KEEPALIVE)),
        solar_ip=str(raw.get("solar_ip", "")),
        devices=[_to_device(item) for item in devices],
    )


def load_config(path: str | Path) -> BridgeConfig:
    """Read a flat KEY=value or YAML config file into a BridgeConfig."""

    file_path = Path(path)
    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() in {".yaml", ".yml"}:
        config = parse_yaml_config(text)
    else:
        config = parse_flat_config(text)

    for line in config.build_registry().describe():
        logger.debug(line)
    return config
