"""Device registry mapping KNX group addresses to MQTT identities.

Records are kept in configuration-file order. Both lookup indexes are built
once when the registry is created; a later entry with the same key replaces
an earlier one, so the last matching line of the configuration file wins.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple


class DeviceNotFound(LookupError):
    """Raised when no device is registered under the requested key."""


@dataclass(frozen=True, slots=True)
class DeviceRecord:
    """One DEVICE line of the configuration."""

    group_address: str
    name: str
    event: str
    measurement: str


class DeviceRegistry:
    """Read-only collection of device records with keyed lookups."""

    def __init__(self, records: Iterable[DeviceRecord] = ()):
        self._records: Tuple[DeviceRecord, ...] = tuple(records)
        self._by_address: Dict[str, DeviceRecord] = {}
        self._by_name: Dict[str, DeviceRecord] = {}
        for record in self._records:
            self._by_address[record.group_address] = record
            self._by_name[record.name] = record

    def find_by_group_address(self, address: str) -> DeviceRecord:
        try:
            return self._by_address[address]
        except KeyError:
            raise DeviceNotFound(f"No device registered for group address {address}")

    def find_by_name(self, name: str) -> DeviceRecord:
        try:
            return self._by_name[name]
        except KeyError:
            raise DeviceNotFound(f"No device registered with name {name}")

    def get_by_group_address(self, address: str) -> Optional[DeviceRecord]:
        return self._by_address.get(address)

    def get_by_name(self, name: str) -> Optional[DeviceRecord]:
        return self._by_name.get(name)

    def is_shadowed(self, record: DeviceRecord) -> bool:
        """True when a later entry overrides this record for either lookup."""
        return (
            self._by_address.get(record.group_address) is not record
            or self._by_name.get(record.name) is not record
        )

    def describe(self) -> List[str]:
        return [f"On devicelist is {r.group_address} {r.name}" for r in self._records]

    @property
    def records(self) -> Tuple[DeviceRecord, ...]:
        return self._records

    def __iter__(self) -> Iterator[DeviceRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, address: object) -> bool:
        return address in self._by_address
