import pytest

from knxbridge.core.registry import DeviceNotFound, DeviceRecord, DeviceRegistry


def record(knx, name, event="Temperature", measurement="Measurement"):
    return DeviceRecord(group_address=knx, name=name, event=event, measurement=measurement)


class TestLookups:
    def setup_method(self):
        self.registry = DeviceRegistry([
            record("0/0/5", "Boiler"),
            record("0/1/2", "Kitchen", event="Light", measurement="State"),
        ])

    def test_by_group_address(self):
        assert self.registry.find_by_group_address("0/1/2").name == "Kitchen"

    def test_by_name(self):
        assert self.registry.find_by_name("Boiler").group_address == "0/0/5"

    def test_not_found(self):
        with pytest.raises(DeviceNotFound):
            self.registry.find_by_group_address("9/9/9")
        with pytest.raises(DeviceNotFound):
            self.registry.find_by_name("Garage")
        assert self.registry.get_by_name("Garage") is None

    def test_container_protocol(self):
        assert len(self.registry) == 2
        assert "0/0/5" in self.registry
        assert [r.name for r in self.registry] == ["Boiler", "Kitchen"]


class TestDuplicates:
    def test_last_entry_in_file_wins(self):
        a = record("0/0/5", "BoilerA")
        b = record("0/0/5", "BoilerB")
        registry = DeviceRegistry([a, b])
        assert registry.find_by_group_address("0/0/5") is b
        assert registry.is_shadowed(a)
        assert not registry.is_shadowed(b)

    def test_duplicate_names(self):
        a = record("0/0/5", "Boiler")
        b = record("0/0/6", "Boiler")
        registry = DeviceRegistry([a, b])
        assert registry.find_by_name("Boiler") is b
        # a is still reachable by its own address
        assert registry.find_by_group_address("0/0/5") is a
        assert registry.is_shadowed(a)

    def test_records_keep_file_order(self):
        a = record("0/0/5", "A")
        b = record("0/0/5", "B")
        registry = DeviceRegistry([a, b])
        assert registry.records == (a, b)
        assert registry.describe() == [
            "On devicelist is 0/0/5 A",
            "On devicelist is 0/0/5 B",
        ]
