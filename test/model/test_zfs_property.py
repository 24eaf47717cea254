from datetime import datetime, timezone

import pytest

from core.ingest.raw_zfs_object import RawProperty
from core.model import zfs_property_names as names
from core.model.zfs_property import (
    ZfsProperty,
    try_parse,
    try_parse_bool,
    try_parse_datetime,
    try_parse_int,
    try_parse_string,
)
from core.util.time_util import EPOCH

UTC = timezone.utc


class TestZfsPropertyValue:
    """Immutable property values and their derived views"""

    def test_when_only_owner_differs_then_properties_are_equal(self, make_pool):
        # Arrange
        pool = make_pool()
        detached = ZfsProperty(names.ENABLED, True, True)

        # Act & Assert
        assert pool[names.ENABLED] == detached
        assert pool[names.ENABLED].owner is pool
        assert detached.owner is None

    def test_when_locality_differs_then_properties_are_not_equal(self):
        assert ZfsProperty(names.ENABLED, True, True) != ZfsProperty(names.ENABLED, True, False)

    def test_when_with_value_then_original_is_unchanged(self):
        # Arrange
        original = ZfsProperty(names.RETENTION_DAILY, 3)

        # Act
        updated = original.with_value(9, is_local=False)

        # Assert
        assert original.value == 3
        assert original.is_local is True
        assert updated.value == 9
        assert updated.is_inherited is True

    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, "true"),
            (False, "false"),
            (48, "48"),
            ("siaz", "siaz"),
            (datetime(2024, 5, 1, 12, 30, tzinfo=UTC), "2024-05-01T12:30:00+00:00"),
        ],
    )
    def test_value_string_serialization(self, value, expected):
        prop = ZfsProperty("x:y", value)
        assert prop.value_string == expected
        assert prop.set_string == f"x:y={expected}"

    def test_source_strings(self, make_pool):
        # Arrange
        pool = make_pool()
        child = pool.create_child("tank/data")
        grandchild = child.create_child("tank/data/logs")

        # Assert
        assert pool[names.ENABLED].source == names.SOURCE_LOCAL
        assert child[names.ENABLED].source == "inherited from tank"
        assert grandchild[names.ENABLED].source == "inherited from tank"
        assert ZfsProperty(names.ENABLED, True).source == names.SOURCE_NONE

    def test_when_chain_has_no_local_definition_then_source_is_default(self, make_pool):
        # Arrange
        pool = make_pool()
        child = pool.create_child("tank/data")
        pool.update_property(names.TEMPLATE, "default", is_local=False)

        # Act & Assert
        assert child[names.TEMPLATE].resolve_source() is None
        assert child[names.TEMPLATE].source == names.SOURCE_DEFAULT


class TestRawPropertyParsing:
    """Parse helpers report failure with None instead of raising"""

    def test_bool_parsing(self):
        assert try_parse_bool(RawProperty(names.ENABLED, "TRUE", "local")) == ZfsProperty(names.ENABLED, True, True)
        assert try_parse_bool(RawProperty(names.ENABLED, "yes", "local")) is None

    def test_int_parsing_honors_ranges(self):
        assert try_parse_int(RawProperty(names.RETENTION_DAILY, "-1", "local")).value == -1
        assert try_parse_int(RawProperty(names.RETENTION_DAILY, "-2", "local")) is None
        assert try_parse_int(RawProperty(names.RETENTION_PRUNE_DEFERRAL, "101", "local")) is None
        assert try_parse_int(RawProperty(names.RETENTION_DAILY, "many", "local")) is None

    def test_datetime_parsing(self):
        parsed = try_parse_datetime(RawProperty(names.LAST_DAILY_SNAPSHOT_TIMESTAMP, "2024-05-01T00:00:00+02:00", "local"))

        assert parsed.value == datetime(2024, 4, 30, 22, 0, tzinfo=UTC)
        assert try_parse_datetime(RawProperty(names.LAST_DAILY_SNAPSHOT_TIMESTAMP, "soon", "local")) is None
        assert try_parse_datetime(RawProperty(names.LAST_DAILY_SNAPSHOT_TIMESTAMP, "1969-12-31T00:00:00", "local")) is None

    def test_string_parsing_rejects_undefined_values(self):
        assert try_parse_string(RawProperty(names.TEMPLATE, "-", "local")) is None
        assert try_parse_string(RawProperty(names.TEMPLATE, "default", "-")) is None
        assert try_parse_string(RawProperty(names.TEMPLATE, "default", "local")).value == "default"

    def test_when_source_is_inherited_then_parsed_property_is_not_local(self):
        parsed = try_parse(RawProperty(names.ENABLED, "true", "inherited from tank"))
        assert parsed == ZfsProperty(names.ENABLED, True, False)

    def test_when_property_name_is_unknown_then_parse_fails(self):
        assert try_parse(RawProperty("com.example:other", "1", "local")) is None

    def test_node_properties_survive_a_round_trip_through_the_raw_parser(self, make_pool):
        # Arrange
        pool = make_pool(daily=7, hourly=24, deferral=50)
        pool.update_property(names.LAST_DAILY_SNAPSHOT_TIMESTAMP, datetime(2024, 5, 1, 3, 4, 5, tzinfo=UTC))
        child = pool.create_child("tank/data")

        for node in (pool, child):
            for prop in node.properties.values():
                # Act
                reparsed = try_parse(RawProperty(prop.name, prop.value_string, prop.source))

                # Assert
                assert reparsed == prop, prop.name

    def test_set_string_tokens_parse_back_to_equal_values(self, make_pool):
        # Arrange
        pool = make_pool(daily=7)

        for prop in pool.properties.values():
            # Act
            name, value = prop.set_string.split("=", 1)

            # Assert
            assert try_parse(RawProperty(name, value, names.SOURCE_LOCAL)) == prop

    def test_epoch_round_trips(self):
        prop = ZfsProperty(names.LAST_HOURLY_SNAPSHOT_TIMESTAMP, EPOCH)
        assert try_parse(RawProperty(prop.name, prop.value_string, "local")) == prop
