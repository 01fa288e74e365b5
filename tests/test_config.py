import pytest

from dispatch.config import SystemConfigReader
from logistics.models import SystemConfig

pytestmark = pytest.mark.django_db


@pytest.fixture
def reader():
    return SystemConfigReader()


def test_defaults_when_nothing_configured(reader):
    assert reader.max_orders_per_driver() == 5
    assert reader.max_distance_between_restaurants_m() == 500
    assert reader.pending_order_timeout_minutes() == 3
    assert reader.max_driver_cancellations() == 3
    assert reader.default_preparation_time_minutes() == 15


@pytest.mark.parametrize("key, value, expected", [
    ("max_orders_per_driver", 50, 10),
    ("max_orders_per_driver", 0, 1),
    ("max_distance_between_restaurants", 20, 100),
    ("max_distance_between_restaurants", "800", 800),
    ("pending_order_timeout", 600, 60),
    ("max_driver_cancellations", -4, 1),
    ("default_preparation_time", "25.0", 25),
])
def test_values_are_clamped(reader, key, value, expected):
    SystemConfig.set(key, value)
    assert reader.get_int(key) == expected


@pytest.mark.parametrize("value", ["abc", "", [], {"minutes": 3}])
def test_malformed_values_fall_back_to_default(reader, value):
    SystemConfig.set("pending_order_timeout", value)
    assert reader.pending_order_timeout_minutes() == 3


def test_reads_are_fresh(reader):
    assert reader.max_driver_cancellations() == 3
    SystemConfig.set("max_driver_cancellations", 5)
    assert reader.max_driver_cancellations() == 5


@pytest.mark.parametrize("requested, expected", [(30, 30), ("2", 5), (500, 120), (None, 15), ("soon", 15), (0, 15)])
def test_preparation_minutes(reader, requested, expected):
    assert reader.preparation_minutes(requested) == expected


def test_preparation_minutes_uses_configured_default(reader):
    SystemConfig.set("default_preparation_time", 20)
    assert reader.preparation_minutes(None) == 20
