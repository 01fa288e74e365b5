import math
from decimal import Decimal

import pytest

from dispatch import services as dispatch_services
from dispatch.config import SystemConfigReader
from dispatch.notifications import NotificationGateway
from dispatch.services import build_dispatch_services
from routing.geo import EARTH_RADIUS_M, path_length_m
from routing.provider import GreatCircleRoutingProvider, RoutingError, RoutingProvider, TripLeg, TripPlan

# Downtown Algiers
ORIGIN = (36.753768, 3.058756)


def offset(point, north_m=0.0, east_m=0.0):
    """
    Move a (lat, lon) point by a number of meters. Accurate enough at city scale
    for boundary tests against the haversine distance.
    """
    lat, lon = point
    d_lat = math.degrees(north_m / EARTH_RADIUS_M)
    d_lon = math.degrees(east_m / (EARTH_RADIUS_M * math.cos(math.radians(lat))))
    return (lat + d_lat, lon + d_lon)


class MockRouting(RoutingProvider):
    """
    Great-circle routes, and trips whose distance is `trip_factor` times the direct
    path over the waypoints as given, so the detour ratio equals trip_factor.
    """

    def __init__(self, trip_factor=1.0, fail_trips=False, fail_routes=False):
        self.trip_factor = trip_factor
        self.fail_trips = fail_trips
        self.fail_routes = fail_routes
        self.trip_calls = []
        self.route_calls = []
        self._estimator = GreatCircleRoutingProvider()

    def route(self, origin, destination, speed_kmh=40.0):
        self.route_calls.append((origin, destination))
        if self.fail_routes:
            raise RoutingError("routing offline")
        return self._estimator.route(origin, destination, speed_kmh)

    def trip(self, waypoints, *, source_first=True, roundtrip=False):
        self.trip_calls.append(list(waypoints))
        if self.fail_trips:
            raise RoutingError("trip service timed out")
        distance = path_length_m(list(waypoints)) * self.trip_factor
        return TripPlan(distance_m=distance, duration_s=distance / 11.0, legs=[TripLeg(distance, distance / 11.0)])


class RecordingGateway(NotificationGateway):

    def __init__(self):
        self.events = []

    def notify(self, channel, event_type, payload):
        self.events.append((channel, event_type, payload))

    def on_channel(self, channel):
        return [(event_type, payload) for sent_to, event_type, payload in self.events if sent_to == channel]

    def of_type(self, event_type):
        return [(channel, payload) for channel, sent, payload in self.events if sent == event_type]


@pytest.fixture
def routing():
    return MockRouting()


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def services(db, routing, gateway, monkeypatch):
    built = build_dispatch_services(routing=routing, gateway=gateway, config=SystemConfigReader())
    # the HTTP layer and management commands resolve the same instance
    monkeypatch.setattr(dispatch_services, "_services", built)
    return built


@pytest.fixture
def dispatcher(services):
    return services.dispatcher


@pytest.fixture
def make_restaurant(db):
    from logistics.models import Restaurant

    counter = {"n": 0}

    def _make(location=ORIGIN, **kwargs):
        counter["n"] += 1
        kwargs.setdefault("name", f"Restaurant {counter['n']}")
        kwargs.setdefault("address", f"{counter['n']} Rue Didouche Mourad")
        return Restaurant.objects.create(lat=location[0], lng=location[1], **kwargs)

    return _make


@pytest.fixture
def make_client(db):
    from users.models import Client

    def _make(**kwargs):
        kwargs.setdefault("first_name", "Amina")
        kwargs.setdefault("last_name", "Client")
        return Client.objects.create(**kwargs)

    return _make


@pytest.fixture
def make_driver(db):
    from users.models import Driver

    counter = {"n": 0}

    def _make(location=ORIGIN, **kwargs):
        counter["n"] += 1
        kwargs.setdefault("driver_code", f"DRV-{counter['n']:03d}")
        kwargs.setdefault("first_name", f"Driver{counter['n']}")
        kwargs.setdefault("last_name", "Test")
        kwargs.setdefault("status", "available")
        kwargs.setdefault("is_verified", True)
        if location is not None:
            kwargs.setdefault("current_lat", location[0])
            kwargs.setdefault("current_lng", location[1])
        return Driver.objects.create(**kwargs)

    return _make


@pytest.fixture
def make_order(db, make_restaurant):
    from logistics.models import Order

    counter = {"n": 0}

    def _make(restaurant=None, delivery=None, **kwargs):
        counter["n"] += 1
        restaurant = restaurant or make_restaurant()
        kwargs.setdefault("order_number", f"ORD-{counter['n']:06d}")
        kwargs.setdefault("order_type", "delivery")
        kwargs.setdefault("status", "pending")
        kwargs.setdefault("delivery_fee", Decimal("200.00"))
        kwargs.setdefault("subtotal", Decimal("1500.00"))
        kwargs.setdefault("total_amount", Decimal("1700.00"))
        if kwargs["order_type"] == "delivery":
            delivery = delivery or offset((restaurant.lat, restaurant.lng), north_m=1500)
            kwargs.setdefault("delivery_lat", delivery[0])
            kwargs.setdefault("delivery_lng", delivery[1])
        return Order.objects.create(restaurant=restaurant, **kwargs)

    return _make


@pytest.fixture
def bind(db):
    """
    Put an order in a driver's batch directly (status + driver + active_orders),
    for tests that start mid-delivery.
    """
    def _bind(order, driver, status="assigned"):
        order.status = status
        order.driver = driver
        order.save()
        driver.active_orders = list(driver.active_orders or []) + [order.pk]
        driver.status = "busy"
        driver.save()
        return order

    return _bind
