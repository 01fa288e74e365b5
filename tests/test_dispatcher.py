from datetime import datetime, timedelta, timezone

import pytest

from dispatch.exceptions import BusinessRejection, InvalidTransition, NotFound, ValidationFailure
from logistics.models import Order, OrderStatusHistory, ScheduledTask, SystemConfig
from orders.models import OrderStatus
from routing.provider import GreatCircleRoutingProvider
from users.models import Driver

from conftest import ORIGIN, offset

pytestmark = pytest.mark.django_db

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def reload(instance):
    instance.refresh_from_db()
    return instance


def history_of(order):
    return list(OrderStatusHistory.objects.filter(order=order).values_list("old_status", "new_status"))


def task_types(order):
    return set(ScheduledTask.objects.filter(order=order).values_list("task_type", flat=True))


# ---- Creation hook ----

def test_register_writes_first_history_row_and_arms_pending_timeout(dispatcher, make_order):
    order = make_order()

    dispatcher.register_new_order(order.pk, changed_by="client:1", now=NOW)

    assert history_of(order) == [(None, "pending")]
    task = ScheduledTask.objects.get(order=order)
    assert task.task_type == "pending_timeout"
    assert task.due_at == NOW + timedelta(minutes=3)
    assert task.payload == {"timeout_minutes": 3}


def test_register_twice_keeps_one_timer(dispatcher, make_order):
    order = make_order()
    dispatcher.register_new_order(order.pk, now=NOW)
    dispatcher.register_new_order(order.pk, now=NOW + timedelta(seconds=30))

    assert ScheduledTask.objects.filter(order=order).count() == 1
    assert len(history_of(order)) == 1


def test_register_refuses_non_pending(dispatcher, make_order):
    with pytest.raises(InvalidTransition):
        dispatcher.register_new_order(make_order(status="accepted").pk, now=NOW)


# ---- Accept ----

def test_accept_stamps_and_computes_eta(dispatcher, make_order, make_client, gateway):
    client = make_client()
    order = make_order(client=client)
    expected_travel = GreatCircleRoutingProvider().route(
        ORIGIN, offset(ORIGIN, north_m=1500), 40.0,
    ).time_max

    dispatcher.accept(order.pk, changed_by="restaurant:1", preparation_time=20, now=NOW)

    order = reload(order)
    assert order.status == "accepted"
    assert order.accepted_at == NOW
    assert order.preparation_time == 20
    assert order.estimated_delivery_time == NOW + timedelta(minutes=20 + expected_travel)
    assert order.delivery_distance == pytest.approx(1.95, abs=0.01)
    assert history_of(order) == [("pending", "accepted")]

    [(event_type, payload)] = gateway.on_channel(f"client:{client.pk}")
    assert payload["type"] == "order_accepted"
    assert payload["total_delivery_time"] == 20 + expected_travel


def test_accept_without_route_assumes_twenty_minutes(dispatcher, make_order, routing):
    routing.fail_routes = True
    order = make_order()

    dispatcher.accept(order.pk, preparation_time=15, now=NOW)

    assert reload(order).estimated_delivery_time == NOW + timedelta(minutes=35)


def test_accept_uses_configured_preparation_default(dispatcher, make_order):
    order = make_order(order_type="pickup")
    dispatcher.accept(order.pk, now=NOW)
    order = reload(order)
    assert order.preparation_time == 15
    assert order.estimated_delivery_time == NOW + timedelta(minutes=15)


def test_accept_arms_escalations(dispatcher, make_order):
    delivery = make_order()
    pickup = make_order(order_type="pickup")

    dispatcher.accept(delivery.pk, preparation_time=10, now=NOW)
    dispatcher.accept(pickup.pk, preparation_time=10, now=NOW)

    assert task_types(delivery) == {"auto_start_preparing", "preparing_without_driver", "preparation_grace"}
    assert task_types(pickup) == {"auto_start_preparing", "preparation_grace"}

    auto_start = ScheduledTask.objects.get(order=delivery, task_type="auto_start_preparing")
    grace = ScheduledTask.objects.get(order=delivery, task_type="preparation_grace")
    assert auto_start.due_at == NOW + timedelta(seconds=60)
    assert grace.due_at == NOW + timedelta(minutes=10)


def test_accept_broadcasts_only_to_nearby_available_drivers(dispatcher, make_order, make_driver, gateway):
    near = make_driver(location=offset(ORIGIN, north_m=1000))
    far = make_driver(location=offset(ORIGIN, north_m=8000))
    busy = make_driver(location=offset(ORIGIN, north_m=500), status="busy")
    offline = make_driver(location=ORIGIN, status="offline")
    order = make_order()

    dispatcher.accept(order.pk, now=NOW)

    offered = [channel for channel, payload in gateway.of_type("new_delivery")]
    assert offered == [f"driver:{near.pk}"]
    for driver in (far, busy, offline):
        assert gateway.on_channel(f"driver:{driver.pk}") == []


def test_pickup_accept_is_not_broadcast(dispatcher, make_order, make_driver, gateway):
    make_driver()
    dispatcher.accept(make_order(order_type="pickup").pk, now=NOW)
    assert gateway.of_type("new_delivery") == []


def test_accepting_twice_is_an_invalid_transition(dispatcher, make_order):
    order = make_order()
    dispatcher.accept(order.pk, now=NOW)

    with pytest.raises(InvalidTransition) as excinfo:
        dispatcher.accept(order.pk, now=NOW)

    assert excinfo.value.status_code == 409
    assert reload(order).accepted_at == NOW


def test_accept_missing_order(dispatcher):
    with pytest.raises(NotFound):
        dispatcher.accept(12345, now=NOW)


def test_stale_read_loses_the_conditional_update(dispatcher, make_order):
    order = make_order()
    stale = Order.objects.get(pk=order.pk)
    Order.objects.filter(pk=order.pk).update(status="accepted")

    with pytest.raises(InvalidTransition):
        dispatcher._apply(stale, OrderStatus.ACCEPTED, now=NOW)

    assert history_of(order) == []


# ---- Preparing ----

def test_start_preparing_from_accepted(dispatcher, make_order):
    order = make_order(status="accepted")

    assert dispatcher.start_preparing(order.pk, changed_by="restaurant:1", now=NOW) is True

    order = reload(order)
    assert order.status == "preparing"
    assert order.preparing_started_at == NOW
    assert history_of(order) == [("accepted", "preparing")]


@pytest.mark.parametrize("status", ["preparing", "pending", "cancelled"])
def test_start_preparing_is_noop_elsewhere(dispatcher, make_order, status):
    order = make_order(status=status)

    assert dispatcher.start_preparing(order.pk, now=NOW) is False

    assert reload(order).status == status
    assert history_of(order) == []


# ---- Decline / cancel ----

def test_decline_records_reason_and_tells_client(dispatcher, make_order, make_client, gateway):
    client = make_client()
    order = make_order(client=client)

    dispatcher.decline(order.pk, reason="Out of stock", changed_by="restaurant:1", now=NOW)

    order = reload(order)
    assert order.status == "declined"
    assert order.decline_reason == "Out of stock"
    [(event_type, payload)] = gateway.on_channel(f"client:{client.pk}")
    assert payload["type"] == "order_declined"


def test_decline_after_preparing_is_refused(dispatcher, make_order):
    with pytest.raises(InvalidTransition):
        dispatcher.decline(make_order(status="preparing").pk, now=NOW)


def test_cancel_releases_bound_driver(dispatcher, make_order, make_driver, bind, gateway):
    driver = make_driver()
    order = bind(make_order(status="preparing"), driver)

    dispatcher.cancel_order(order.pk, changed_by="admin", reason="client unreachable", now=NOW)

    order, driver = reload(order), reload(driver)
    assert order.status == "cancelled"
    assert order.cancelled_at == NOW
    assert order.driver_id is None
    assert driver.active_orders == []
    assert driver.status == "available"
    [(event_type, payload)] = gateway.on_channel(f"driver:{driver.pk}")
    assert payload["type"] == "order_cancelled"


def test_refund_after_delivery(dispatcher, make_order):
    order = make_order(status="delivered")
    dispatcher.cancel_order(order.pk, refunded=True, now=NOW)
    assert reload(order).status == "refunded"


def test_cancel_delivered_order_is_refused(dispatcher, make_order):
    with pytest.raises(InvalidTransition):
        dispatcher.cancel_order(make_order(status="delivered").pk, now=NOW)


# ---- Pickup ----

def test_pickup_goes_from_preparing_to_delivered_without_driver(dispatcher, make_order, make_client, gateway):
    client = make_client()
    order = make_order(order_type="pickup", status="preparing", client=client)

    result = dispatcher.assign_driver_or_complete(order.pk, changed_by="restaurant:1", now=NOW)

    order = reload(order)
    assert result.route_to_restaurant is None
    assert order.status == "delivered"
    assert order.delivered_at == NOW
    assert order.driver_id is None
    assert history_of(order) == [("preparing", "delivered")]
    assert gateway.on_channel(f"client:{client.pk}")[0][1]["type"] == "order_ready"


def test_pickup_handover_refused_before_preparing(dispatcher, make_order):
    with pytest.raises(InvalidTransition):
        dispatcher.assign_driver_or_complete(make_order(order_type="pickup", status="accepted").pk, now=NOW)


def test_complete_delivery_order_still_preparing_is_refused(dispatcher, make_order):
    with pytest.raises(InvalidTransition):
        dispatcher.complete_delivery(make_order(status="preparing").pk, now=NOW)


# ---- Assignment ----

def test_assign_binds_driver_and_makes_them_busy(dispatcher, make_order, make_driver, make_client, gateway):
    client = make_client()
    driver = make_driver(location=offset(ORIGIN, north_m=2000))
    order = make_order(status="preparing", client=client)

    result = dispatcher.assign_driver_or_complete(order.pk, driver.pk, changed_by="restaurant:1", now=NOW)

    order, driver = reload(order), reload(driver)
    assert order.status == "assigned"
    assert order.assigned_at == NOW
    assert order.driver_id == driver.pk
    assert driver.active_orders == [order.pk]
    assert driver.status == "busy"
    assert result.route_to_restaurant.distance_km == pytest.approx(2.6, abs=0.01)

    assert gateway.on_channel(f"client:{client.pk}")[0][1]["type"] == "driver_assigned"
    driver_events = gateway.on_channel(f"driver:{driver.pk}")
    assert driver_events[0][1]["type"] == "order_assigned"
    assert driver_events[0][1]["active_orders_count"] == 1


def test_assign_second_order_to_busy_driver_batches(dispatcher, make_order, make_driver):
    driver = make_driver()
    first = make_order(status="preparing")
    second = make_order(restaurant=first.restaurant, status="preparing")

    dispatcher.assign_driver_or_complete(first.pk, driver.pk, now=NOW)
    dispatcher.assign_driver_or_complete(second.pk, driver.pk, now=NOW)

    assert reload(driver).active_orders == [first.pk, second.pk]


def test_assign_requires_driver(dispatcher, make_order):
    with pytest.raises(ValidationFailure):
        dispatcher.assign_driver_or_complete(make_order(status="preparing").pk, None, now=NOW)


def test_assign_unknown_driver(dispatcher, make_order):
    with pytest.raises(NotFound):
        dispatcher.assign_driver_or_complete(make_order(status="preparing").pk, 999, now=NOW)


def test_assign_unverified_driver(dispatcher, make_order, make_driver):
    order = make_order(status="preparing")
    with pytest.raises(ValidationFailure):
        dispatcher.assign_driver_or_complete(order.pk, make_driver(is_verified=False).pk, now=NOW)
    assert reload(order).status == "preparing"


def test_assign_already_assigned_order(dispatcher, make_order, make_driver, bind):
    order = bind(make_order(status="preparing"), make_driver())
    other = make_driver()

    with pytest.raises(BusinessRejection, match="already assigned"):
        dispatcher.assign_driver_or_complete(order.pk, other.pk, now=NOW)

    assert reload(other).active_orders == []


def test_assign_before_preparing_is_an_invalid_transition(dispatcher, make_order, make_driver):
    driver = make_driver()
    with pytest.raises(InvalidTransition):
        dispatcher.assign_driver_or_complete(make_order(status="accepted").pk, driver.pk, now=NOW)
    assert reload(driver).status == "available"


def test_failed_eligibility_changes_nothing(dispatcher, make_order, make_driver, make_restaurant, bind):
    driver = make_driver()
    bind(make_order(restaurant=make_restaurant(ORIGIN), status="preparing"), driver)
    far_restaurant = make_restaurant(offset(ORIGIN, north_m=600))
    candidate = make_order(restaurant=far_restaurant, status="preparing")
    before = list(reload(driver).active_orders)

    with pytest.raises(BusinessRejection, match="500m"):
        dispatcher.assign_driver_or_complete(candidate.pk, driver.pk, now=NOW)

    candidate = reload(candidate)
    assert candidate.status == "preparing"
    assert candidate.driver_id is None
    assert reload(driver).active_orders == before
    assert history_of(candidate) == []


def test_assignment_rechecks_capacity_under_lock(dispatcher, make_order, make_driver, bind, monkeypatch):
    SystemConfig.set("max_orders_per_driver", 1)
    driver = make_driver(max_orders_capacity=5)
    candidate = make_order(status="preparing")
    racing = make_order(restaurant=candidate.restaurant, status="preparing")
    checker = dispatcher.eligibility
    unlocked_check = checker.check

    def check_then_lose_race(checked_driver, order):
        verdict = unlocked_check(checked_driver, order)
        monkeypatch.setattr(checker, "check", unlocked_check)
        # another assignment commits before the row lock is taken
        bind(racing, Driver.objects.get(pk=checked_driver.pk))
        return verdict

    monkeypatch.setattr(checker, "check", check_then_lose_race)

    with pytest.raises(BusinessRejection, match="maximum of 1"):
        dispatcher.assign_driver_or_complete(candidate.pk, driver.pk, now=NOW)

    assert reload(driver).active_orders == [racing.pk]
    candidate = reload(candidate)
    assert candidate.status == "preparing"
    assert candidate.driver_id is None
    assert history_of(candidate) == []


# ---- Full delivery flow ----

def test_full_delivery_flow_releases_driver(dispatcher, make_order, make_driver, make_client, gateway):
    client = make_client()
    driver = make_driver()
    order = make_order(client=client)

    dispatcher.accept(order.pk, now=NOW)
    dispatcher.start_preparing(order.pk, now=NOW + timedelta(minutes=1))
    dispatcher.assign_driver_or_complete(order.pk, driver.pk, now=NOW + timedelta(minutes=5))
    dispatcher.start_delivering(order.pk, now=NOW + timedelta(minutes=15))
    arrival = dispatcher.driver_arrived(order.pk, now=NOW + timedelta(minutes=25))
    dispatcher.complete_delivery(order.pk, now=NOW + timedelta(minutes=27))

    order, driver = reload(order), reload(driver)
    assert order.status == "delivered"
    assert order.driver_id is None
    assert order.delivered_at == NOW + timedelta(minutes=27)
    assert arrival.route is not None
    assert driver.active_orders == []
    assert driver.status == "available"
    assert driver.total_deliveries == 1
    assert [new for old, new in history_of(order)] == [
        "accepted", "preparing", "assigned", "delivering", "arrived", "delivered",
    ]

    client_events = [payload["type"] for event_type, payload in gateway.on_channel(f"client:{client.pk}")]
    assert client_events[-1] == "order_delivered"
    driver_events = [payload for event_type, payload in gateway.on_channel(f"driver:{driver.pk}")]
    assert driver_events[-1]["type"] == "delivery_complete"
    assert driver_events[-1]["active_orders_count"] == 0


def test_completing_one_of_two_keeps_driver_busy(dispatcher, make_order, make_driver, bind):
    driver = make_driver()
    first = bind(make_order(status="preparing"), driver, status="delivering")
    second = bind(make_order(restaurant=first.restaurant, status="preparing"), reload(driver), status="delivering")

    dispatcher.complete_delivery(first.pk, now=NOW)

    driver = reload(driver)
    assert driver.active_orders == [second.pk]
    assert driver.status == "busy"
    assert Driver.objects.get(pk=driver.pk).total_deliveries == 1


def test_start_delivering_requires_assigned(dispatcher, make_order):
    with pytest.raises(InvalidTransition, match="Cannot start delivery from preparing"):
        dispatcher.start_delivering(make_order(status="preparing").pk, now=NOW)
