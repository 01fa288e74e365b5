import pytest
from rest_framework.test import APIClient

from logistics.models import Order

from conftest import ORIGIN, offset

pytestmark = pytest.mark.django_db


@pytest.fixture
def api(services):
    return APIClient()


def post(api, path, data=None, actor=None):
    headers = {"HTTP_X_ACTOR": actor} if actor else {}
    return api.post(f"/api/v1/{path}", data or {}, format="json", **headers)


def test_accept_then_accept_again_conflicts(api, make_order):
    order = make_order()

    response = post(api, f"orders/{order.pk}/accept/", {"preparation_time": 25}, actor="restaurant:1")

    assert response.status_code == 200
    assert response.data["status"] == "accepted"
    assert response.data["preparation_time"] == 25
    assert response.data["restaurant"]["id"] == order.restaurant_id
    assert order.status_history.get().changed_by == "restaurant:1"

    again = post(api, f"orders/{order.pk}/accept/")

    assert again.status_code == 409
    assert "error" in again.data


def test_unknown_order_is_404(api):
    response = post(api, "orders/9999/accept/")
    assert response.status_code == 404
    assert response.data == {"error": "Order 9999 not found"}


def test_malformed_payload_is_400(api, make_order):
    response = post(api, f"orders/{make_order().pk}/accept/", {"preparation_time": "soon"})
    assert response.status_code == 400


def test_assign_returns_distance_to_restaurant(api, make_order, make_driver):
    order = make_order(status="preparing")
    driver = make_driver(location=offset(ORIGIN, north_m=1000))

    response = post(api, f"orders/{order.pk}/assign/", {"driver_id": driver.pk})

    assert response.status_code == 200
    assert response.data["status"] == "assigned"
    assert response.data["driver"]["id"] == driver.pk
    assert response.data["driver_to_restaurant_distance_km"] == pytest.approx(1.3, abs=0.01)


def test_assign_rejected_by_batch_check_is_400(api, make_order, make_driver, make_restaurant, bind):
    driver = make_driver()
    bind(make_order(restaurant=make_restaurant(ORIGIN), status="preparing"), driver)
    far = make_order(restaurant=make_restaurant(offset(ORIGIN, north_m=900)), status="preparing")

    response = post(api, f"orders/{far.pk}/assign/", {"driver_id": driver.pk})

    assert response.status_code == 400
    assert "500m" in response.data["error"]


def test_delivery_lifecycle_over_http(api, make_order, make_driver):
    order = make_order(status="preparing")
    driver = make_driver()

    assert post(api, f"orders/{order.pk}/assign/", {"driver_id": driver.pk}).status_code == 200
    assert post(api, f"orders/{order.pk}/deliver/").data["status"] == "delivering"
    arrived = post(api, f"orders/{order.pk}/arrived/")
    assert arrived.data["status"] == "arrived"
    assert arrived.data["route"]["estimated"] is True
    completed = post(api, f"orders/{order.pk}/complete/")

    assert completed.status_code == 200
    assert completed.data["status"] == "delivered"
    assert completed.data["driver"] is None

    detail = api.get(f"/api/v1/orders/{order.pk}/")
    assert [row["new_status"] for row in detail.data["status_history"]] == [
        "assigned", "delivering", "arrived", "delivered",
    ]


def test_prepare_reports_whether_it_changed(api, make_order):
    order = make_order(status="accepted")

    assert post(api, f"orders/{order.pk}/prepare/").data["changed"] is True
    assert post(api, f"orders/{order.pk}/prepare/").data["changed"] is False


def test_decline_and_cancel(api, make_order):
    declined = make_order()
    cancelled = make_order(status="preparing")

    response = post(api, f"orders/{declined.pk}/decline/", {"reason": "Closing early"})
    assert response.data["decline_reason"] == "Closing early"

    response = post(api, f"orders/{cancelled.pk}/cancel/", {"reason": "client request"})
    assert response.data["status"] == "cancelled"


def test_driver_cancel_by_other_driver_is_403(api, make_order, make_driver, bind):
    owner = make_driver()
    order = bind(make_order(status="preparing"), owner)

    response = post(api, f"orders/{order.pk}/driver-cancel/", {"driver_id": make_driver().pk})

    assert response.status_code == 403
    assert Order.objects.get(pk=order.pk).driver_id == owner.pk


def test_driver_cancel_by_owner(api, make_order, make_driver, bind):
    owner = make_driver()
    order = bind(make_order(status="preparing"), owner)

    response = post(api, f"orders/{order.pk}/driver-cancel/", {"driver_id": owner.pk, "reason": "accident"})

    assert response.status_code == 200
    assert response.data["status"] == "preparing"
    assert response.data["driver"]["cancellation_count"] == 1
    assert response.data["driver"]["active_orders_count"] == 0


def test_batch_eligibility_endpoint(api, make_order, make_driver):
    driver = make_driver()
    order = make_order(status="preparing")

    response = post(api, f"drivers/{driver.pk}/batch-eligibility/", {"order_id": order.pk})

    assert response.status_code == 200
    assert response.data == {"canAccept": True}


def test_batch_eligibility_unknown_order(api, make_driver):
    response = post(api, f"drivers/{make_driver().pk}/batch-eligibility/", {"order_id": 777})
    assert response.status_code == 404


def test_nearby_orders_endpoint(api, make_order, make_driver):
    driver = make_driver()
    near = make_order(status="preparing", delivery=offset(ORIGIN, north_m=800))
    make_order(status="accepted", delivery=offset(ORIGIN, north_m=1600))

    response = api.get(f"/api/v1/drivers/{driver.pk}/nearby-orders/", {"status": "preparing", "page_size": 5})

    assert response.status_code == 200
    assert [item["id"] for item in response.data["orders"]] == [near.pk]
    assert response.data["pagination"]["total_items"] == 1
    assert response.data["driver_location"] == {"lat": ORIGIN[0], "lng": ORIGIN[1]}


def test_nearby_orders_unverified_driver_is_400(api, make_driver):
    response = api.get(f"/api/v1/drivers/{make_driver(is_verified=False).pk}/nearby-orders/")
    assert response.status_code == 400
    assert "verified" in response.data["error"]


def test_orders_list_filters_by_status(api, make_order):
    make_order()
    accepted = make_order(status="accepted")

    response = api.get("/api/v1/orders/", {"status": "accepted"})

    assert [item["id"] for item in response.data] == [accepted.pk]
