"""Tests for the FastAPI API."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from agromart.api import app, get_coordinator, get_database
from agromart.checkout import OrderCoordinator
from agromart.models import DiscountType, Role
from agromart.tables import Order

from .conftest import count_rows, snapshot, stock_of


@pytest.fixture
def api_client(database):
    """Test client bound to the per-test database."""
    app.dependency_overrides[get_database] = lambda: database
    yield TestClient(app)
    app.dependency_overrides.clear()


def as_user(user):
    return {"X-User-Id": user.id}


def order_body(market, *lines, **extra):
    body = {
        "shippingAddressId": market.address.id,
        "paymentMethod": "CASH_ON_DELIVERY",
        "orderItems": [{"productId": p.id, "quantity": q} for p, q in lines],
    }
    body.update(extra)
    return body


class TestHealthCheck:
    def test_health(self, api_client):
        response = api_client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["database_initialized"] is True
        assert "version" in data


class TestAuthentication:
    def test_missing_header(self, api_client):
        response = api_client.get("/api/orders")
        assert response.status_code == 401
        assert response.json()["error_type"] == "AuthenticationError"

    def test_unknown_user(self, api_client):
        response = api_client.get("/api/cart", headers={"X-User-Id": "nobody"})
        assert response.status_code == 401


class TestCreateOrder:
    def test_created(self, api_client, database, factory, market):
        product = factory.product(market.seller, price="120.00", stock=10)
        factory.cart_item(market.customer, product, 2)

        response = api_client.post(
            "/api/orders", json=order_body(market, (product, 3)), headers=as_user(market.customer)
        )

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Order created successfully"
        order = data["order"]
        assert order["orderNumber"].startswith("ORD-")
        assert order["status"] == "PENDING"
        assert order["paymentStatus"] == "PENDING"
        assert order["subtotal"] == "360.00"
        assert order["deliveryFee"] == "50.00"
        assert order["total"] == "410.00"
        assert order["items"][0]["unitPrice"] == "120.00"
        assert order["items"][0]["product"]["name"] == product.name
        assert order["deliveryAddress"]["id"] == market.address.id
        assert data["coupon"]["reason"] == "none"

        assert stock_of(database, product.id) == 7
        assert count_rows(database, Order) == 1

    def test_with_coupon(self, api_client, factory, market):
        factory.coupon("WELCOME10", DiscountType.PERCENTAGE, "10", max_discount="100")
        product = factory.product(market.seller, price="300.00")

        response = api_client.post(
            "/api/orders",
            json=order_body(market, (product, 1), couponCode="WELCOME10"),
            headers=as_user(market.customer),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["order"]["discount"] == "30.00"
        assert data["order"]["couponCode"] == "WELCOME10"
        assert data["coupon"]["applied"] is True

    def test_insufficient_stock(self, api_client, database, factory, market):
        product = factory.product(market.seller, stock=2)
        before = snapshot(database)

        response = api_client.post(
            "/api/orders", json=order_body(market, (product, 3)), headers=as_user(market.customer)
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error_type"] == "InsufficientStockError"
        assert data["rule"] == "insufficient_stock"
        assert data["product_id"] == product.id
        assert snapshot(database) == before

    def test_below_minimum(self, api_client, factory, market):
        product = factory.product(market.seller, stock=100, min_qty=5)
        response = api_client.post(
            "/api/orders", json=order_body(market, (product, 1)), headers=as_user(market.customer)
        )
        assert response.status_code == 400
        assert response.json()["rule"] == "below_minimum"
        assert "5" in response.json()["detail"]

    def test_missing_fields(self, api_client, market):
        response = api_client.post("/api/orders", json={}, headers=as_user(market.customer))
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidRequestError"

    @pytest.mark.parametrize(
        "items",
        [
            [{"productId": "PRODUCT", "quantity": "lots"}],
            [{"quantity": 1}],
            [{"productId": "PRODUCT"}],
            [{"productId": 42, "quantity": 1}],
            None,
        ],
    )
    def test_malformed_items_are_bad_requests(self, api_client, database, factory, market, items):
        product = factory.product(market.seller)
        if items:
            items = [
                {**line, "productId": product.id} if line.get("productId") == "PRODUCT" else line
                for line in items
            ]
        body = order_body(market)
        body["orderItems"] = items
        before = snapshot(database)

        response = api_client.post("/api/orders", json=body, headers=as_user(market.customer))

        assert response.status_code == 400
        data = response.json()
        assert data["error_type"] == "InvalidRequestError"
        assert data["detail"].startswith("Invalid request: ")
        assert snapshot(database) == before

    def test_validation_detail_names_the_field(self, api_client, market):
        body = order_body(market)
        body["orderItems"] = [{"quantity": 1}]
        response = api_client.post("/api/orders", json=body, headers=as_user(market.customer))
        assert response.status_code == 400
        assert "orderItems.0.productId" in response.json()["detail"]

    def test_malformed_cart_body(self, api_client, market):
        response = api_client.post(
            "/api/cart", json={"productId": "p", "quantity": "many"}, headers=as_user(market.customer)
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidRequestError"

    def test_foreign_address(self, api_client, factory, market):
        stranger = factory.user(Role.CUSTOMER)
        product = factory.product(market.seller)
        body = order_body(market, (product, 1), shippingAddressId=factory.address(stranger).id)
        response = api_client.post("/api/orders", json=body, headers=as_user(market.customer))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid shipping address"

    def test_non_customer_forbidden(self, api_client, factory, market):
        product = factory.product(market.seller)
        response = api_client.post(
            "/api/orders", json=order_body(market, (product, 1)), headers=as_user(market.seller)
        )
        assert response.status_code == 403

    def test_commit_failure_is_500(self, api_client, database, factory, market):
        def failing_cleanup(session, user_id, product_ids):
            raise OperationalError("DELETE", {}, Exception("disk full"))

        app.dependency_overrides[get_coordinator] = lambda: OrderCoordinator(
            database, cart_cleanup=failing_cleanup
        )
        product = factory.product(market.seller, stock=5)
        before = snapshot(database)

        response = api_client.post(
            "/api/orders", json=order_body(market, (product, 1)), headers=as_user(market.customer)
        )

        assert response.status_code == 500
        assert response.json()["error_type"] == "TransactionFailureError"
        assert snapshot(database) == before


class TestQuote:
    def test_quote_does_not_write(self, api_client, database, factory, market):
        product = factory.product(market.seller, price="600.00", stock=5)
        before = snapshot(database)

        response = api_client.post(
            "/api/orders/quote",
            json={"orderItems": [{"productId": product.id, "quantity": 2}]},
            headers=as_user(market.customer),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["subtotal"] == "1200.00"
        assert data["shippingFee"] == "0.00"
        assert data["total"] == "1200.00"
        assert data["items"][0]["totalPrice"] == "1200.00"
        assert snapshot(database) == before


class TestOrderQueries:
    @pytest.fixture
    def order_id(self, api_client, factory, market):
        product = factory.product(market.seller)
        response = api_client.post(
            "/api/orders", json=order_body(market, (product, 1)), headers=as_user(market.customer)
        )
        return response.json()["order"]["id"]

    def test_list(self, api_client, market, order_id):
        response = api_client.get("/api/orders", headers=as_user(market.customer))
        assert response.status_code == 200
        data = response.json()
        assert [o["id"] for o in data["orders"]] == [order_id]
        assert data["pagination"] == {"page": 1, "limit": 10, "total": 1, "totalPages": 1}

    def test_list_bad_status(self, api_client, market, order_id):
        response = api_client.get(
            "/api/orders", params={"status": "LOST"}, headers=as_user(market.customer)
        )
        assert response.status_code == 400

    def test_get(self, api_client, market, order_id):
        response = api_client.get(f"/api/orders/{order_id}", headers=as_user(market.seller))
        assert response.status_code == 200
        assert response.json()["customer"]["id"] == market.customer.id

    def test_get_outside_scope(self, api_client, factory, order_id):
        stranger = factory.user(Role.CUSTOMER)
        response = api_client.get(f"/api/orders/{order_id}", headers=as_user(stranger))
        assert response.status_code == 404

    def test_update_status(self, api_client, market, order_id):
        response = api_client.put(
            f"/api/orders/{order_id}", json={"status": "CONFIRMED"}, headers=as_user(market.admin)
        )
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "CONFIRMED"

    def test_invalid_transition(self, api_client, market, order_id):
        response = api_client.put(
            f"/api/orders/{order_id}", json={"status": "DELIVERED"}, headers=as_user(market.admin)
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidStatusTransitionError"

    def test_assign_rider(self, api_client, market, order_id):
        response = api_client.put(
            f"/api/orders/{order_id}",
            json={"riderId": market.rider.id},
            headers=as_user(market.admin),
        )
        assert response.status_code == 200
        assert response.json()["order"]["rider"]["id"] == market.rider.id

    def test_customer_cannot_update(self, api_client, market, order_id):
        response = api_client.put(
            f"/api/orders/{order_id}", json={"status": "CANCELLED"}, headers=as_user(market.customer)
        )
        assert response.status_code == 403


class TestCart:
    def test_add_then_increment(self, api_client, factory, market):
        product = factory.product(market.seller, stock=10)
        headers = as_user(market.customer)

        first = api_client.post(
            "/api/cart", json={"productId": product.id, "quantity": 2}, headers=headers
        )
        second = api_client.post(
            "/api/cart", json={"productId": product.id, "quantity": 1}, headers=headers
        )

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["cartItem"]["quantity"] == 3

    def test_get_cart(self, api_client, factory, market):
        product = factory.product(market.seller, price="25.00")
        factory.cart_item(market.customer, product, 4)

        response = api_client.get("/api/cart", headers=as_user(market.customer))

        assert response.status_code == 200
        data = response.json()
        assert data["totalItems"] == 4
        assert data["totalPrice"] == "100.00"
        assert data["cartItems"][0]["productId"] == product.id

    def test_add_over_stock(self, api_client, factory, market):
        product = factory.product(market.seller, stock=1)
        response = api_client.post(
            "/api/cart", json={"productId": product.id, "quantity": 2}, headers=as_user(market.customer)
        )
        assert response.status_code == 400
        assert response.json()["rule"] == "insufficient_stock"

    def test_update_and_delete(self, api_client, factory, market):
        product = factory.product(market.seller)
        line = factory.cart_item(market.customer, product, 1)
        headers = as_user(market.customer)

        updated = api_client.put(f"/api/cart/{line.id}", json={"quantity": 3}, headers=headers)
        assert updated.status_code == 200
        assert updated.json()["cartItem"]["quantity"] == 3

        removed = api_client.delete(f"/api/cart/{line.id}", headers=headers)
        assert removed.status_code == 200
        assert api_client.get("/api/cart", headers=headers).json()["cartItems"] == []

    def test_missing_line(self, api_client, market):
        response = api_client.delete("/api/cart/nope", headers=as_user(market.customer))
        assert response.status_code == 404

    def test_someone_elses_line(self, api_client, factory, market):
        other = factory.user(Role.CUSTOMER)
        line = factory.cart_item(other, factory.product(market.seller))
        response = api_client.put(
            f"/api/cart/{line.id}", json={"quantity": 2}, headers=as_user(market.customer)
        )
        assert response.status_code == 403

    def test_clear(self, api_client, factory, market):
        factory.cart_item(market.customer, factory.product(market.seller))
        factory.cart_item(market.customer, factory.product(market.seller))
        response = api_client.delete("/api/cart", headers=as_user(market.customer))
        assert response.status_code == 200
        assert "2" in response.json()["message"]
