"""
Shared fixtures for stock and orders tests.

Every fixture is opt-in. Tests ask for the objects they need; the ``db``
fixture is pulled in by the factories themselves.
"""

from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from stock.models import Product, RecipeIngredient, FulfillmentSettings
from stock.services.base_service import Actor
from orders.models import Order, OrderItem


TEST_COMPANY_ID = "default"


@pytest.fixture
def actor():
    return Actor(user_id=1, email="operator@example.com", company_id=TEST_COMPANY_ID)


@pytest.fixture
def fulfillment_settings(db):
    """The settings singleton; tests flip flags on it and save."""
    return FulfillmentSettings.load()


@pytest.fixture
def make_product(db):
    def factory(name="Widget", stock="0", price="10.00", is_manufactured=False, **kwargs):
        return Product.objects.create(
            company_id=TEST_COMPANY_ID,
            name=name,
            stock=Decimal(str(stock)),
            price=Decimal(str(price)),
            is_manufactured=is_manufactured,
            **kwargs,
        )
    return factory


@pytest.fixture
def make_recipe(db):
    def factory(product, lines):
        for ingredient, quantity in lines:
            RecipeIngredient.objects.create(
                product=product, ingredient=ingredient, quantity=Decimal(str(quantity))
            )
        return product
    return factory


@pytest.fixture
def make_order(db):
    """Create a pending order straight through the ORM: make_order((product, qty), ...)."""
    counter = {"n": 0}

    def factory(*lines, client_name="ACME"):
        counter["n"] += 1
        order = Order.objects.create(
            company_id=TEST_COMPANY_ID,
            order_number=f"ORD-TEST-{counter['n']:04d}",
            client_name=client_name,
        )
        for product, quantity in lines:
            OrderItem.objects.create(
                order=order,
                product=product,
                product_name=product.name,
                quantity=Decimal(str(quantity)),
                unit_price=product.price,
            )
        order.recalculate_total()
        order.save()
        return order
    return factory


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(
        username="operator", email="operator@example.com", password="secret"
    )


@pytest.fixture
def api_client(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client
