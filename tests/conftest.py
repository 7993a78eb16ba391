"""
Shared fixtures for the ticketing service tests.

The workflow is exercised against in-memory fakes of the payment processor
and the ticket mailer. UUN checks use the real DirectoryClient without a
directory URL, which only validates the username format and never touches
the network.
"""

import pytest

from ticketing_service.clients import DirectoryClient
from ticketing_service.config import Settings
from ticketing_service.errors import ServerError
from ticketing_service.models import Order, PaidOrder, PurchaseRequest


class FakeProcessor:
    """Records every call; set `fail[operation] = exc` to make an operation raise."""

    def __init__(self, quantity=5):
        self.quantity = quantity
        self.calls = []
        self.fail = {}

    def _record(self, operation, *args):
        self.calls.append((operation,) + args)
        if operation in self.fail:
            raise self.fail[operation]

    def operations(self):
        return [call[0] for call in self.calls]

    def tokenize(self, card):
        self._record("tokenize", card)
        return "tok_test"

    def get_inventory(self, sku):
        self._record("get_inventory", sku)
        return self.quantity

    def create_order(self, sku, currency, metadata, email):
        self._record("create_order", sku, currency, metadata, email)
        return Order(id="or_test")

    def pay_order(self, order_id, source):
        self._record("pay_order", order_id, source)
        return PaidOrder(id=order_id, status="paid", charge_id="ch_test")

    def cancel_order(self, order_id):
        self._record("cancel_order", order_id)

    def update_charge(self, charge_id, description):
        self._record("update_charge", charge_id, description)


class FakeMailer:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send_ticket(self, name, address, order_id, auth_token, product_tag, asset_path):
        if self.fail:
            raise ServerError(f"Your payment was successful but we could not email your ticket ({order_id}).")
        self.sent.append({
            "name": name,
            "address": address,
            "order_id": order_id,
            "auth_token": auth_token,
            "product_tag": product_tag,
            "asset_path": asset_path,
        })
        return True


@pytest.fixture
def settings():
    return Settings(
        staff_code="ABC123",
        sku="sku_ticket",
        mailgun_domain="mg.test",
        ticket_base_url="https://infball.comp-soc.com/tickets/",
    )


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def failing_mailer():
    return FakeMailer(fail=True)


@pytest.fixture
def directory(settings):
    return DirectoryClient(settings)


@pytest.fixture
def payload():
    return {
        "CardInfo": {"number": "4242424242424242", "expmonth": "12", "expyear": "2030", "cvc": "123"},
        "StaffCode": "ABC123",
        "FullName": "Ada Lovelace",
        "UUN": "s1234567",
        "Email": "ada@ed.ac.uk",
        "MealType": "standard",
        "SpecialReqs": "",
    }


@pytest.fixture
def purchase(payload):
    return PurchaseRequest.model_validate(payload)
