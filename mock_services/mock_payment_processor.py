"""
mock_payment_processor.py — Mock Implementation of the Payment Processor (REST API)

This module provides a simulated, Stripe-style payment processor for local
runs and end-to-end tests of the ticketing service. It keeps tokens, SKUs,
orders and charges in memory and speaks the same form-encoded API as the
real processor.

Simulation Scenarios:
    • Successful tokenization, order creation and payment
    • Expired card (number 4000000000000069) → tokenization fails (HTTP 402)
    • Declined card (number 4000000000000002) → payment fails (HTTP 402)
    • SKU containing "SOLD-OUT" → inventory quantity 0
    • SKU containing "NOT-FOUND" → HTTP 404

Endpoints:
    POST /v1/tokens, GET /v1/skus/{sku}, POST /v1/orders, GET/POST /v1/orders/{id},
    POST /v1/orders/{id}/pay, GET/POST /v1/charges/{id}

Port:
    Default: 8001 (HTTP)
"""

import logging
import os
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

EXPIRED_CARD = "4000000000000069"
DECLINED_CARD = "4000000000000002"
DEFAULT_QUANTITY = int(os.environ.get("MOCK_SKU_QUANTITY", "100"))

log = logging.getLogger(__name__)


def _error(status_code: int, message: str, error_type: str = "invalid_request_error") -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"type": error_type, "message": message}})


def _nested(form, prefix: str) -> dict:
    """Collects 'prefix[key]' form fields into a dict."""
    start = f"{prefix}["
    return {key[len(start):-1]: value for key, value in form.items()
            if key.startswith(start) and key.endswith("]")}


class ProcessorState:
    """In-memory records of the mock processor."""

    def __init__(self, quantity: int = DEFAULT_QUANTITY):
        self.default_quantity = quantity
        self.tokens = {}
        self.skus = {}
        self.orders = {}
        self.charges = {}

    def sku_quantity(self, sku: str) -> int:
        if sku not in self.skus:
            self.skus[sku] = 0 if "SOLD-OUT" in sku else self.default_quantity
        return self.skus[sku]


def create_mock_processor(quantity: int = DEFAULT_QUANTITY) -> FastAPI:
    """
    Builds a mock processor app with empty state.

    Args:
        quantity (int): Starting inventory of every SKU that is not sold out.
    """
    app = FastAPI(title="Mock Payment Processor")
    state = ProcessorState(quantity)
    app.state.processor = state

    @app.post("/v1/tokens")
    async def create_token(request: Request):
        form = await request.form()
        card = _nested(form, "card")
        number = card.get("number", "")
        log.info(f"[MP] Tokenization request for card ending {number[-4:]}")

        if not number.isdigit() or len(number) < 12:
            return _error(402, "Your card number is incorrect.", "card_error")
        if number == EXPIRED_CARD:
            return _error(402, "Your card has expired.", "card_error")
        if not card.get("exp_month") or not card.get("exp_year") or not card.get("cvc"):
            return _error(402, "Your card's details are incomplete.", "card_error")

        token_id = f"tok_{uuid.uuid4().hex[:24]}"
        state.tokens[token_id] = {"number": number, "used": False}
        return {"id": token_id, "object": "token", "card": {"last4": number[-4:]}}

    @app.get("/v1/skus/{sku}")
    def get_sku(sku: str):
        if "NOT-FOUND" in sku:
            return _error(404, f"No such sku: {sku}")
        return {
            "id": sku,
            "object": "sku",
            "inventory": {"type": "finite", "quantity": state.sku_quantity(sku)},
        }

    @app.post("/v1/orders")
    async def create_order(request: Request):
        form = await request.form()
        items = _nested(form, "items[0]")
        sku = items.get("parent", "")
        if "NOT-FOUND" in sku:
            return _error(400, f"No such sku: {sku}")

        order_id = f"or_{uuid.uuid4().hex[:24]}"
        state.orders[order_id] = {
            "id": order_id,
            "object": "order",
            "status": "created",
            "currency": form.get("currency"),
            "email": form.get("email"),
            "items": [{"type": items.get("type"), "parent": sku}],
            "metadata": _nested(form, "metadata"),
            "charge": None,
        }
        log.info(f"[MP] Order {order_id} created for {form.get('email')}")
        return state.orders[order_id]

    @app.get("/v1/orders/{order_id}")
    def get_order(order_id: str):
        if order_id not in state.orders:
            return _error(404, f"No such order: {order_id}")
        return state.orders[order_id]

    @app.post("/v1/orders/{order_id}")
    async def update_order(order_id: str, request: Request):
        if order_id not in state.orders:
            return _error(404, f"No such order: {order_id}")
        form = await request.form()
        if "status" in form:
            state.orders[order_id]["status"] = form["status"]
            log.info(f"[MP] Order {order_id} is now {form['status']}")
        return state.orders[order_id]

    @app.post("/v1/orders/{order_id}/pay")
    async def pay_order(order_id: str, request: Request):
        order = state.orders.get(order_id)
        if order is None:
            return _error(404, f"No such order: {order_id}")
        if order["status"] != "created":
            return _error(400, f"Order {order_id} cannot be paid in status {order['status']}.")

        form = await request.form()
        token = state.tokens.get(form.get("source", ""))
        if token is None or token["used"]:
            return _error(400, f"No such token: {form.get('source')}")
        token["used"] = True

        if token["number"] == DECLINED_CARD:
            log.warning(f"[MP] Payment for {order_id} declined.")
            return _error(402, "Your card was declined.", "card_error")

        sku = order["items"][0]["parent"]
        if state.sku_quantity(sku) <= 0:
            return _error(400, f"Sku {sku} is out of stock.")
        state.skus[sku] -= 1

        charge_id = f"ch_{uuid.uuid4().hex[:24]}"
        state.charges[charge_id] = {"id": charge_id, "object": "charge", "order": order_id, "description": None}
        order["status"] = "paid"
        order["charge"] = charge_id
        log.info(f"[MP] Order {order_id} paid (charge {charge_id}).")
        return order

    @app.get("/v1/charges/{charge_id}")
    def get_charge(charge_id: str):
        if charge_id not in state.charges:
            return _error(404, f"No such charge: {charge_id}")
        return state.charges[charge_id]

    @app.post("/v1/charges/{charge_id}")
    async def update_charge(charge_id: str, request: Request):
        if charge_id not in state.charges:
            return _error(404, f"No such charge: {charge_id}")
        form = await request.form()
        if "description" in form:
            state.charges[charge_id]["description"] = form["description"]
        return state.charges[charge_id]

    return app


app = create_mock_processor()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8001)
