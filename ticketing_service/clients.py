"""
This module provides communication clients for the external systems used by the ticketing service:
- Payment Processor (Stripe-style REST API): card tokens, SKU inventory, orders, charges
- University Directory (REST API): username validation
- Mailgun (REST API): ticket emails
Each class encapsulates its protocol logic, error handling, and connection management.
"""

import html
import logging
import re
from typing import Optional

import httpx

from .config import Settings
from .errors import BadRequest, ErrorKind, PaymentProcessorError, ServerError
from .models import CardDetails, Order, OrderMetadata, PaidOrder

log = logging.getLogger(__name__)


def _timeout(settings: Settings) -> httpx.Timeout:
    return httpx.Timeout(settings.connect_timeout, read=settings.read_timeout)


# --- Payment Processor Client (REST) ---
class PaymentProcessorClient:
    """
    Client for the payment processor (Stripe-style, form-encoded REST API).

    Every failed call raises PaymentProcessorError. Errors the processor
    reports itself carry ErrorKind.PROCESSOR and its message; network
    failures and unreadable responses carry ErrorKind.TRANSPORT.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        """
        Args:
            settings (Settings): Service configuration (base URL, secret key, timeouts).
            client (httpx.Client | None): Preconfigured HTTP client, mainly for tests.
        """
        self.client = client or httpx.Client(
            base_url=settings.processor_url,
            auth=(settings.processor_secret_key, ""),
            timeout=_timeout(settings),
        )

    def close(self):
        self.client.close()

    def _request(self, method: str, path: str, data: dict = None) -> dict:
        try:
            response = self.client.request(method, path, data=data)
        except httpx.HTTPError as e:
            log.error(f"Payment processor not reachable ({method} {path}): {e}")
            raise PaymentProcessorError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            message = None
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = None
            detail = f"payment processor returned HTTP {response.status_code} for {method} {path}"
            if message:
                raise PaymentProcessorError(
                    f"{detail}: {message}",
                    kind=ErrorKind.PROCESSOR,
                    message=message,
                    status_code=response.status_code,
                )
            raise PaymentProcessorError(detail, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise PaymentProcessorError(f"unreadable response for {method} {path}: {e}") from e

    def tokenize(self, card: CardDetails) -> str:
        """
        Exchanges raw card details for a single-use card token.

        Args:
            card (CardDetails): Number, expiry month/year and CVC.
        Returns:
            str: The token id.
        Raises:
            PaymentProcessorError: If the card is rejected or the call fails.
        """
        payload = {
            "card[number]": card.number,
            "card[exp_month]": card.exp_month,
            "card[exp_year]": card.exp_year,
            "card[cvc]": card.cvc,
        }
        return self._request("POST", "/v1/tokens", data=payload)["id"]

    def get_inventory(self, sku: str) -> Optional[int]:
        """
        Returns the remaining quantity of a SKU.

        Returns:
            int | None: Remaining units, or None for SKUs without a finite stock count.
        Raises:
            PaymentProcessorError: If the SKU cannot be fetched.
        """
        data = self._request("GET", f"/v1/skus/{sku}")
        inventory = data.get("inventory") or {}
        if inventory.get("type", "finite") != "finite":
            return None
        return inventory.get("quantity") or 0

    def create_order(self, sku: str, currency: str, metadata: OrderMetadata, email: str) -> Order:
        """
        Creates an order for one unit of a SKU.

        Args:
            sku (str): SKU id of the line item.
            currency (str): ISO currency code.
            metadata (OrderMetadata): Purchaser details and auth token.
            email (str): Contact address stored on the order.
        Returns:
            Order: The created order.
        Raises:
            PaymentProcessorError: If the order cannot be created.
        """
        payload = {
            "currency": currency,
            "email": email,
            "items[0][type]": "sku",
            "items[0][parent]": sku,
        }
        for key, value in metadata.model_dump().items():
            payload[f"metadata[{key}]"] = value

        data = self._request("POST", "/v1/orders", data=payload)
        return Order(id=data["id"], status=data.get("status", "created"))

    def pay_order(self, order_id: str, source: str) -> PaidOrder:
        """
        Pays an order with a card token.

        Raises:
            PaymentProcessorError: If the payment is declined or the call fails.
        """
        data = self._request("POST", f"/v1/orders/{order_id}/pay", data={"source": source})
        charge = data.get("charge")
        if isinstance(charge, dict):
            charge = charge.get("id")
        return PaidOrder(id=data["id"], status=data.get("status", "paid"), charge_id=charge)

    def cancel_order(self, order_id: str):
        """
        Marks an order as canceled.

        Raises:
            PaymentProcessorError: If the update fails.
        """
        self._request("POST", f"/v1/orders/{order_id}", data={"status": "canceled"})

    def update_charge(self, charge_id: str, description: str):
        """
        Sets the description of a charge.

        Raises:
            PaymentProcessorError: If the update fails.
        """
        self._request("POST", f"/v1/charges/{charge_id}", data={"description": description})


# --- Directory Client (REST) ---
UUN_PATTERN = re.compile(r"^s\d{7}$", re.IGNORECASE)


class DirectoryClient:
    """
    Validates university usernames.

    The format is always checked. When a directory URL is configured the
    username must also be known to the directory service.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.client = None
        if settings.directory_url:
            self.client = client or httpx.Client(
                base_url=settings.directory_url, timeout=_timeout(settings)
            )

    def close(self):
        if self.client:
            self.client.close()

    def check_uun(self, uun: str) -> bool:
        """
        Checks a university username.

        Args:
            uun (str): Username such as "s1234567".
        Returns:
            bool: True if the username is valid.
        Raises:
            BadRequest: If the username is malformed or unknown.
            ServerError: If the directory cannot be reached.
        """
        if not UUN_PATTERN.match(uun or ""):
            raise BadRequest("Invalid UUN provided.")
        if self.client is None:
            return True

        try:
            response = self.client.get(f"/users/{uun.lower()}")
        except httpx.HTTPError as e:
            log.error(f"Directory lookup for {uun} failed: {e}")
            raise ServerError("Could not verify your UUN right now. Please try again later.") from e

        if response.status_code == 404:
            raise BadRequest("Invalid UUN provided.")
        if response.is_error:
            log.error(f"Directory lookup for {uun} returned HTTP {response.status_code}")
            raise ServerError("Could not verify your UUN right now. Please try again later.")
        return True


# --- Ticket Mailer (Mailgun REST) ---
TICKET_TEMPLATE = """\
<p>Hi {name},</p>
<p>Thanks for buying a ticket! Your order reference is <b>{order_id}</b>.</p>
<p>Please bring the QR code below with you on the night:</p>
<p><img src="{qr_url}" alt="Ticket QR code"></p>
<p>If anything looks wrong, reply to this email or contact {support_email}.</p>
"""


class TicketMailer:
    """
    Sends ticket emails through the Mailgun messages API.
    """

    def __init__(self, settings: Settings, client: Optional[httpx.Client] = None):
        self.domain = settings.mailgun_domain
        self.sender = settings.mail_sender
        self.ticket_base_url = settings.ticket_base_url
        self.support_email = settings.support_email
        self.client = client or httpx.Client(
            base_url=settings.mailgun_url,
            auth=("api", settings.mailgun_api_key),
            timeout=_timeout(settings),
        )

    def close(self):
        self.client.close()

    def qr_url(self, order_id: str, auth_token: str, asset_path: str) -> str:
        """Location of the QR code for an order, resolved relative to the ticket site."""
        base = httpx.URL(self.ticket_base_url.rstrip("/") + "/")
        url = base.join(f"{asset_path.strip('/')}/{order_id}")
        return str(url.copy_merge_params({"token": auth_token}))

    def send_ticket(self, name: str, address: str, order_id: str, auth_token: str,
                    product_tag: str, asset_path: str) -> bool:
        """
        Emails the ticket for a paid order.

        Args:
            name (str): Attendee name used in the greeting.
            address (str): Display address, e.g. "Ada Lovelace<ada@ed.ac.uk>".
            order_id (str): Processor order id.
            auth_token (str): Token that authorises access to the ticket.
            product_tag (str): Tag identifying the product, also used as Mailgun tag.
            asset_path (str): Path of the QR assets relative to the ticket site.
        Returns:
            bool: True once Mailgun has accepted the message.
        Raises:
            ServerError: If the message could not be sent.
        """
        body = TICKET_TEMPLATE.format(
            name=html.escape(name),
            order_id=html.escape(order_id),
            qr_url=html.escape(self.qr_url(order_id, auth_token, asset_path)),
            support_email=html.escape(self.support_email),
        )
        payload = {
            "from": self.sender,
            "to": address,
            "subject": f"Your {product_tag} ticket",
            "html": body,
            "o:tag": product_tag,
        }

        try:
            response = self.client.post(f"/v3/{self.domain}/messages", data=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error(f"[Order: {order_id}] Ticket email to {address} failed: {e}")
            raise ServerError(
                "Your payment was successful but we could not email your ticket. "
                f"Please email {self.support_email} quoting order {order_id}."
            ) from e

        log.info(f"[Order: {order_id}] Ticket email accepted by Mailgun.")
        return True
