"""
workflow.py — Core Orchestration Logic for Ticket Purchases

This module contains the workflow that turns a validated purchase request
into a paid order and an emailed ticket.

Workflow Overview:
1. Validate the request (staff code, card, name, email, UUN, meal, special requests)
2. Tokenize the card and check remaining ticket inventory
3. Create the order and pay it with the card token
4. Label the charge in the background and email the ticket
5. Cancel the order again if the payment fails (compensation)

Every step either passes or raises a PurchaseError describing why the
purchase was rejected; the first failing step ends the request.
"""

import logging
import threading
import uuid
from typing import Callable, Optional

from pydantic import ValidationError

from .clients import DirectoryClient, PaymentProcessorClient, TicketMailer
from .config import Settings
from .errors import BadRequest, PaymentProcessorError, PurchaseError, ServerError, TicketsSoldOut
from .models import CardDetails, OrderMetadata, PurchaseRequest, Stage, parse_display_address

log = logging.getLogger(__name__)

MAX_SPECIAL_REQUESTS = 500
SOLD_OUT_MESSAGE = "Sorry! We have run out of tickets... for now."
PRE_PAYMENT_STAGES = {Stage.RECEIVED, Stage.VALIDATED, Stage.TOKENIZED, Stage.ORDER_CREATED}

Scheduler = Callable[..., None]


def run_in_thread(func, *args):
    """Default scheduler: runs func(*args) on a daemon thread."""
    threading.Thread(target=func, args=args, daemon=True).start()


def annotate_charge(processor: PaymentProcessorClient, charge_id: str, description: str, log_prefix: str = ""):
    """
    Attaches a description to a charge. Runs as a background task after payment.

    The outcome is only logged; a failed update is neither retried nor
    reported to the purchaser.
    """
    try:
        processor.update_charge(charge_id, description)
        log.info(f"{log_prefix} Charge {charge_id} labelled.")
    except PaymentProcessorError as e:
        log.error(f"{log_prefix} Could not label charge {charge_id}: {e}")


class PurchaseRun:
    """Tracks the stage of a single purchase request for logging."""

    def __init__(self):
        self.request_id = uuid.uuid4().hex[:12]
        self.order_id = None
        self.stage = Stage.RECEIVED

    @property
    def log_prefix(self) -> str:
        if self.order_id:
            return f"[Purchase: {self.request_id}][Order: {self.order_id}]"
        return f"[Purchase: {self.request_id}]"

    def advance(self, stage: Stage):
        self.stage = stage
        log.info(f"{self.log_prefix} Stage: {stage.value}")


class PurchaseWorkflow:
    """
    Drives one purchase request from validation to ticket delivery.

    Args:
        settings (Settings): Staff code, SKU, currency, meal options and texts.
        processor (PaymentProcessorClient): Card tokens, inventory, orders, charges.
        directory (DirectoryClient): University username validation.
        mailer (TicketMailer): Ticket email delivery.
        schedule (callable | None): Dispatches background tasks as
            schedule(func, *args). Defaults to a daemon thread per task.
    """

    def __init__(self, settings: Settings, processor: PaymentProcessorClient,
                 directory: DirectoryClient, mailer: TicketMailer,
                 schedule: Optional[Scheduler] = None):
        self.settings = settings
        self.processor = processor
        self.directory = directory
        self.mailer = mailer
        self.schedule = schedule or run_in_thread

    def submit(self, request: PurchaseRequest, schedule: Optional[Scheduler] = None) -> str:
        """
        Executes the purchase workflow for a single request.

        Args:
            request (PurchaseRequest): Parsed request body.
            schedule (callable | None): Overrides the background task scheduler
                for this request, e.g. FastAPI's BackgroundTasks.add_task.

        Returns:
            str: Id of the paid order.

        Raises:
            BadRequest: A validation step failed or the payment was declined.
            TicketsSoldOut: No tickets are left.
            ServerError: Inventory lookup, order creation or ticket delivery failed.
        """
        run = PurchaseRun()
        log.info(f"{run.log_prefix} New purchase request received.")
        try:
            order_id = self._process(run, request, schedule or self.schedule)
        except PurchaseError as e:
            log.warning(f"{run.log_prefix} Failed after stage {run.stage.value} (HTTP {e.status_code}): {e.message}")
            if run.stage in PRE_PAYMENT_STAGES:
                run.advance(Stage.REJECTED)
            raise
        run.advance(Stage.RESPONDED)
        return order_id

    def _process(self, run: PurchaseRun, request: PurchaseRequest, schedule: Scheduler) -> str:
        settings = self.settings

        # --- 1. Staff code and card ---
        if request.staff_code != settings.staff_code:
            raise BadRequest("Invalid staff code provided.")
        if not request.card_info:
            raise BadRequest("Card information is missing.")

        try:
            card_token = self.processor.tokenize(CardDetails.from_card_info(request.card_info))
        except PaymentProcessorError as e:
            log.warning(f"{run.log_prefix} Card tokenization failed: {e}")
            raise BadRequest("Invalid card information.") from e
        run.advance(Stage.TOKENIZED)

        # --- 2. Purchaser details ---
        if request.full_name == "":
            raise BadRequest("Full name missing.")

        to_address = f"{request.full_name}<{request.email}>"
        try:
            parse_display_address(to_address)
        except ValidationError as e:
            raise BadRequest(
                f"Invalid email format provided. Please email {settings.support_email} if this is a mistake."
            ) from e

        self.directory.check_uun(request.uun)

        if request.meal_type not in settings.valid_meals:
            raise BadRequest("Invalid food selection.")
        if len(request.special_reqs) > MAX_SPECIAL_REQUESTS:
            raise BadRequest(
                f"Sorry, your request is limited to {MAX_SPECIAL_REQUESTS} characters. "
                f"Please email {settings.support_email} for assistance."
            )
        run.advance(Stage.VALIDATED)

        # --- 3. Inventory ---
        try:
            quantity = self.processor.get_inventory(settings.sku)
        except PaymentProcessorError as e:
            log.error(f"{run.log_prefix} Inventory lookup for SKU {settings.sku} failed: {e}")
            raise ServerError(e.user_message()) from e

        log.info(f"{run.log_prefix} Remaining inventory for {settings.sku}: {quantity}")
        if quantity == 0:
            raise TicketsSoldOut(SOLD_OUT_MESSAGE)

        # --- 4. Order ---
        auth_token = str(uuid.uuid4())
        metadata = OrderMetadata.for_purchase(request, auth_token)
        try:
            order = self.processor.create_order(settings.sku, settings.currency, metadata, request.email)
        except PaymentProcessorError as e:
            log.error(f"{run.log_prefix} Order creation failed: {e}")
            raise ServerError(e.user_message()) from e

        run.order_id = order.id
        run.advance(Stage.ORDER_CREATED)

        # --- 5. Payment ---
        try:
            paid = self.processor.pay_order(order.id, card_token)
        except PaymentProcessorError as e:
            log.error(f"{run.log_prefix} Payment failed: {e}. Canceling order.")
            self._cancel_order(run, order.id)
            run.advance(Stage.REJECTED_WITH_ROLLBACK)
            raise BadRequest(e.user_message()) from e

        run.advance(Stage.PAID)

        if paid.charge_id:
            schedule(annotate_charge, self.processor, paid.charge_id,
                     settings.charge_description, run.log_prefix)
        else:
            log.warning(f"{run.log_prefix} Paid order carries no charge id, skipping charge label.")

        # --- 6. Ticket ---
        self.mailer.send_ticket(
            request.full_name, to_address, paid.id, auth_token,
            settings.product_tag, settings.qr_asset_path,
        )
        run.advance(Stage.EMAILED)
        return paid.id

    def _cancel_order(self, run: PurchaseRun, order_id: str):
        """Compensation after a failed payment. Errors are logged and dropped."""
        try:
            self.processor.cancel_order(order_id)
            log.info(f"{run.log_prefix} Compensation: order canceled.")
        except PaymentProcessorError as e:
            log.critical(f"{run.log_prefix} Compensation failed, order left open: {e}")
