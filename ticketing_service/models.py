"""
models.py — Data Models for Ticket Purchases

This module defines the data structures exchanged by the purchase endpoint,
the workflow and the payment processor client. Pydantic models give type
safety and automatic validation of incoming data.

Models:
    - PurchaseRequest: The JSON body posted by the ticket desk frontend.
    - CardDetails: Card fields extracted from PurchaseRequest.card_info.
    - OrderMetadata: Metadata bag attached to a processor order.
    - Order / PaidOrder: Processor orders as seen by this service.
    - Stage: Progress of a single purchase through the workflow.
"""

import enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, NameEmail, TypeAdapter


class PurchaseRequest(BaseModel):
    """
    Represents a ticket purchase submitted at the ticket desk.

    Field names on the wire are the capitalised aliases. Absent string fields
    default to an empty string so the workflow can produce its own message
    for each of them.

    Attributes:
        card_info (dict | None): Card field name -> value ("number",
            "expmonth", "expyear", "cvc").
        staff_code (str): Code proving the request comes from staff.
        full_name (str): Name of the attendee.
        uun (str): University username of the attendee.
        email (str): Contact address of the attendee.
        meal_type (str): Selected meal option.
        special_reqs (str): Free-text special requirements.
    """
    model_config = ConfigDict(populate_by_name=True)

    card_info: Optional[Dict[str, str]] = Field(default=None, alias="CardInfo")
    staff_code: str = Field(default="", alias="StaffCode")
    full_name: str = Field(default="", alias="FullName")
    uun: str = Field(default="", alias="UUN")
    email: str = Field(default="", alias="Email")
    meal_type: str = Field(default="", alias="MealType")
    special_reqs: str = Field(default="", alias="SpecialReqs")


class CardDetails(BaseModel):
    number: str = ""
    exp_month: str = ""
    exp_year: str = ""
    cvc: str = ""

    @classmethod
    def from_card_info(cls, card_info: Dict[str, str]) -> "CardDetails":
        return cls(
            number=card_info.get("number", ""),
            exp_month=card_info.get("expmonth", ""),
            exp_year=card_info.get("expyear", ""),
            cvc=card_info.get("cvc", ""),
        )


class OrderMetadata(BaseModel):
    """
    Metadata stored on the processor order.

    The owner fields duplicate the purchaser fields; tickets bought at the
    desk always belong to the person paying for them.
    """
    uun: str
    purchaser_email: str
    purchaser_name: str
    owner_email: str
    owner_name: str
    meal_type: str
    special_requests: str
    auth_token: str

    @classmethod
    def for_purchase(cls, request: PurchaseRequest, auth_token: str) -> "OrderMetadata":
        return cls(
            uun=request.uun,
            purchaser_email=request.email,
            purchaser_name=request.full_name,
            owner_email=request.email,
            owner_name=request.full_name,
            meal_type=request.meal_type,
            special_requests=request.special_reqs,
            auth_token=auth_token,
        )


class Order(BaseModel):
    id: str
    status: str = "created"


class PaidOrder(Order):
    charge_id: Optional[str] = None


class Stage(str, enum.Enum):
    """Progress of one purchase request."""
    RECEIVED = "received"
    VALIDATED = "validated"
    TOKENIZED = "tokenized"
    ORDER_CREATED = "order_created"
    PAID = "paid"
    EMAILED = "emailed"
    RESPONDED = "responded"
    REJECTED = "rejected"
    REJECTED_WITH_ROLLBACK = "rejected_with_rollback"


_display_address = TypeAdapter(NameEmail)


def parse_display_address(address: str) -> NameEmail:
    """
    Parses a '"Name <email>"' style address.

    Raises:
        pydantic.ValidationError: If the address is not a valid mail address.
    """
    return _display_address.validate_python(address)


def success_body(data) -> dict:
    return {"status": "success", "data": data}


def error_body(message: str) -> dict:
    return {"status": "error", "message": message}
