"""
config.py — Service Configuration

All settings are read once from environment variables at startup and handed
to the workflow and the clients explicitly. The model is frozen, so nothing
can change a setting while requests are being served.
"""

import os
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_MEALS = ("standard", "vegetarian", "vegan", "halal")


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.environ.get(name)
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


class Settings(BaseModel):
    """
    Runtime configuration of the ticketing service.

    Attributes:
        staff_code (str): Secret code every purchase request must carry.
        sku (str): Processor SKU id of the ticket product.
        currency (str): ISO currency code used for orders.
        valid_meals (tuple[str]): Accepted meal selections.
        support_email (str): Address quoted in user-facing error messages.
        charge_description (str): Label attached to every successful charge.
        product_tag (str): Product tag handed to the ticket mailer.
        qr_asset_path (str): Path segment under which QR codes are served.
    """
    model_config = ConfigDict(frozen=True)

    staff_code: str
    sku: str
    currency: str = "gbp"
    valid_meals: Tuple[str, ...] = DEFAULT_MEALS
    support_email: str = "infball@comp-soc.com"
    charge_description: str = "Informatics ball 2019 ticket"
    product_tag: str = "infball"
    qr_asset_path: str = "../qr"

    processor_url: str = "https://api.stripe.com"
    processor_secret_key: str = ""

    mailgun_url: str = "https://api.mailgun.net"
    mailgun_domain: str = ""
    mailgun_api_key: str = ""
    mail_sender: str = "CompSoc Tickets <tickets@comp-soc.com>"
    ticket_base_url: str = "https://infball.comp-soc.com"

    directory_url: Optional[str] = None

    connect_timeout: float = Field(default=5.0, gt=0)
    read_timeout: float = Field(default=8.0, gt=0)

    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Builds the settings from the process environment.

        Raises:
            KeyError: If STAFF_CODE or STRIPE_SKU is not set.
        """
        env = os.environ.get
        return cls(
            staff_code=os.environ["STAFF_CODE"],
            sku=os.environ["STRIPE_SKU"],
            currency=env("CURRENCY", "gbp"),
            valid_meals=_env_list("VALID_MEALS", DEFAULT_MEALS),
            support_email=env("SUPPORT_EMAIL", "infball@comp-soc.com"),
            charge_description=env("CHARGE_DESCRIPTION", "Informatics ball 2019 ticket"),
            product_tag=env("PRODUCT_TAG", "infball"),
            qr_asset_path=env("QR_ASSET_PATH", "../qr"),
            processor_url=env("STRIPE_API_URL", "https://api.stripe.com"),
            processor_secret_key=env("STRIPE_SECRET_KEY", ""),
            mailgun_url=env("MAILGUN_API_URL", "https://api.mailgun.net"),
            mailgun_domain=env("MAILGUN_DOMAIN", ""),
            mailgun_api_key=env("MAILGUN_API_KEY", ""),
            mail_sender=env("MAIL_SENDER", "CompSoc Tickets <tickets@comp-soc.com>"),
            ticket_base_url=env("TICKET_BASE_URL", "https://infball.comp-soc.com"),
            directory_url=env("DIRECTORY_URL") or None,
            connect_timeout=float(env("HTTP_CONNECT_TIMEOUT", "5.0")),
            read_timeout=float(env("HTTP_READ_TIMEOUT", "8.0")),
            log_level=env("LOG_LEVEL", "INFO"),
            log_file=env("LOG_FILE") or None,
        )
