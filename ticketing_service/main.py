"""
main.py — FastAPI Entry Point for the Ticketing Service

This module provides the REST API used by the ticket desk to sell tickets.
It acts as the entry point between the desk frontend and the purchase
workflow that validates the request, takes the payment and emails the ticket.

Responsibilities:
    • Accept purchase requests via HTTP API
    • Render every rejection in one JSON error envelope
    • Hand follow-up work (charge labelling) to FastAPI background tasks
    • Provide system health information
"""

from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .clients import DirectoryClient, PaymentProcessorClient, TicketMailer
from .config import Settings
from .errors import PurchaseError
from .logging_config import get_logger, setup_logging
from .models import PurchaseRequest, error_body, success_body
from .workflow import PurchaseWorkflow

log = get_logger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        message = error.get("msg", "invalid request")
        detail = (error.get("ctx") or {}).get("error")
        if detail:
            message = f"{message}: {detail}"
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        parts.append(f"{'.'.join(loc)}: {message}" if loc else message)
    return "; ".join(parts) or "Invalid request body."


def create_app(settings: Settings = None, processor: PaymentProcessorClient = None,
               directory: DirectoryClient = None, mailer: TicketMailer = None) -> FastAPI:
    """
    Builds the FastAPI application.

    Anything not passed in is created at startup: settings from the
    environment, clients from the settings. Clients created here are closed
    on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config = settings or Settings.from_env()
        setup_logging(config.log_level, config.log_file)
        log.info("Ticketing service starting...")

        owned = []
        proc = processor
        if proc is None:
            proc = PaymentProcessorClient(config)
            owned.append(proc)
        uun_directory = directory
        if uun_directory is None:
            uun_directory = DirectoryClient(config)
            owned.append(uun_directory)
        ticket_mailer = mailer
        if ticket_mailer is None:
            ticket_mailer = TicketMailer(config)
            owned.append(ticket_mailer)

        app.state.workflow = PurchaseWorkflow(config, proc, uun_directory, ticket_mailer)
        log.info(f"Selling SKU {config.sku} in {config.currency.upper()}.")

        yield

        for client in owned:
            client.close()
        log.info("Ticketing service stopped.")

    app = FastAPI(title="Ticket Desk", lifespan=lifespan)

    @app.exception_handler(PurchaseError)
    async def purchase_error_handler(request: Request, exc: PurchaseError):
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=error_body(_validation_message(exc)))

    # API Endpoint: ticket desk → ticketing service
    @app.post("/charge")
    def make_charge(purchase: PurchaseRequest, request: Request, background_tasks: BackgroundTasks):
        """
        Sells one ticket.

        The request is validated, paid and the ticket emailed before the
        response is sent. Labelling the charge runs as a background task
        after the response.

        Returns:
            dict: {"status": "success", "data": <order id>}
        """
        workflow: PurchaseWorkflow = request.app.state.workflow
        order_id = workflow.submit(purchase, schedule=background_tasks.add_task)
        return success_body(order_id)

    # Health Check Endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
