"""
mock_mailer.py — Mock Implementation of the Mailgun Messages API

Accepts ticket emails from the ticketing service and keeps them in memory
instead of delivering them, so local runs never email real people.

Simulation Scenarios:
    • Recipient containing "bounce" → HTTP 400
    • Any other recipient → message queued

Endpoints:
    POST /v3/{domain}/messages — Accepts a message.
    GET  /messages             — Lists accepted messages (mock only).

Port:
    Default: 8002 (HTTP)
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


def create_mock_mailer() -> FastAPI:
    app = FastAPI(title="Mock Mailgun")
    app.state.messages = []

    @app.post("/v3/{domain}/messages")
    async def send_message(domain: str, request: Request):
        form = await request.form()
        recipient = form.get("to", "")
        if "bounce" in recipient:
            log.warning(f"[MAIL] Rejecting message to {recipient}")
            return JSONResponse(status_code=400, content={"message": f"'to' parameter is not a valid address: {recipient}"})

        message_id = f"<{uuid.uuid4().hex}@{domain}>"
        app.state.messages.append({"id": message_id, "domain": domain, **dict(form)})
        log.info(f"[MAIL] Queued {message_id} for {recipient}")
        return {"id": message_id, "message": "Queued. Thank you."}

    @app.get("/messages")
    def list_messages():
        return app.state.messages

    return app


app = create_mock_mailer()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8002)
