import httpx
import pytest

from ticketing_service.clients import DirectoryClient, PaymentProcessorClient, TicketMailer
from ticketing_service.errors import BadRequest, ErrorKind, PaymentProcessorError, ServerError
from ticketing_service.models import CardDetails, OrderMetadata


class Recorder:
    """MockTransport handler returning canned responses and keeping the requests."""

    def __init__(self, response=None, exc=None):
        self.response = response or httpx.Response(200, json={})
        self.exc = exc
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.exc:
            raise self.exc
        return self.response

    def form(self, index=-1):
        return dict(httpx.QueryParams(self.requests[index].content.decode()))


def _client(recorder, base_url="https://api.test"):
    return httpx.Client(transport=httpx.MockTransport(recorder), base_url=base_url)


def test_tokenize_posts_card_fields(settings):
    recorder = Recorder(httpx.Response(200, json={"id": "tok_1"}))
    processor = PaymentProcessorClient(settings, client=_client(recorder))

    token = processor.tokenize(CardDetails(number="4242424242424242", exp_month="12", exp_year="2030", cvc="123"))

    assert token == "tok_1"
    request = recorder.requests[0]
    assert (request.method, request.url.path) == ("POST", "/v1/tokens")
    assert recorder.form() == {
        "card[number]": "4242424242424242",
        "card[exp_month]": "12",
        "card[exp_year]": "2030",
        "card[cvc]": "123",
    }


def test_structured_error_is_tagged_processor(settings):
    recorder = Recorder(httpx.Response(402, json={"error": {"type": "card_error", "message": "Your card was declined."}}))
    processor = PaymentProcessorClient(settings, client=_client(recorder))

    with pytest.raises(PaymentProcessorError) as exc:
        processor.pay_order("or_1", "tok_1")

    assert exc.value.kind is ErrorKind.PROCESSOR
    assert exc.value.status_code == 402
    assert exc.value.user_message() == "Your card was declined."


def test_unstructured_error_is_tagged_transport(settings):
    recorder = Recorder(httpx.Response(502, text="<html>Bad Gateway</html>"))
    processor = PaymentProcessorClient(settings, client=_client(recorder))

    with pytest.raises(PaymentProcessorError) as exc:
        processor.get_inventory("sku_ticket")

    assert exc.value.kind is ErrorKind.TRANSPORT
    assert exc.value.user_message() == str(exc.value)
    assert "HTTP 502" in str(exc.value)


def test_network_error_is_tagged_transport(settings):
    recorder = Recorder(exc=httpx.ConnectError("connection refused"))
    processor = PaymentProcessorClient(settings, client=_client(recorder))

    with pytest.raises(PaymentProcessorError) as exc:
        processor.cancel_order("or_1")

    assert exc.value.kind is ErrorKind.TRANSPORT
    assert "connection refused" in exc.value.user_message()


@pytest.mark.parametrize("inventory, expected", [
    ({"type": "finite", "quantity": 3}, 3),
    ({"type": "finite", "quantity": 0}, 0),
    ({"type": "infinite", "quantity": None}, None),
])
def test_get_inventory(settings, inventory, expected):
    recorder = Recorder(httpx.Response(200, json={"id": "sku_ticket", "inventory": inventory}))
    processor = PaymentProcessorClient(settings, client=_client(recorder))

    assert processor.get_inventory("sku_ticket") == expected
    assert recorder.requests[0].url.path == "/v1/skus/sku_ticket"


def test_create_order_sends_metadata(settings):
    recorder = Recorder(httpx.Response(200, json={"id": "or_1", "status": "created"}))
    processor = PaymentProcessorClient(settings, client=_client(recorder))
    metadata = OrderMetadata(
        uun="s1234567", purchaser_email="ada@ed.ac.uk", purchaser_name="Ada Lovelace",
        owner_email="ada@ed.ac.uk", owner_name="Ada Lovelace", meal_type="vegan",
        special_requests="", auth_token="token-1",
    )

    order = processor.create_order("sku_ticket", "gbp", metadata, "ada@ed.ac.uk")

    assert order.id == "or_1"
    form = recorder.form()
    assert form["currency"] == "gbp"
    assert form["email"] == "ada@ed.ac.uk"
    assert form["items[0][type]"] == "sku"
    assert form["items[0][parent]"] == "sku_ticket"
    assert form["metadata[auth_token]"] == "token-1"
    assert form["metadata[owner_name]"] == "Ada Lovelace"
    assert form["metadata[meal_type]"] == "vegan"


@pytest.mark.parametrize("charge", ["ch_1", {"id": "ch_1", "object": "charge"}])
def test_pay_order_reads_charge_id(settings, charge):
    recorder = Recorder(httpx.Response(200, json={"id": "or_1", "status": "paid", "charge": charge}))
    processor = PaymentProcessorClient(settings, client=_client(recorder))

    paid = processor.pay_order("or_1", "tok_1")

    assert paid.charge_id == "ch_1"
    assert recorder.requests[0].url.path == "/v1/orders/or_1/pay"
    assert recorder.form() == {"source": "tok_1"}


def test_cancel_and_update_charge(settings):
    recorder = Recorder(httpx.Response(200, json={"id": "x"}))
    processor = PaymentProcessorClient(settings, client=_client(recorder))

    processor.cancel_order("or_1")
    processor.update_charge("ch_1", "Informatics ball 2019 ticket")

    assert recorder.requests[0].url.path == "/v1/orders/or_1"
    assert recorder.form(0) == {"status": "canceled"}
    assert recorder.requests[1].url.path == "/v1/charges/ch_1"
    assert recorder.form(1) == {"description": "Informatics ball 2019 ticket"}


def test_directory_format_only_without_url(settings):
    directory = DirectoryClient(settings)
    assert directory.client is None
    assert directory.check_uun("s1234567") is True
    with pytest.raises(BadRequest):
        directory.check_uun("ada")


@pytest.fixture
def directory_settings(settings):
    return settings.model_copy(update={"directory_url": "https://directory.test"})


def test_directory_lookup(directory_settings):
    recorder = Recorder(httpx.Response(200, json={"uun": "s1234567"}))
    directory = DirectoryClient(directory_settings, client=_client(recorder, "https://directory.test"))

    assert directory.check_uun("S1234567") is True
    assert recorder.requests[0].url.path == "/users/s1234567"


def test_directory_unknown_user(directory_settings):
    recorder = Recorder(httpx.Response(404))
    directory = DirectoryClient(directory_settings, client=_client(recorder, "https://directory.test"))

    with pytest.raises(BadRequest) as exc:
        directory.check_uun("s7654321")
    assert exc.value.message == "Invalid UUN provided."


def test_directory_outage(directory_settings):
    recorder = Recorder(httpx.Response(503))
    directory = DirectoryClient(directory_settings, client=_client(recorder, "https://directory.test"))

    with pytest.raises(ServerError):
        directory.check_uun("s1234567")


def test_qr_url_resolves_relative_asset_path(settings):
    mailer = TicketMailer(settings, client=_client(Recorder()))

    assert mailer.qr_url("or_1", "abc", "../qr") == "https://infball.comp-soc.com/qr/or_1?token=abc"


def test_send_ticket(settings):
    recorder = Recorder(httpx.Response(200, json={"id": "<1@mg.test>", "message": "Queued. Thank you."}))
    mailer = TicketMailer(settings, client=_client(recorder, "https://mailgun.test"))

    assert mailer.send_ticket("Ada Lovelace", "Ada Lovelace<ada@ed.ac.uk>", "or_1", "abc", "infball", "../qr")

    request = recorder.requests[0]
    assert request.url.path == "/v3/mg.test/messages"
    form = recorder.form()
    assert form["to"] == "Ada Lovelace<ada@ed.ac.uk>"
    assert form["o:tag"] == "infball"
    assert form["subject"] == "Your infball ticket"
    assert "https://infball.comp-soc.com/qr/or_1?token=abc" in form["html"]
    assert "Ada Lovelace" in form["html"]


def test_send_ticket_failure_raises_server_error(settings):
    recorder = Recorder(httpx.Response(400, json={"message": "invalid address"}))
    mailer = TicketMailer(settings, client=_client(recorder, "https://mailgun.test"))

    with pytest.raises(ServerError) as exc:
        mailer.send_ticket("Ada Lovelace", "Ada Lovelace<ada@ed.ac.uk>", "or_1", "abc", "infball", "../qr")

    assert "or_1" in exc.value.message
    assert "infball@comp-soc.com" in exc.value.message
