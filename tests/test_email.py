import json
import httpx
import pytest
from instest.core.config import settings
from instest.services import email
from instest.services.email import EmailDeliveryError, build_reset_url, send_password_reset_email


def use_transport(monkeypatch, handler):
    client_class = httpx.AsyncClient

    def factory(**kwargs):
        return client_class(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(email.httpx, "AsyncClient", factory)


def test_reset_url(monkeypatch):
    monkeypatch.setattr(settings, "frontend_url", "https://instest.example/")

    assert build_reset_url("abc") == "https://instest.example/reset-password/abc"


async def test_without_api_key_delivery_is_simulated(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", None)

    result = await send_password_reset_email("noa@diving.com", "abc", "Noa")

    assert result["simulated"] is True
    assert result["reset_url"].endswith("/reset-password/abc")


async def test_sends_through_sendgrid(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", "SG.key")
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(202)

    use_transport(monkeypatch, handler)

    result = await send_password_reset_email("noa@diving.com", "abc", "Noa")

    assert result == {"success": True}
    assert requests[0].headers["authorization"] == "Bearer SG.key"
    body = json.loads(requests[0].content)
    assert body["personalizations"][0]["to"][0]["email"] == "noa@diving.com"
    assert "/reset-password/abc" in body["content"][0]["value"]


async def test_sendgrid_error_is_raised(monkeypatch):
    monkeypatch.setattr(settings, "sendgrid_api_key", "SG.key")
    use_transport(monkeypatch, lambda request: httpx.Response(401, json={"errors": []}))

    with pytest.raises(EmailDeliveryError):
        await send_password_reset_email("noa@diving.com", "abc", "Noa")
