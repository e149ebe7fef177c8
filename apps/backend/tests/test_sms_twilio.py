from types import SimpleNamespace

import pytest
import requests

from linguista import sms_twilio


@pytest.fixture()
def twilio_env(monkeypatch):
    monkeypatch.setattr(sms_twilio, "TWILIO_ACCOUNT_SID", "AC_test")
    monkeypatch.setattr(sms_twilio, "TWILIO_AUTH_TOKEN", "token")
    monkeypatch.setattr(sms_twilio, "TWILIO_FROM", "+15550000000")
    monkeypatch.setattr(sms_twilio.time, "sleep", lambda _s: None)


def _response(status, payload=None, headers=None):
    return SimpleNamespace(
        status_code=status,
        headers=headers or {},
        json=lambda: payload or {},
        text=str(payload),
    )


def test_not_configured(monkeypatch):
    monkeypatch.setattr(sms_twilio, "TWILIO_ACCOUNT_SID", None)
    ok, msg = sms_twilio.send_sms("+15555550123", "hi")
    assert not ok
    assert "TWILIO_ACCOUNT_SID" in msg


def test_sends_message(twilio_env, monkeypatch):
    calls = []

    def _post(url, **kwargs):
        calls.append((url, kwargs))
        return _response(201, {"sid": "SM123"})

    monkeypatch.setattr(sms_twilio.requests, "post", _post)

    ok, msg = sms_twilio.send_sms("+15555550123", "Your code is 123456")

    assert ok
    assert msg == "accepted sid=SM123"
    url, kwargs = calls[0]
    assert url == "https://api.twilio.com/2010-04-01/Accounts/AC_test/Messages.json"
    assert kwargs["data"] == {"To": "+15555550123", "From": "+15550000000", "Body": "Your code is 123456"}
    assert kwargs["auth"] == ("AC_test", "token")


def test_retries_on_server_error(twilio_env, monkeypatch):
    responses = [_response(503), _response(201, {"sid": "SM9"})]
    monkeypatch.setattr(sms_twilio.requests, "post", lambda url, **kw: responses.pop(0))

    ok, _ = sms_twilio.send_sms("+15555550123", "hi")

    assert ok
    assert responses == []


def test_client_error_not_retried(twilio_env, monkeypatch):
    calls = []

    def _post(url, **kwargs):
        calls.append(url)
        return _response(400, {"code": 21211, "message": "Invalid 'To' Phone Number"})

    monkeypatch.setattr(sms_twilio.requests, "post", _post)

    ok, msg = sms_twilio.send_sms("bogus", "hi")

    assert not ok
    assert msg.startswith("400:")
    assert len(calls) == 1


def test_network_error(twilio_env, monkeypatch):
    def _post(url, **kwargs):
        raise requests.ConnectionError("boom")

    monkeypatch.setattr(sms_twilio.requests, "post", _post)

    ok, msg = sms_twilio.send_sms("+15555550123", "hi", max_retries=1)

    assert not ok
    assert msg.startswith("network error")


def test_mask_phone():
    assert sms_twilio.mask_phone("+1 555 555 0123") == "***0123"
    assert sms_twilio.mask_phone("12") == "****"
