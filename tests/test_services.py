import hashlib
import hmac
import smtplib

import pytest

from services import Mailer, PaymentGateway, PaymentGatewayError, SheetWriter, SmsClient, payment_signature


def test_payment_signature_is_hmac_of_order_and_payment():
    expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert payment_signature("order_1", "pay_1", "secret") == expected


def test_verify_signature():
    gateway = PaymentGateway("key", "secret")
    good = payment_signature("order_1", "pay_1", "secret")
    assert gateway.verify_signature("order_1", "pay_1", good)
    assert not gateway.verify_signature("order_1", "pay_2", good)
    assert not gateway.verify_signature("order_1", "pay_1", "")
    assert not PaymentGateway(None, None).verify_signature("order_1", "pay_1", good)


def test_unconfigured_gateway_refuses_orders():
    with pytest.raises(PaymentGatewayError):
        PaymentGateway(None, None).create_order(100, "INR", "receipt_1")


def test_unconfigured_channels_skip_sending():
    assert Mailer("smtp.gmail.com", 587, None, None, None).send("a@gmail.com", "hi", "<p>hi</p>") is True
    assert SmsClient(None, None, None).send("+919876543210", "hi") is True
    assert SheetWriter(None, "google_auth.json").configured is False


class RecordingSMTP:
    instances = []
    starttls_error = None

    def __init__(self, host, port, timeout=None):
        self.logged_in = False
        self.sent = []
        self.closed = False
        RecordingSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def starttls(self):
        if self.starttls_error:
            raise self.starttls_error

    def login(self, username, password):
        self.logged_in = True

    def send_message(self, msg):
        self.sent.append(msg)


@pytest.fixture
def smtp(monkeypatch):
    RecordingSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP", RecordingSMTP)
    return RecordingSMTP


def test_mailer_sends_over_starttls(smtp):
    mailer = Mailer("smtp.gmail.com", 587, "bot@cfamail.com", "pw", None)
    assert mailer.send("asha@gmail.com", "Your login code", "<p>123456</p>") is True
    conn = smtp.instances[0]
    assert conn.logged_in and conn.closed
    assert conn.sent[0]["To"] == "asha@gmail.com"
    assert conn.sent[0]["From"] == "bot@cfamail.com"


def test_mailer_closes_connection_when_starttls_fails(smtp, monkeypatch):
    monkeypatch.setattr(RecordingSMTP, "starttls_error", smtplib.SMTPNotSupportedError("STARTTLS extension not supported by server."))
    mailer = Mailer("smtp.gmail.com", 587, "bot@cfamail.com", "pw", None)
    assert mailer.send("asha@gmail.com", "Your login code", "<p>123456</p>") is False
    conn = smtp.instances[0]
    assert conn.closed
    assert not conn.logged_in
