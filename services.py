"""
External service clients: SMTP mail, Twilio SMS, Razorpay orders and the
Google spreadsheet. Built once at startup and handed to routes through the
`get_services` dependency.
"""

import hashlib
import hmac
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

import httpx
from fastapi import Request
from google.oauth2 import service_account
from googleapiclient.discovery import build

import config

logger = logging.getLogger(__name__)

SHEET_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
SHEET_HEADERS = [
    "Full Name",
    "Email ID",
    "Phone Number",
    "City",
    "Contacting As",
    "Help Type",
    "Message",
    "Preferred Mode",
    "Best Time",
]


class Mailer:
    def __init__(self, host: str, port: int, username: Optional[str], password: Optional[str], sender: Optional[str], timeout: float = 10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password)

    def send(self, to: str, subject: str, html: str) -> bool:
        if not self.configured:
            logger.warning("SMTP not configured, skipping email to %s", to)
            return True
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html"))
        implicit_tls = self.port == 465
        smtp_class = smtplib.SMTP_SSL if implicit_tls else smtplib.SMTP
        try:
            with smtp_class(self.host, self.port, timeout=self.timeout) as server:
                if not implicit_tls:
                    server.starttls()
                server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email send to %s failed: %s", to, e)
            return False
        logger.info("Email sent to %s", to)
        return True


class SmsClient:
    """Twilio Programmable Messaging over its REST API."""

    api_base = "https://api.twilio.com/2010-04-01"

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str], from_number: Optional[str], timeout: float = 10):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, to: str, body: str) -> bool:
        if not self.configured:
            logger.warning("Twilio not configured, skipping SMS to %s", to)
            return True
        url = f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    url,
                    auth=(self.account_sid, self.auth_token),
                    data={"To": to, "From": self.from_number, "Body": body},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("SMS send to %s failed: %s", to, e)
            return False
        logger.info("SMS sent to %s", to)
        return True


class PaymentGatewayError(Exception):
    pass


def payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentGateway:
    """Razorpay Orders API client and checkout signature check."""

    api_base = "https://api.razorpay.com/v1"

    def __init__(self, key_id: Optional[str], key_secret: Optional[str], timeout: float = 10):
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self.key_secret)

    def create_order(self, amount_paise: int, currency: str, receipt: str, notes: Optional[dict] = None) -> dict:
        if not self.configured:
            raise PaymentGatewayError("Razorpay is not configured")
        payload = {"amount": amount_paise, "currency": currency, "receipt": receipt, "notes": notes or {}}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.api_base}/orders", auth=(self.key_id, self.key_secret), json=payload)
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentGatewayError(str(e)) from e

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.key_secret or not signature:
            return False
        expected = payment_signature(order_id, payment_id, self.key_secret)
        return hmac.compare_digest(expected, signature)


class SheetWriter:
    def __init__(self, spreadsheet_id: Optional[str], credentials_file: str):
        self.spreadsheet_id = spreadsheet_id
        self.credentials_file = credentials_file
        self._sheets = None

    @property
    def configured(self) -> bool:
        return bool(self.spreadsheet_id)

    def _values(self):
        if self._sheets is None:
            credentials = service_account.Credentials.from_service_account_file(self.credentials_file, scopes=SHEET_SCOPES)
            self._sheets = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._sheets.spreadsheets().values()

    def create_headers(self) -> None:
        self._values().update(
            spreadsheetId=self.spreadsheet_id,
            range="Sheet1!A1:I1",
            valueInputOption="RAW",
            body={"values": [SHEET_HEADERS]},
        ).execute()
        logger.info("Spreadsheet headers created")

    def append_rows(self, rows: List[list]) -> None:
        result = self._values().append(
            spreadsheetId=self.spreadsheet_id,
            range="Sheet1!A:I",
            valueInputOption="RAW",
            body={"values": rows},
        ).execute()
        logger.info("Spreadsheet rows appended: %s", result.get("updates", {}).get("updatedRange"))


class Services:
    def __init__(self, mailer: Mailer, sms: SmsClient, payments: PaymentGateway, sheets: SheetWriter):
        self.mailer = mailer
        self.sms = sms
        self.payments = payments
        self.sheets = sheets


def build_services() -> Services:
    timeout = config.EXTERNAL_TIMEOUT_SECONDS
    return Services(
        mailer=Mailer(config.SMTP_HOST, config.SMTP_PORT, config.SMTP_USER, config.SMTP_PASS, config.SMTP_FROM, timeout),
        sms=SmsClient(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN, config.TWILIO_PHONE_NUMBER, timeout),
        payments=PaymentGateway(config.RAZORPAY_KEY_ID, config.RAZORPAY_KEY_SECRET, timeout),
        sheets=SheetWriter(config.SPREADSHEET_ID, config.GOOGLE_CREDENTIALS_FILE),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
