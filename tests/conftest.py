import mongomock
import pytest
from fastapi.testclient import TestClient

from accounts import new_user_document
from database import create_document, ensure_indexes, get_db, oid
from main import app
from schemas import Admin, Plan
from security import ROLE_ADMIN, ROLE_USER, create_access_token, get_password_hash
from services import PaymentGateway, PaymentGatewayError, Services, get_services, payment_signature

GATEWAY_SECRET = "test_secret"


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, subject, html):
        if self.fail:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html})
        return True


class FakeSms:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to, body):
        if self.fail:
            return False
        self.sent.append({"to": to, "body": body})
        return True


class FakeGateway(PaymentGateway):
    """Real signature check, canned order creation."""

    def __init__(self):
        super().__init__("rzp_test_key", GATEWAY_SECRET)
        self.orders = []
        self.fail = False

    def create_order(self, amount_paise, currency, receipt, notes=None):
        if self.fail:
            raise PaymentGatewayError("gateway down")
        order = {"id": f"order_{len(self.orders) + 1}", "amount": amount_paise, "currency": currency, "notes": notes}
        self.orders.append(order)
        return order

    def sign(self, order_id, payment_id):
        return payment_signature(order_id, payment_id, GATEWAY_SECRET)


class FakeSheets:
    def __init__(self, configured=True):
        self.configured = configured
        self.rows = []
        self.headers_created = 0
        self.fail = False

    def create_headers(self):
        if self.fail:
            raise RuntimeError("sheets unavailable")
        self.headers_created += 1

    def append_rows(self, rows):
        if self.fail:
            raise RuntimeError("sheets unavailable")
        self.rows.extend(rows)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["cfa-test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def services():
    return Services(mailer=FakeMailer(), sms=FakeSms(), payments=FakeGateway(), sheets=FakeSheets())


@pytest.fixture
def client(db, services):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(email="asha@gmail.com", password="secret123", full_name="Asha Rao", is_verified=True, **fields):
        user = new_user_document(db, full_name=full_name, email=email, password=password, is_verified=is_verified)
        user_id = create_document(db, "user", user)
        if fields:
            db["user"].update_one({"_id": oid(user_id)}, {"$set": fields})
        return db["user"].find_one({"_id": oid(user_id)})
    return _make


@pytest.fixture
def make_admin(db):
    def _make(username="admin", password="admin123", is_active=True):
        admin = Admin(username=username, email=f"{username}@cfamail.com", password_hash=get_password_hash(password), is_active=is_active)
        admin_id = create_document(db, "admin", admin)
        return db["admin"].find_one({"_id": oid(admin_id)})
    return _make


@pytest.fixture
def make_plan(db):
    def _make(plan_id="basic", price=999, special_price=None, duration=12, is_active=True):
        plan = Plan(
            plan_id=plan_id,
            plan_name=f"{plan_id.title()} Plan",
            description=f"{plan_id} protection",
            price=price,
            special_price=special_price,
            duration=duration,
            is_active=is_active,
        )
        plan_oid = create_document(db, "plan", plan)
        return db["plan"].find_one({"_id": oid(plan_oid)})
    return _make


def user_headers(user):
    return {"Authorization": f"Bearer {create_access_token(str(user['_id']), ROLE_USER)}"}


def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(str(admin['_id']), ROLE_ADMIN)}"}
