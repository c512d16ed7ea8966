from datetime import datetime, timedelta, timezone

from conftest import admin_headers, user_headers


def _pending_code(db, **query):
    return db["user"].find_one(query)["otp"]["code"]


def test_email_otp_creates_user_and_logs_in(client, db, services):
    resp = client.post("/api/auth/email/send-otp", json={"email": "Asha@Gmail.com", "fullName": "Asha Rao"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "OTP sent successfully"}

    user = db["user"].find_one({"email": "asha@gmail.com"})
    assert user["is_verified"] is False
    assert user["customer_id"].startswith("asha_")
    code = user["otp"]["code"]
    assert len(code) == 6 and code.isdigit()
    assert services.mailer.sent[0]["to"] == "asha@gmail.com"
    assert code in services.mailer.sent[0]["html"]

    resp = client.post("/api/auth/email/verify-otp", json={"email": "asha@gmail.com", "otp": code})
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Login successful"
    assert body["token"]
    assert body["user"]["email"] == "asha@gmail.com"
    assert body["user"]["isVerified"] is True

    user = db["user"].find_one({"email": "asha@gmail.com"})
    assert "otp" not in user
    assert user["last_login"] is not None


def test_resend_replaces_previous_code(client, db):
    client.post("/api/auth/email/send-otp", json={"email": "asha@gmail.com"})
    first = _pending_code(db, email="asha@gmail.com")
    client.post("/api/auth/email/resend-otp", json={"email": "asha@gmail.com"})
    second = _pending_code(db, email="asha@gmail.com")
    assert db["user"].count_documents({}) == 1

    if first != second:
        resp = client.post("/api/auth/email/verify-otp", json={"email": "asha@gmail.com", "otp": first})
        assert resp.status_code == 400
    resp = client.post("/api/auth/email/verify-otp", json={"email": "asha@gmail.com", "otp": second})
    assert resp.status_code == 200


def test_wrong_otp_is_rejected(client, db):
    client.post("/api/auth/email/send-otp", json={"email": "asha@gmail.com"})
    code = _pending_code(db, email="asha@gmail.com")
    wrong = "111111" if code != "111111" else "222222"

    resp = client.post("/api/auth/email/verify-otp", json={"email": "asha@gmail.com", "otp": wrong})
    assert resp.status_code == 400
    assert resp.json() == {"message": "Invalid or expired OTP"}
    assert db["user"].find_one({"email": "asha@gmail.com"})["is_verified"] is False


def test_expired_otp_is_rejected(client, db):
    client.post("/api/auth/email/send-otp", json={"email": "asha@gmail.com"})
    code = _pending_code(db, email="asha@gmail.com")
    db["user"].update_one(
        {"email": "asha@gmail.com"},
        {"$set": {"otp.expires_at": datetime.now(timezone.utc) - timedelta(minutes=1)}},
    )
    resp = client.post("/api/auth/email/verify-otp", json={"email": "asha@gmail.com", "otp": code})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid or expired OTP"


def test_verify_unknown_email_is_not_found(client):
    resp = client.post("/api/auth/email/verify-otp", json={"email": "nobody@gmail.com", "otp": "123456"})
    assert resp.status_code == 404
    assert resp.json() == {"message": "User not found"}


def test_mail_failure_reports_500(client, services):
    services.mailer.fail = True
    resp = client.post("/api/auth/email/send-otp", json={"email": "asha@gmail.com"})
    assert resp.status_code == 500
    assert resp.json() == {"message": "Failed to send OTP email"}


def test_code_survives_a_failed_dispatch(client, db, services):
    services.mailer.fail = True
    assert client.post("/api/auth/email/send-otp", json={"email": "asha@gmail.com"}).status_code == 500
    code = _pending_code(db, email="asha@gmail.com")

    resp = client.post("/api/auth/email/verify-otp", json={"email": "asha@gmail.com", "otp": code})
    assert resp.status_code == 200
    assert resp.json()["token"]


def test_sms_code_survives_a_failed_dispatch(client, db, services):
    services.sms.fail = True
    assert client.post("/api/auth/mobile/send-otp", json={"mobileNumber": "+919876543210"}).status_code == 500
    code = _pending_code(db, mobile_number="+919876543210")

    resp = client.post("/api/auth/mobile/verify-otp", json={"mobileNumber": "+919876543210", "otp": code})
    assert resp.status_code == 200


def test_malformed_payload_is_a_validation_error(client):
    resp = client.post("/api/auth/email/send-otp", json={"email": "not-an-email"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Validation failed"
    assert body["errors"][0]["field"] == "email"


def test_mobile_otp_flow(client, db, services):
    resp = client.post("/api/auth/mobile/send-otp", json={"mobileNumber": "+919876543210"})
    assert resp.status_code == 200
    assert services.sms.sent[0]["to"] == "+919876543210"

    code = _pending_code(db, mobile_number="+919876543210")
    assert code in services.sms.sent[0]["body"]
    user = db["user"].find_one({"mobile_number": "+919876543210"})
    assert "email" not in user

    resp = client.post("/api/auth/mobile/verify-otp", json={"mobileNumber": "+919876543210", "otp": code})
    assert resp.status_code == 200
    assert resp.json()["user"]["mobileNumber"] == "+919876543210"


def test_sms_failure_reports_500(client, services):
    services.sms.fail = True
    resp = client.post("/api/auth/mobile/send-otp", json={"mobileNumber": "+919876543210"})
    assert resp.status_code == 500
    assert resp.json() == {"message": "Failed to send OTP"}


def test_signup_then_password_login(client, db):
    resp = client.post(
        "/api/auth/signup/send-otp",
        json={"fullName": "Ravi Kumar", "email": "ravi@gmail.com", "password": "hunter22"},
    )
    assert resp.status_code == 200

    resp = client.post("/api/auth/login", json={"email": "ravi@gmail.com", "password": "hunter22"})
    assert resp.status_code == 403
    assert resp.json() == {"message": "Please verify your email to continue"}

    code = _pending_code(db, email="ravi@gmail.com")
    resp = client.post("/api/auth/signup/verify-otp", json={"email": "ravi@gmail.com", "otp": code})
    assert resp.status_code == 200
    assert resp.json()["message"] == "Account verified successfully"

    resp = client.post("/api/auth/signup/verify-otp", json={"email": "ravi@gmail.com", "otp": code})
    assert resp.status_code == 400
    assert resp.json() == {"message": "Invalid or expired OTP"}

    resp = client.post("/api/auth/login", json={"email": "RAVI@gmail.com", "password": "hunter22"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["fullName"] == "Ravi Kumar"
    assert body["token"]


def test_signup_rejects_registered_email(client, make_user):
    make_user(email="asha@gmail.com")
    resp = client.post(
        "/api/auth/signup/send-otp",
        json={"fullName": "Asha Rao", "email": "asha@gmail.com", "password": "secret123"},
    )
    assert resp.status_code == 400
    assert resp.json() == {"message": "Email is already registered"}


def test_signup_resend_requires_pending_user(client, make_user):
    resp = client.post("/api/auth/signup/resend-otp", json={"email": "ghost@gmail.com"})
    assert resp.status_code == 404

    make_user(email="pending@gmail.com", is_verified=False)
    resp = client.post("/api/auth/signup/resend-otp", json={"email": "pending@gmail.com"})
    assert resp.status_code == 200


def test_login_with_wrong_password(client, db, make_user):
    user = make_user()
    resp = client.post("/api/auth/login", json={"email": "asha@gmail.com", "password": "wrong-pass"})
    assert resp.status_code == 400
    assert resp.json() == {"message": "Invalid credentials"}
    assert db["user"].find_one({"_id": user["_id"]}) == user


def test_login_unknown_user_matches_wrong_password(client):
    resp = client.post("/api/auth/login", json={"email": "ghost@gmail.com", "password": "whatever"})
    assert resp.status_code == 400
    assert resp.json() == {"message": "Invalid credentials"}


def test_login_deactivated_account(client, make_user):
    make_user(is_active=False)
    resp = client.post("/api/auth/login", json={"email": "asha@gmail.com", "password": "secret123"})
    assert resp.status_code == 403
    assert resp.json() == {"message": "Account is deactivated"}


def test_login_requires_an_identifier(client):
    resp = client.post("/api/auth/login", json={"password": "secret123"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Validation failed"


def test_password_reset_flow(client, db, make_user):
    make_user()
    resp = client.post("/api/auth/forgot-password/send-otp", json={"email": "asha@gmail.com"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "Password reset OTP sent"}

    code = _pending_code(db, email="asha@gmail.com")
    resp = client.post(
        "/api/auth/forgot-password/verify-otp",
        json={"email": "asha@gmail.com", "otp": code, "newPassword": "brandnew1"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"message": "Password has been reset successfully"}

    assert client.post("/api/auth/login", json={"email": "asha@gmail.com", "password": "secret123"}).status_code == 400
    assert client.post("/api/auth/login", json={"email": "asha@gmail.com", "password": "brandnew1"}).status_code == 200


def test_password_reset_unknown_email(client):
    resp = client.post("/api/auth/forgot-password/send-otp", json={"email": "ghost@gmail.com"})
    assert resp.status_code == 404


def test_me_requires_token(client, make_user, make_admin):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json() == {"message": "No token, authorization denied"}

    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Token is not valid"}

    admin = make_admin()
    assert client.get("/api/auth/me", headers=admin_headers(admin)).status_code == 401

    user = make_user()
    resp = client.get("/api/auth/me", headers=user_headers(user))
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == "asha@gmail.com"
    assert "passwordHash" not in body
    assert "otp" not in body
