"""API route tests"""
import json
from unittest.mock import Mock, patch

import pytest
from fastapi import status
from openai import APIConnectionError
from sqlalchemy.exc import OperationalError

from paygate.core.config import PaystackConfig, get_paystack_config
from paygate.core.exceptions import PaystackAPIError
from paygate.main import app
from paygate.models.payment import Payment
from paygate.models.subscription import Subscription
from paygate.models.user import User

WEBHOOK_URL = "/api/paystack/webhook"


def make_webhook_body(event: str, data: dict) -> bytes:
    return json.dumps({"event": event, "data": data}).encode("utf-8")


def _db_down(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("could not connect to server"))


def post_webhook(client, body: bytes, signature=None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Paystack-Signature"] = signature
    return client.post(WEBHOOK_URL, content=body, headers=headers)


@pytest.mark.critical
class TestPaystackWebhook:
    """POST /api/paystack/webhook"""

    def test_charge_success_activates_subscription(self, client, sign, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        response = post_webhook(client, body, sign(body))
        assert response.status_code == status.HTTP_200_OK

        response = client.get("/api/subscription/status/a@x.com")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "active"
        assert data["plan"] == "premium"
        assert data["since"]

    def test_missing_signature_is_rejected_without_writes(self, client, db_session, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        response = post_webhook(client, body)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert db_session.query(User).count() == 0
        assert db_session.query(Payment).count() == 0
        assert db_session.query(Subscription).count() == 0

    def test_bad_signature_is_rejected(self, client, db_session, sign, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        response = post_webhook(client, body, sign(body, "wrong_secret"))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert db_session.query(Payment).count() == 0

    def test_rejected_before_parsing(self, client, sign):
        """A bad signature on a non-JSON body is 401, not 500"""
        response = post_webhook(client, b"not json", "deadbeef")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_missing_secret_rejects_everything(self, client, sign, charge_success_data):
        app.dependency_overrides[get_paystack_config] = lambda: PaystackConfig(premium_plan_code="PLN_premium")
        body = make_webhook_body("charge.success", charge_success_data)
        response = post_webhook(client, body, sign(body, ""))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_malformed_body_is_server_error(self, client, db_session, sign):
        body = b'{"event": "charge.success", '
        response = post_webhook(client, body, sign(body))

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert db_session.query(Payment).count() == 0

    def test_non_ascii_signature_is_rejected(self, client, db_session, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        response = post_webhook(client, body, b"\xe9" * 128)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert db_session.query(Payment).count() == 0

    def test_deeply_nested_body_is_server_error(self, client, db_session, sign):
        body = b"[" * 100000 + b"]" * 100000
        response = post_webhook(client, body, sign(body))

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert db_session.query(Payment).count() == 0

    def test_unrecognized_event_is_acknowledged(self, client, db_session, sign):
        body = b'{"event":"some.future.event", "data":{}}'
        response = post_webhook(client, body, sign(body))

        assert response.status_code == status.HTTP_200_OK
        assert db_session.query(User).count() == 0
        assert db_session.query(Payment).count() == 0

    def test_duplicate_delivery_is_idempotent(self, client, db_session, sign, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        for _ in range(3):
            assert post_webhook(client, body, sign(body)).status_code == status.HTTP_200_OK

        assert db_session.query(Payment).count() == 1
        assert db_session.query(Subscription).count() == 1

    def test_database_outage_still_acknowledges(self, client, db_session, sign, charge_success_data, caplog):
        body = make_webhook_body("charge.success", charge_success_data)
        with patch("paygate.services.reconciliation.get_or_create_user", side_effect=_db_down), \
                patch("paygate.services.reconciliation.upsert_payment", side_effect=_db_down), \
                patch("paygate.services.reconciliation.upsert_subscription", side_effect=_db_down):
            response = post_webhook(client, body, sign(body))

        assert response.status_code == status.HTTP_200_OK
        assert "database unavailable" in caplog.text
        assert db_session.query(Payment).count() == 0

    def test_unexpected_error_still_acknowledges(self, client, sign, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        with patch("paygate.api.paystack.process_paystack_webhook", side_effect=RuntimeError("boom")):
            response = post_webhook(client, body, sign(body))
        assert response.status_code == status.HTTP_200_OK

    def test_disable_then_status_is_free(self, client, sign, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        post_webhook(client, body, sign(body))

        disable = make_webhook_body("subscription.disable", {
            "customer": {"email": "a@x.com"},
            "plan": {"plan_code": "PLN_premium"},
        })
        assert post_webhook(client, disable, sign(disable)).status_code == status.HTTP_200_OK

        assert client.get("/api/subscription/status/a@x.com").json() == {"status": "free"}

    def test_charge_failed_marks_payment(self, client, db_session, sign, charge_success_data):
        body = make_webhook_body("charge.success", charge_success_data)
        post_webhook(client, body, sign(body))

        failed = make_webhook_body("charge.failed", {"reference": "ref1"})
        assert post_webhook(client, failed, sign(failed)).status_code == status.HTTP_200_OK
        db_session.expire_all()
        assert db_session.query(Payment).one().status == "failed"


@pytest.mark.critical
class TestSubscriptionStatusRoute:
    """GET /api/subscription/status/{email}"""

    def test_unknown_email_is_free(self, client):
        response = client.get("/api/subscription/status/nobody@x.com")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "free"}

    def test_database_outage_is_free(self, client):
        with patch("paygate.services.subscription_status.find_user_by_email", side_effect=_db_down):
            response = client.get("/api/subscription/status/a@x.com")
        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"status": "free"}

    def test_blank_email(self, client):
        response = client.get("/api/subscription/status/%20")
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.high
class TestInitialize:
    """POST /api/paystack/initialize and /initialize-once"""

    @patch("paygate.services.payment_service.paystack_client.initialize_transaction")
    def test_initialize_plan(self, mock_init, client, db_session):
        mock_init.return_value = {
            "authorization_url": "https://checkout.paystack.com/abc",
            "access_code": "abc",
            "reference": "ref_init",
        }
        response = client.post("/api/paystack/initialize", json={"email": "a@x.com", "plan": "premium"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"authorization_url": "https://checkout.paystack.com/abc", "reference": "ref_init"}

        payload = mock_init.call_args[0][0]
        assert payload["plan"] == "PLN_premium"
        assert payload["currency"] == "GHS"
        assert payload["callback_url"].endswith("/payment/callback")
        assert payload["metadata"]["plan"] == "premium"

        user = db_session.query(User).one()
        payment = db_session.query(Payment).one()
        assert payload["metadata"]["user_id"] == user.id
        assert payment.status == "initialized"
        assert payment.reference == "ref_init"
        assert payment.user_id == user.id

    def test_missing_fields(self, client):
        response = client.post("/api/paystack/initialize", json={"email": "a@x.com"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "email and plan required"}

    def test_unknown_plan(self, client):
        response = client.post("/api/paystack/initialize", json={"email": "a@x.com", "plan": "gold"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "PAYSTACK_PLAN_GOLD" in response.json()["error"]

    def test_missing_secret(self, client):
        app.dependency_overrides[get_paystack_config] = lambda: PaystackConfig(premium_plan_code="PLN_premium")
        response = client.post("/api/paystack/initialize", json={"email": "a@x.com", "plan": "premium"})
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR

    @patch("paygate.services.payment_service.paystack_client.initialize_transaction")
    def test_paystack_declines(self, mock_init, client, db_session):
        mock_init.side_effect = PaystackAPIError("Invalid plan", raw={"status": False, "message": "Invalid plan"})
        response = client.post("/api/paystack/initialize", json={"email": "a@x.com", "plan": "pro"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "Paystack init failed"
        assert response.json()["message"] == "Invalid plan"
        assert db_session.query(Payment).count() == 0

    @patch("paygate.services.payment_service.paystack_client.initialize_transaction")
    def test_paystack_unreachable(self, mock_init, client):
        mock_init.side_effect = PaystackAPIError("timed out", transport=True)
        response = client.post("/api/paystack/initialize", json={"email": "a@x.com", "plan": "pro"})

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error"] == "Payment initialization failed"

    @patch("paygate.services.payment_service.paystack_client.initialize_transaction")
    def test_initialize_once(self, mock_init, client, db_session):
        mock_init.return_value = {"authorization_url": "https://checkout.paystack.com/x", "reference": "once"}
        response = client.post("/api/paystack/initialize-once", json={"email": "a@x.com", "amountGHS": 49.5})

        assert response.status_code == status.HTTP_200_OK
        assert mock_init.call_args[0][0]["amount"] == 4950
        assert db_session.query(Payment).count() == 0

    @patch("paygate.services.payment_service.paystack_client.initialize_transaction")
    def test_initialize_once_default_amount(self, mock_init, client):
        mock_init.return_value = {"authorization_url": "u", "reference": "r"}
        client.post("/api/paystack/initialize-once", json={"email": "a@x.com"})
        assert mock_init.call_args[0][0]["amount"] == 4900

    def test_initialize_once_invalid_amount(self, client):
        response = client.post("/api/paystack/initialize-once", json={"email": "a@x.com", "amountGHS": "lots"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.high
class TestDiagnostics:

    def test_diag_never_exposes_secret(self, client):
        response = client.get("/api/paystack/diag")
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["has_SECRET_KEY"] is True
        assert data["premiumPlanSet"] is True
        assert data["proPlanSet"] is True
        assert data["premiumPlanCode_preview"] == "PLN_prem…"
        assert "sk_test_secret" not in response.text

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/healthz").json() == {"ok": True}

    def test_metrics(self, client, sign):
        body = b'{"event":"some.future.event","data":{}}'
        post_webhook(client, body, sign(body))
        response = client.get("/metrics")
        assert response.status_code == status.HTTP_200_OK
        assert "paygate_webhook_deliveries_total" in response.text


@pytest.mark.high
class TestChat:
    """POST /api/chat"""

    def test_requires_message_or_image(self, client):
        response = client.post("/api/chat", json={"email": "a@x.com"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    @patch("paygate.services.chat_service.get_openai_client")
    def test_answers_and_creates_user(self, mock_get_client, client, db_session):
        completion = Mock()
        completion.choices = [Mock(message=Mock(content="  x = 2  "))]
        mock_get_client.return_value.chat.completions.create.return_value = completion

        response = client.post("/api/chat", json={"email": "a@x.com", "message": " 2x = 4 ", "image": "https://img/x.png"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"content": "x = 2"}
        kwargs = mock_get_client.return_value.chat.completions.create.call_args.kwargs
        user_content = kwargs["messages"][1]["content"]
        assert user_content[0] == {"type": "text", "text": "2x = 4"}
        assert user_content[1]["type"] == "image_url"
        assert kwargs["temperature"] == 0.2
        assert db_session.query(User).filter(User.email == "a@x.com").count() == 1

    @patch("paygate.services.chat_service.get_openai_client")
    def test_empty_answer(self, mock_get_client, client):
        completion = Mock()
        completion.choices = []
        mock_get_client.return_value.chat.completions.create.return_value = completion
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.json() == {"content": "No response from the AI."}

    @patch("paygate.services.chat_service.get_openai_client")
    def test_provider_failure(self, mock_get_client, client):
        mock_get_client.return_value.chat.completions.create.side_effect = APIConnectionError(request=Mock())
        response = client.post("/api/chat", json={"message": "hi"})
        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Failed to get an answer from OpenAI"}


@pytest.mark.high
class TestPages:

    def test_payment_callback_page(self, client):
        response = client.get("/payment/callback")
        assert response.status_code == status.HTTP_200_OK
        assert "Payment received" in response.text

    def test_static_files_and_spa_fallback(self, client, tmp_path):
        (tmp_path / "index.html").write_text("<h1>home</h1>")
        (tmp_path / "chat.html").write_text("<h1>chat</h1>")
        with patch("paygate.api.pages.settings", Mock(STATIC_DIR=tmp_path)):
            assert "chat" in client.get("/chat.html").text
            assert "home" in client.get("/pricing").text
            assert client.get("/api/unknown").status_code == status.HTTP_404_NOT_FOUND

    def test_no_frontend_is_404(self, client, tmp_path):
        with patch("paygate.api.pages.settings", Mock(STATIC_DIR=tmp_path)):
            assert client.get("/anything").status_code == status.HTTP_404_NOT_FOUND

    def test_path_traversal_is_blocked(self, client, tmp_path):
        public = tmp_path / "public"
        public.mkdir()
        (tmp_path / "secret.txt").write_text("secret")
        with patch("paygate.api.pages.settings", Mock(STATIC_DIR=public)):
            response = client.get("/..%2Fsecret.txt")
        assert "secret" not in response.text
