import json
import os
from dataclasses import dataclass

# config reads these at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["PLAID_CLIENT_ID"] = "prod-client-id"
os.environ["PLAID_SECRET"] = "prod-secret"
os.environ["PLAID_SANDBOX_CLIENT_ID"] = "sandbox-client-id"
os.environ["PLAID_SANDBOX_SECRET"] = "sandbox-secret"

import pytest
from fastapi.testclient import TestClient
from plaid.exceptions import ApiException

from auth import create_access_token
from db import Base, Profile, SessionLocal, User, UserRole
from main import app
from plaid_proxy import get_plaid_client_factory


@dataclass
class AppUser:
    id: str
    token: str

    @property
    def headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with SessionLocal() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()


@pytest.fixture
def make_user(db):
    def _make(
        email,
        role="user",
        approval_status="pending",
        is_test_user=False,
        full_name=None,
        created_at=None,
    ) -> AppUser:
        user = User(email=email, password_hash="unused")
        db.add(user)
        db.flush()
        profile = Profile(
            id=user.id,
            full_name=full_name,
            approval_status=approval_status,
            is_test_user=is_test_user,
        )
        if created_at is not None:
            profile.created_at = created_at
        db.add(profile)
        if role:
            db.add(UserRole(user_id=user.id, role=role))
        db.commit()
        return AppUser(id=user.id, token=create_access_token(user.id))

    return _make


# --------------------
# Fake Plaid
# --------------------
def api_error(status, body) -> ApiException:
    exc = ApiException(status=status, reason="Plaid error")
    exc.body = json.dumps(body) if isinstance(body, dict) else body
    return exc


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def to_dict(self):
        return self.payload


class FakePlaidClient:
    """Stands in for plaid_api.PlaidApi. Records every request it gets."""

    def __init__(self):
        self.calls = []
        self.errors = {}
        self.link_token = "link-token-123"
        self.access_token = "access-token-123"
        self.accounts = [
            {
                "account_id": "acc-checking",
                "name": "Plaid Checking",
                "official_name": "Plaid Gold Standard Checking",
                "type": "depository",
                "subtype": "checking",
                "mask": "0000",
                "balances": {"current": 110.0, "available": 100.0, "iso_currency_code": "USD"},
            },
            {
                "account_id": "acc-card",
                "name": "Plaid Credit Card",
                "type": "credit",
                "subtype": "credit card",
                "mask": "3333",
                "balances": {"current": 410.0, "limit": 2000.0, "iso_currency_code": "USD"},
            },
        ]
        self.holdings = None
        # each entry is a payload dict or an exception to raise, consumed in order
        self.transaction_pages = []

    def _call(self, name, request):
        self.calls.append((name, request))
        if name in self.errors:
            raise self.errors[name]

    def link_token_create(self, request):
        self._call("link_token_create", request)
        return FakeResponse({"link_token": self.link_token})

    def item_public_token_exchange(self, request):
        self._call("item_public_token_exchange", request)
        return FakeResponse({"access_token": self.access_token, "item_id": "item-1"})

    def accounts_get(self, request):
        self._call("accounts_get", request)
        return FakeResponse({"accounts": self.accounts})

    def investments_holdings_get(self, request):
        self._call("investments_holdings_get", request)
        if self.holdings is None:
            raise api_error(400, {"error_code": "PRODUCTS_NOT_SUPPORTED"})
        return FakeResponse(self.holdings)

    def transactions_get(self, request):
        self._call("transactions_get", request)
        if not self.transaction_pages:
            return FakeResponse({"transactions": [], "total_transactions": 0})
        page = self.transaction_pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return FakeResponse(page)

    def requests_for(self, name):
        return [req for call, req in self.calls if call == name]


@pytest.fixture
def plaid(client):
    fake = FakePlaidClient()
    fake.environments = []

    def factory(env):
        fake.environments.append(env)
        return fake

    app.dependency_overrides[get_plaid_client_factory] = lambda: factory
    yield fake


def txn(transaction_id, account_id="acc-checking", amount=12.5, day="2026-10-01"):
    return {
        "transaction_id": transaction_id,
        "account_id": account_id,
        "name": f"Purchase {transaction_id}",
        "merchant_name": "Coffee Shop",
        "amount": amount,
        "date": day,
        "personal_finance_category": {"primary": "FOOD_AND_DRINK"},
        "pending": False,
        "iso_currency_code": "USD",
    }
