"""
Plaid proxy operations.

Each operation takes a resolved ``PlaidEnvironment`` and a client factory,
makes the upstream calls through the Plaid SDK and returns only the fields
the app needs. Upstream failures are turned into ``FunctionError`` so the
route can hand them back unchanged.
"""

import json
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Optional

import structlog
from plaid.api import plaid_api
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.exceptions import ApiException
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.investments_holdings_get_request import InvestmentsHoldingsGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions

from accounts import classify_account
from config import PLAID_CLIENT_NAME, plaid_credentials
from errors import FunctionError
from schemas import DateRange, FetchDataOut, FetchMetadata

logger = structlog.get_logger(__name__)

PLAID_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "production": "https://production.plaid.com",
}

LINK_PRODUCTS = ("transactions", "investments")
LINK_COUNTRY_CODES = ("US", "CA")

EXTENDED_DAYS_BACK = 730
TRANSACTIONS_PAGE_SIZE = 500  # Plaid's maximum for /transactions/get


@dataclass(frozen=True)
class PlaidEnvironment:
    name: str  # "sandbox" | "production"
    host: str
    client_id: str
    secret: str

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.secret)


PlaidClientFactory = Callable[[PlaidEnvironment], Any]


def resolve_environment(test_user: bool) -> PlaidEnvironment:
    """Sandbox credentials and host for test users, production for everyone else."""
    name = "sandbox" if test_user else "production"
    client_id, secret = plaid_credentials(sandbox=test_user)
    return PlaidEnvironment(name=name, host=PLAID_HOSTS[name], client_id=client_id, secret=secret)


def make_plaid_client(env: PlaidEnvironment) -> plaid_api.PlaidApi:
    configuration = Configuration(
        host=env.host,
        api_key={
            "clientId": env.client_id,
            "secret": env.secret,
        },
    )
    api_client = ApiClient(configuration)
    return plaid_api.PlaidApi(api_client)


def get_plaid_client_factory() -> PlaidClientFactory:
    return make_plaid_client


# --------------------
# Helpers
# --------------------
def _client_for(env: PlaidEnvironment, client_factory: PlaidClientFactory):
    if not env.configured:
        logger.error("plaid_credentials_missing", environment=env.name)
        raise FunctionError(500, "Plaid credentials not configured")
    return client_factory(env)


def _to_dict(response) -> dict:
    if hasattr(response, "to_dict"):
        return response.to_dict()
    return dict(response)


def _text(value) -> Optional[str]:
    if value is None:
        return None
    # SDK enums carry their string in .value
    return str(getattr(value, "value", value))


def _raw_body(exc: ApiException) -> str:
    body = exc.body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    return body or ""


def upstream_error(env: PlaidEnvironment, exc: ApiException) -> FunctionError:
    """Map a failed Plaid call onto the error the caller gets back."""
    status = exc.status or 500
    body = _raw_body(exc)
    try:
        data = json.loads(body) if body else None
    except ValueError:
        data = None

    if isinstance(data, dict) and data.get("error_code") == "INVALID_API_KEYS":
        return FunctionError(
            400,
            "INVALID_API_KEYS",
            message=(
                f"Invalid Plaid credentials: please verify the {env.name} client id "
                "and secret are correct and active."
            ),
            details=data,
        )
    return FunctionError(status, f"Plaid {env.label} API error: {status}", details=body)


def _check_payload(payload: dict) -> dict:
    # Plaid can report an error in a 200 body
    if payload.get("error_code"):
        raise FunctionError(400, f"{payload['error_code']}: {payload.get('error_message')}")
    return payload


# --------------------
# Link token
# --------------------
def create_link_token(
    env: PlaidEnvironment,
    user_id: str,
    access_token: Optional[str] = None,
    client_factory: PlaidClientFactory = make_plaid_client,
) -> str:
    client = _client_for(env, client_factory)

    kwargs: dict[str, Any] = {
        "user": LinkTokenCreateRequestUser(client_user_id=user_id),
        "client_name": PLAID_CLIENT_NAME,
        "country_codes": [CountryCode(c) for c in LINK_COUNTRY_CODES],
        "language": "en",
    }
    if access_token:
        # update mode: relink an existing item, products come from the item
        kwargs["access_token"] = access_token
    else:
        kwargs["products"] = [Products(p) for p in LINK_PRODUCTS]

    logger.info("plaid_link_token_create", environment=env.name, update_mode=bool(access_token))
    try:
        payload = _check_payload(_to_dict(client.link_token_create(LinkTokenCreateRequest(**kwargs))))
    except ApiException as exc:
        logger.error("plaid_link_token_failed", environment=env.name, status=exc.status)
        raise upstream_error(env, exc)
    return payload["link_token"]


# --------------------
# Token exchange
# --------------------
def exchange_public_token(
    env: PlaidEnvironment,
    public_token: str,
    client_factory: PlaidClientFactory = make_plaid_client,
) -> str:
    client = _client_for(env, client_factory)

    logger.info("plaid_token_exchange", environment=env.name)
    try:
        request = ItemPublicTokenExchangeRequest(public_token=public_token)
        payload = _check_payload(_to_dict(client.item_public_token_exchange(request)))
    except ApiException as exc:
        logger.error("plaid_token_exchange_failed", environment=env.name, status=exc.status)
        raise upstream_error(env, exc)
    return payload["access_token"]


# --------------------
# Accounts + transactions
# --------------------
def shape_account(account: dict) -> dict:
    balances = account.get("balances") or {}
    account_type = _text(account.get("type"))
    subtype = _text(account.get("subtype"))
    return {
        "account_id": account.get("account_id"),
        "name": account.get("name"),
        "official_name": account.get("official_name"),
        "type": account_type,
        "subtype": subtype,
        "mask": account.get("mask"),
        "balances": {
            "current": balances.get("current"),
            "available": balances.get("available"),
            "limit": balances.get("limit"),
            "iso_currency_code": balances.get("iso_currency_code"),
        },
        "classification": classify_account(" ".join(filter(None, [account_type, subtype]))),
    }


def shape_transaction(txn: dict) -> dict:
    pfc = txn.get("personal_finance_category") or {}
    category = pfc.get("primary")
    if not category and txn.get("category"):
        category = txn["category"][0]
    return {
        "transaction_id": txn.get("transaction_id"),
        "account_id": txn.get("account_id"),
        "name": txn.get("name"),
        "merchant_name": txn.get("merchant_name"),
        "amount": txn.get("amount"),
        "date": txn.get("date"),
        "category": category,
        "pending": txn.get("pending", False),
        "iso_currency_code": txn.get("iso_currency_code"),
    }


def _get_holdings(client, env: PlaidEnvironment, access_token: str) -> tuple[list, list]:
    try:
        request = InvestmentsHoldingsGetRequest(access_token=access_token)
        payload = _to_dict(client.investments_holdings_get(request))
    except ApiException as exc:
        # items without investment accounts land here
        logger.info("plaid_holdings_unavailable", environment=env.name, status=exc.status)
        return [], []
    return payload.get("holdings") or [], payload.get("securities") or []


@dataclass
class RequestTally:
    """Upstream requests made so far, failed ones included."""

    made: int = 0


def _get_transactions(
    client, access_token: str, start: date, end: date, limit: int, tally: RequestTally
) -> tuple[list, int]:
    """Page through /transactions/get. Returns (transactions, total available)."""
    transactions: list = []
    total = None
    while total is None or len(transactions) < min(total, limit):
        request = TransactionsGetRequest(
            access_token=access_token,
            start_date=start,
            end_date=end,
            options=TransactionsGetRequestOptions(
                count=min(TRANSACTIONS_PAGE_SIZE, limit - len(transactions)),
                offset=len(transactions),
            ),
        )
        tally.made += 1
        payload = _check_payload(_to_dict(client.transactions_get(request)))
        page = payload.get("transactions") or []
        total = payload.get("total_transactions") or 0
        transactions.extend(page)
        if not page:
            break
    return transactions[:limit], total


def _failure_text(exc: Exception) -> str:
    if isinstance(exc, ApiException):
        return _raw_body(exc) or f"status {exc.status}"
    return str(exc)


def fetch_data(
    env: PlaidEnvironment,
    access_token: str,
    days_back: int = 90,
    max_transactions: int = 2000,
    client_factory: PlaidClientFactory = make_plaid_client,
    today: Optional[date] = None,
) -> FetchDataOut:
    """Fetch accounts, holdings and transactions for one item.

    A failed transaction query is retried once over ``EXTENDED_DAYS_BACK``
    days. When the retry fails too the accounts are still returned, with no
    transactions and the failure in ``metadata.error``.
    """
    client = _client_for(env, client_factory)

    try:
        accounts_payload = _check_payload(_to_dict(client.accounts_get(AccountsGetRequest(access_token=access_token))))
    except ApiException as exc:
        logger.error("plaid_accounts_failed", environment=env.name, status=exc.status)
        raise upstream_error(env, exc)
    accounts = [shape_account(a) for a in accounts_payload.get("accounts") or []]
    logger.info("plaid_accounts_received", environment=env.name, accounts=len(accounts))

    holdings, securities = _get_holdings(client, env, access_token)

    end_date = today or date.today()
    start_date = end_date - timedelta(days=days_back)
    extended_tried = False
    tally = RequestTally()

    try:
        transactions, total_available = _get_transactions(
            client, access_token, start_date, end_date, max_transactions, tally
        )
    except (ApiException, FunctionError) as exc:
        logger.warning(
            "plaid_transactions_failed",
            environment=env.name,
            days_back=days_back,
            retry_days_back=EXTENDED_DAYS_BACK,
            error=_failure_text(exc),
        )
        extended_tried = True
        extended_start = end_date - timedelta(days=EXTENDED_DAYS_BACK)
        try:
            transactions, total_available = _get_transactions(
                client, access_token, extended_start, end_date, max_transactions, tally
            )
        except (ApiException, FunctionError) as retry_exc:
            note = f"Transaction fetch failed: {_failure_text(retry_exc)}"
            logger.error("plaid_transactions_retry_failed", environment=env.name, error=note)
            return FetchDataOut(
                accounts=accounts,
                transactions=[],
                holdings=holdings,
                securities=securities,
                metadata=FetchMetadata(
                    total_transactions=0,
                    total_available=0,
                    date_range=DateRange(start_date=start_date, end_date=end_date),
                    days_back=days_back,
                    request_count=tally.made,
                    has_investment_data=bool(holdings),
                    extended_range_tried=True,
                    error=note,
                ),
            )
    logger.info(
        "plaid_transactions_received",
        environment=env.name,
        transactions=len(transactions),
        total_available=total_available,
        extended_range=extended_tried,
    )
    return FetchDataOut(
        accounts=accounts,
        transactions=[shape_transaction(t) for t in transactions],
        holdings=holdings,
        securities=securities,
        metadata=FetchMetadata(
            total_transactions=len(transactions),
            total_available=total_available,
            date_range=DateRange(start_date=start_date, end_date=end_date),
            days_back=days_back,
            request_count=tally.made,
            has_investment_data=bool(holdings),
            extended_range_tried=extended_tried,
        ),
    )
