import pytest

from accounts import classify_account


@pytest.mark.parametrize(
    "account_type",
    ["Checking", "depository savings", "Brokerage", "Roth IRA", "401k", "Money Market", "PayPal", "HSA"],
)
def test_assets(account_type):
    assert classify_account(account_type) == "asset"


@pytest.mark.parametrize(
    "account_type",
    ["credit credit card", "Mortgage", "Student Loan", "loan auto", "Line of Credit", "overdraft"],
)
def test_liabilities(account_type):
    assert classify_account(account_type) == "liability"


def test_unknown_and_empty_default_to_asset():
    assert classify_account("Vehicle") == "asset"
    assert classify_account("") == "asset"
    assert classify_account(None) == "asset"


def test_asset_terms_checked_first():
    # "savings" wins over "loan"
    assert classify_account("savings loan") == "asset"
