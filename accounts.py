ASSET_TERMS = (
    "checking",
    "chequing",
    "savings",
    "saving",
    "investment",
    "brokerage",
    "401k",
    "ira",
    "money market",
    "cd",
    "prepaid",
    "hsa",
    "paypal",
    "venmo",
)

LIABILITY_TERMS = (
    "credit",
    "loan",
    "mortgage",
    "line of credit",
    "overdraft",
    "student",
)


def classify_account(account_type: str | None) -> str:
    """Return "asset" or "liability" for a free-form account type.

    Asset terms win when both match; anything unrecognised is an asset.
    """
    kind = (account_type or "").lower()
    if any(term in kind for term in ASSET_TERMS):
        return "asset"
    if any(term in kind for term in LIABILITY_TERMS):
        return "liability"
    return "asset"
