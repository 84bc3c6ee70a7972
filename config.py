import os

# --------------------
# Config
# --------------------
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
JWT_SECRET = os.getenv("JWT_SECRET", "").strip()

JWT_ALG = "HS256"
ACCESS_TOKEN_MINUTES = int(os.getenv("ACCESS_TOKEN_MINUTES", str(60 * 24 * 7)))  # 7 days

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

PLAID_CLIENT_NAME = os.getenv("PLAID_CLIENT_NAME", "MoneyStack")

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set")
if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET is not set")


def plaid_credentials(sandbox: bool) -> tuple[str, str]:
    """Read the Plaid client id/secret pair for one environment.

    Read on every call so a secret rotated in the environment is picked up
    without a restart. Missing values come back as empty strings.
    """
    if sandbox:
        client_id = os.getenv("PLAID_SANDBOX_CLIENT_ID", "")
        secret = os.getenv("PLAID_SANDBOX_SECRET", "")
    else:
        client_id = os.getenv("PLAID_CLIENT_ID", "")
        secret = os.getenv("PLAID_SECRET", "")
    return client_id.strip(), secret.strip()
