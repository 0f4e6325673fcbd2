"""Utility script to fetch a Bankly access token from configured credentials."""

from bankly.auth import default_manager
from bankly.common.logging import configure_logging
from bankly.common.secrets import get_secret

if __name__ == "__main__":
    configure_logging()
    if not get_secret("BANKLY_CLIENT_ID") or not get_secret("BANKLY_CLIENT_SECRET"):
        raise SystemExit("Set BANKLY_CLIENT_ID and BANKLY_CLIENT_SECRET in secrets or env")
    print(default_manager().get_valid_token())
