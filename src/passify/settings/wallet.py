"""Wallet pass configuration.

See: https://developer.apple.com/documentation/walletpasses
and https://developers.google.com/wallet/retail/loyalty-cards
"""

from decouple import Csv, config

from .base import BASE_URL

APPLE_WALLET_PASS_TYPE_ID: str = config("APPLE_WALLET_PASS_TYPE_ID", default="")
APPLE_WALLET_TEAM_ID: str = config("APPLE_WALLET_TEAM_ID", default="")
APPLE_WALLET_CERT_PATH: str = config("APPLE_WALLET_CERT_PATH", default="")
APPLE_WALLET_KEY_PATH: str = config("APPLE_WALLET_KEY_PATH", default="")
APPLE_WALLET_KEY_PASSWORD: str = config("APPLE_WALLET_KEY_PASSWORD", default="")
APPLE_WALLET_WWDR_CERT_PATH: str = config("APPLE_WALLET_WWDR_CERT_PATH", default="")
APPLE_WALLET_USE_SANDBOX: bool = config("APPLE_WALLET_USE_SANDBOX", default=False, cast=bool)
APPLE_WALLET_SIGNING_TIMEOUT: int = config("APPLE_WALLET_SIGNING_TIMEOUT", default=20, cast=int)

GOOGLE_WALLET_ISSUER_ID: str = config("GOOGLE_WALLET_ISSUER_ID", default="")
GOOGLE_WALLET_SERVICE_ACCOUNT_FILE: str = config("GOOGLE_WALLET_SERVICE_ACCOUNT_FILE", default="")
GOOGLE_WALLET_SERVICE_ACCOUNT_JSON: str = config("GOOGLE_WALLET_SERVICE_ACCOUNT_JSON", default="")
GOOGLE_WALLET_ORIGINS: list[str] = config("GOOGLE_WALLET_ORIGINS", default=BASE_URL, cast=Csv())

# Number of passes processed per batch during campaign broadcasts
WALLET_PUSH_BATCH_SIZE: int = config("WALLET_PUSH_BATCH_SIZE", default=20, cast=int)
