"""Configuration for the rental ledger: schema, YAML loader, checksums."""

from rental_config.loader import compute_checksum, default_settings, load_settings, parse_settings
from rental_config.schema import (
    AccountDef,
    BillingSettings,
    FraudSettings,
    LedgerSettings,
    ListingSettings,
    RateLimitPolicy,
    RentalSettings,
)

__all__ = [
    "AccountDef",
    "BillingSettings",
    "FraudSettings",
    "LedgerSettings",
    "ListingSettings",
    "RateLimitPolicy",
    "RentalSettings",
    "compute_checksum",
    "default_settings",
    "load_settings",
    "parse_settings",
]
