"""
Settings schema (``rental_config.schema``).

Responsibility
--------------
Frozen dataclasses describing every tunable of the rental ledger: account
codes, billing tolerances, listing validation limits, fraud thresholds and
rate-limit windows.  Defaults reproduce the production constants.

Invariants enforced
-------------------
* Money thresholds are ``Decimal`` (never ``float``).
* ``__post_init__`` validates ranges; a bad value fails at load time with
  ``ConfigurationError`` instead of surfacing later inside a service.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from rental_kernel.exceptions import ConfigurationError
from rental_kernel.logging_config import get_logger
from rental_kernel.models.ledger import AccountType

logger = get_logger("config.schema")


@dataclass(frozen=True)
class AccountDef:
    code: str
    name: str
    account_type: AccountType


DEFAULT_CHART_OF_ACCOUNTS: tuple[AccountDef, ...] = (
    AccountDef("1000", "Cash in Bank", AccountType.ASSET),
    AccountDef("1100", "Accounts Receivable", AccountType.ASSET),
    AccountDef("1200", "Undeposited Funds", AccountType.ASSET),
    AccountDef("2000", "Accounts Payable", AccountType.LIABILITY),
    AccountDef("2100", "Security Deposits Held", AccountType.LIABILITY),
    AccountDef("2300", "Prepaid Rent", AccountType.LIABILITY),
    AccountDef("3000", "Owner Equity", AccountType.EQUITY),
    AccountDef("4000", "Rental Income", AccountType.INCOME),
    AccountDef("4100", "Utility Recovery", AccountType.INCOME),
    AccountDef("4200", "Late Fees Income", AccountType.INCOME),
    AccountDef("4300", "Maintenance Income", AccountType.INCOME),
    AccountDef("5100", "Maintenance Expense", AccountType.EXPENSE),
    AccountDef("5300", "Management Fees", AccountType.EXPENSE),
    AccountDef("6100", "Utility Expense", AccountType.EXPENSE),
)


@dataclass(frozen=True)
class LedgerSettings:
    """Account codes used by the posting paths.

    Contract: every referenced code exists in ``chart_of_accounts``.
    """
    utility_expense: str = "6100"
    accounts_payable: str = "2000"
    cash: str = "1000"
    accounts_receivable: str = "1100"
    rental_income: str = "4000"
    utility_recovery_income: str = "4100"
    chart_of_accounts: tuple[AccountDef, ...] = DEFAULT_CHART_OF_ACCOUNTS

    def __post_init__(self):
        codes = {a.code for a in self.chart_of_accounts}
        if len(codes) != len(self.chart_of_accounts):
            raise ConfigurationError("duplicate account code", key="ledger.chart_of_accounts")
        for name in (
            "utility_expense",
            "accounts_payable",
            "cash",
            "accounts_receivable",
            "rental_income",
            "utility_recovery_income",
        ):
            code = getattr(self, name)
            if code not in codes:
                raise ConfigurationError(
                    f"account {code} is not in the chart of accounts", key=f"ledger.{name}"
                )


@dataclass(frozen=True)
class BillingSettings:
    allocation_tolerance: Decimal = Decimal("0.01")
    custom_ratio_tolerance: Decimal = Decimal("0.0001")
    ocr_review_threshold: Decimal = Decimal("0.8")

    def __post_init__(self):
        if self.allocation_tolerance < 0:
            raise ConfigurationError("cannot be negative", key="billing.allocation_tolerance")
        if self.custom_ratio_tolerance < 0:
            raise ConfigurationError("cannot be negative", key="billing.custom_ratio_tolerance")
        if not Decimal("0") <= self.ocr_review_threshold <= Decimal("1"):
            raise ConfigurationError("must be within [0, 1]", key="billing.ocr_review_threshold")


@dataclass(frozen=True)
class ListingSettings:
    title_min_length: int = 3
    title_max_length: int = 100
    description_min_length: int = 10
    description_max_length: int = 1000
    max_price: Decimal = Decimal("50000")
    default_price: Decimal = Decimal("1000")
    expiring_soon_days: int = 7
    decision_lookback_days: int = 7
    bulk_max_units: int = 50
    bulk_allowed_actions: tuple[str, ...] = ("LIST", "UNLIST", "SUSPEND", "ACTIVATE")

    def __post_init__(self):
        if not 0 < self.title_min_length <= self.title_max_length:
            raise ConfigurationError("invalid title length bounds", key="listings.title")
        if not 0 < self.description_min_length <= self.description_max_length:
            raise ConfigurationError(
                "invalid description length bounds", key="listings.description"
            )
        if self.max_price <= 0 or self.default_price <= 0:
            raise ConfigurationError("prices must be positive", key="listings.price")
        if self.bulk_max_units <= 0:
            raise ConfigurationError("must be positive", key="listings.bulk_max_units")


@dataclass(frozen=True)
class FraudSettings:
    """Thresholds for the built-in fraud rules."""
    block_score: int = 80
    review_score: int = 50
    high_amount: Decimal = Decimal("500000")
    elevated_amount: Decimal = Decimal("400000")
    low_amount: Decimal = Decimal("10")
    rapid_window_seconds: int = 300
    rapid_max_transactions: int = 3
    business_hours: tuple[int, int] = (8, 20)
    default_currency: str = "KES"
    region_currencies: dict[str, str] = field(
        default_factory=lambda: {"KEN": "KES", "USA": "USD", "GBR": "GBP", "EUR": "EUR"}
    )

    def __post_init__(self):
        if not 0 < self.review_score <= self.block_score <= 100:
            raise ConfigurationError(
                "require 0 < review_score <= block_score <= 100", key="fraud.scores"
            )
        if self.rapid_max_transactions < 1:
            raise ConfigurationError("must be >= 1", key="fraud.rapid_max_transactions")
        start, end = self.business_hours
        if not 0 <= start < end <= 23:
            raise ConfigurationError("invalid hour range", key="fraud.business_hours")


@dataclass(frozen=True)
class RateLimitPolicy:
    max_requests: int
    window_seconds: float

    def __post_init__(self):
        if self.max_requests < 1:
            raise ConfigurationError("max_requests must be >= 1", key="rate_limits")
        if self.window_seconds <= 0:
            raise ConfigurationError("window_seconds must be positive", key="rate_limits")


def _default_rate_limits() -> dict[str, RateLimitPolicy]:
    return {
        "listing:create": RateLimitPolicy(10, 60),
        "listing:update": RateLimitPolicy(20, 60),
        "listing:delete": RateLimitPolicy(5, 300),
        "listing:view": RateLimitPolicy(100, 60),
        "listing:bulk": RateLimitPolicy(5, 300),
        "listing:status": RateLimitPolicy(30, 60),
        "payment:create": RateLimitPolicy(10, 60),
    }


@dataclass(frozen=True)
class RentalSettings:
    """Aggregate settings handed to services at construction."""
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    billing: BillingSettings = field(default_factory=BillingSettings)
    listings: ListingSettings = field(default_factory=ListingSettings)
    fraud: FraudSettings = field(default_factory=FraudSettings)
    rate_limits: dict[str, RateLimitPolicy] = field(default_factory=_default_rate_limits)
    checksum: str | None = None

    def __post_init__(self):
        logger.debug(
            "rental_settings_initialized",
            extra={
                "rate_limited_operations": sorted(self.rate_limits),
                "bulk_max_units": self.listings.bulk_max_units,
                "checksum": self.checksum,
            },
        )
