"""
Module: rental_engines.fraud
Responsibility:
    Rule-based fraud scoring for payment requests.  Each rule returns
    ``passed``/``score``; the detector weights failed rules by severity and
    turns the aggregate into an ALLOW / REVIEW / BLOCK recommendation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The payment time and the
    payer's recent transaction times are inputs; nothing is looked up.

Invariants enforced:
    - overall_score = min(100, sum(score x multiplier) over failed rules).
    - No failed rule -> ALLOW regardless of score.
    - A rule that raises is logged and skipped; it never fails the check.

Rules:
    AMOUNT_THRESHOLD (MEDIUM), RAPID_SUCCESSIVE_TRANSACTIONS (HIGH),
    UNUSUAL_TIME (LOW), EMAIL_DOMAIN_VALIDATION (LOW), CURRENCY_MISMATCH (LOW).
    IP_GEO_LOCATION and DEVICE_FINGERPRINT (MEDIUM), AVS_CHECK (HIGH) and
    BLACKLIST_CHECK (CRITICAL) are registered disabled.  They have no data
    source, so even when enabled they pass with score 0.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from rental_config.schema import FraudSettings
from rental_kernel.logging_config import get_logger

logger = get_logger("engines.fraud")


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


SEVERITY_MULTIPLIERS: dict[Severity, Decimal] = {
    Severity.LOW: Decimal("0.5"),
    Severity.MEDIUM: Decimal("1.0"),
    Severity.HIGH: Decimal("2.0"),
    Severity.CRITICAL: Decimal("5.0"),
}


class Recommendation(str, Enum):
    ALLOW = "ALLOW"
    REVIEW = "REVIEW"
    BLOCK = "BLOCK"


DISPOSABLE_EMAIL_DOMAINS = frozenset({
    "tempmail.com", "guerrillamail.com", "mailinator.com", "10minutemail.com",
    "yopmail.com", "trashmail.com", "dispostable.com", "fakeinbox.com",
    "throwawaymail.com", "temp-mail.org",
})

FREE_EMAIL_DOMAINS = frozenset({
    "gmail.com", "yahoo.com", "hotmail.com", "outlook.com", "aol.com",
    "protonmail.com", "zoho.com", "mail.com", "yandex.com",
})

SUSPICIOUS_EMAIL_PATTERNS = (
    re.compile(r"^\d+@"),
    re.compile(r"test"),
    re.compile(r"fake"),
    re.compile(r"temp"),
)


@dataclass(frozen=True)
class TransactionContext:
    """
    Everything the rules look at for one payment.

    ``recent_transaction_times`` are the payer's earlier payment times;
    the caller decides how far back to fetch.
    """

    transaction_id: str
    amount: Decimal
    currency: str
    timestamp: datetime
    payer_email: str = ""
    payer_region: str | None = None
    organization_region: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    recent_transaction_times: tuple[datetime, ...] = ()


@dataclass(frozen=True)
class RuleResult:
    rule_name: str
    passed: bool
    severity: Severity
    score: int
    message: str
    details: dict[str, Any] = field(default_factory=dict)


RuleCheck = Callable[[TransactionContext, FraudSettings], RuleResult]


@dataclass(frozen=True)
class FraudRule:
    name: str
    description: str
    severity: Severity
    check: RuleCheck
    enabled: bool = True


@dataclass(frozen=True)
class FraudReport:
    transaction_id: str
    overall_score: Decimal
    passed: bool
    rules_checked: int
    rules_failed: int
    results: tuple[RuleResult, ...]
    timestamp: datetime
    recommendation: Recommendation

    @property
    def failed_rule_names(self) -> tuple[str, ...]:
        return tuple(r.rule_name for r in self.results if not r.passed)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def check_amount_threshold(ctx: TransactionContext, settings: FraudSettings) -> RuleResult:
    amount = ctx.amount
    passed, score = True, 0
    message = f"Amount {amount} {ctx.currency} is within typical limits"
    if amount > settings.high_amount:
        passed, score = False, 70
        message = f"Amount {amount} {ctx.currency} exceeds typical maximum ({settings.high_amount})"
    elif amount > settings.elevated_amount:
        passed, score = False, 40
        message = f"Amount {amount} {ctx.currency} is approaching typical maximum"
    # micro-transactions are a common card-testing pattern
    if amount < settings.low_amount:
        passed, score = False, max(score, 30)
        message = f"Small transaction amount {amount} {ctx.currency} detected"
    return RuleResult(
        "AMOUNT_THRESHOLD", passed, Severity.MEDIUM, score, message,
        {"amount": str(amount), "currency": ctx.currency},
    )


def check_rapid_transactions(ctx: TransactionContext, settings: FraudSettings) -> RuleResult:
    recent = [
        t for t in ctx.recent_transaction_times
        if 0 <= (ctx.timestamp - t).total_seconds() < settings.rapid_window_seconds
    ]
    count = len(recent)
    passed = count < settings.rapid_max_transactions
    score = min(100, count * 25)
    message = (
        f"{count} recent transactions (acceptable)"
        if passed
        else f"{count} transactions in the last {settings.rapid_window_seconds}s (suspicious)"
    )
    return RuleResult(
        "RAPID_SUCCESSIVE_TRANSACTIONS", passed, Severity.HIGH, score, message,
        {"recent_transaction_count": count},
    )


def check_unusual_time(ctx: TransactionContext, settings: FraudSettings) -> RuleResult:
    hour = ctx.timestamp.hour
    start, end = settings.business_hours
    passed, score = True, 0
    message = f"Transaction time {hour}:00 is within normal hours"
    if hour < start or hour > end:
        passed, score = False, 30
        message = f"Transaction time {hour}:00 is outside business hours ({start}-{end})"
    is_weekend = ctx.timestamp.weekday() >= 5
    if is_weekend:
        passed, score = False, max(score, 20)
        message = f"{message} and occurs on a weekend"
    return RuleResult(
        "UNUSUAL_TIME", passed, Severity.LOW, score, message,
        {"hour": hour, "is_weekend": is_weekend},
    )


def check_email_domain(ctx: TransactionContext, settings: FraudSettings) -> RuleResult:
    email = ctx.payer_email.lower()
    domain = email.split("@", 1)[1] if "@" in email else ""
    passed, score = True, 0
    message = f"Email domain {domain} appears legitimate"
    if domain in DISPOSABLE_EMAIL_DOMAINS:
        passed, score = False, 80
        message = f"Email domain {domain} is a disposable email service"
    elif domain in FREE_EMAIL_DOMAINS:
        passed, score = False, 20
        message = f"Email domain {domain} is a free email service"
    for pattern in SUSPICIOUS_EMAIL_PATTERNS:
        if pattern.search(email):
            passed, score = False, max(score, 40)
            message = f"Email contains suspicious pattern: {pattern.pattern}"
            break
    return RuleResult(
        "EMAIL_DOMAIN_VALIDATION", passed, Severity.LOW, score, message,
        {"domain": domain, "is_disposable": domain in DISPOSABLE_EMAIL_DOMAINS},
    )


def check_currency_mismatch(ctx: TransactionContext, settings: FraudSettings) -> RuleResult:
    regions = settings.region_currencies
    expected = (
        regions.get(ctx.organization_region or "")
        or regions.get(ctx.payer_region or "")
        or settings.default_currency
    )
    passed = ctx.currency == expected
    message = (
        f"Currency {ctx.currency} matches region"
        if passed
        else f"Currency {ctx.currency} does not match expected {expected}"
    )
    return RuleResult(
        "CURRENCY_MISMATCH", passed, Severity.LOW, 0 if passed else 40, message,
        {"currency": ctx.currency, "expected_currency": expected},
    )


def _not_integrated(name: str, severity: Severity) -> RuleCheck:
    def check(ctx: TransactionContext, settings: FraudSettings) -> RuleResult:
        return RuleResult(name, True, severity, 0, f"{name} check not enabled")
    return check


def default_rules() -> list[FraudRule]:
    return [
        FraudRule("AMOUNT_THRESHOLD", "Amount exceeds typical limits",
                  Severity.MEDIUM, check_amount_threshold),
        FraudRule("RAPID_SUCCESSIVE_TRANSACTIONS", "Many transactions in a short period",
                  Severity.HIGH, check_rapid_transactions),
        FraudRule("UNUSUAL_TIME", "Transaction outside business hours",
                  Severity.LOW, check_unusual_time),
        FraudRule("EMAIL_DOMAIN_VALIDATION", "Suspicious email domain or pattern",
                  Severity.LOW, check_email_domain),
        FraudRule("IP_GEO_LOCATION", "IP location does not match region",
                  Severity.MEDIUM, _not_integrated("IP_GEO_LOCATION", Severity.MEDIUM),
                  enabled=False),
        FraudRule("DEVICE_FINGERPRINT", "Unusual device pattern",
                  Severity.MEDIUM, _not_integrated("DEVICE_FINGERPRINT", Severity.MEDIUM),
                  enabled=False),
        FraudRule("CURRENCY_MISMATCH", "Currency does not match region",
                  Severity.LOW, check_currency_mismatch),
        FraudRule("AVS_CHECK", "Address verification",
                  Severity.HIGH, _not_integrated("AVS_CHECK", Severity.HIGH),
                  enabled=False),
        FraudRule("BLACKLIST_CHECK", "Known fraudster lists",
                  Severity.CRITICAL, _not_integrated("BLACKLIST_CHECK", Severity.CRITICAL),
                  enabled=False),
    ]


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class FraudDetector:
    """
    Runs the enabled rules and aggregates a report.

    Contract:
        ``check`` is pure given its context; the rule list is per instance,
        so services and tests never share mutable rule state.
    """

    def __init__(
        self,
        settings: FraudSettings | None = None,
        rules: list[FraudRule] | None = None,
    ) -> None:
        self._settings = settings or FraudSettings()
        self._rules = list(rules) if rules is not None else default_rules()

    @property
    def rules(self) -> tuple[FraudRule, ...]:
        return tuple(self._rules)

    def set_rule_enabled(self, rule_name: str, enabled: bool) -> None:
        self._rules = [
            replace(r, enabled=enabled) if r.name == rule_name else r for r in self._rules
        ]

    def add_rule(self, rule: FraudRule) -> None:
        self._rules.append(rule)

    def remove_rule(self, rule_name: str) -> None:
        self._rules = [r for r in self._rules if r.name != rule_name]

    def check(self, ctx: TransactionContext) -> FraudReport:
        results: list[RuleResult] = []
        total = Decimal("0")
        rules_checked = 0
        rules_failed = 0

        for rule in self._rules:
            if not rule.enabled:
                continue
            rules_checked += 1
            try:
                result = rule.check(ctx, self._settings)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "fraud_rule_failed",
                    extra={
                        "rule_name": rule.name,
                        "transaction_id": ctx.transaction_id,
                        "error": str(exc),
                    },
                )
                continue
            results.append(result)
            if not result.passed:
                rules_failed += 1
                total += Decimal(result.score) * SEVERITY_MULTIPLIERS[rule.severity]

        overall = min(Decimal("100"), total)
        recommendation = self._recommend(overall, rules_failed)
        report = FraudReport(
            transaction_id=ctx.transaction_id,
            overall_score=overall,
            passed=recommendation == Recommendation.ALLOW,
            rules_checked=rules_checked,
            rules_failed=rules_failed,
            results=tuple(results),
            timestamp=ctx.timestamp,
            recommendation=recommendation,
        )
        logger.info(
            "fraud_check_completed",
            extra={
                "transaction_id": ctx.transaction_id,
                "overall_score": str(overall),
                "recommendation": recommendation.value,
                "rules_checked": rules_checked,
                "rules_failed": rules_failed,
            },
        )
        return report

    def _recommend(self, score: Decimal, rules_failed: int) -> Recommendation:
        if rules_failed == 0:
            return Recommendation.ALLOW
        if score >= self._settings.block_score:
            return Recommendation.BLOCK
        if score >= self._settings.review_score:
            return Recommendation.REVIEW
        return Recommendation.ALLOW
