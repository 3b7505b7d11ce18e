"""
Module: rental_engines
Responsibility:
    Pure calculation engines: utility bill allocation and payment fraud
    scoring.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import rental_kernel.domain and rental_config.schema only.
    MUST NOT import rental_services or rental_modules.

Invariants enforced:
    - Engines never read the clock; times arrive as parameters.
    - Decimal-only arithmetic for money.
    - Identical inputs always produce identical outputs.
"""

from rental_engines.allocation import (
    AllocationEngine,
    AllocationResult,
    AllocationShare,
    AllocationTarget,
)
from rental_engines.fraud import (
    FraudDetector,
    FraudReport,
    FraudRule,
    Recommendation,
    RuleResult,
    Severity,
    TransactionContext,
    default_rules,
)

__all__ = [
    "AllocationEngine",
    "AllocationResult",
    "AllocationShare",
    "AllocationTarget",
    "FraudDetector",
    "FraudReport",
    "FraudRule",
    "Recommendation",
    "RuleResult",
    "Severity",
    "TransactionContext",
    "default_rules",
]
