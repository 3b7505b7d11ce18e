"""
Settings loader (``rental_config.loader``).

Responsibility
--------------
Reads a YAML settings file, overlays it on the built-in defaults and returns
a validated ``RentalSettings``.  Only keys present in the file change; every
other value keeps its default.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, bad value  -> ``ConfigurationError``.

Audit relevance
---------------
``compute_checksum`` gives a SHA-256 over the canonical form of the effective
settings so a deployment can prove which configuration was active.
"""

from __future__ import annotations

import dataclasses
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from rental_config.schema import (
    AccountDef,
    BillingSettings,
    FraudSettings,
    LedgerSettings,
    ListingSettings,
    RateLimitPolicy,
    RentalSettings,
)
from rental_kernel.exceptions import ConfigurationError
from rental_kernel.logging_config import get_logger
from rental_kernel.models.ledger import AccountType
from rental_kernel.utils.hashing import hash_payload

logger = get_logger("config.loader")

_SECTIONS: dict[str, type] = {
    "ledger": LedgerSettings,
    "billing": BillingSettings,
    "listings": ListingSettings,
    "fraud": FraudSettings,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("top level must be a mapping", key=str(path))
    return data


def _coerce(section: str, key: str, default: Any, value: Any) -> Any:
    if isinstance(default, Decimal):
        try:
            return Decimal(str(value))
        except InvalidOperation as exc:
            raise ConfigurationError(f"not a decimal: {value!r}", key=f"{section}.{key}") from exc
    if isinstance(default, tuple):
        return tuple(value)
    return value


def _parse_chart(raw: list[dict[str, Any]]) -> tuple[AccountDef, ...]:
    return tuple(
        AccountDef(
            code=str(item["code"]),
            name=item["name"],
            account_type=AccountType(item["account_type"]),
        )
        for item in raw
    )


def _parse_section(name: str, raw: dict[str, Any]) -> Any:
    cls = _SECTIONS[name]
    defaults = cls()
    known = {f.name for f in dataclasses.fields(cls)}
    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            raise ConfigurationError("unknown setting", key=f"{name}.{key}")
        if name == "ledger" and key == "chart_of_accounts":
            kwargs[key] = _parse_chart(value)
        else:
            kwargs[key] = _coerce(name, key, getattr(defaults, key), value)
    return cls(**kwargs)


def _parse_rate_limits(raw: dict[str, Any], base: dict[str, RateLimitPolicy]) -> dict[str, RateLimitPolicy]:
    limits = dict(base)
    for operation, entry in raw.items():
        key = f"rate_limits.{operation}"
        if operation not in base:
            raise ConfigurationError("unknown operation", key=key)
        if not isinstance(entry, dict):
            raise ConfigurationError("expected a mapping", key=key)
        try:
            limits[operation] = RateLimitPolicy(
                max_requests=int(entry["max_requests"]),
                window_seconds=float(entry["window_seconds"]),
            )
        except KeyError as exc:
            raise ConfigurationError(f"missing {exc.args[0]}", key=key) from exc
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc), key=key) from exc
    return limits


def compute_checksum(settings: RentalSettings) -> str:
    payload = dataclasses.asdict(dataclasses.replace(settings, checksum=None))
    return hash_payload(payload)


def parse_settings(data: dict[str, Any]) -> RentalSettings:
    """Build validated settings from an already-parsed mapping."""
    unknown = set(data) - set(_SECTIONS) - {"rate_limits"}
    if unknown:
        raise ConfigurationError(f"unknown sections {sorted(unknown)}")

    defaults = RentalSettings()
    sections = {
        name: _parse_section(name, data[name]) if name in data else getattr(defaults, name)
        for name in _SECTIONS
    }
    rate_limits = _parse_rate_limits(data.get("rate_limits") or {}, defaults.rate_limits)
    settings = RentalSettings(rate_limits=rate_limits, **sections)
    return dataclasses.replace(settings, checksum=compute_checksum(settings))


def load_settings(path: Path | str) -> RentalSettings:
    """Load a YAML settings file over the defaults."""
    path = Path(path)
    settings = parse_settings(load_yaml_file(path))
    logger.info(
        "settings_loaded",
        extra={"path": str(path), "checksum": settings.checksum},
    )
    return settings


def default_settings() -> RentalSettings:
    settings = RentalSettings()
    return dataclasses.replace(settings, checksum=compute_checksum(settings))
