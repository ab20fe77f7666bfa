"""Deployment parameters — owner, fee schedule, fee receiver, VIP packages.

Loaded from config/multisender_params.json. Individual values can be
overridden from the environment (or a .env file) so an operator can point
a deployment at a different owner or fee receiver without editing the
parameters file:

    MULTISENDER_OWNER
    MULTISENDER_FEE_RECEIVER
    MULTISENDER_PER_RECIPIENT_FEE
    MULTISENDER_MINIMUM_FEE

Package validity is configured in days and converted to seconds here;
everything past this module works in seconds.
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, List, Optional, Tuple

from dotenv import dotenv_values

from multisender.models.multisend import is_null_account

PARAMS_FILENAME = "multisender_params.json"
SECONDS_PER_DAY = 86_400

_ENV_OVERRIDES = {
    "MULTISENDER_OWNER": "owner",
    "MULTISENDER_FEE_RECEIVER": "fee_receiver",
    "MULTISENDER_PER_RECIPIENT_FEE": "per_recipient_fee",
    "MULTISENDER_MINIMUM_FEE": "minimum_fee",
}


@dataclass(frozen=True)
class PackageSpec:
    """An initial VIP package as written in the parameters file."""
    package_id: int
    price: Decimal
    validity_days: int

    @property
    def validity_seconds(self) -> int:
        return self.validity_days * SECONDS_PER_DAY


@dataclass(frozen=True)
class MultiSenderConfig:
    """Everything needed to stand up a fresh MultiSender deployment."""

    owner: str
    fee_receiver: str
    per_recipient_fee: Decimal
    minimum_fee: Decimal
    packages: Tuple[PackageSpec, ...] = ()
    allow_undefined_packages: bool = False

    @classmethod
    def from_dict(cls, params: dict[str, Any]) -> MultiSenderConfig:
        fees = params.get("fees", {})
        packages = tuple(
            PackageSpec(
                package_id=int(p["package_id"]),
                price=_decimal(p["price"], "price"),
                validity_days=int(p["validity_days"]),
            )
            for p in params.get("vip_packages", [])
        )
        return cls(
            owner=params["owner"],
            fee_receiver=params["fee_receiver"],
            per_recipient_fee=_decimal(fees.get("per_recipient_fee", "0"), "per_recipient_fee"),
            minimum_fee=_decimal(fees.get("minimum_fee", "0"), "minimum_fee"),
            packages=packages,
            allow_undefined_packages=_flag(
                params.get("allow_undefined_packages", False), "allow_undefined_packages",
            ),
        )

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> MultiSenderConfig:
        """Load from <config_dir>/multisender_params.json."""
        path = Path(config_dir) / PARAMS_FILENAME
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))

    def with_env_overrides(self, env_file: Optional[Path] = None) -> MultiSenderConfig:
        """Apply MULTISENDER_* overrides from the environment.

        If env_file is given its values are read first; variables set in
        the process environment take precedence over the file. The process
        environment itself is never modified.
        """
        values: dict[str, Optional[str]] = {}
        if env_file is not None:
            values.update(dotenv_values(env_file))
        values.update({k: v for k, v in os.environ.items() if k in _ENV_OVERRIDES})

        changes: dict[str, Any] = {}
        for var, field_name in _ENV_OVERRIDES.items():
            value = values.get(var)
            if value is None or value == "":
                continue
            if field_name in ("per_recipient_fee", "minimum_fee"):
                changes[field_name] = _decimal(value, var)
            else:
                changes[field_name] = value
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def validate(self) -> List[str]:
        """Return a list of violations; empty means the config is usable."""
        errors: List[str] = []
        if is_null_account(self.owner):
            errors.append("owner must not be the null account")
        if is_null_account(self.fee_receiver):
            errors.append("fee_receiver must not be the null account")
        if self.owner == self.fee_receiver:
            errors.append("owner and fee_receiver must be distinct accounts")
        if self.per_recipient_fee < 0:
            errors.append(f"per_recipient_fee must be >= 0, got {self.per_recipient_fee}")
        if self.minimum_fee < 0:
            errors.append(f"minimum_fee must be >= 0, got {self.minimum_fee}")
        seen: set[int] = set()
        for package in self.packages:
            if package.package_id < 0:
                errors.append(f"package id must be >= 0, got {package.package_id}")
            if package.package_id in seen:
                errors.append(f"duplicate package id: {package.package_id}")
            seen.add(package.package_id)
            if package.price < 0:
                errors.append(f"package {package.package_id} price must be >= 0")
            if package.validity_days < 0:
                errors.append(f"package {package.package_id} validity must be >= 0")
        return errors


def _decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, float):
        # JSON numbers arrive as float; go through str to keep the literal.
        value = repr(value)
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not a decimal amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"{name} must be finite, got {value!r}")
    return amount


def _flag(value: Any, name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{name} must be true or false, got {value!r}")
    return value
