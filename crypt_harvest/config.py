"""Deployment configuration.

Every address and parameter a deployment needs is a named field. Configs are
validated before anything is deployed: empty values raise
:py:class:`MissingConfiguration`, malformed ones :py:class:`InvalidConfiguration`.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from web3 import Web3

from crypt_harvest.constants import (
    CONFIG_ENV_VAR,
    DEFAULT_CALL_FEE_BPS,
    DEFAULT_DEPOSIT_FEE_BPS,
    DEFAULT_HARVEST_LOG_CADENCE,
    DEFAULT_STRATEGIST_FEE_BPS,
    DEFAULT_TREASURY_FEE_BPS,
    DEFAULT_WITHDRAW_FEE_BPS,
    HARVEST_LOG_CAPACITY,
    MAX_UINT256,
    TOTAL_BASIS_POINTS,
)
from crypt_harvest.errors import InvalidConfiguration, MissingConfiguration
from crypt_harvest.formatters import as_int
from crypt_harvest.models import FeeSplit


def _address(value: Any, name: str) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingConfiguration(f"{name} is not set")
    if not Web3.is_address(value):
        raise InvalidConfiguration(f"{name} is not a valid address: {value!r}")
    return Web3.to_checksum_address(value)


def _addresses(values: Any, name: str) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise InvalidConfiguration(f"{name} must be a list of addresses")
    return tuple(_address(v, f"{name}[{i}]") for i, v in enumerate(values))


def _int(value: Any, name: str, *, default: int | None = None) -> int:
    if value is None or value == "":
        if default is None:
            raise MissingConfiguration(f"{name} is not set")
        return default
    try:
        return as_int(value)
    except (TypeError, ValueError) as ex:
        raise InvalidConfiguration(f"{name} must be an integer, got {value!r}") from ex


def _bps(value: Any, name: str, *, default: int) -> int:
    bps = _int(value, name, default=default)
    if not 0 <= bps <= TOTAL_BASIS_POINTS:
        raise InvalidConfiguration(f"{name} must be within 0..{TOTAL_BASIS_POINTS}, got {bps}")
    return bps


def _tvl_cap(value: Any) -> int:
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "max", "unlimited")):
        return MAX_UINT256
    cap = _int(value, "vault.tvl_cap")
    if cap < 0:
        raise InvalidConfiguration(f"vault.tvl_cap must be non-negative, got {cap}")
    return cap


@dataclass(frozen=True)
class VaultConfig:
    want: str
    name: str
    symbol: str
    deposit_fee_bps: int = DEFAULT_DEPOSIT_FEE_BPS
    withdraw_fee_bps: int = DEFAULT_WITHDRAW_FEE_BPS
    tvl_cap: int = MAX_UINT256

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VaultConfig":
        name = data.get("name")
        symbol = data.get("symbol")
        if not name:
            raise MissingConfiguration("vault.name is not set")
        if not symbol:
            raise MissingConfiguration("vault.symbol is not set")
        return cls(
            want=_address(data.get("want"), "vault.want"),
            name=str(name),
            symbol=str(symbol),
            deposit_fee_bps=_bps(data.get("deposit_fee_bps"), "vault.deposit_fee_bps", default=DEFAULT_DEPOSIT_FEE_BPS),
            withdraw_fee_bps=_bps(data.get("withdraw_fee_bps"), "vault.withdraw_fee_bps", default=DEFAULT_WITHDRAW_FEE_BPS),
            tvl_cap=_tvl_cap(data.get("tvl_cap")),
        )


@dataclass(frozen=True)
class StrategyConfig:
    pool_id: int
    farm: str
    converter: str
    reward_tokens: tuple[str, ...]
    treasury: str
    strategist_remitter: str
    strategists: tuple[str, ...] = ()
    guardians: tuple[str, ...] = ()
    fee_split: FeeSplit = field(
        default_factory=lambda: FeeSplit(DEFAULT_TREASURY_FEE_BPS, DEFAULT_STRATEGIST_FEE_BPS, DEFAULT_CALL_FEE_BPS)
    )
    harvest_log_capacity: int = HARVEST_LOG_CAPACITY
    harvest_log_cadence: int = DEFAULT_HARVEST_LOG_CADENCE
    permissionless_harvest: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StrategyConfig":
        reward_tokens = _addresses(data.get("reward_tokens"), "strategy.reward_tokens")
        if not reward_tokens:
            raise MissingConfiguration("strategy.reward_tokens is empty")

        pool_id = _int(data.get("pool_id"), "strategy.pool_id")
        if pool_id < 0:
            raise InvalidConfiguration(f"strategy.pool_id must be non-negative, got {pool_id}")

        fees = data.get("fee_split") or {}
        if not isinstance(fees, dict):
            raise InvalidConfiguration("strategy.fee_split must be an object")
        fee_split = FeeSplit(
            treasury_bps=_bps(fees.get("treasury_bps"), "strategy.fee_split.treasury_bps", default=DEFAULT_TREASURY_FEE_BPS),
            strategist_bps=_bps(
                fees.get("strategist_bps"), "strategy.fee_split.strategist_bps", default=DEFAULT_STRATEGIST_FEE_BPS
            ),
            call_fee_bps=_bps(fees.get("call_fee_bps"), "strategy.fee_split.call_fee_bps", default=DEFAULT_CALL_FEE_BPS),
        )

        capacity = _int(data.get("harvest_log_capacity"), "strategy.harvest_log_capacity", default=HARVEST_LOG_CAPACITY)
        if capacity < 1:
            raise InvalidConfiguration(f"strategy.harvest_log_capacity must be >= 1, got {capacity}")
        cadence = _int(
            data.get("harvest_log_cadence"), "strategy.harvest_log_cadence", default=DEFAULT_HARVEST_LOG_CADENCE
        )
        if cadence < 0:
            raise InvalidConfiguration(f"strategy.harvest_log_cadence must be >= 0, got {cadence}")

        return cls(
            pool_id=pool_id,
            farm=_address(data.get("farm"), "strategy.farm"),
            converter=_address(data.get("converter"), "strategy.converter"),
            reward_tokens=reward_tokens,
            treasury=_address(data.get("treasury"), "strategy.treasury"),
            strategist_remitter=_address(data.get("strategist_remitter"), "strategy.strategist_remitter"),
            strategists=_addresses(data.get("strategists"), "strategy.strategists"),
            guardians=_addresses(data.get("guardians"), "strategy.guardians"),
            fee_split=fee_split,
            harvest_log_capacity=capacity,
            harvest_log_cadence=cadence,
            permissionless_harvest=bool(data.get("permissionless_harvest", True)),
        )


@dataclass(frozen=True)
class DeploymentConfig:
    """Everything :py:func:`crypt_harvest.deploy.deploy` needs."""

    admin: str
    vault: VaultConfig
    strategy: StrategyConfig

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeploymentConfig":
        if not isinstance(data, dict):
            raise InvalidConfiguration("Deployment config must be a JSON object")
        for section in ("vault", "strategy"):
            if not isinstance(data.get(section), dict):
                raise MissingConfiguration(f"{section} section is missing")
        return cls(
            admin=_address(data.get("admin"), "admin"),
            vault=VaultConfig.from_dict(data["vault"]),
            strategy=StrategyConfig.from_dict(data["strategy"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "admin": self.admin,
            "vault": {
                "want": self.vault.want,
                "name": self.vault.name,
                "symbol": self.vault.symbol,
                "deposit_fee_bps": self.vault.deposit_fee_bps,
                "withdraw_fee_bps": self.vault.withdraw_fee_bps,
                "tvl_cap": "max" if self.vault.tvl_cap == MAX_UINT256 else str(self.vault.tvl_cap),
            },
            "strategy": {
                "pool_id": self.strategy.pool_id,
                "farm": self.strategy.farm,
                "converter": self.strategy.converter,
                "reward_tokens": list(self.strategy.reward_tokens),
                "treasury": self.strategy.treasury,
                "strategist_remitter": self.strategy.strategist_remitter,
                "strategists": list(self.strategy.strategists),
                "guardians": list(self.strategy.guardians),
                "fee_split": {
                    "treasury_bps": self.strategy.fee_split.treasury_bps,
                    "strategist_bps": self.strategy.fee_split.strategist_bps,
                    "call_fee_bps": self.strategy.fee_split.call_fee_bps,
                },
                "harvest_log_capacity": self.strategy.harvest_log_capacity,
                "harvest_log_cadence": self.strategy.harvest_log_cadence,
                "permissionless_harvest": self.strategy.permissionless_harvest,
            },
        }


def load_config_data(path: str | Path | None = None) -> dict[str, Any]:
    """Read a raw config JSON object.

    Falls back to the file named by ``CRYPT_HARVEST_CONFIG`` when no path is given.
    """
    if path is None:
        path = os.getenv(CONFIG_ENV_VAR)
    if not path:
        raise MissingConfiguration(f"No config file given and {CONFIG_ENV_VAR} is not set")
    config_file = Path(path)
    if not config_file.exists():
        raise MissingConfiguration(f"Config file {config_file} does not exist")
    with config_file.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as ex:
            raise InvalidConfiguration(f"Config file {config_file} is not valid JSON: {ex}") from ex
    if not isinstance(data, dict):
        raise InvalidConfiguration(f"Config file {config_file} must hold a JSON object")
    return data


def load_config(path: str | Path | None = None) -> DeploymentConfig:
    """Load and validate a deployment config from a JSON file."""
    return DeploymentConfig.from_dict(load_config_data(path))
