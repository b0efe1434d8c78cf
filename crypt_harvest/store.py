"""JSON persistence of vault and strategy ledgers."""

import json
import os
import shutil
import sys
from pathlib import Path
from typing import Any

from crypt_harvest.constants import DEFAULT_STATE_FILE, STATE_DIR_NAME, STATE_VERSION
from crypt_harvest.errors import InvalidConfiguration
from crypt_harvest.formatters import as_int
from crypt_harvest.models import FeeSplit, HarvestLogEntry, LedgerSnapshot, StrategyLedger, StrategyState, VaultLedger
from crypt_harvest.vault import Vault


def get_state_dir() -> Path:
    """Get the state directory path. Uses XDG_CACHE_HOME if available, otherwise ~/.cache."""
    cache_home = os.getenv("XDG_CACHE_HOME")
    if cache_home:
        base = Path(cache_home)
    else:
        base = Path.home() / ".cache"
    state_dir = base / STATE_DIR_NAME
    state_dir.mkdir(parents=True, exist_ok=True)
    return state_dir


def default_state_path() -> Path:
    return get_state_dir() / DEFAULT_STATE_FILE


def clear_state() -> None:
    """Remove all persisted ledgers."""
    state_dir = get_state_dir()
    if state_dir.exists():
        shutil.rmtree(state_dir)
        print("✅ State cleared successfully.", file=sys.stderr)
    else:
        print("ℹ️  State directory does not exist (nothing to clear).", file=sys.stderr)


def take_snapshot(vault: Vault) -> LedgerSnapshot:
    """Capture a vault and its active strategy."""
    strategy = vault.strategy()
    return LedgerSnapshot(
        taken_at=vault.chain.timestamp,
        vault=vault.ledger(),
        strategy=strategy.ledger() if strategy is not None else None,
    )


def snapshot_to_dict(snapshot: LedgerSnapshot) -> dict[str, Any]:
    # Amounts can exceed what JSON consumers handle as numbers, store them as strings
    v = snapshot.vault
    data: dict[str, Any] = {
        "version": STATE_VERSION,
        "taken_at": snapshot.taken_at,
        "vault": {
            "address": v.address,
            "want": v.want,
            "symbol": v.symbol,
            "decimals": v.decimals,
            "total_supply": str(v.total_supply),
            "shares": {holder: str(amount) for holder, amount in v.shares.items()},
            "idle": str(v.idle),
            "strategy_balance": str(v.strategy_balance),
            "deposit_fee_bps": v.deposit_fee_bps,
            "withdraw_fee_bps": v.withdraw_fee_bps,
            "tvl_cap": str(v.tvl_cap),
            "price_per_full_share": str(v.price_per_full_share),
            "active_strategy": v.active_strategy,
        },
        "strategy": None,
    }
    s = snapshot.strategy
    if s is not None:
        data["strategy"] = {
            "address": s.address,
            "state": s.state.value,
            "fee_split": {
                "treasury_bps": s.fee_split.treasury_bps,
                "strategist_bps": s.fee_split.strategist_bps,
                "call_fee_bps": s.fee_split.call_fee_bps,
            },
            "harvest_log_cadence": s.harvest_log_cadence,
            "harvest_log_capacity": s.harvest_log_capacity,
            "inception_timestamp": s.inception_timestamp,
            "log_base_timestamp": s.log_base_timestamp,
            "harvest_log": [
                {"timestamp": e.timestamp, "assets_before": str(e.assets_before), "assets_after": str(e.assets_after)}
                for e in s.harvest_log
            ],
        }
    return data


def snapshot_from_dict(data: dict[str, Any]) -> LedgerSnapshot:
    if data.get("version") != STATE_VERSION:
        raise InvalidConfiguration(f"Unsupported state version {data.get('version')!r}, expected {STATE_VERSION!r}")
    try:
        v = data["vault"]
        vault = VaultLedger(
            address=v["address"],
            want=v["want"],
            total_supply=as_int(v["total_supply"]),
            shares={holder: as_int(amount) for holder, amount in v["shares"].items()},
            idle=as_int(v["idle"]),
            strategy_balance=as_int(v["strategy_balance"]),
            deposit_fee_bps=as_int(v["deposit_fee_bps"]),
            withdraw_fee_bps=as_int(v["withdraw_fee_bps"]),
            tvl_cap=as_int(v["tvl_cap"]),
            price_per_full_share=as_int(v["price_per_full_share"]),
            active_strategy=v.get("active_strategy"),
            symbol=v.get("symbol", ""),
            decimals=as_int(v.get("decimals"), default=18),
        )

        strategy = None
        s = data.get("strategy")
        if s is not None:
            fees = s["fee_split"]
            strategy = StrategyLedger(
                address=s["address"],
                state=StrategyState(s["state"]),
                fee_split=FeeSplit(
                    treasury_bps=as_int(fees["treasury_bps"]),
                    strategist_bps=as_int(fees["strategist_bps"]),
                    call_fee_bps=as_int(fees["call_fee_bps"]),
                ),
                harvest_log_cadence=as_int(s["harvest_log_cadence"]),
                inception_timestamp=as_int(s["inception_timestamp"]),
                log_base_timestamp=as_int(s["log_base_timestamp"]),
                harvest_log=[
                    HarvestLogEntry(
                        timestamp=as_int(e["timestamp"]),
                        assets_before=as_int(e["assets_before"]),
                        assets_after=as_int(e["assets_after"]),
                    )
                    for e in s["harvest_log"]
                ],
                harvest_log_capacity=as_int(s.get("harvest_log_capacity")),
            )
    except (KeyError, TypeError, ValueError) as ex:
        raise InvalidConfiguration(f"Malformed state: {ex!r}") from ex

    return LedgerSnapshot(taken_at=as_int(data.get("taken_at")), vault=vault, strategy=strategy)


def save_snapshot(snapshot: LedgerSnapshot, path: str | Path | None = None) -> Path:
    """Write a snapshot as JSON. Returns the file written."""
    state_file = Path(path) if path is not None else default_state_path()
    state_file.parent.mkdir(parents=True, exist_ok=True)
    with state_file.open("w", encoding="utf-8") as f:
        json.dump(snapshot_to_dict(snapshot), f, ensure_ascii=False, indent=2)
    return state_file


def load_snapshot(path: str | Path | None = None) -> LedgerSnapshot | None:
    """Read a snapshot. Returns None if there is none."""
    state_file = Path(path) if path is not None else default_state_path()
    if not state_file.exists():
        return None
    with state_file.open("r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as ex:
            raise InvalidConfiguration(f"State file {state_file} is not valid JSON: {ex}") from ex
    return snapshot_from_dict(data)
