#!/usr/bin/env python3
"""
stoker.py

Weekly token-burn scheduler: settings, next-occurrence math, due checks,
guarded execution with an append-only history, and a polling checker.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time as dt_time, timedelta, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

try:
    import yaml
except ImportError:  # pragma: no cover - dependency check at runtime
    yaml = None

try:
    from croniter import croniter
except ImportError:  # pragma: no cover - dependency check at runtime
    croniter = None


LOG_FILE = os.environ.get("STOKER_LOG_FILE", "stoker.log")
DEFAULT_CONFIG = "stoker.yaml"
DEFAULT_STORE = ".stoker/state.json"
DEFAULT_POLL_SECONDS = 60
DEFAULT_PREVIEW_COUNT = 5
DEFAULT_HISTORY_LIMIT = 20
DEFAULT_SIGNER_TIMEOUT_MS = 120_000

WEEKLY_BURN_SETTINGS_KEY = "weekly_burn_settings"
BURN_SCHEDULE_HISTORY_KEY = "burn_schedule_history"
BURN_HISTORY_KEY = "burn_history"
WALLETS_KEY = "dashboard_wallets"

EXECUTION_WINDOW = timedelta(minutes=5)
HISTORY_LIMIT = 50
MIN_PERCENTAGE = 9
MAX_PERCENTAGE = 50
AMOUNT_QUANTUM = Decimal("0.000001")
BALANCE_QUANTUM = Decimal("0.0001")
DECIMAL_HEADROOM = 40
MIN_BURN_AMOUNT = Decimal("0.0001")

TOKEN_ETH = "ETH"
TOKEN_369_ETERNAL = "369_ETERNAL"
TOKEN_SOL = "SOL"
VALID_TOKEN_TYPES = (TOKEN_ETH, TOKEN_369_ETERNAL, TOKEN_SOL)

STATUS_PENDING = "pending"
STATUS_EXECUTED = "executed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
VALID_STATUSES = {STATUS_PENDING, STATUS_EXECUTED, STATUS_FAILED, STATUS_SKIPPED}

VALID_WALLET_TYPES = {"metamask", "coinbase", "manual"}

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DAY_NAME_TO_NUM = {name.lower(): idx for idx, name in enumerate(DAY_NAMES)}
HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
ETH_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


class StokerError(Exception):
    """Base error for stoker."""


class ConfigError(StokerError):
    """Invalid settings, config file, or source wallet reference."""


class InsufficientBalanceError(StokerError):
    """Source wallet has nothing to burn."""


class UnsupportedActionError(StokerError):
    """Token type has no burn implementation."""


class InvocationError(StokerError):
    """The external signer failed to submit the burn."""


def setup_logging() -> logging.Logger:
    logger = logging.getLogger("stoker")
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
    file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    return logger


logger = setup_logging()
UTC = timezone.utc

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _ensure_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_millis(value: datetime) -> int:
    return int(round(_ensure_aware_utc(value).timestamp() * 1000))


def from_millis(value: int) -> datetime:
    seconds, millis = divmod(int(value), 1000)
    return datetime.fromtimestamp(seconds, tz=UTC) + timedelta(milliseconds=millis)


def js_weekday(value: datetime) -> int:
    """Weekday with Sunday = 0 ... Saturday = 6."""
    return (value.weekday() + 1) % 7


def system_timezone() -> Tuple[tzinfo, str]:
    local_tz = datetime.now().astimezone().tzinfo
    if isinstance(local_tz, ZoneInfo):
        return local_tz, local_tz.key
    tz_name = os.environ.get("TZ")
    if tz_name:
        try:
            zone = ZoneInfo(tz_name)
            return zone, tz_name
        except ZoneInfoNotFoundError:
            pass
    return ZoneInfo("UTC"), "UTC"


def parse_timezone(name: str, field_path: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f'Error: Invalid timezone "{name}" at {field_path}.') from exc


def parse_hhmm(value: Any, field_path: str) -> Tuple[int, int, str]:
    if not isinstance(value, str):
        raise ConfigError(f"Error: {field_path} must be HH:MM string.")
    match = HHMM_RE.match(value)
    if not match:
        raise ConfigError(f'Error: {field_path} must be HH:MM (24-hour), got "{value}".')
    hour = int(match.group(1))
    minute = int(match.group(2))
    return hour, minute, value


def ensure_bool(value: Any, field_path: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"Error: {field_path} must be true or false.")
    return value


def ensure_int(value: Any, field_path: str, default: int, minimum: int = 1) -> int:
    if value is None:
        return default
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"Error: {field_path} must be an integer.")
    if value < minimum:
        raise ConfigError(f"Error: {field_path} must be >= {minimum}.")
    return value


def ensure_str(value: Any, field_path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Error: {field_path} must be a non-empty string.")
    return value.strip()


def validate_day_of_week(value: Any, field_path: str) -> int:
    if isinstance(value, str):
        token = value.strip().lower()
        if token in DAY_NAME_TO_NUM:
            return DAY_NAME_TO_NUM[token]
        if token.isdigit():
            value = int(token)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigError(f"Error: {field_path} must be a weekday name or an integer 0-6.")
    if value < 0 or value > 6:
        raise ConfigError(f"Error: {field_path} must be between 0 (Sunday) and 6 (Saturday).")
    return value


def validate_percentage(value: Any, field_path: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"Error: {field_path} must be a number.")
    if value != value or value < MIN_PERCENTAGE or value > MAX_PERCENTAGE:
        raise ConfigError(
            f"Error: {field_path} must be between {MIN_PERCENTAGE} and {MAX_PERCENTAGE}, got {value}."
        )
    return value


def parse_token_type(value: Any, field_path: str) -> str:
    token = ensure_str(value, field_path).upper()
    if token not in VALID_TOKEN_TYPES:
        raise ConfigError(
            f'Error: {field_path} must be one of {list(VALID_TOKEN_TYPES)}, got "{value}".'
        )
    return token


def parse_balance(value: Any) -> Decimal:
    try:
        balance = Decimal(str(value if value not in (None, "") else "0"))
    except InvalidOperation:
        logger.warning("Unreadable wallet balance %r; treating as 0.", value)
        return Decimal("0")
    if not balance.is_finite():
        logger.warning("Non-finite wallet balance %r; treating as 0.", value)
        return Decimal("0")
    return balance


def ensure_burnable_balance(balance: Decimal) -> None:
    if balance <= 0:
        raise InsufficientBalanceError("Insufficient balance")


def quantize_decimal(value: Decimal, quantum: Decimal = AMOUNT_QUANTUM) -> str:
    places = -quantum.as_tuple().exponent
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, value.adjusted() + places + 2)
        return str(value.quantize(quantum, rounding=ROUND_HALF_UP))


def sum_decimals(values: Iterable[Decimal]) -> Decimal:
    items = list(values)
    with localcontext() as ctx:
        ctx.prec = max([ctx.prec] + [item.adjusted() + DECIMAL_HEADROOM for item in items])
        return sum(items, Decimal("0"))


def calculate_burn_amount(balance: Decimal, percentage: float) -> str:
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, balance.adjusted() + DECIMAL_HEADROOM)
        amount = balance * Decimal(str(percentage)) / Decimal("100")
    return quantize_decimal(amount, AMOUNT_QUANTUM)


def get_day_name(day_of_week: int) -> str:
    if isinstance(day_of_week, int) and 0 <= day_of_week < len(DAY_NAMES):
        return DAY_NAMES[day_of_week]
    return "Unknown"


@dataclass
class ScheduleConfig:
    enabled: bool
    day_of_week: int
    time_of_day: str
    percentage: float
    source_wallet_id: str
    token_type: str
    next_scheduled: datetime
    last_executed: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "dayOfWeek": self.day_of_week,
            "timeOfDay": self.time_of_day,
            "percentage": self.percentage,
            "sourceWalletId": self.source_wallet_id,
            "tokenType": self.token_type,
            "lastExecuted": to_millis(self.last_executed) if self.last_executed else None,
            "nextScheduled": to_millis(self.next_scheduled),
        }

    @staticmethod
    def from_dict(raw: Any, field_path: str = WEEKLY_BURN_SETTINGS_KEY) -> "ScheduleConfig":
        if not isinstance(raw, dict):
            raise ConfigError(f"Error: {field_path} must be a mapping.")
        next_raw = raw.get("nextScheduled")
        if isinstance(next_raw, bool) or not isinstance(next_raw, (int, float)):
            raise ConfigError(f"Error: {field_path}.nextScheduled must be epoch milliseconds.")
        last_raw = raw.get("lastExecuted")
        if last_raw is not None and (isinstance(last_raw, bool) or not isinstance(last_raw, (int, float))):
            raise ConfigError(f"Error: {field_path}.lastExecuted must be epoch milliseconds or null.")
        wallet_id = raw.get("sourceWalletId") or ""
        if not isinstance(wallet_id, str):
            raise ConfigError(f"Error: {field_path}.sourceWalletId must be a string.")
        return ScheduleConfig(
            enabled=ensure_bool(raw.get("enabled"), f"{field_path}.enabled", False),
            day_of_week=validate_day_of_week(raw.get("dayOfWeek"), f"{field_path}.dayOfWeek"),
            time_of_day=parse_hhmm(raw.get("timeOfDay"), f"{field_path}.timeOfDay")[2],
            percentage=validate_percentage(raw.get("percentage"), f"{field_path}.percentage"),
            source_wallet_id=wallet_id.strip(),
            token_type=parse_token_type(raw.get("tokenType", TOKEN_ETH), f"{field_path}.tokenType"),
            next_scheduled=from_millis(int(next_raw)),
            last_executed=from_millis(int(last_raw)) if last_raw is not None else None,
        )


@dataclass(frozen=True)
class ScheduleRecord:
    id: str
    timestamp: datetime
    scheduled_time: datetime
    amount: str
    token_type: str
    status: str
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "timestamp": to_millis(self.timestamp),
            "scheduledTime": to_millis(self.scheduled_time),
            "amount": self.amount,
            "tokenType": self.token_type,
            "status": self.status,
        }
        if self.tx_hash:
            payload["txHash"] = self.tx_hash
        if self.error:
            payload["error"] = self.error
        return payload

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> "ScheduleRecord":
        status = raw["status"]
        if status not in VALID_STATUSES:
            raise ValueError(f"unknown status {status!r}")
        return ScheduleRecord(
            id=str(raw["id"]),
            timestamp=from_millis(raw["timestamp"]),
            scheduled_time=from_millis(raw["scheduledTime"]),
            amount=str(raw.get("amount", "0")),
            token_type=str(raw.get("tokenType", "")),
            status=status,
            tx_hash=raw.get("txHash"),
            error=raw.get("error"),
        )


@dataclass(frozen=True)
class BurnRecord:
    """One on-demand burn; income_amount is "0" for plain manual burns."""

    id: str
    timestamp: datetime
    amount: str
    tx_hash: str
    income_amount: str = "0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": to_millis(self.timestamp),
            "amount": self.amount,
            "txHash": self.tx_hash,
            "incomeAmount": self.income_amount,
        }

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> "BurnRecord":
        return BurnRecord(
            id=str(raw["id"]),
            timestamp=from_millis(raw["timestamp"]),
            amount=str(raw["amount"]),
            tx_hash=str(raw["txHash"]),
            income_amount=str(raw.get("incomeAmount", "0")),
        )


@dataclass
class Wallet:
    id: str
    address: str
    balance: str = "0"
    label: str = "Watch Wallet"
    type: str = "manual"
    is_connected: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "balance": self.balance,
            "label": self.label,
            "type": self.type,
            "isConnected": self.is_connected,
        }

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> "Wallet":
        return Wallet(
            id=str(raw["id"]),
            address=str(raw.get("address", "")),
            balance=str(raw.get("balance") or "0"),
            label=str(raw.get("label", "")),
            type=str(raw.get("type", "manual")),
            is_connected=bool(raw.get("isConnected", False)),
        )


@dataclass(frozen=True)
class SignerSettings:
    endpoint: str
    api_key: str
    timeout_ms: int
    resonant_369_mode: bool


@dataclass(frozen=True)
class StokerSettings:
    config_path: Path
    store_path: Path
    timezone: tzinfo
    timezone_name: str
    poll_seconds: int
    signer: SignerSettings = field(
        default_factory=lambda: SignerSettings(
            endpoint="",
            api_key="",
            timeout_ms=DEFAULT_SIGNER_TIMEOUT_MS,
            resonant_369_mode=True,
        )
    )


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class WalletRegistry(Protocol):
    def find_wallet(self, wallet_id: str) -> Optional[Wallet]: ...


class ActionInvoker(Protocol):
    def invoke(self, token_type: str, amount: str) -> str: ...


class MemoryStore:
    """In-process key-value store; values are JSON-copied on the way in and out."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Any:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Key-value store persisted as one JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("State file %s is not valid JSON (%s); starting empty.", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("State file %s does not hold an object; starting empty.", self.path)
            return {}
        return payload

    def _write(self, payload: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        payload = self._read()
        payload[key] = value
        self._write(payload)

    def delete(self, key: str) -> None:
        payload = self._read()
        if key in payload:
            del payload[key]
            self._write(payload)


def calculate_next_burn_time(
    day_of_week: int,
    time_of_day: str,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
    inclusive: bool = True,
) -> datetime:
    """Next instant on ``day_of_week`` (Sunday = 0) at ``time_of_day`` in ``tz``.

    An occurrence exactly at ``now`` counts as today when ``inclusive`` is set;
    otherwise it rolls over to the following week.
    """
    zone = tz or UTC
    hour, minute, _ = parse_hhmm(time_of_day, "timeOfDay")
    local_now = _ensure_aware_utc(now or utc_now()).astimezone(zone)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)

    days_until = day_of_week - js_weekday(local_now)
    passed = candidate < local_now if inclusive else candidate <= local_now
    if days_until < 0 or (days_until == 0 and passed):
        days_until += 7

    target_date = candidate.date() + timedelta(days=days_until)
    return datetime.combine(target_date, dt_time(hour, minute), tzinfo=zone)


def should_execute_burn(config: ScheduleConfig, now: Optional[datetime] = None) -> bool:
    if not config.enabled:
        return False
    delta = _ensure_aware_utc(now or utc_now()) - _ensure_aware_utc(config.next_scheduled)
    return timedelta(0) <= delta < EXECUTION_WINDOW


def get_time_until_next_burn(config: ScheduleConfig, now: Optional[datetime] = None) -> timedelta:
    remaining = _ensure_aware_utc(config.next_scheduled) - _ensure_aware_utc(now or utc_now())
    return max(timedelta(0), remaining)


def format_time_until_burn(remaining: timedelta) -> str:
    seconds = int(remaining.total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m"
    return "Less than 1 minute"


def require_yaml_dependency() -> None:
    if yaml is None:
        raise StokerError("Missing required dependency: PyYAML. Install with: pip install -e .")


def require_croniter_dependency() -> None:
    if croniter is None:
        raise StokerError("Missing required dependency: croniter. Install with: pip install -e .")


def cron_expression(config: ScheduleConfig) -> str:
    hour, minute, _ = parse_hhmm(config.time_of_day, "timeOfDay")
    return f"{minute} {hour} * * {config.day_of_week}"


def next_burn_times(
    config: ScheduleConfig,
    count: int,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[datetime]:
    if count <= 0:
        return []
    require_croniter_dependency()
    zone = tz or UTC
    first = calculate_next_burn_time(config.day_of_week, config.time_of_day, now=now, tz=zone)
    runs = [first]
    iterator = croniter(cron_expression(config), first)
    while len(runs) < count:
        nxt = iterator.get_next(datetime)
        if nxt.tzinfo is None:
            nxt = nxt.replace(tzinfo=zone)
        runs.append(nxt.astimezone(zone))
    return runs


class ScheduleStore:
    """Settings singleton and capped burn history on top of a key-value store."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load_config(self) -> Optional[ScheduleConfig]:
        raw = self.store.get(WEEKLY_BURN_SETTINGS_KEY)
        if raw is None:
            return None
        try:
            return ScheduleConfig.from_dict(raw)
        except ConfigError as exc:
            logger.error("Error reading weekly burn settings: %s", exc)
            return None

    def save_config(self, config: ScheduleConfig) -> None:
        self.store.set(WEEKLY_BURN_SETTINGS_KEY, config.to_dict())

    def delete_config(self) -> None:
        self.store.delete(WEEKLY_BURN_SETTINGS_KEY)

    def load_history(self) -> List[ScheduleRecord]:
        raw = self.store.get(BURN_SCHEDULE_HISTORY_KEY)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.error("Error reading burn schedule history: expected a list.")
            return []
        records: List[ScheduleRecord] = []
        for idx, item in enumerate(raw):
            try:
                records.append(ScheduleRecord.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping unreadable history entry %s: %s", idx, exc)
        return records

    def append_record(self, record: ScheduleRecord) -> None:
        history = self.load_history()
        history.insert(0, record)
        del history[HISTORY_LIMIT:]
        self.store.set(BURN_SCHEDULE_HISTORY_KEY, [item.to_dict() for item in history])

    def clear_history(self) -> None:
        self.store.delete(BURN_SCHEDULE_HISTORY_KEY)

    def load_burn_history(self) -> List[BurnRecord]:
        raw = self.store.get(BURN_HISTORY_KEY)
        if not isinstance(raw, list):
            return []
        records: List[BurnRecord] = []
        for idx, item in enumerate(raw):
            try:
                records.append(BurnRecord.from_dict(item))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Dropping unreadable burn entry %s: %s", idx, exc)
        return records

    def append_burn_record(self, record: BurnRecord) -> None:
        history = self.load_burn_history()
        history.insert(0, record)
        del history[HISTORY_LIMIT:]
        self.store.set(BURN_HISTORY_KEY, [item.to_dict() for item in history])


class StoredWalletRegistry:
    """Wallet list kept in the key-value store alongside the schedule."""

    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None) -> None:
        self.store = store
        self.clock = clock or utc_now

    def list_wallets(self) -> List[Wallet]:
        raw = self.store.get(WALLETS_KEY)
        if not isinstance(raw, list):
            return []
        wallets: List[Wallet] = []
        for item in raw:
            try:
                wallets.append(Wallet.from_dict(item))
            except (KeyError, TypeError) as exc:
                logger.warning("Dropping unreadable wallet entry: %s", exc)
        return wallets

    def save_wallets(self, wallets: List[Wallet]) -> None:
        self.store.set(WALLETS_KEY, [wallet.to_dict() for wallet in wallets])

    def find_wallet(self, wallet_id: str) -> Optional[Wallet]:
        for wallet in self.list_wallets():
            if wallet.id == wallet_id:
                return wallet
        return None

    def add_wallet(
        self,
        address: str,
        balance: str = "0",
        label: str = "Watch Wallet",
        wallet_type: str = "manual",
        is_connected: bool = False,
    ) -> Wallet:
        if wallet_type not in VALID_WALLET_TYPES:
            raise ConfigError(f'Error: wallet type must be one of {sorted(VALID_WALLET_TYPES)}, got "{wallet_type}".')
        wallets = self.list_wallets()
        wallet = Wallet(
            id=f"wallet_{to_millis(self.clock())}_{uuid.uuid4().hex[:6]}",
            address=address,
            balance=balance,
            label=label,
            type=wallet_type,
            is_connected=is_connected,
        )
        wallets.append(wallet)
        self.save_wallets(wallets)
        return wallet

    def add_manual_wallet(self, address: str, label: str = "Watch Wallet", balance: str = "0") -> Wallet:
        if not ETH_ADDRESS_RE.match(address or ""):
            raise ConfigError(f'Error: Invalid Ethereum address "{address}".')
        if any(w.address.lower() == address.lower() for w in self.list_wallets()):
            raise ConfigError(f"Error: Wallet already added: {address}")
        return self.add_wallet(address, balance=str(parse_balance(balance)), label=label)

    def remove_wallet(self, wallet_id: str) -> bool:
        wallets = self.list_wallets()
        kept = [w for w in wallets if w.id != wallet_id]
        self.save_wallets(kept)
        return len(kept) != len(wallets)

    def update_wallet(self, wallet_id: str, **changes: Any) -> Wallet:
        wallets = self.list_wallets()
        for wallet in wallets:
            if wallet.id == wallet_id:
                for key, value in changes.items():
                    if key not in {"balance", "label", "is_connected"}:
                        raise ConfigError(f'Error: Unknown wallet field "{key}".')
                    setattr(wallet, key, value)
                self.save_wallets(wallets)
                return wallet
        raise ConfigError(f'Error: Unknown wallet "{wallet_id}".')

    def get_total_balance(self) -> str:
        total = sum_decimals(parse_balance(w.balance) for w in self.list_wallets())
        return quantize_decimal(total, BALANCE_QUANTUM)


CONFIG_UPDATE_FIELDS = {
    "enabled",
    "day_of_week",
    "time_of_day",
    "percentage",
    "source_wallet_id",
    "token_type",
}


class BurnScheduler:
    """Owns the weekly burn schedule and performs due burns."""

    def __init__(
        self,
        store: KeyValueStore,
        wallets: WalletRegistry,
        invoker: ActionInvoker,
        clock: Optional[Clock] = None,
        tz: Optional[tzinfo] = None,
        poll_seconds: int = DEFAULT_POLL_SECONDS,
    ) -> None:
        self.schedule_store = ScheduleStore(store)
        self.wallets = wallets
        self.invoker = invoker
        self.clock = clock or utc_now
        self.tz = tz or UTC
        self.poll_seconds = poll_seconds

    def now(self) -> datetime:
        return _ensure_aware_utc(self.clock())

    def next_occurrence(self, day_of_week: int, time_of_day: str, inclusive: bool = True) -> datetime:
        return calculate_next_burn_time(
            day_of_week, time_of_day, now=self.now(), tz=self.tz, inclusive=inclusive
        )

    def default_config(self) -> ScheduleConfig:
        return ScheduleConfig(
            enabled=False,
            day_of_week=1,
            time_of_day="09:00",
            percentage=MIN_PERCENTAGE,
            source_wallet_id="",
            token_type=TOKEN_ETH,
            next_scheduled=self.next_occurrence(1, "09:00"),
            last_executed=None,
        )

    def get_config(self) -> ScheduleConfig:
        config = self.schedule_store.load_config()
        if config is None:
            config = self.default_config()
            self.schedule_store.save_config(config)
        return config

    def save_config(self, **updates: Any) -> ScheduleConfig:
        unknown = set(updates) - CONFIG_UPDATE_FIELDS
        if unknown:
            raise ConfigError(f"Error: Unknown schedule fields: {sorted(unknown)}.")
        config = self.get_config()
        slot = (config.enabled, config.day_of_week, config.time_of_day)
        if "enabled" in updates:
            config.enabled = ensure_bool(updates["enabled"], "enabled", config.enabled)
        if "day_of_week" in updates:
            config.day_of_week = validate_day_of_week(updates["day_of_week"], "dayOfWeek")
        if "time_of_day" in updates:
            config.time_of_day = parse_hhmm(updates["time_of_day"], "timeOfDay")[2]
        if "percentage" in updates:
            config.percentage = validate_percentage(updates["percentage"], "percentage")
        if "source_wallet_id" in updates:
            wallet_id = updates["source_wallet_id"] or ""
            if not isinstance(wallet_id, str):
                raise ConfigError("Error: sourceWalletId must be a string.")
            config.source_wallet_id = wallet_id.strip()
        if "token_type" in updates:
            config.token_type = parse_token_type(updates["token_type"], "tokenType")

        # A wallet/percentage/token edit keeps a pending occurrence due.
        stale = self.now() - config.next_scheduled >= EXECUTION_WINDOW
        if stale or slot != (config.enabled, config.day_of_week, config.time_of_day):
            config.next_scheduled = self.next_occurrence(config.day_of_week, config.time_of_day)
        self.schedule_store.save_config(config)
        logger.info(
            "Saved burn schedule: enabled=%s, %s %s, %s%% %s, next=%s",
            config.enabled,
            get_day_name(config.day_of_week),
            config.time_of_day,
            config.percentage,
            config.token_type,
            config.next_scheduled.astimezone(self.tz).isoformat(),
        )
        return config

    def reset(self) -> None:
        self.schedule_store.delete_config()
        logger.info("Burn schedule reset to defaults.")

    def get_history(self) -> List[ScheduleRecord]:
        return self.schedule_store.load_history()

    def clear_history(self) -> None:
        self.schedule_store.clear_history()
        logger.info("Burn schedule history cleared.")

    def get_total_burned(self, include_manual: bool = False) -> str:
        amounts = [parse_balance(r.amount) for r in self.get_history() if r.status == STATUS_EXECUTED]
        if include_manual:
            amounts.extend(parse_balance(r.amount) for r in self.get_burn_history())
        return quantize_decimal(sum_decimals(amounts), AMOUNT_QUANTUM)

    def get_burn_history(self) -> List[BurnRecord]:
        return self.schedule_store.load_burn_history()

    def burn_now(self, amount: Any, income_amount: str = "0") -> BurnRecord:
        """Burn a fixed ETH amount immediately.

        Signer errors propagate and leave no record behind.
        """
        try:
            value = Decimal(str(amount).strip())
        except InvalidOperation as exc:
            raise ConfigError(f'Error: burn amount must be a number, got "{amount}".') from exc
        if not value.is_finite() or value <= 0:
            raise ConfigError(f'Error: burn amount must be greater than 0, got "{amount}".')
        burn_amount = quantize_decimal(value, AMOUNT_QUANTUM)
        if Decimal(burn_amount) <= 0:
            raise ConfigError(f'Error: burn amount rounds to 0, got "{amount}".')

        now = self.now()
        logger.info("Burning %s %s on demand.", burn_amount, TOKEN_ETH)
        tx_hash = self._dispatch(TOKEN_ETH, burn_amount)
        record = BurnRecord(
            id=f"burn_{to_millis(now)}_{uuid.uuid4().hex[:6]}",
            timestamp=now,
            amount=burn_amount,
            tx_hash=tx_hash,
            income_amount=income_amount,
        )
        self.schedule_store.append_burn_record(record)
        logger.info("Burn confirmed: %s", tx_hash)
        return record

    def burn_from_income(self, income: Any, percentage: Optional[float] = None) -> Optional[BurnRecord]:
        """Burn a share of received income; None when there is nothing worth burning."""
        income_value = parse_balance(income)
        if income_value <= 0:
            return None
        if percentage is None:
            percentage = self.get_config().percentage
        percentage = validate_percentage(percentage, "percentage")
        burn_amount = calculate_burn_amount(income_value, percentage)
        if Decimal(burn_amount) < MIN_BURN_AMOUNT:
            logger.info("Burn amount %s below %s; skipping.", burn_amount, MIN_BURN_AMOUNT)
            return None
        return self.burn_now(burn_amount, income_amount=str(income_value))

    def is_due(self, now: Optional[datetime] = None) -> bool:
        return should_execute_burn(self.get_config(), now or self.now())

    def advance_schedule(self, config: ScheduleConfig, now: datetime) -> None:
        anchor = max(_ensure_aware_utc(now), _ensure_aware_utc(config.next_scheduled))
        config.next_scheduled = calculate_next_burn_time(
            config.day_of_week, config.time_of_day, now=anchor, tz=self.tz, inclusive=False
        )
        self.schedule_store.save_config(config)

    def mark_burn_executed(self, config: ScheduleConfig, now: datetime) -> None:
        config.last_executed = now
        self.advance_schedule(config, now)

    def _record(
        self,
        config: ScheduleConfig,
        now: datetime,
        amount: str,
        status: str,
        tx_hash: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ScheduleRecord:
        record = ScheduleRecord(
            id=f"{to_millis(now)}-{uuid.uuid4().hex[:8]}",
            timestamp=now,
            scheduled_time=config.next_scheduled,
            amount=amount,
            token_type=config.token_type,
            status=status,
            tx_hash=tx_hash,
            error=error,
        )
        self.schedule_store.append_record(record)
        return record

    def _resolve_source_wallet(self, config: ScheduleConfig) -> Wallet:
        if not config.source_wallet_id:
            raise ConfigError("No source wallet selected")
        wallet = self.wallets.find_wallet(config.source_wallet_id)
        if wallet is None:
            raise ConfigError("Wallet not found")
        return wallet

    def _dispatch(self, token_type: str, amount: str) -> str:
        if token_type not in VALID_TOKEN_TYPES:
            raise UnsupportedActionError("Unknown token type")
        try:
            tx_hash = self.invoker.invoke(token_type, amount)
        except (UnsupportedActionError, InvocationError):
            raise
        except Exception as exc:
            raise InvocationError(str(exc) or exc.__class__.__name__) from exc
        if not isinstance(tx_hash, str) or not tx_hash:
            raise InvocationError("Signer returned no transaction hash")
        return tx_hash

    def check_and_execute(self, now: Optional[datetime] = None) -> bool:
        """Burn if the schedule is due; returns True only when a burn executed."""
        now = _ensure_aware_utc(now or self.now())
        config = self.get_config()
        if not should_execute_burn(config, now):
            return False

        logger.info(
            "Scheduled burn time reached (%s); executing.",
            config.next_scheduled.astimezone(self.tz).isoformat(),
        )

        try:
            wallet = self._resolve_source_wallet(config)
        except ConfigError as exc:
            # Left due so a corrected wallet can still fire inside the window.
            logger.error("Scheduled burn failed: %s", exc)
            self._record(config, now, amount="0", status=STATUS_FAILED, error=str(exc))
            return False

        balance = parse_balance(wallet.balance)
        amount = calculate_burn_amount(balance, config.percentage)
        try:
            ensure_burnable_balance(balance)
        except InsufficientBalanceError as exc:
            logger.warning("Scheduled burn skipped: %s (wallet %s)", exc, wallet.id)
            self._record(config, now, amount=amount, status=STATUS_SKIPPED, error=str(exc))
            self.mark_burn_executed(config, now)
            return False

        logger.warning("Executing scheduled burn: %s %s", amount, config.token_type)
        try:
            tx_hash = self._dispatch(config.token_type, amount)
        except (UnsupportedActionError, InvocationError) as exc:
            logger.error("Scheduled burn failed: %s", exc)
            self._record(config, now, amount=amount, status=STATUS_FAILED, error=str(exc))
            self.advance_schedule(config, now)
            return False

        self._record(config, now, amount=amount, status=STATUS_EXECUTED, tx_hash=tx_hash)
        self.mark_burn_executed(config, now)
        logger.info(
            "Scheduled burn executed: %s %s tx=%s; next=%s",
            amount,
            config.token_type,
            tx_hash,
            config.next_scheduled.astimezone(self.tz).isoformat(),
        )
        return True

    def run_due_check_once(self) -> bool:
        return self.check_and_execute()

    def start_polling(self, interval_seconds: Optional[int] = None) -> "BurnChecker":
        checker = BurnChecker(self, interval_seconds or self.poll_seconds)
        return checker.start()

    def stop_polling(self, handle: "BurnChecker", timeout_seconds: Optional[float] = None) -> None:
        handle.stop(timeout_seconds=timeout_seconds)


class BurnChecker:
    """Runs one burn check now and then every ``interval_seconds``.

    Each check runs on its own worker thread. A tick that arrives while a
    check is still in flight is dropped, not queued.
    """

    def __init__(self, scheduler: BurnScheduler, interval_seconds: float = DEFAULT_POLL_SECONDS):
        if interval_seconds <= 0:
            raise StokerError("interval_seconds must be > 0")
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.ticks = 0
        self.skipped_ticks = 0
        self._busy = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def start(self) -> "BurnChecker":
        if self.running:
            return self
        logger.info("Starting automatic burn checker (every %ss).", self.interval_seconds)
        self._stop_event.clear()
        self.tick()
        self._thread = threading.Thread(target=self._run, daemon=True, name="stoker-burn-checker")
        self._thread.start()
        return self

    def stop(self, timeout_seconds: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout_seconds)
        self.join(timeout_seconds)
        logger.info("Stopped automatic burn checker.")

    def join(self, timeout_seconds: Optional[float] = None) -> None:
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=timeout_seconds)

    def tick(self) -> bool:
        """Start a check unless one is in flight; returns whether it started."""
        self.ticks += 1
        if not self._busy.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.info("Burn check still in flight; skipping tick.")
            return False
        worker = threading.Thread(target=self._cycle, daemon=True, name="stoker-burn-check")
        self._worker = worker
        try:
            worker.start()
        except RuntimeError:
            self._busy.release()
            raise
        return True

    def _cycle(self) -> None:
        try:
            self.scheduler.run_due_check_once()
        except Exception as exc:
            logger.exception("Burn check failed: %s", exc)
        finally:
            self._busy.release()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.tick()
            except Exception as exc:  # pragma: no cover - defensive
                logger.exception("Burn checker tick error: %s", exc)


def _load_config_payload(config_path: Path) -> Dict[str, Any]:
    require_yaml_dependency()
    if not config_path.exists():
        return {}

    try:
        payload = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error: Failed to parse YAML in {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Error: Top-level config must be a mapping.")
    return payload


def parse_signer_settings(raw: Any, field_path: str = "signer") -> SignerSettings:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Error: {field_path} must be a mapping.")

    unknown = set(raw.keys()) - {"endpoint", "api_key", "timeout_ms", "resonant_369_mode"}
    if unknown:
        raise ConfigError(f"Error: Unknown keys in {field_path}: {sorted(unknown)}.")

    endpoint = raw.get("endpoint")
    if endpoint is None:
        endpoint = os.getenv("STOKER_SIGNER_ENDPOINT", "")
    if not isinstance(endpoint, str):
        raise ConfigError(f"Error: {field_path}.endpoint must be a string.")
    endpoint = endpoint.strip()
    if endpoint and not (endpoint.startswith("http://") or endpoint.startswith("https://")):
        raise ConfigError(f"Error: {field_path}.endpoint must be an HTTP URL.")

    api_key = raw.get("api_key")
    if api_key is None:
        api_key = os.getenv("STOKER_SIGNER_API_KEY", "")
    if not isinstance(api_key, str):
        raise ConfigError(f"Error: {field_path}.api_key must be a string.")

    return SignerSettings(
        endpoint=endpoint,
        api_key=api_key,
        timeout_ms=ensure_int(raw.get("timeout_ms"), f"{field_path}.timeout_ms", DEFAULT_SIGNER_TIMEOUT_MS, 1),
        resonant_369_mode=ensure_bool(raw.get("resonant_369_mode"), f"{field_path}.resonant_369_mode", True),
    )


def parse_settings(config_path: Path) -> StokerSettings:
    payload = _load_config_payload(config_path)

    unknown_top = set(payload.keys()) - {"version", "store", "timezone", "poll_seconds", "signer"}
    if unknown_top:
        raise ConfigError(f"Error: Unknown top-level keys: {sorted(unknown_top)}.")

    version = payload.get("version", 1)
    if version != 1:
        raise ConfigError(f"Error: Unsupported config version {version!r}; expected 1.")

    store_raw = payload.get("store", DEFAULT_STORE)
    store_path = Path(ensure_str(store_raw, "store"))
    if not store_path.is_absolute():
        store_path = (config_path.parent / store_path).resolve()

    if "timezone" in payload:
        tz_name = ensure_str(payload["timezone"], "timezone")
        zone: tzinfo = parse_timezone(tz_name, "timezone")
    else:
        zone, tz_name = system_timezone()

    return StokerSettings(
        config_path=config_path,
        store_path=store_path,
        timezone=zone,
        timezone_name=tz_name,
        poll_seconds=ensure_int(payload.get("poll_seconds"), "poll_seconds", DEFAULT_POLL_SECONDS, 1),
        signer=parse_signer_settings(payload.get("signer"), "signer"),
    )


def build_scheduler(settings: StokerSettings, invoker: Optional[ActionInvoker] = None) -> BurnScheduler:
    store = JsonFileStore(settings.store_path)
    if invoker is None:
        from signer_client import SignerInvoker

        invoker = SignerInvoker.from_settings(settings.signer)
    return BurnScheduler(
        store=store,
        wallets=StoredWalletRegistry(store),
        invoker=invoker,
        tz=settings.timezone,
        poll_seconds=settings.poll_seconds,
    )


def _local(value: Optional[datetime], zone: tzinfo) -> str:
    if value is None:
        return "never"
    return value.astimezone(zone).isoformat()


def command_show(settings: StokerSettings) -> int:
    scheduler = build_scheduler(settings)
    config = scheduler.get_config()
    remaining = get_time_until_next_burn(config, scheduler.now())
    print(f"Burn schedule ({settings.store_path})")
    print(f"Enabled: {config.enabled}")
    print(f"When: every {get_day_name(config.day_of_week)} at {config.time_of_day} ({settings.timezone_name})")
    print(f"Percentage: {config.percentage}%")
    print(f"Token: {config.token_type}")
    print(f"Source wallet: {config.source_wallet_id or '(none)'}")
    print(f"Last executed: {_local(config.last_executed, settings.timezone)}")
    print(f"Next burn: {_local(config.next_scheduled, settings.timezone)} (in {format_time_until_burn(remaining)})")
    print(f"Total burned: {scheduler.get_total_burned()}")
    return 0


def command_configure(settings: StokerSettings, updates: Dict[str, Any]) -> int:
    if not updates:
        raise StokerError("Nothing to update; pass at least one option.")
    scheduler = build_scheduler(settings)
    wallet_id = updates.get("source_wallet_id")
    if wallet_id and scheduler.wallets.find_wallet(wallet_id) is None:
        logger.warning("Wallet %s is not registered; scheduled burns will fail until it is.", wallet_id)
    config = scheduler.save_config(**updates)
    print(f"Next burn: {_local(config.next_scheduled, settings.timezone)}")
    return 0


def command_preview(settings: StokerSettings, count: int) -> int:
    scheduler = build_scheduler(settings)
    config = scheduler.get_config()
    print(f"Cron equivalent: {cron_expression(config)} (CRON_TZ={settings.timezone_name})")
    print(f"Next {count} burn(s):")
    for run_dt in next_burn_times(config, count, now=scheduler.now(), tz=settings.timezone):
        print(f"- {run_dt.isoformat()}")
    return 0


def command_history(settings: StokerSettings, limit: int, manual: bool = False) -> int:
    scheduler = build_scheduler(settings)
    if manual:
        burns = scheduler.get_burn_history()
        if not burns:
            print("No manual burns recorded.")
            return 0
        for burn in burns[:limit]:
            line = f"{_local(burn.timestamp, settings.timezone)} {burn.amount} {TOKEN_ETH} tx={burn.tx_hash}"
            if burn.income_amount != "0":
                line += f" income={burn.income_amount}"
            print(line)
        return 0
    history = scheduler.get_history()
    if not history:
        print("No scheduled burns recorded.")
        return 0
    for record in history[:limit]:
        line = (
            f"{_local(record.timestamp, settings.timezone)} {record.status:<8} "
            f"{record.amount} {record.token_type}"
        )
        if record.tx_hash:
            line += f" tx={record.tx_hash}"
        if record.error:
            line += f" error={record.error}"
        print(line)
    return 0


def command_clear_history(settings: StokerSettings) -> int:
    build_scheduler(settings).clear_history()
    return 0


def command_reset(settings: StokerSettings) -> int:
    build_scheduler(settings).reset()
    return 0


def command_wallets(settings: StokerSettings, args: argparse.Namespace) -> int:
    registry = StoredWalletRegistry(JsonFileStore(settings.store_path))
    if args.wallet_command == "list":
        wallets = registry.list_wallets()
        if not wallets:
            print("No wallets registered.")
        for wallet in wallets:
            print(f"- {wallet.id}: {wallet.label} {wallet.address} balance={wallet.balance} ({wallet.type})")
        print(f"Total balance: {registry.get_total_balance()}")
        return 0
    if args.wallet_command == "add":
        wallet = registry.add_manual_wallet(args.address, label=args.label, balance=args.balance)
        print(f"Added wallet {wallet.id}")
        return 0
    if args.wallet_command == "remove":
        if not registry.remove_wallet(args.wallet_id):
            raise StokerError(f'Unknown wallet "{args.wallet_id}".')
        print(f"Removed wallet {args.wallet_id}")
        return 0
    if args.wallet_command == "set-balance":
        registry.update_wallet(args.wallet_id, balance=str(parse_balance(args.balance)))
        print(f"Updated balance for {args.wallet_id}")
        return 0
    raise StokerError(f"Unsupported wallets command: {args.wallet_command}")


def command_run(settings: StokerSettings) -> int:
    scheduler = build_scheduler(settings)
    if not scheduler.is_due():
        logger.info("Skipping burn: not due now.")
        return 0
    executed = scheduler.run_due_check_once()
    return 0 if executed else 1


def command_burn(
    settings: StokerSettings,
    amount: Optional[str],
    income: Optional[str],
    percentage: Optional[float],
) -> int:
    if (amount is None) == (income is None):
        raise StokerError("Pass either an amount or --income.")
    scheduler = build_scheduler(settings)
    if amount is not None:
        record: Optional[BurnRecord] = scheduler.burn_now(amount)
    else:
        record = scheduler.burn_from_income(income, percentage)
    if record is None:
        print("Nothing to burn.")
        return 0
    print(f"Burned {record.amount} {TOKEN_ETH} tx={record.tx_hash}")
    return 0


def command_daemon(settings: StokerSettings, poll_seconds: int) -> int:
    scheduler = build_scheduler(settings)
    handle = scheduler.start_polling(poll_seconds)
    try:
        while handle.running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Daemon interrupted by user.")
        return 130
    finally:
        scheduler.stop_polling(handle, timeout_seconds=5)
    return 0


def command_export_cron(settings: StokerSettings) -> int:
    config = build_scheduler(settings).get_config()
    stoker_path = Path(__file__).resolve()
    print("# stoker.py cron export")
    print(f"# generated_at={utc_now().isoformat()}")
    print(f"CRON_TZ={settings.timezone_name}")
    print(
        f"{cron_expression(config)} {sys.executable} {stoker_path} "
        f"--config {settings.config_path} run"
    )
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="stoker.py weekly token-burn scheduler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to stoker YAML config (default: {DEFAULT_CONFIG})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("show", help="Show the burn schedule")

    configure_parser = subparsers.add_parser("configure", help="Update the burn schedule")
    toggle = configure_parser.add_mutually_exclusive_group()
    toggle.add_argument("--enable", dest="enabled", action="store_true", default=None)
    toggle.add_argument("--disable", dest="enabled", action="store_false")
    configure_parser.add_argument("--day", help="Weekday name or 0-6 (0 = Sunday)")
    configure_parser.add_argument("--time", help="Time of day, HH:MM (24-hour)")
    configure_parser.add_argument("--percentage", type=float, help=f"{MIN_PERCENTAGE}-{MAX_PERCENTAGE}")
    configure_parser.add_argument("--wallet", help="Source wallet id")
    configure_parser.add_argument("--token", choices=VALID_TOKEN_TYPES, help="Token to burn")

    preview_parser = subparsers.add_parser("preview", help="Show upcoming burn times")
    preview_parser.add_argument("--count", type=int, default=DEFAULT_PREVIEW_COUNT, help="Next burn count")

    history_parser = subparsers.add_parser("history", help="Show scheduled burn history")
    history_parser.add_argument("--limit", type=int, default=DEFAULT_HISTORY_LIMIT, help="Entries to show")
    history_parser.add_argument("--manual", action="store_true", help="Show on-demand burns instead")

    subparsers.add_parser("clear-history", help="Delete scheduled burn history")
    subparsers.add_parser("reset", help="Reset the burn schedule to defaults")

    wallets_parser = subparsers.add_parser("wallets", help="Manage source wallets")
    wallet_sub = wallets_parser.add_subparsers(dest="wallet_command", required=True)
    wallet_sub.add_parser("list", help="List wallets")
    add_parser = wallet_sub.add_parser("add", help="Add a watch-only wallet")
    add_parser.add_argument("address")
    add_parser.add_argument("--label", default="Watch Wallet")
    add_parser.add_argument("--balance", default="0")
    remove_parser = wallet_sub.add_parser("remove", help="Remove a wallet")
    remove_parser.add_argument("wallet_id")
    balance_parser = wallet_sub.add_parser("set-balance", help="Record a wallet balance")
    balance_parser.add_argument("wallet_id")
    balance_parser.add_argument("balance")

    subparsers.add_parser("run", help="Burn once if currently due")

    burn_parser = subparsers.add_parser("burn", help="Burn ETH immediately")
    burn_parser.add_argument("amount", nargs="?", help="ETH amount to burn")
    burn_parser.add_argument("--income", help="Burn a share of this income instead")
    burn_parser.add_argument("--percentage", type=float, help="Share of income (default: schedule percentage)")

    daemon_parser = subparsers.add_parser("daemon", help="Run the burn checker loop")
    daemon_parser.add_argument(
        "--poll-seconds",
        type=int,
        default=None,
        help=f"Polling interval in seconds (default: config or {DEFAULT_POLL_SECONDS})",
    )

    subparsers.add_parser("export-cron", help="Export a cron line for the schedule")

    return parser.parse_args(argv)


def _configure_updates(args: argparse.Namespace) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    if args.enabled is not None:
        updates["enabled"] = args.enabled
    if args.day is not None:
        updates["day_of_week"] = args.day
    if args.time is not None:
        updates["time_of_day"] = args.time
    if args.percentage is not None:
        updates["percentage"] = args.percentage
    if args.wallet is not None:
        updates["source_wallet_id"] = args.wallet
    if args.token is not None:
        updates["token_type"] = args.token
    return updates


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config_path = Path(args.config or DEFAULT_CONFIG).resolve()

    try:
        settings = parse_settings(config_path)
        if args.command == "show":
            return command_show(settings)
        if args.command == "configure":
            return command_configure(settings, _configure_updates(args))
        if args.command == "preview":
            if args.count <= 0:
                raise StokerError("--count must be >= 1")
            return command_preview(settings, args.count)
        if args.command == "history":
            if args.limit <= 0:
                raise StokerError("--limit must be >= 1")
            return command_history(settings, args.limit, manual=args.manual)
        if args.command == "clear-history":
            return command_clear_history(settings)
        if args.command == "reset":
            return command_reset(settings)
        if args.command == "wallets":
            return command_wallets(settings, args)
        if args.command == "run":
            return command_run(settings)
        if args.command == "burn":
            return command_burn(settings, args.amount, args.income, args.percentage)
        if args.command == "daemon":
            poll_seconds = args.poll_seconds or settings.poll_seconds
            if poll_seconds <= 0:
                raise StokerError("--poll-seconds must be >= 1")
            return command_daemon(settings, poll_seconds)
        if args.command == "export-cron":
            return command_export_cron(settings)
        raise StokerError(f"Unsupported command: {args.command}")
    except StokerError as exc:
        logger.error(str(exc))
        return 1
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception("Unexpected error: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
