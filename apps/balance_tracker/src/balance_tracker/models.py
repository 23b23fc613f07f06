"""Balance history record model and timestamp helpers."""

from dataclasses import dataclass
from datetime import datetime, tzinfo, UTC
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Optional


class BalanceSource(StrEnum):
    """Where a balance record came from."""

    MANUAL = "manual"
    BILL = "bill"
    FILL = "fill"
    CURRENT = "current"


def ms_to_iso(ts_ms: int) -> str:
    """Epoch milliseconds to ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return datetime_to_iso(datetime.fromtimestamp(ts_ms / 1000, tz=UTC))


def datetime_to_iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_instant(value: str, default_tz: tzinfo = UTC) -> datetime:
    """Parse an ISO-8601 string into an aware datetime.

    Naive values are interpreted in ``default_tz``.

    Raises:
        ValueError: If the string is not ISO-8601
    """
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz)
    return parsed


def display_fields(instant: datetime, tz: tzinfo) -> tuple[str, str]:
    """Local date (YYYY-MM-DD) and time (HH:MM) shown alongside a record."""
    local = instant.astimezone(tz)
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


@dataclass
class BalanceRecord:
    """One point of the balance timeline.

    ``timestamp`` is the unique key. ``bill_id``, ``trade_id`` and
    ``estimated_pnl`` are set only for bill and fill sourced records.
    """

    balance: Decimal
    timestamp: str
    source: BalanceSource = BalanceSource.MANUAL
    date: str = ""
    time: str = ""
    bill_id: Optional[str] = None
    trade_id: Optional[str] = None
    estimated_pnl: Optional[Decimal] = None

    @classmethod
    def create(
        cls,
        balance: Decimal,
        instant: datetime,
        source: BalanceSource,
        tz: tzinfo = UTC,
        **extra,
    ) -> "BalanceRecord":
        """Build a record at ``instant`` with display fields in ``tz``."""
        date, time = display_fields(instant, tz)
        return cls(
            balance=balance,
            timestamp=datetime_to_iso(instant),
            source=source,
            date=date,
            time=time,
            **extra,
        )

    @property
    def instant(self) -> datetime:
        return parse_instant(self.timestamp)

    def to_dict(self) -> dict:
        """JSON-ready dict using the persisted key names."""
        data = {
            "balance": str(self.balance),
            "timestamp": self.timestamp,
            "date": self.date,
            "time": self.time,
            "source": str(self.source),
        }
        if self.bill_id is not None:
            data["billId"] = self.bill_id
        if self.trade_id is not None:
            data["tradeId"] = self.trade_id
        if self.estimated_pnl is not None:
            data["estimatedPnl"] = str(self.estimated_pnl)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "BalanceRecord":
        """Inverse of to_dict. Records saved without a source are manual.

        Raises:
            ValueError: If balance or timestamp is missing or malformed
        """
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, str):
            raise ValueError(f"Record has no timestamp: {data!r}")
        parse_instant(timestamp)
        try:
            balance = Decimal(str(data["balance"]))
        except (KeyError, InvalidOperation) as e:
            raise ValueError(f"Record has no valid balance: {data!r}") from e

        pnl = data.get("estimatedPnl")
        return cls(
            balance=balance,
            timestamp=timestamp,
            source=BalanceSource(data.get("source") or BalanceSource.MANUAL),
            date=data.get("date", ""),
            time=data.get("time", ""),
            bill_id=data.get("billId"),
            trade_id=data.get("tradeId"),
            estimated_pnl=Decimal(str(pnl)) if pnl is not None else None,
        )
