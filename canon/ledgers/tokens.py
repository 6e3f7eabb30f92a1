"""
Token, cost, and CO2 accounting for AI calls.

Every provider call is recorded the moment it returns, accepted or not,
so the ledger reflects money actually spent. The file is a JSON array
appended in place; everything else here is read-side aggregation.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path

from pydantic import BaseModel, ValidationError

from canon.core.errors import PersistenceFailure
from canon.core.models import TokenUsageRecord
from canon.core.utils import Clock, utc_now
from canon.storage.local import append_json_array

logger = logging.getLogger(__name__)


# USD per 1M tokens: (input, output)
MODEL_PRICING: dict[str, tuple[float, float]] = {
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4o": (2.50, 10.00),
    "gpt-4-turbo": (10.00, 30.00),
    "gpt-4": (30.00, 60.00),
    "gemini-2.0-flash": (0.10, 0.40),
    "claude-3-5-haiku": (0.80, 4.00),
    "claude-3-5-sonnet": (3.00, 15.00),
}
DEFAULT_PRICING_MODEL = "gpt-4o-mini"

# Grams of CO2 per 1000 tokens
CO2_PER_1K_TOKENS = 0.1

DEFAULT_DAILY_CAP = 2_000_000


def _pricing(model: str) -> tuple[float, float]:
    name = model.split("/", 1)[-1].lower()
    if name in MODEL_PRICING:
        return MODEL_PRICING[name]
    # Dated snapshots, e.g. gpt-4o-mini-2024-07-18
    for known in sorted(MODEL_PRICING, key=len, reverse=True):
        if name.startswith(known):
            return MODEL_PRICING[known]
    return MODEL_PRICING[DEFAULT_PRICING_MODEL]


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD; unknown models are priced as gpt-4o-mini."""
    input_price, output_price = _pricing(model)
    return (input_tokens * input_price + output_tokens * output_price) / 1_000_000


def estimate_co2(total_tokens: int) -> float:
    """Estimated grams of CO2."""
    return total_tokens / 1000 * CO2_PER_1K_TOKENS


class UsageTotals(BaseModel):
    """Summed usage over a group of records."""

    operations: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    co2: float = 0.0

    def add(self, record: TokenUsageRecord) -> None:
        self.operations += 1
        self.input_tokens += record.input_tokens
        self.output_tokens += record.output_tokens
        self.total_tokens += record.total_tokens
        self.cost += record.cost
        self.co2 += record.co2


class TokenLedger:
    """
    Append-only token usage ledger.

    Usage:
        ledger = TokenLedger("data/token-usage.json")
        ledger.record("translation", "post-20261016-1a2b3c4d", "gpt-4o-mini", 1200, 900,
                      source_language="en", target_language="de")
        ledger.remaining_today()
    """

    def __init__(
        self,
        path: str | Path,
        daily_cap: int = DEFAULT_DAILY_CAP,
        clock: Clock = utc_now,
    ):
        self.path = Path(path)
        self.daily_cap = daily_cap
        self.clock = clock
        self._records: list[TokenUsageRecord] | None = None

    # =========================================================================
    # Write
    # =========================================================================

    def record(
        self,
        operation: str,
        canonical_id: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        source_language: str = "",
        target_language: str = "",
    ) -> TokenUsageRecord:
        """
        Append one usage record.

        Raises:
            PersistenceFailure: the ledger file could not be appended to
        """
        total = input_tokens + output_tokens
        usage = TokenUsageRecord(
            operation=operation,
            canonical_id=canonical_id,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total,
            cost=round(estimate_cost(model, input_tokens, output_tokens), 8),
            co2=round(estimate_co2(total), 6),
            timestamp=self.clock(),
            source_language=source_language,
            target_language=target_language,
        )

        try:
            append_json_array(self.path, usage.to_json_dict())
        except OSError as e:
            raise PersistenceFailure(f"Could not append to {self.path}: {e}") from e

        if self._records is not None:
            self._records.append(usage)
        logger.info(
            f"{operation} {canonical_id} [{model}]: {total} tokens, "
            f"${usage.cost:.6f}, {usage.co2:.4f}g CO2"
        )
        return usage

    # =========================================================================
    # Read
    # =========================================================================

    def records(self) -> list[TokenUsageRecord]:
        """
        All records, loaded once per ledger instance.

        Raises:
            PersistenceFailure: the file is not a JSON array of usage records
        """
        if self._records is not None:
            return self._records

        if not self.path.exists() or self.path.stat().st_size == 0:
            self._records = []
            return self._records

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, list):
                raise ValueError("expected a JSON array")
            self._records = [TokenUsageRecord.model_validate(item) for item in data]
        except (OSError, ValueError, ValidationError) as e:
            raise PersistenceFailure(
                f"Token ledger {self.path} is unreadable: {e}",
                context={"path": str(self.path)},
            ) from e
        return self._records

    def totals(self) -> UsageTotals:
        totals = UsageTotals()
        for record in self.records():
            totals.add(record)
        return totals

    def _group(self, key) -> dict[str, UsageTotals]:
        groups: dict[str, UsageTotals] = {}
        for record in self.records():
            groups.setdefault(key(record), UsageTotals()).add(record)
        return dict(sorted(groups.items()))

    def by_day(self) -> dict[str, UsageTotals]:
        return self._group(lambda r: r.timestamp.date().isoformat())

    def by_month(self) -> dict[str, UsageTotals]:
        return self._group(lambda r: r.timestamp.strftime("%Y-%m"))

    def by_operation(self) -> dict[str, UsageTotals]:
        return self._group(lambda r: r.operation)

    def by_canonical_id(self) -> dict[str, UsageTotals]:
        return self._group(lambda r: r.canonical_id)

    # =========================================================================
    # Daily cap
    # =========================================================================

    def _today(self) -> date:
        return self.clock().date()

    def tokens_on(self, day: date | datetime | str) -> int:
        if isinstance(day, datetime):
            day = day.date()
        if isinstance(day, date):
            day = day.isoformat()
        return sum(r.total_tokens for r in self.records() if r.timestamp.date().isoformat() == day)

    def remaining_today(self) -> int:
        return max(self.daily_cap - self.tokens_on(self._today()), 0)

    def is_cap_reached(self) -> bool:
        return self.remaining_today() <= 0

    # =========================================================================
    # Report
    # =========================================================================

    def render_report(self, day: date | str | None = None) -> str:
        """Markdown usage summary for one day plus overall totals."""
        day = day or self._today()
        day_str = day.isoformat() if isinstance(day, date) else day

        used = self.tokens_on(day_str)
        percent = used / self.daily_cap * 100 if self.daily_cap else 0.0
        today = self.by_day().get(day_str, UsageTotals())
        totals = self.totals()

        lines = [
            "# Token Usage Report",
            "",
            f"**Date:** {day_str}",
            "",
            "## Daily Cap",
            "",
            f"- Used: {used:,} / {self.daily_cap:,} tokens ({percent:.1f}%)",
            f"- Remaining: {max(self.daily_cap - used, 0):,} tokens",
            f"- Cost: ${today.cost:.4f}",
            f"- CO2: {today.co2:.2f}g",
            "",
            "## All Time",
            "",
            f"- Operations: {totals.operations:,}",
            f"- Tokens: {totals.total_tokens:,} "
            f"({totals.input_tokens:,} in / {totals.output_tokens:,} out)",
            f"- Cost: ${totals.cost:.4f}",
            f"- CO2: {totals.co2:.2f}g",
            "",
            "## By Operation",
            "",
            "| Operation | Calls | Tokens | Cost |",
            "|-----------|------:|-------:|-----:|",
        ]
        for operation, usage in self.by_operation().items():
            lines.append(
                f"| {operation} | {usage.operations} | {usage.total_tokens:,} | ${usage.cost:.4f} |"
            )

        lines += [
            "",
            "## Recent Operations",
            "",
            "| Timestamp | Operation | Content | Languages | Model | Tokens | Cost |",
            "|-----------|-----------|---------|-----------|-------|-------:|-----:|",
        ]
        for record in self.records()[-10:][::-1]:
            languages = f"{record.source_language}->{record.target_language}".strip("->")
            lines.append(
                f"| {record.timestamp.strftime('%Y-%m-%d %H:%M')} | {record.operation} "
                f"| {record.canonical_id} | {languages} | {record.model} "
                f"| {record.total_tokens:,} | ${record.cost:.6f} |"
            )

        return "\n".join(lines) + "\n"
