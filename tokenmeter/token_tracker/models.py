"""Shared data shapes: session blocks, daily records and the plan ladder.

Blocks and daily records arrive from the external usage loader in its
camelCase JSON shape; both spellings are accepted.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


# ── Plan ladder ──────────────────────────────────────────────────────────────


class PlanType(str, Enum):
    PRO = "Pro"
    MAX5 = "Max5"
    MAX20 = "Max20"
    CUSTOM = "Custom"


# Ascending order matters: plan fitting walks this ladder bottom-up.
PLAN_LADDER: tuple[PlanType, ...] = (PlanType.PRO, PlanType.MAX5, PlanType.MAX20, PlanType.CUSTOM)

PLAN_LIMITS: dict[PlanType, int] = {
    PlanType.PRO: 7_000,
    PlanType.MAX5: 35_000,
    PlanType.MAX20: 140_000,
    PlanType.CUSTOM: 500_000,  # default until a custom limit is detected or set
}


def coerce_plan(value: PlanType | str | None) -> PlanType | None:
    """Accept 'Max5', 'max5' or a PlanType; unknown names map to None."""
    if value is None or isinstance(value, PlanType):
        return value
    for plan in PlanType:
        if plan.value.lower() == str(value).lower():
            return plan
    return None


# ── Session blocks ───────────────────────────────────────────────────────────


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TokenCounts(BaseModel):
    """Per-category token counts for one block."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    input_tokens: int = Field(0, alias="inputTokens", ge=0)
    output_tokens: int = Field(0, alias="outputTokens", ge=0)
    cache_creation_tokens: int = Field(0, alias="cacheCreationInputTokens", ge=0)
    cache_read_tokens: int = Field(0, alias="cacheReadInputTokens", ge=0)

    @property
    def total(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )


class SessionBlock(BaseModel):
    """A contiguous interval of usage, as reported by the usage loader.

    Gap blocks represent inactivity and are excluded from all token math.
    For an active block the effective end of any calculation is "now",
    not ``end_time``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    actual_end_time: datetime | None = Field(None, alias="actualEndTime")
    is_active: bool = Field(False, alias="isActive")
    is_gap: bool = Field(False, alias="isGap")
    token_counts: TokenCounts = Field(default_factory=TokenCounts, alias="tokenCounts")
    reported_total: int | None = Field(None, alias="totalTokens")
    cost_usd: float = Field(0.0, alias="costUSD")
    models: list[str] = Field(default_factory=list)

    @field_validator("start_time", "end_time", "actual_end_time")
    @classmethod
    def _normalize_tz(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value) if value is not None else None

    @field_validator("cost_usd", mode="before")
    @classmethod
    def _none_cost(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    @model_validator(mode="after")
    def _check_order(self) -> "SessionBlock":
        if self.start_time > self.end_time:
            raise ValueError(
                f"block {self.id}: start_time {self.start_time.isoformat()} "
                f"is after end_time {self.end_time.isoformat()}"
            )
        return self

    @property
    def total_tokens(self) -> int:
        # A reported total of 0 falls back to the category sum
        if self.reported_total:
            return self.reported_total
        return self.token_counts.total

    @property
    def is_completed(self) -> bool:
        return not self.is_active and not self.is_gap

    def effective_end(self, now: datetime) -> datetime:
        """End of the block for calculations: now if active, else the real end."""
        if self.is_active:
            return now
        return self.actual_end_time or self.end_time


def parse_blocks(raw: Any) -> list[SessionBlock]:
    """Validate loader output into blocks, skipping malformed entries.

    Accepts either ``{"blocks": [...]}`` or a bare list.
    """
    if isinstance(raw, dict):
        raw = raw.get("blocks", [])
    if not isinstance(raw, list):
        logger.warning("Expected a list of blocks, got %s", type(raw).__name__)
        return []

    blocks: list[SessionBlock] = []
    for i, entry in enumerate(raw):
        try:
            blocks.append(SessionBlock.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping malformed block #%d: %s", i, e.errors()[0].get("msg", e))
    return blocks


# ── Daily records ────────────────────────────────────────────────────────────


class ModelUsage(BaseModel):
    """One model's share of a day's usage."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())

    model_name: str = Field("unknown", alias="modelName")
    input_tokens: int = Field(0, alias="inputTokens")
    output_tokens: int = Field(0, alias="outputTokens")
    cache_creation_tokens: int = Field(0, alias="cacheCreationTokens")
    cache_read_tokens: int = Field(0, alias="cacheReadTokens")
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )


class DailyUsageRecord(BaseModel):
    """Aggregated usage for a single calendar day."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    day: date = Field(alias="date")
    input_tokens: int = Field(0, alias="inputTokens")
    output_tokens: int = Field(0, alias="outputTokens")
    cache_creation_tokens: int = Field(0, alias="cacheCreationTokens")
    cache_read_tokens: int = Field(0, alias="cacheReadTokens")
    reported_total: int = Field(0, alias="totalTokens")
    total_cost: float = Field(0.0, alias="totalCost")
    model_breakdowns: list[ModelUsage] = Field(default_factory=list, alias="modelBreakdowns")

    @property
    def total_tokens(self) -> int:
        if self.reported_total:
            return self.reported_total
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_creation_tokens
            + self.cache_read_tokens
        )


def parse_daily(raw: Any) -> list[DailyUsageRecord]:
    """Validate ``{"daily": [...]}`` or a bare list, skipping malformed days."""
    if isinstance(raw, dict):
        raw = raw.get("daily", [])
    if not isinstance(raw, list):
        return []

    records: list[DailyUsageRecord] = []
    for i, entry in enumerate(raw):
        try:
            records.append(DailyUsageRecord.model_validate(entry))
        except ValidationError as e:
            logger.warning("Skipping malformed daily record #%d: %s", i, e.errors()[0].get("msg", e))
    return records
