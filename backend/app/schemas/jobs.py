"""Outcome records for batch (scheduled) jobs."""

from enum import Enum

from pydantic import BaseModel, Field


class ItemOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


class ItemResult(BaseModel):
    """What happened to one user or entity during a batch run."""

    item_id: int
    outcome: ItemOutcome
    reason: str | None = None
    details: dict = Field(default_factory=dict)


class BatchResult(BaseModel):
    job: str
    results: list[ItemResult] = Field(default_factory=list)

    def record(
        self,
        item_id: int,
        outcome: ItemOutcome,
        reason: str | None = None,
        **details: object,
    ) -> ItemResult:
        result = ItemResult(item_id=item_id, outcome=outcome, reason=reason, details=details)
        self.results.append(result)
        return result

    def _count(self, outcome: ItemOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return self._count(ItemOutcome.SUCCEEDED)

    @property
    def skipped(self) -> int:
        return self._count(ItemOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(ItemOutcome.FAILED)
