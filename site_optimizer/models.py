"""Result types shared by the optimization stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


@dataclass
class FileOutcome:
    """What happened to a single file during a stage."""

    path: Path
    ok: bool
    original_bytes: int = 0
    final_bytes: int = 0
    error: Optional[str] = None

    @classmethod
    def success(cls, path: Path, original_bytes: int, final_bytes: int) -> "FileOutcome":
        return cls(path=path, ok=True, original_bytes=original_bytes, final_bytes=final_bytes)

    @classmethod
    def failure(cls, path: Path, error: BaseException | str) -> "FileOutcome":
        return cls(path=path, ok=False, error=str(error))

    @property
    def reduction_percent(self) -> float:
        if not self.original_bytes:
            return 0.0
        return (self.original_bytes - self.final_bytes) / self.original_bytes * 100


@dataclass
class StageReport:
    """Per-file outcomes collected while a stage walks the output tree."""

    stage: str
    outcomes: List[FileOutcome] = field(default_factory=list)

    def record(self, outcome: FileOutcome) -> FileOutcome:
        self.outcomes.append(outcome)
        return outcome

    @property
    def succeeded(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def total_original_bytes(self) -> int:
        return sum(outcome.original_bytes for outcome in self.succeeded)

    @property
    def total_final_bytes(self) -> int:
        return sum(outcome.final_bytes for outcome in self.succeeded)

    @property
    def total_reduction_percent(self) -> float:
        """Reduction across all successful files, weighted by size."""
        original = self.total_original_bytes
        if not original:
            return 0.0
        return (original - self.total_final_bytes) / original * 100

    @property
    def average_reduction_percent(self) -> float:
        """Unweighted mean of the per-file reductions."""
        succeeded = self.succeeded
        if not succeeded:
            return 0.0
        return sum(outcome.reduction_percent for outcome in succeeded) / len(succeeded)
