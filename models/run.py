"""
Run data structures
Operations, per-command results and the run context shared by runner and sequencer
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple


class Operation(Enum):
    """User-selectable run modes"""
    SNAPSHOTS = "snapshots"
    MAINTENANCE_QUICK = "maintenance-quick"
    MAINTENANCE_FULL = "maintenance-full"

    @classmethod
    def choices(cls) -> List[str]:
        return [op.value for op in cls]


OPERATION_HELP = {
    Operation.SNAPSHOTS: "snapshot every configured policy (except the global policy)",
    Operation.MAINTENANCE_QUICK: "run quick repository maintenance (--no-full)",
    Operation.MAINTENANCE_FULL: "run full repository maintenance (--full)",
}


class CommandOutcome(Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


class RunStatus(Enum):
    """Aggregate status for one wrapper invocation"""
    UNSET = "unset"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def format_elapsed(seconds: float) -> str:
    """Format wall time the way GNU time's %E does: M:SS.ss, or H:MM:SS past an hour"""
    if seconds < 0:
        seconds = 0.0
    if seconds < 3600:
        minutes, secs = divmod(seconds, 60)
        # 59.999 would otherwise render as 0:60.00
        if round(secs, 2) >= 60:
            minutes, secs = minutes + 1, 0.0
        return f"{int(minutes)}:{secs:05.2f}"
    whole = int(seconds)
    hours, rest = divmod(whole, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


@dataclass(frozen=True)
class CommandInvocation:
    """One executed kopia subcommand"""
    args: Tuple[str, ...]
    label: str
    exit_code: int
    elapsed_seconds: float

    @property
    def outcome(self) -> CommandOutcome:
        return CommandOutcome.SUCCESS if self.exit_code == 0 else CommandOutcome.FAILED

    @property
    def elapsed(self) -> str:
        return format_elapsed(self.elapsed_seconds)


class ResultTable:
    """Append-only summary of every command executed during a run"""

    HEADER = ("Result", "Code", "Elapsed", "Command")

    def __init__(self):
        self._rows: List[CommandInvocation] = []

    def append(self, invocation: CommandInvocation):
        self._rows.append(invocation)

    @property
    def rows(self) -> List[CommandInvocation]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __bool__(self) -> bool:
        return bool(self._rows)

    def format_lines(self) -> List[str]:
        """Render the header plus one line per invocation; empty when nothing ran"""
        if not self._rows:
            return []
        lines = [self._format_row(*self.HEADER)]
        for row in self._rows:
            lines.append(self._format_row(row.outcome.value, str(row.exit_code), row.elapsed, row.label))
        return lines

    @staticmethod
    def _format_row(result: str, code: str, elapsed: str, command: str) -> str:
        return f"{result:<8} {code:>4}  {elapsed:>10}  {command}"


@dataclass
class RunContext:
    """State accumulated over one wrapper run, threaded through sequencer and runner"""
    results: ResultTable = field(default_factory=ResultTable)
    status: RunStatus = RunStatus.UNSET
    completed: bool = False
    aborted_by: Optional[str] = None

    def record(self, invocation: CommandInvocation):
        """Append a result row; a failure marks the whole run failed for good"""
        self.results.append(invocation)
        if invocation.outcome is CommandOutcome.FAILED:
            self.status = RunStatus.FAILED
        elif self.status is RunStatus.UNSET:
            self.status = RunStatus.SUCCEEDED

    def mark_completed(self):
        self.completed = True

    @property
    def failed(self) -> bool:
        return self.status is RunStatus.FAILED

    @property
    def final_status(self) -> str:
        """Status string for notifications; Success needs at least one command and a finished run"""
        if self.status is RunStatus.SUCCEEDED and self.completed:
            return CommandOutcome.SUCCESS.value
        return CommandOutcome.FAILED.value
