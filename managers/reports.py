from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from tabulate import tabulate


class HostOutcome(Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED_NOT_CONNECTED = "skipped_not_connected"
    SKIPPED_SESSION_FAILED = "skipped_session_failed"
    SKIPPED_IN_USE = "skipped_in_use"
    SKIPPED_INVENTORY_FAILED = "skipped_inventory_failed"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped")


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of one management call against a host.

    Attributes:
        target (str): What the call acted on, e.g. 'vmhba65' or 'vmhba65/controller 256'.
        succeeded (bool): Whether the call reported success.
        message (str): Human-readable detail.
    """
    target: str
    succeeded: bool
    message: str = ""


@dataclass
class HostReport:
    """Per-host result of a cluster-wide routine."""
    host: str
    outcome: HostOutcome
    message: str = ""
    operations: List[OperationResult] = field(default_factory=list)
    rescanned: bool = False

    @classmethod
    def skipped(cls, host: str, outcome: HostOutcome, message: str) -> "HostReport":
        return cls(host=host, outcome=outcome, message=message)

    @classmethod
    def from_operations(cls, host: str, operations: List[OperationResult], rescanned: bool,
                        message: Optional[str] = None) -> "HostReport":
        """
        Derives the outcome from the individual operations: no failures is COMPLETED
        (including the case of nothing to do), some failures is PARTIAL and all
        failures is FAILED. A failed rescan downgrades COMPLETED to PARTIAL.
        """
        failed = [op for op in operations if not op.succeeded]
        if not failed:
            outcome = HostOutcome.COMPLETED if rescanned else HostOutcome.PARTIAL
        elif len(failed) == len(operations):
            outcome = HostOutcome.FAILED
        else:
            outcome = HostOutcome.PARTIAL
        if message is None:
            succeeded = len(operations) - len(failed)
            message = f"{succeeded}/{len(operations)} operation(s) succeeded"
            if not rescanned:
                message += ", rescan failed"
        return cls(host=host, outcome=outcome, message=message,
                   operations=list(operations), rescanned=rescanned)

    @property
    def status(self) -> str:
        """Collapsed status used by the CLI summary: success, failed or skipped."""
        if self.outcome.is_skip:
            return "skipped"
        if self.outcome == HostOutcome.COMPLETED:
            return "success"
        return "failed"

    def to_dict(self) -> Dict:
        return {
            "host": self.host,
            "status": self.status,
            "outcome": self.outcome.value,
            "message": self.message,
            "rescanned": self.rescanned,
            "operations": [
                {"target": op.target, "succeeded": op.succeeded, "message": op.message}
                for op in self.operations
            ],
        }


def summarize(results: List[Dict]) -> Dict[str, int]:
    """Counts success/failed/skipped entries in a list of result dicts."""
    counts = {"success": 0, "failed": 0, "skipped": 0}
    for result in results:
        status = result.get("status", "")
        if status == "success":
            counts["success"] += 1
        elif status == "failed":
            counts["failed"] += 1
        elif "skip" in status:
            counts["skipped"] += 1
    return counts


def format_reports(results: List[Dict]) -> str:
    """Renders result dicts as a table, one row per host."""
    rows = []
    for result in results:
        operations = result.get("operations") or []
        failed = [op["target"] for op in operations if not op["succeeded"]]
        rows.append([
            result.get("host", "-"),
            result.get("outcome", result.get("status", "-")),
            len(operations),
            ", ".join(failed) or "-",
            "yes" if result.get("rescanned") else "no",
            result.get("message", ""),
        ])
    headers = ["Host", "Outcome", "Ops", "Failed", "Rescanned", "Message"]
    return tabulate(rows, headers=headers, tablefmt="fancy_grid")
