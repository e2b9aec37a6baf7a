"""Per-batch outcome ledger for asset imports."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..schema import IMPORT_ERROR_LIMIT, UNRESOLVED_KINDS


@dataclass
class BatchOutcome:
    """Final status and counts of an import batch."""
    status: str
    stats: Dict[str, int]
    errors: List[str]
    error_text: Optional[str]
    unresolved: Dict[str, int] = field(default_factory=dict)

    def stats_payload(self) -> Dict[str, Any]:
        """Stats as persisted on the import job."""
        payload = dict(self.stats)
        payload["unresolved"] = dict(self.unresolved)
        return payload


class BatchLedger:
    """
    Accumulates created/updated/failed outcomes for one import batch.

    Every row recorded lands in exactly one of the three buckets, so
    created + updated + failed == total once every row has been recorded.
    """

    def __init__(self, total: int, error_limit: int = IMPORT_ERROR_LIMIT):
        if total < 0:
            raise ValueError("total must be non-negative")
        self.total = total
        self.error_limit = error_limit
        self.created = 0
        self.updated = 0
        self.failed = 0
        self.errors: List[str] = []
        self.unresolved: Dict[str, int] = {kind: 0 for kind in UNRESOLVED_KINDS}

    @property
    def recorded(self) -> int:
        return self.created + self.updated + self.failed

    def _check_capacity(self) -> None:
        if self.recorded >= self.total:
            raise ValueError(
                f"Ledger already holds {self.total} outcomes; cannot record more"
            )

    def record_created(self) -> None:
        self._check_capacity()
        self.created += 1

    def record_updated(self) -> None:
        self._check_capacity()
        self.updated += 1

    def record_failed(self, row_number: int, message: str) -> None:
        """Record a failed row with its error line (e.g. ``Row 3: bad cost``)."""
        self._check_capacity()
        self.failed += 1
        self.errors.append(f"Row {row_number}: {message}")

    def record_unresolved(self, kind: str) -> None:
        """Count a reference name that could not be resolved to an id."""
        self.unresolved[kind] = self.unresolved.get(kind, 0) + 1

    def finalize(self) -> BatchOutcome:
        """Compute the terminal status and stats of the batch.

        The batch is ``failed`` only when every row failed; partial success is
        ``completed``. The returned error list is capped, the failed count is not.
        """
        status = "failed" if self.failed == self.total else "completed"

        return BatchOutcome(
            status=status,
            stats={
                "total": self.total,
                "created": self.created,
                "updated": self.updated,
                "failed": self.failed,
            },
            errors=self.errors[:self.error_limit],
            error_text="; ".join(self.errors) if self.errors else None,
            unresolved=dict(self.unresolved),
        )
