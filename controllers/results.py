from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ReconcileResult:
    """
    What a reconciliation pass asks of its caller.

    ``requeue_after`` is None when the pass is done and no re-invocation is
    needed until something changes; 0 means run again immediately.
    """

    requeue_after: Optional[float] = None

    @classmethod
    def done(cls) -> "ReconcileResult":
        return cls()

    @classmethod
    def requeue(cls, after: float = 0) -> "ReconcileResult":
        return cls(requeue_after=float(after))

    @property
    def is_done(self) -> bool:
        return self.requeue_after is None

    @property
    def is_immediate(self) -> bool:
        return self.requeue_after == 0
