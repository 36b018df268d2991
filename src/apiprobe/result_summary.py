from __future__ import annotations

from collections import Counter
from collections.abc import Iterable

from apiprobe.models import ExecutionOutcome


def build_summary(outcomes: Iterable[ExecutionOutcome]) -> dict:
    outcomes = list(outcomes)
    total = len(outcomes)
    succeeded = sum(1 for outcome in outcomes if outcome.success)
    statuses = Counter(str(outcome.status) for outcome in outcomes if outcome.success)
    errors = Counter(outcome.error_kind.value for outcome in outcomes if outcome.error_kind is not None)
    return {
        "total": total,
        "success": succeeded,
        "failure": total - succeeded,
        "status_codes": dict(sorted(statuses.items())),
        "errors": dict(sorted(errors.items())),
    }
