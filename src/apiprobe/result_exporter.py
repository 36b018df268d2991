"""JSON run reports built from the outcome stream of a finished run."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from apiprobe.config import RunConfiguration
from apiprobe.result_summary import build_summary
from apiprobe.run_state import RunStatus
from apiprobe.scheduler import OutcomeEvent

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_-]+")


def report_entry(event: OutcomeEvent) -> dict[str, Any]:
    key = event.key
    entry: dict[str, Any] = {
        "test": key.label(),
        "declared_method": key.identity[0],
        "path": key.path,
    }
    if key.combination:
        entry["combination"] = key.combination
    entry.update(event.outcome.to_dict())
    return entry


class ResultExporter:
    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)

    def build_report(
        self,
        run_name: str,
        config: RunConfiguration,
        status: RunStatus,
        events: Sequence[OutcomeEvent],
        planned: int | None = None,
    ) -> dict[str, Any]:
        tested = len(events)
        return {
            "run_name": run_name,
            "base_url": config.base_url,
            "status": status.value,
            "executed_at": datetime.now().isoformat(timespec="seconds"),
            "settings": {
                "workers": config.workers,
                "delay_between_requests": config.delay_between_requests,
                "timeout": config.timeout,
                "use_random_values": config.use_random_values,
            },
            "summary": build_summary(event.outcome for event in events),
            "not_tested": max(planned - tested, 0) if planned is not None else None,
            "outcomes": [report_entry(event) for event in sorted(events, key=lambda event: event.key.label())],
        }

    def export(
        self,
        run_name: str,
        config: RunConfiguration,
        status: RunStatus,
        events: Sequence[OutcomeEvent],
        planned: int | None = None,
    ) -> Path:
        report = self.build_report(run_name, config, status, events, planned)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        safe_name = _UNSAFE_NAME_RE.sub("", run_name) or "run"
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self.output_dir / f"{safe_name}_{timestamp}.json"
        path.write_text(json.dumps(report, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        return path
