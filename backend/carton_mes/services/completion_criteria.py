"""Decide whether a step worked by several machines is complete.

Rule A (quantity match): the processed quantity (OK + wastage over every
submitted record) reaches the expected quantity.

Rule B (all machines stopped): every machine record on the step is stopped.

Rule A is checked first. A step with a machine that was never used cannot
complete through Rule B; the reason then names the untouched machines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from .form_data import extract_quantities, has_submission
from .machine_state import is_stopped, is_untouched


RULE_QUANTITY_MATCH = "quantity_match"
RULE_ALL_STOPPED = "all_machines_stopped"


class MachineWork(Protocol):
    status: str | None
    form_data: Any
    machine_code: str | None
    machine_id: str


@dataclass(frozen=True)
class CompletionDecision:
    should_complete: bool
    reason: str
    rule: str | None = None
    total_ok: int = 0
    total_wastage: int = 0
    expected_quantity: int = 0
    submitted_count: int = 0
    stopped_count: int = 0
    machine_count: int = 0
    untouched_machines: tuple[str, ...] = field(default_factory=tuple)

    @property
    def processed_quantity(self) -> int:
        return self.total_ok + self.total_wastage

    def as_dict(self) -> dict[str, Any]:
        return {
            "should_complete": self.should_complete,
            "reason": self.reason,
            "rule": self.rule,
            "total_ok": self.total_ok,
            "total_wastage": self.total_wastage,
            "processed_quantity": self.processed_quantity,
            "expected_quantity": self.expected_quantity,
            "submitted_count": self.submitted_count,
            "stopped_count": self.stopped_count,
            "machine_count": self.machine_count,
            "untouched_machines": list(self.untouched_machines),
        }


def _machine_label(record: MachineWork) -> str:
    return record.machine_code or str(record.machine_id)


def _progress(processed: int, expected: int, stopped: int, total: int) -> str:
    if expected > 0:
        return f"{processed}/{expected} submitted, {stopped}/{total} stopped"
    return f"{processed} submitted (no quantity target), {stopped}/{total} stopped"


def evaluate_completion(records: Iterable[MachineWork], *, expected_quantity: int) -> CompletionDecision:
    records = list(records)
    expected = max(int(expected_quantity or 0), 0)

    total_ok = 0
    total_wastage = 0
    submitted = 0
    for record in records:
        if not has_submission(record.form_data):
            continue
        ok, wastage = extract_quantities(record.form_data)
        total_ok += ok
        total_wastage += wastage
        submitted += 1

    processed = total_ok + total_wastage
    stopped = sum(1 for record in records if is_stopped(record.status))
    untouched = tuple(_machine_label(record) for record in records if is_untouched(record.status))
    counts = dict(
        total_ok=total_ok,
        total_wastage=total_wastage,
        expected_quantity=expected,
        submitted_count=submitted,
        stopped_count=stopped,
        machine_count=len(records),
        untouched_machines=untouched,
    )

    if expected > 0 and processed >= expected:
        return CompletionDecision(
            should_complete=True,
            reason=f"quantity match: {processed} >= {expected}",
            rule=RULE_QUANTITY_MATCH,
            **counts,
        )

    if records and stopped == len(records):
        return CompletionDecision(
            should_complete=True,
            reason=f"all machines stopped ({stopped}/{len(records)}), {processed} processed",
            rule=RULE_ALL_STOPPED,
            **counts,
        )

    progress = _progress(processed, expected, stopped, len(records))
    if untouched:
        return CompletionDecision(
            should_complete=False,
            reason=f"{progress}; machines never used: {', '.join(untouched)}",
            **counts,
        )
    return CompletionDecision(should_complete=False, reason=progress, **counts)
