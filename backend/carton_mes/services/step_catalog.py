"""Fixed production pipeline: step numbers, names and quantity dependencies."""

from __future__ import annotations

from ..models import (
    Corrugation,
    DispatchProcess,
    FluteLaminateBoardConversion,
    PaperStore,
    PrintingDetails,
    Punching,
    QualityDept,
    SideFlapPasting,
)


STEP_PAPER_STORE = 1
STEP_PRINTING = 2
STEP_CORRUGATION = 3
STEP_FLUTE_LAMINATION = 4
STEP_PUNCHING = 5
STEP_FLAP_PASTING = 6
STEP_QUALITY = 7
STEP_DISPATCH = 8

PIPELINE_STEPS: tuple[int, ...] = (
    STEP_PAPER_STORE,
    STEP_PRINTING,
    STEP_CORRUGATION,
    STEP_FLUTE_LAMINATION,
    STEP_PUNCHING,
    STEP_FLAP_PASTING,
    STEP_QUALITY,
    STEP_DISPATCH,
)
TERMINAL_STEP = STEP_DISPATCH

STEP_NAMES: dict[int, str] = {
    STEP_PAPER_STORE: "PaperStore",
    STEP_PRINTING: "PrintingDetails",
    STEP_CORRUGATION: "Corrugation",
    STEP_FLUTE_LAMINATION: "FluteLaminateBoardConversion",
    STEP_PUNCHING: "Punching",
    STEP_FLAP_PASTING: "SideFlapPasting",
    STEP_QUALITY: "QualityDept",
    STEP_DISPATCH: "DispatchProcess",
}

STEP_LABELS: dict[int, str] = {
    STEP_PAPER_STORE: "Paper Store",
    STEP_PRINTING: "Printing",
    STEP_CORRUGATION: "Corrugation",
    STEP_FLUTE_LAMINATION: "Flute Lamination",
    STEP_PUNCHING: "Punching",
    STEP_FLAP_PASTING: "Flap Pasting",
    STEP_QUALITY: "Quality",
    STEP_DISPATCH: "Dispatch",
}

STEP_DETAIL_MODELS: dict[int, type] = {
    STEP_PAPER_STORE: PaperStore,
    STEP_PRINTING: PrintingDetails,
    STEP_CORRUGATION: Corrugation,
    STEP_FLUTE_LAMINATION: FluteLaminateBoardConversion,
    STEP_PUNCHING: Punching,
    STEP_FLAP_PASTING: SideFlapPasting,
    STEP_QUALITY: QualityDept,
    STEP_DISPATCH: DispatchProcess,
}

# Which step's output feeds each step. Corrugation works from the paper issued
# by the store, not from the printed sheets.
_QUANTITY_SOURCE: dict[int, int] = {
    STEP_PRINTING: STEP_PAPER_STORE,
    STEP_CORRUGATION: STEP_PAPER_STORE,
    STEP_FLUTE_LAMINATION: STEP_CORRUGATION,
    STEP_PUNCHING: STEP_FLUTE_LAMINATION,
    STEP_FLAP_PASTING: STEP_PUNCHING,
    STEP_QUALITY: STEP_FLAP_PASTING,
    STEP_DISPATCH: STEP_QUALITY,
}


def ensure_known_step(step_no: int) -> int:
    if step_no not in STEP_NAMES:
        raise ValueError(f"Unknown step number: {step_no}")
    return step_no


def quantity_source_step(step_no: int) -> int | None:
    """Return the step whose output is this step's input, or None for the first step."""
    ensure_known_step(step_no)
    return _QUANTITY_SOURCE.get(step_no)


def step_label(step_no: int) -> str:
    return STEP_LABELS.get(step_no, f"Step {step_no}")


def detail_model_for_step(step_no: int) -> type:
    return STEP_DETAIL_MODELS[ensure_known_step(step_no)]
