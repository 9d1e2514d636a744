"""Typed step form payloads with historical field-name aliases.

Machines submit free-form key/value payloads whose field names drifted over
time ("okQuantity", "OK Quantity", "quantityOK", "finalQuantity", ...). Each
step type gets a typed variant and an alias table built once per type; raw
keys are matched case- and separator-insensitively.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from functools import lru_cache
from typing import Any, ClassVar, Mapping

from .step_catalog import (
    STEP_CORRUGATION,
    STEP_DISPATCH,
    STEP_FLAP_PASTING,
    STEP_FLUTE_LAMINATION,
    STEP_PAPER_STORE,
    STEP_PRINTING,
    STEP_PUNCHING,
    STEP_QUALITY,
    ensure_known_step,
)


_KEY_RE = re.compile(r"[^a-z0-9]")

# Order is precedence: an explicit OK figure beats a generic "quantity".
OK_QUANTITY_ALIASES: tuple[str, ...] = (
    "okquantity",
    "quantityok",
    "okqty",
    "finalquantity",
    "producedquantity",
    "quantity",
    "qty",
)
WASTAGE_ALIASES: tuple[str, ...] = (
    "wastage",
    "wastagequantity",
    "wastageqty",
    "waste",
    "scrap",
)
REMARKS_ALIASES: tuple[str, ...] = ("remarks", "remark", "comments", "comment")

# Totals, statuses and timestamps are recomputed or stamped by the engine.
EXCLUDED_KEYS: frozenset[str] = frozenset(
    {
        "status",
        "date",
        "time",
        "shift",
        "startedat",
        "starttime",
        "completedat",
        "endtime",
        "submittedat",
        "createdat",
        "updatedat",
    }
)

_BASE_FIELDS: frozenset[str] = frozenset({"ok_quantity", "wastage", "remarks", "extras"})


class FormDataError(ValueError):
    """Submitted form payload cannot be interpreted."""


def normalize_field_key(key: object) -> str:
    return _KEY_RE.sub("", str(key).lower())


def coerce_quantity(value: Any, *, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise FormDataError(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError as exc:
            raise FormDataError(f"{field_name} must be a number, got {value!r}") from exc
    if number < 0:
        raise FormDataError(f"{field_name} must not be negative")
    return int(number)


def _clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _first_present(normalized: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        value = normalized.get(alias)
        if value is not None and value != "":
            return value
    return None


@dataclass
class StepFormData:
    ok_quantity: int | None = None
    wastage: int | None = None
    remarks: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    FIELD_ALIASES: ClassVar[dict[str, tuple[str, ...]]] = {}
    INT_FIELDS: ClassVar[frozenset[str]] = frozenset()

    def typed_values(self) -> dict[str, Any]:
        """Step-specific fields that carry a value."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in _BASE_FIELDS and getattr(self, f.name) is not None
        }


@dataclass
class PaperStoreForm(StepFormData):
    sheet_size: str | None = None
    gsm: str | None = None
    available_qty: int | None = None
    required_qty: int | None = None

    FIELD_ALIASES = {
        "sheet_size": ("sheetsize", "papersize"),
        "gsm": ("gsm",),
        "available_qty": ("availableqty", "available"),
        "required_qty": ("requiredqty", "required"),
    }
    INT_FIELDS = frozenset({"available_qty", "required_qty"})


@dataclass
class PrintingForm(StepFormData):
    no_of_colours: int | None = None
    inks_used: str | None = None
    coating_type: str | None = None
    process_colors: str | None = None
    special_colors: str | None = None

    FIELD_ALIASES = {
        "no_of_colours": ("noofcolours", "noofcolors", "colorsused", "colours", "colors"),
        "inks_used": ("inksused", "inks"),
        "coating_type": ("coatingtype", "coating"),
        "process_colors": ("processcolors", "processcolours"),
        "special_colors": ("specialcolors", "specialcolours"),
    }
    INT_FIELDS = frozenset({"no_of_colours"})


@dataclass
class CorrugationForm(StepFormData):
    flute: str | None = None
    gsm1: str | None = None
    gsm2: str | None = None
    size: str | None = None
    sheets_count: int | None = None

    FIELD_ALIASES = {
        "flute": ("flute", "flutetype"),
        "gsm1": ("gsm1", "topfacegsm"),
        "gsm2": ("gsm2", "bottomlinergsm"),
        "size": ("size", "sheetsize"),
        "sheets_count": ("sheetscount", "noofsheets"),
    }
    INT_FIELDS = frozenset({"sheets_count"})


@dataclass
class FluteLaminationForm(StepFormData):
    film_type: str | None = None
    adhesive: str | None = None

    FIELD_ALIASES = {
        "film_type": ("filmtype", "film"),
        "adhesive": ("adhesive", "gluetype"),
    }


@dataclass
class PunchingForm(StepFormData):
    die: str | None = None

    FIELD_ALIASES = {"die": ("die", "dieused", "diecode", "diepunchcode")}


@dataclass
class FlapPastingForm(StepFormData):
    adhesive: str | None = None

    FIELD_ALIASES = {"adhesive": ("adhesive", "gluetype")}


@dataclass
class QualityForm(StepFormData):
    rejected_qty: int | None = None

    FIELD_ALIASES = {"rejected_qty": ("rejectedqty", "rejectedquantity", "rejected")}
    INT_FIELDS = frozenset({"rejected_qty"})


@dataclass
class DispatchForm(StepFormData):
    dispatch_no: str | None = None
    balance_qty: int | None = None

    FIELD_ALIASES = {
        "dispatch_no": ("dispatchno", "challanno"),
        "balance_qty": ("balanceqty", "balancequantity"),
    }
    INT_FIELDS = frozenset({"balance_qty"})


FORM_TYPES: dict[int, type[StepFormData]] = {
    STEP_PAPER_STORE: PaperStoreForm,
    STEP_PRINTING: PrintingForm,
    STEP_CORRUGATION: CorrugationForm,
    STEP_FLUTE_LAMINATION: FluteLaminationForm,
    STEP_PUNCHING: PunchingForm,
    STEP_FLAP_PASTING: FlapPastingForm,
    STEP_QUALITY: QualityForm,
    STEP_DISPATCH: DispatchForm,
}


@lru_cache(maxsize=None)
def _field_table(form_cls: type[StepFormData]) -> tuple[tuple[str, tuple[str, ...], bool], ...]:
    table = [
        ("ok_quantity", OK_QUANTITY_ALIASES, True),
        ("wastage", WASTAGE_ALIASES, True),
        ("remarks", REMARKS_ALIASES, False),
    ]
    for field_name, aliases in form_cls.FIELD_ALIASES.items():
        table.append((field_name, aliases, field_name in form_cls.INT_FIELDS))
    return tuple(table)


def form_type_for_step(step_no: int) -> type[StepFormData]:
    return FORM_TYPES[ensure_known_step(step_no)]


def has_submission(raw: Any) -> bool:
    return isinstance(raw, Mapping) and len(raw) > 0


def parse_form_data(step_no: int, raw: Mapping[str, Any] | None) -> StepFormData:
    form_cls = form_type_for_step(step_no)
    normalized: dict[str, Any] = {}
    original_keys: dict[str, str] = {}
    for key, value in (raw or {}).items():
        norm = normalize_field_key(key)
        normalized[norm] = value
        original_keys[norm] = key

    values: dict[str, Any] = {}
    consumed: set[str] = set()
    for field_name, aliases, is_int in _field_table(form_cls):
        consumed.update(alias for alias in aliases if alias in normalized)
        value = _first_present(normalized, aliases)
        if value is None:
            continue
        values[field_name] = coerce_quantity(value, field_name=field_name) if is_int else _clean_text(value)

    extras = {
        original_keys[norm]: value
        for norm, value in normalized.items()
        if norm not in consumed and norm not in EXCLUDED_KEYS
    }
    return form_cls(**values, extras=extras)


def extract_quantities(raw: Mapping[str, Any] | None) -> tuple[int, int]:
    """Return (ok, wastage) from a raw payload; missing figures count as zero."""
    normalized = {normalize_field_key(key): value for key, value in (raw or {}).items()}
    ok = coerce_quantity(_first_present(normalized, OK_QUANTITY_ALIASES), field_name="ok_quantity")
    wastage = coerce_quantity(_first_present(normalized, WASTAGE_ALIASES), field_name="wastage")
    return int(ok or 0), int(wastage or 0)


def validate_submission(step_no: int, raw: Any) -> StepFormData:
    if not has_submission(raw):
        raise FormDataError("Form data is required to submit work")
    form = parse_form_data(step_no, raw)
    if form.ok_quantity is None:
        raise FormDataError("Form data must include the OK quantity produced")
    return form
