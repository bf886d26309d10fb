"""Preset JSON export/import for the edit history."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

from .edits import EditEntry, EditEntryError, ResizeEntry, SwapEntry, entry_from_dict
from .settings import MAX_DIMENSION

if TYPE_CHECKING:
    from .history import EditHistory


logger = logging.getLogger(__name__)

PRESET_VERSION = 2


class PresetError(ValueError):
    """Raised when a preset document is malformed."""


@dataclass(slots=True)
class PresetImportResult:
    accepted: bool
    applied: int = 0
    skipped: int = 0
    warnings: List[str] = field(default_factory=list)

    def summary(self) -> str:
        if not self.accepted:
            reason = self.warnings[0] if self.warnings else "invalid preset"
            return f"Preset rejected: {reason}"
        return f"Preset applied: {self.applied} edits applied, {self.skipped} skipped"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_preset(history: "EditHistory", name: str = "Color Swap Preset") -> Dict[str, Any]:
    return {
        "name": name,
        "created": _utc_now_iso(),
        "version": PRESET_VERSION,
        "edits": [entry.to_dict() for entry in history.entries],
        "swaps": [swap.to_legacy_dict() for swap in history.color_swap_history],
    }


def dumps_preset(preset: Dict[str, Any]) -> str:
    return json.dumps(preset, indent=2)


def save_preset(path: Path, preset: Dict[str, Any]) -> None:
    path.write_text(dumps_preset(preset), encoding="utf-8")


def load_preset(path: Path) -> Dict[str, Any]:
    """Read a preset file; malformed JSON or a non-object root raises :class:`PresetError`."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise PresetError(f"{path.name}: invalid JSON ({exc})") from exc
    if not isinstance(payload, dict):
        raise PresetError(f"{path.name}: root must be an object")
    return payload


def parse_preset_entries(payload: Any) -> tuple[List[EditEntry], List[str]]:
    """Return the entries of a preset document plus warnings for the ones that failed to parse.

    ``edits`` wins when present; a ``swaps``-only document is read as legacy swap entries.
    """

    if not isinstance(payload, dict):
        raise PresetError("Preset root must be an object")
    edits = payload.get("edits")
    swaps = payload.get("swaps")
    if isinstance(edits, list):
        raw_entries = edits
        legacy = False
    elif isinstance(swaps, list):
        raw_entries = swaps
        legacy = True
    else:
        raise PresetError("Preset must contain an 'edits' or 'swaps' list")

    entries: List[EditEntry] = []
    warnings: List[str] = []
    for position, raw in enumerate(raw_entries):
        try:
            entry = SwapEntry.from_dict(raw) if legacy and isinstance(raw, dict) else entry_from_dict(raw)
        except EditEntryError as exc:
            warnings.append(f"entry {position}: {exc}")
            continue
        entries.append(entry)
    return entries, warnings


def import_preset(
    history: "EditHistory", payload: Any, *, max_dimension: int = MAX_DIMENSION
) -> PresetImportResult:
    """Reset ``history`` to its baseline and apply every usable preset entry in order.

    Entries that change no pixels are counted as skipped and not recorded, as are resize
    entries larger than ``max_dimension``. A malformed document leaves the history reset
    to the baseline with nothing applied.
    """

    history.reset()
    try:
        entries, warnings = parse_preset_entries(payload)
    except PresetError as exc:
        logger.debug("Preset rejected: %s", exc)
        return PresetImportResult(accepted=False, warnings=[str(exc)])

    result = PresetImportResult(accepted=True, skipped=len(warnings), warnings=warnings)
    for entry in entries:
        if isinstance(entry, ResizeEntry) and max(entry.to_width, entry.to_height) > max_dimension:
            result.skipped += 1
            result.warnings.append(
                f"resize to {entry.to_width}x{entry.to_height} exceeds max dimension {max_dimension}px"
            )
            continue
        if history.apply_if_changed(entry):
            result.applied += 1
        else:
            result.skipped += 1
    logger.debug(
        "Preset imported applied=%s skipped=%s warnings=%s", result.applied, result.skipped, len(result.warnings)
    )
    return result
