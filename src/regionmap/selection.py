"""Color-group processing: typed country lists to a code -> color assignment."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from .models import ColorGroup
from .resolver import ResolutionTables, parse_input


_LOGGER = logging.getLogger("regionmap.selection")

DEFAULT_SINGLE_COLOR = "#3b82f6"
DEFAULT_GROUPS = (
    ColorGroup(name="Group A", color="#ef4444"),
    ColorGroup(name="Group B", color="#10b981"),
)
_NEW_GROUP_PALETTE = ("#f59e0b", "#8b5cf6", "#ec4899", "#06b6d4")
_SELECTION_MODES = ("single", "multi")

PRESETS: Mapping[str, tuple[str, ...]] = {
    "MEA": ("DZ", "EG", "LY", "MA", "TN", "SA", "AE", "QA", "BH", "KW", "OM", "YE", "IQ", "JO", "LB"),
    "LATAM": (
        "AR", "BO", "BR", "CL", "CO", "CR", "CU", "DO", "EC", "SV",
        "GT", "HN", "MX", "NI", "PA", "PY", "PE", "UY", "VE",
    ),
    "EU": (
        "AL", "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR", "HU", "IE",
        "IT", "LV", "LT", "LU", "MT", "MD", "NL", "PL", "PT", "RO", "SK", "SI", "ES", "SE",
    ),
    "CEE": ("AL", "BA", "BG", "HR", "CZ", "EE", "HU", "LV", "LT", "PL", "RO", "RS", "SK", "SI", "MK", "ME", "XK"),
    "GCC": ("SA", "AE", "QA", "BH", "KW", "OM"),
    "GLOBAL_SOUTH": (
        "AF", "NG", "ZA", "KE", "TZ", "UG", "GH", "DZ", "MA", "TN",
        "EG", "BD", "PK", "IN", "PH", "ID", "BR", "MX", "CO", "PE",
    ),
}


@dataclass(frozen=True, slots=True)
class SelectionResult:
    """Outcome of one generate action."""

    assignment: Mapping[str, str]
    unknown_terms: tuple[str, ...]
    group_codes: tuple[frozenset[str], ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Selection:
    """Groups loaded from a selection file, in application order."""

    mode: str
    groups: tuple[ColorGroup, ...]

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Selection:
        mode_raw = data.get("mode", "multi")
        mode = str(mode_raw).strip().casefold()
        if mode not in _SELECTION_MODES:
            raise ValueError("selection.mode must be one of: " + ", ".join(_SELECTION_MODES))
        if mode == "single":
            countries = data.get("countries", "")
            color = data.get("color", DEFAULT_SINGLE_COLOR)
            group = ColorGroup.from_mapping(
                {"name": "Selected Countries", "color": color, "countries": countries}
            )
            return cls(mode=mode, groups=(group,))

        groups_raw = data.get("groups")
        if not isinstance(groups_raw, list):
            raise ValueError("Expected list for 'groups' in multi mode")
        groups: list[ColorGroup] = []
        for idx, item in enumerate(groups_raw):
            if not isinstance(item, Mapping):
                raise ValueError(f"Expected mapping for 'groups[{idx}]'")
            defaults = default_group(idx)
            raw = dict(item)
            if raw.get("color") is None:
                raw["color"] = defaults.color
            group = ColorGroup.from_mapping(raw)
            if not group.name:
                group = ColorGroup(name=defaults.name, color=group.color, text=group.text)
            groups.append(group)
        return cls(mode=mode, groups=tuple(groups))


def load_selection(path: Path) -> Selection:
    if not path.exists():
        raise FileNotFoundError(f"Selection file not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected mapping in {path}")
    return Selection.from_mapping(raw)


def single_group(text: str, color: str = DEFAULT_SINGLE_COLOR) -> ColorGroup:
    return ColorGroup(name="Selected Countries", color=color, text=text)


def next_group_color(existing_count: int) -> str:
    return _NEW_GROUP_PALETTE[existing_count % len(_NEW_GROUP_PALETTE)]


def default_group(index: int) -> ColorGroup:
    """Name and color for the group at `index` when a selection file omits them."""
    if index < len(DEFAULT_GROUPS):
        return DEFAULT_GROUPS[index]
    return ColorGroup(name=f"Group {index + 1}", color=next_group_color(index))


def build_color_assignment(
    tables: ResolutionTables,
    groups: Sequence[ColorGroup],
) -> SelectionResult:
    """Build a fresh assignment; groups are applied in order, so the last group wins."""
    assignment: dict[str, str] = {}
    unknown_terms: list[str] = []
    seen_unknown: set[str] = set()
    group_codes: list[frozenset[str]] = []

    for group in groups:
        parsed = parse_input(tables, group.text)
        group_codes.append(parsed.codes)
        for term in parsed.unknown:
            if term not in seen_unknown:
                seen_unknown.add(term)
                unknown_terms.append(term)
        for code in sorted(parsed.codes):
            previous = assignment.get(code)
            if previous is not None and previous != group.color:
                _LOGGER.debug(
                    "Code %s reassigned from %s to %s by group '%s'",
                    code,
                    previous,
                    group.color,
                    group.name,
                )
            assignment[code] = group.color

    return SelectionResult(
        assignment=assignment,
        unknown_terms=tuple(unknown_terms),
        group_codes=tuple(group_codes),
    )


def apply_preset(text: str, codes: Sequence[str]) -> str:
    """Append preset codes to existing group text."""
    joined = ", ".join(codes)
    if not joined:
        return text
    return f"{text}, {joined}" if text else joined


def legend_entries(
    groups: Sequence[ColorGroup],
    result: SelectionResult,
) -> list[tuple[str, str, int]]:
    entries: list[tuple[str, str, int]] = []
    for idx, group in enumerate(groups):
        count = len(result.group_codes[idx]) if idx < len(result.group_codes) else 0
        entries.append((group.name or "Untitled Group", group.color, count))
    return entries
