"""Validation layer for config, catalog and world geometry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .config import AppConfig
from .countries import load_catalog
from .models import CountryRecord, WorldFeature
from .resolver import build_tables, resolve_numeric
from .selection import PRESETS
from .util import format_code_list
from .world import WorldRepository


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


def find_alias_collisions(catalog: Iterable[CountryRecord]) -> dict[str, tuple[str, ...]]:
    """Return lower-cased tokens claimed by more than one record, with codes in catalog order."""
    claims: dict[str, list[str]] = {}
    for country in catalog:
        for token in country.tokens:
            codes = claims.setdefault(token.lower(), [])
            if country.iso2 not in codes:
                codes.append(country.iso2)
    return {token: tuple(codes) for token, codes in claims.items() if len(codes) > 1}


class Validator:
    """Top-level input and schema validator."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self, *, strict_data_files: bool, check_geometry: bool = True) -> ValidationReport:
        report = ValidationReport()
        self._validate_config_paths(report, strict_data_files=strict_data_files)
        catalog = self._validate_catalog(report)
        if catalog:
            self._validate_presets(report, catalog)
        if check_geometry and catalog and self.cfg.paths.world_geometry.exists():
            self._validate_geometry(report, catalog)
        return report

    def _validate_config_paths(self, report: ValidationReport, *, strict_data_files: bool) -> None:
        if not self.cfg.paths.catalog.exists():
            report.add_error(f"Missing country catalog: {self.cfg.paths.catalog}")
        geometry = self.cfg.paths.world_geometry
        if not geometry.exists():
            msg = f"World geometry not found: {geometry} (run 'regionmap fetch-world')"
            if strict_data_files:
                report.add_error(msg)
            else:
                report.add_warning(msg)

    def _validate_catalog(self, report: ValidationReport) -> list[CountryRecord]:
        path = self.cfg.paths.catalog
        if not path.exists():
            return []
        try:
            catalog = load_catalog(path)
        except Exception as exc:
            report.add_error(f"Failed parsing country catalog '{path}': {exc}")
            return []
        if not catalog:
            report.add_error(f"Country catalog is empty: {path}")
            return []
        report.add_info(f"Loaded {len(catalog)} catalog records from {path}")

        collisions = find_alias_collisions(catalog)
        for token, codes in sorted(collisions.items()):
            report.add_warning(
                f"Token '{token}' is claimed by {', '.join(codes)}; it resolves to {codes[-1]}."
            )
        return catalog

    def _validate_presets(self, report: ValidationReport, catalog: Sequence[CountryRecord]) -> None:
        known = {country.iso2 for country in catalog}
        for name, codes in PRESETS.items():
            missing = sorted(set(codes) - known)
            if missing:
                report.add_warning(
                    f"Preset {name} references codes missing from the catalog: "
                    + format_code_list(missing)
                )

    def _validate_geometry(self, report: ValidationReport, catalog: Sequence[CountryRecord]) -> None:
        path = self.cfg.paths.world_geometry
        try:
            features = WorldRepository(path).load()
        except Exception as exc:
            report.add_error(f"Failed loading world geometry '{path}': {exc}")
            return
        report.add_info(f"Loaded {len(features)} world features from {path}")
        _check_geometry_coverage(report, catalog, features)


def _check_geometry_coverage(
    report: ValidationReport,
    catalog: Sequence[CountryRecord],
    features: Sequence[WorldFeature],
) -> None:
    tables = build_tables(catalog)
    unresolved: list[str] = []
    drawn: set[str] = set()
    for feature in features:
        code = resolve_numeric(tables, feature.numeric_id)
        if code is None:
            label = f"{feature.numeric_id} ({feature.name})" if feature.name else feature.numeric_id
            unresolved.append(label)
        else:
            drawn.add(code)
    if unresolved:
        report.add_warning(
            f"{len(unresolved)} world features have no catalog entry and can never be colored: "
            + format_code_list(unresolved)
        )
    undrawn = sorted({country.iso2 for country in catalog} - drawn)
    if undrawn:
        report.add_info(
            f"{len(undrawn)} catalog countries have no polygon at this resolution: "
            + format_code_list(undrawn)
        )


def format_report_lines(report: ValidationReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Validation passed with no errors.")
    return lines
