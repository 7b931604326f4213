"""Country catalog loading and indexing."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml

from .models import CountryRecord


def load_catalog(path: Path) -> list[CountryRecord]:
    """Load and validate the static country catalog."""
    if not path.exists():
        raise FileNotFoundError(f"Country catalog not found: {path}")
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, list):
        raise ValueError(f"Expected list in {path}")

    countries: list[CountryRecord] = []
    seen_iso2: set[str] = set()
    seen_numeric: set[str] = set()
    for idx, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Expected mapping at index {idx} in {path}")
        try:
            country = CountryRecord.from_mapping(item)
        except ValueError as exc:
            raise ValueError(f"Invalid catalog entry at index {idx} in {path}: {exc}") from exc
        numeric_key = country.numeric_id.zfill(3)
        if country.iso2 in seen_iso2:
            raise ValueError(f"Duplicate ISO2 '{country.iso2}' in {path}")
        if numeric_key in seen_numeric:
            raise ValueError(f"Duplicate numeric id '{country.numeric_id}' in {path}")
        seen_iso2.add(country.iso2)
        seen_numeric.add(numeric_key)
        countries.append(country)
    return countries


def country_index_by_iso2(countries: Iterable[CountryRecord]) -> dict[str, CountryRecord]:
    return {country.iso2: country for country in countries}
