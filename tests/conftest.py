from __future__ import annotations

from pathlib import Path

import pytest

from regionmap.models import CountryRecord
from regionmap.resolver import ResolutionTables, build_tables


CATALOG_YAML = """\
- {numeric: "840", iso2: "US", iso3: "USA", name: "United States", aliases: ["America", "United States of America"]}
- {numeric: "250", iso2: "FR", iso3: "FRA", name: "France", aliases: []}
- {numeric: "004", iso2: "AF", iso3: "AFG", name: "Afghanistan", aliases: []}
- {numeric: "276", iso2: "DE", iso3: "DEU", name: "Germany", aliases: ["Deutschland"]}
- {numeric: "682", iso2: "SA", iso3: "SAU", name: "Saudi Arabia", aliases: ["KSA"]}
"""


@pytest.fixture()
def catalog() -> list[CountryRecord]:
    return [
        CountryRecord("840", "US", "USA", "United States", ("America", "United States of America")),
        CountryRecord("250", "FR", "FRA", "France"),
        CountryRecord("004", "AF", "AFG", "Afghanistan"),
        CountryRecord("276", "DE", "DEU", "Germany", ("Deutschland",)),
        CountryRecord("682", "SA", "SAU", "Saudi Arabia", ("KSA",)),
    ]


@pytest.fixture()
def tables(catalog: list[CountryRecord]) -> ResolutionTables:
    return build_tables(catalog)


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    """A throwaway project root with a config and a small catalog."""
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "countries.yaml").write_text(CATALOG_YAML, encoding="utf-8")
    (tmp_path / "config.yaml").write_text(
        "paths:\n"
        "  catalog: data/countries.yaml\n"
        "  world_geometry: data/world.geojson\n"
        "  output_dir: build/exports\n"
        "  logs_dir: build/logs\n",
        encoding="utf-8",
    )
    return tmp_path
