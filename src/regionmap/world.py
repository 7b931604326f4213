"""World geometry loading (TopoJSON, GeoJSON or any GDAL-readable polygon source)."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Iterable, Sequence

import requests

from .models import WorldFeature


_LOGGER = logging.getLogger("regionmap.world")

WORLD_ATLAS_URL = "https://cdn.jsdelivr.net/npm/world-atlas@2.0.2/countries-110m.json"


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {col.lower(): col for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


class WorldRepository:
    """Thin wrapper around world-geometry file access."""

    NUMERIC_ID_COLUMNS = ("id", "ISO_N3", "ISO_N3_EH", "UN_A3", "iso_numeric")
    NAME_COLUMNS = ("name", "NAME", "ADMIN", "NAME_EN", "name_en")

    def __init__(self, source: str | Path) -> None:
        self.source = source

    def load(self) -> tuple[WorldFeature, ...]:
        """Load all polygon features with their numeric ids."""
        gpd = self._require_geopandas()
        frame = gpd.read_file(self.source)
        if frame.crs is not None and not frame.crs.equals("EPSG:4326", ignore_axis_order=True):
            frame = frame.to_crs("EPSG:4326")
        return self.features_from_frame(frame)

    def features_from_frame(self, frame: Any) -> tuple[WorldFeature, ...]:
        id_col = self.detect_numeric_id_column(frame)
        name_col = _first_existing_column(frame.columns, self.NAME_COLUMNS)
        features: list[WorldFeature] = []
        skipped = 0
        for row in frame.itertuples(index=False):
            row_dict = row._asdict()
            geometry = row_dict.get("geometry")
            numeric_id = _normalize_numeric_id(row_dict.get(id_col))
            if geometry is None or bool(getattr(geometry, "is_empty", False)) or numeric_id is None:
                skipped += 1
                continue
            name_val = row_dict.get(name_col) if name_col else None
            name = str(name_val).strip() if name_val is not None else None
            features.append(WorldFeature(numeric_id=numeric_id, geometry=geometry, name=name or None))
        if skipped:
            _LOGGER.debug("Skipped %d features without geometry or numeric id", skipped)
        _LOGGER.info("Loaded %d world features from %s", len(features), self.source)
        return tuple(features)

    def detect_numeric_id_column(self, frame: Any) -> str:
        col = _first_existing_column(frame.columns, self.NUMERIC_ID_COLUMNS)
        if col is None:
            cols = ", ".join(str(c) for c in frame.columns)
            raise ValueError(
                "Could not detect numeric country id column in world geometry. "
                f"Available columns: {cols}"
            )
        return col

    @staticmethod
    def _require_geopandas() -> Any:
        try:
            import geopandas as gpd
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("geopandas is required for world geometry loading") from exc
        return gpd


def download_world(url: str, dest: Path, *, timeout_s: float = 30.0, user_agent: str | None = None) -> Path:
    """Fetch the world geometry file and write it atomically to `dest`."""
    headers = {"User-Agent": user_agent} if user_agent else None
    response = requests.get(url, headers=headers, timeout=timeout_s)
    response.raise_for_status()
    dest.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dest.with_name(dest.name + ".part")
    tmp_path.write_bytes(response.content)
    tmp_path.replace(dest)
    _LOGGER.info("Downloaded %d bytes from %s to %s", len(response.content), url, dest)
    return dest


def _normalize_numeric_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    return text or None
