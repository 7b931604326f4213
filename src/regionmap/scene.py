"""Vector scene rendering: colored world map as standalone SVG markup."""

from __future__ import annotations

import io
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .models import ViewTransform, WorldFeature
from .resolver import ResolutionTables, resolve_numeric
from .viewport import ScreenProjection


_LOGGER = logging.getLogger("regionmap.scene")

_LENGTH_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+(?:[eE][-+]?[0-9]+)?)")


@dataclass(frozen=True, slots=True)
class Theme:
    ocean: str
    default_country: str
    stroke: str
    stroke_width: float = 0.5

    @classmethod
    def for_mode(cls, dark: bool) -> Theme:
        if dark:
            return cls(ocean="#1e293b", default_country="#334155", stroke="#475569")
        return cls(ocean="#f8fafc", default_country="#e2e8f0", stroke="#ffffff")


@dataclass(frozen=True, slots=True)
class VectorScene:
    """Self-contained SVG document with an intrinsic size."""

    markup: str

    def serialize(self) -> str:
        return self.markup

    def dimensions(self) -> tuple[float, float]:
        """Return intrinsic `(width, height)` from `viewBox`, else `width`/`height`."""
        try:
            root = ET.fromstring(self.markup)
        except ET.ParseError as exc:
            raise ValueError(f"Scene markup is not valid XML: {exc}") from exc

        view_box = root.get("viewBox")
        if view_box:
            parts = [part for part in re.split(r"[\s,]+", view_box.strip()) if part]
            if len(parts) == 4:
                try:
                    return (float(parts[2]), float(parts[3]))
                except ValueError:
                    pass

        width = _parse_length(root.get("width"))
        height = _parse_length(root.get("height"))
        if width is None or height is None:
            raise ValueError("Scene markup has no viewBox or width/height")
        return (width, height)


def fill_colors(
    features: Sequence[WorldFeature],
    *,
    assignment: Mapping[str, str],
    tables: ResolutionTables,
    default_color: str,
) -> list[str]:
    colors: list[str] = []
    for feature in features:
        code = resolve_numeric(tables, feature.numeric_id)
        color = assignment.get(code) if code is not None else None
        colors.append(color or default_color)
    return colors


def render_scene(
    features: Sequence[WorldFeature],
    *,
    assignment: Mapping[str, str],
    tables: ResolutionTables,
    projection: ScreenProjection,
    transform: ViewTransform,
    theme: Theme,
    dpi: int = 100,
) -> VectorScene:
    """Draw every feature at the projection's viewport size, viewed through `transform`."""
    plt = _require_matplotlib()
    width_px = projection.width
    height_px = projection.height

    fig, ax = plt.subplots(figsize=(width_px / dpi, height_px / dpi), dpi=dpi)
    fig.subplots_adjust(left=0.0, right=1.0, bottom=0.0, top=1.0)
    try:
        fig.patch.set_facecolor(theme.ocean)
        ax.set_axis_off()

        if features:
            gpd = _require_geopandas()
            projected = gpd.GeoSeries([projection.project_geometry(f.geometry) for f in features])
            colors = fill_colors(
                features,
                assignment=assignment,
                tables=tables,
                default_color=theme.default_country,
            )
            projected.plot(
                ax=ax,
                color=colors,
                edgecolor=theme.stroke,
                # borders zoom with the map, like the rest of the scene
                linewidth=theme.stroke_width * transform.scale,
                aspect=None,
            )
        else:
            _LOGGER.info("No world features loaded; rendering an empty scene.")

        x0, x1, y0, y1 = transform.visible_extent(width_px, height_px)
        ax.set_xlim(x0, x1)
        ax.set_ylim(y1, y0)

        buffer = io.StringIO()
        fig.savefig(buffer, format="svg", dpi=dpi, facecolor=theme.ocean)
        return VectorScene(markup=buffer.getvalue())
    finally:
        plt.close(fig)


def _parse_length(raw: str | None) -> float | None:
    if not raw:
        return None
    match = _LENGTH_RE.match(raw)
    if match is None:
        return None
    return float(match.group(1))


def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for scene rendering") from exc
    return plt


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for scene rendering") from exc
    return gpd
