"""Camera fitting: frame the colored subset of the world inside the viewport."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Iterable, Mapping, Sequence

import numpy as np

from .models import ViewTransform, WorldFeature
from .resolver import ResolutionTables, resolve_numeric


_LOGGER = logging.getLogger("regionmap.viewport")

NATURAL_EARTH_CRS = "+proj=natearth +lon_0=0 +datum=WGS84 +units=m +no_defs"

_Bounds = tuple[float, float, float, float]


@dataclass(frozen=True, slots=True)
class FitPolicy:
    projection_margin: float = 0.95
    padding: float = 0.9
    min_scale: float = 1.0
    max_scale: float = 8.0
    epsilon: float = 1e-6


_DEFAULT_POLICY = FitPolicy()


@dataclass(frozen=True, slots=True)
class ScreenProjection:
    """Lon/lat to viewport pixels: projected point scaled and centered, y down."""

    transformer: Any
    scale: float
    width: float
    height: float

    def project_point(self, lon: float, lat: float) -> tuple[float, float]:
        x, y = self.transformer.transform(float(lon), float(lat))
        return (self.width / 2.0 + self.scale * float(x), self.height / 2.0 - self.scale * float(y))

    def project_geometry(self, geometry: Any) -> Any:
        shapely = _require_shapely()
        return shapely.transform(geometry, self._project_coords)

    def _project_coords(self, coords: Any) -> Any:
        xs, ys = self.transformer.transform(coords[:, 0], coords[:, 1])
        return np.column_stack(
            (
                self.width / 2.0 + self.scale * np.asarray(xs, dtype=float),
                self.height / 2.0 - self.scale * np.asarray(ys, dtype=float),
            )
        )


def fit_projection(
    features: Sequence[WorldFeature],
    width: float,
    height: float,
    *,
    margin: float = _DEFAULT_POLICY.projection_margin,
    transformer: Any | None = None,
) -> ScreenProjection:
    """Fit the world projection to the viewport, then shrink it by `margin`.

    The whole collection is fitted, not only the active subset; an empty
    collection is fitted to the globe outline.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Viewport must have positive dimensions, got {width}x{height}")
    transformer = transformer if transformer is not None else _natural_earth_transformer()
    unit = ScreenProjection(transformer=transformer, scale=1.0, width=0.0, height=0.0)

    geometries: Iterable[Any] = [feature.geometry for feature in features]
    bounds = _collection_bounds(unit.project_geometry(geom) for geom in geometries)
    if bounds is None:
        bounds = _collection_bounds([unit.project_geometry(_globe_outline())])
    if bounds is None:
        raise ValueError("Projection produced no finite bounds for the world outline")

    x0, y0, x1, y1 = bounds
    span_x = max(x1 - x0, _DEFAULT_POLICY.epsilon)
    span_y = max(y1 - y0, _DEFAULT_POLICY.epsilon)
    fit_scale = min(width / span_x, height / span_y)
    return ScreenProjection(
        transformer=transformer,
        scale=fit_scale * margin,
        width=float(width),
        height=float(height),
    )


def active_predicate(
    assignment: Mapping[str, str],
    tables: ResolutionTables,
) -> Callable[[WorldFeature], bool]:
    def _is_active(feature: WorldFeature) -> bool:
        code = resolve_numeric(tables, feature.numeric_id)
        return code is not None and code in assignment

    return _is_active


def active_features(
    features: Sequence[WorldFeature],
    assignment: Mapping[str, str],
    tables: ResolutionTables,
) -> list[WorldFeature]:
    is_active = active_predicate(assignment, tables)
    return [feature for feature in features if is_active(feature)]


def compute_fit(
    features: Sequence[WorldFeature],
    *,
    is_active: Callable[[WorldFeature], bool],
    projection: ScreenProjection,
    policy: FitPolicy = _DEFAULT_POLICY,
) -> ViewTransform:
    """Propose the pan/zoom that frames the active features.

    Returns the identity transform when nothing is active. The result only
    depends on the arguments.
    """
    active = [feature for feature in features if is_active(feature)]
    if not active:
        return ViewTransform.identity()

    bounds = _collection_bounds(projection.project_geometry(feature.geometry) for feature in active)
    if bounds is None:
        _LOGGER.warning("Active features produced no finite screen bounds; resetting view.")
        return ViewTransform.identity()

    x0, y0, x1, y1 = bounds
    dx = max(x1 - x0, policy.epsilon)
    dy = max(y1 - y0, policy.epsilon)
    cx = (x0 + x1) / 2.0
    cy = (y0 + y1) / 2.0

    width = projection.width
    height = projection.height
    scale = policy.padding / max(dx / width, dy / height)
    scale = max(policy.min_scale, min(policy.max_scale, scale))
    transform = ViewTransform(
        translate_x=width / 2.0 - scale * cx,
        translate_y=height / 2.0 - scale * cy,
        scale=scale,
    )
    _LOGGER.debug(
        "Fit %d active features: bbox=(%.2f, %.2f)-(%.2f, %.2f) scale=%.3f",
        len(active),
        x0,
        y0,
        x1,
        y1,
        scale,
    )
    return transform


def _collection_bounds(geometries: Iterable[Any]) -> _Bounds | None:
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    for geometry in geometries:
        if geometry is None or bool(getattr(geometry, "is_empty", False)):
            continue
        gx0, gy0, gx1, gy1 = [float(item) for item in geometry.bounds]
        if not all(math.isfinite(v) for v in (gx0, gy0, gx1, gy1)):
            continue
        min_x = min(min_x, gx0)
        min_y = min(min_y, gy0)
        max_x = max(max_x, gx1)
        max_y = max(max_y, gy1)
    if not math.isfinite(min_x):
        return None
    return (min_x, min_y, max_x, max_y)


def _globe_outline() -> Any:
    shapely = _require_shapely()
    return shapely.segmentize(shapely.box(-180.0, -90.0, 180.0, 90.0), 1.0)


def _require_shapely() -> Any:
    try:
        import shapely
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for geometry projection") from exc
    return shapely


@lru_cache(maxsize=1)
def _natural_earth_transformer() -> Any:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for the Natural Earth projection") from exc
    return Transformer.from_crs("EPSG:4326", NATURAL_EARTH_CRS, always_xy=True)
