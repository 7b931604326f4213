"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .export import DEFAULT_FILENAME, ExportSettings
from .viewport import FitPolicy
from .world import WORLD_ATLAS_URL


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _optional_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    return _mapping(value, field_name)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class PathsConfig:
    catalog: Path
    world_geometry: Path
    output_dir: Path
    logs_dir: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            catalog=_path_from_cfg(raw.get("catalog"), "paths.catalog", root_dir),
            world_geometry=_path_from_cfg(raw.get("world_geometry"), "paths.world_geometry", root_dir),
            output_dir=_path_from_cfg(raw.get("output_dir"), "paths.output_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class WorldConfig:
    source_url: str
    request_timeout_s: float
    user_agent: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> WorldConfig:
        timeout = _float(raw.get("request_timeout_s", 30), "world.request_timeout_s")
        if timeout <= 0:
            raise ValueError("world.request_timeout_s must be > 0")
        return cls(
            source_url=_str(raw.get("source_url", WORLD_ATLAS_URL), "world.source_url"),
            request_timeout_s=timeout,
            user_agent=_str(raw.get("user_agent", "regionmap"), "world.user_agent"),
        )


@dataclass(frozen=True, slots=True)
class ViewportConfig:
    width_px: int
    height_px: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ViewportConfig:
        width = _int(raw.get("width_px", 960), "viewport.width_px")
        height = _int(raw.get("height_px", 600), "viewport.height_px")
        if width <= 0 or height <= 0:
            raise ValueError("viewport.width_px and viewport.height_px must be > 0")
        return cls(width_px=width, height_px=height)


@dataclass(frozen=True, slots=True)
class FitConfig:
    projection_margin: float
    padding: float
    min_scale: float
    max_scale: float
    epsilon: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FitConfig:
        defaults = FitPolicy()
        min_scale = _float(raw.get("min_scale", defaults.min_scale), "fit.min_scale")
        max_scale = _float(raw.get("max_scale", defaults.max_scale), "fit.max_scale")
        epsilon = _float(raw.get("epsilon", defaults.epsilon), "fit.epsilon")
        if min_scale <= 0:
            raise ValueError("fit.min_scale must be > 0")
        if max_scale < min_scale:
            raise ValueError("fit.max_scale cannot be lower than fit.min_scale")
        if epsilon <= 0:
            raise ValueError("fit.epsilon must be > 0")
        return cls(
            projection_margin=_float(
                raw.get("projection_margin", defaults.projection_margin), "fit.projection_margin"
            ),
            padding=_float(raw.get("padding", defaults.padding), "fit.padding"),
            min_scale=min_scale,
            max_scale=max_scale,
            epsilon=epsilon,
        )

    def to_policy(self) -> FitPolicy:
        return FitPolicy(
            projection_margin=self.projection_margin,
            padding=self.padding,
            min_scale=self.min_scale,
            max_scale=self.max_scale,
            epsilon=self.epsilon,
        )


@dataclass(frozen=True, slots=True)
class ExportConfig:
    format: str
    background: str
    target_width_px: int
    header_height_px: int
    jpeg_quality: int
    default_filename: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ExportConfig:
        fmt = _str(raw.get("format", "png"), "export.format").casefold()
        if fmt == "jpg":
            fmt = "jpeg"
        if fmt not in {"png", "jpeg"}:
            raise ValueError("export.format must be one of: jpeg, png")
        quality = _int(raw.get("jpeg_quality", 90), "export.jpeg_quality")
        if quality < 1 or quality > 100:
            raise ValueError("export.jpeg_quality must be between 1 and 100")
        target_width = _int(raw.get("target_width_px", 2400), "export.target_width_px")
        header_height = _int(raw.get("header_height_px", 200), "export.header_height_px")
        if target_width <= 0:
            raise ValueError("export.target_width_px must be > 0")
        if header_height < 0:
            raise ValueError("export.header_height_px must be >= 0")
        return cls(
            format=fmt,
            background=_str(raw.get("background", "#ffffff"), "export.background"),
            target_width_px=target_width,
            header_height_px=header_height,
            jpeg_quality=quality,
            default_filename=_str(
                raw.get("default_filename", DEFAULT_FILENAME), "export.default_filename"
            ),
        )

    def to_settings(self) -> ExportSettings:
        return ExportSettings(
            target_width_px=self.target_width_px,
            header_height_px=self.header_height_px,
            jpeg_quality=self.jpeg_quality,
            default_filename=self.default_filename,
        )


@dataclass(frozen=True, slots=True)
class ThemeConfig:
    dark_mode: bool

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ThemeConfig:
        return cls(dark_mode=_bool(raw.get("dark_mode", False), "theme.dark_mode"))


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    paths: PathsConfig
    world: WorldConfig
    viewport: ViewportConfig
    fit: FitConfig
    export: ExportConfig
    theme: ThemeConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        return cls(
            source_path=source_path.resolve(),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            world=WorldConfig.from_mapping(_optional_mapping(raw.get("world"), "world")),
            viewport=ViewportConfig.from_mapping(_optional_mapping(raw.get("viewport"), "viewport")),
            fit=FitConfig.from_mapping(_optional_mapping(raw.get("fit"), "fit")),
            export=ExportConfig.from_mapping(_optional_mapping(raw.get("export"), "export")),
            theme=ThemeConfig.from_mapping(_optional_mapping(raw.get("theme"), "theme")),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
