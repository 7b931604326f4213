"""Raster export: vector scene + title overlays composited onto a fixed-width canvas."""

from __future__ import annotations

import asyncio
import io
import logging
import math
import os
import re
import tempfile
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Sequence

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .models import ExportOptions
from .scene import VectorScene


_LOGGER = logging.getLogger("regionmap.export")

DEFAULT_FILENAME = "choropleth-map"
_LIGHT_TEXT = "#ffffff"
_DARK_TEXT = "#1f2937"
_WHITE_RGBA = (255, 255, 255, 255)
_CLEAR_RGBA = (0, 0, 0, 0)
_WHITESPACE_RE = re.compile(r"\s+")
_PIL_FORMATS = {"png": "PNG", "jpeg": "JPEG"}

SceneDecoder = Callable[[Path, int, int], Any]


@dataclass(frozen=True, slots=True)
class ExportSettings:
    target_width_px: int = 2400
    header_height_px: int = 200
    jpeg_quality: int = 90
    title_font_px: int = 64
    subtitle_font_px: int = 40
    title_top_px: int = 40
    title_line_px: int = 80
    subtitle_opacity: float = 0.8
    default_filename: str = DEFAULT_FILENAME


@dataclass(frozen=True, slots=True)
class DecodeResult:
    """Outcome of decoding the scene into a bitmap: an image or an error message."""

    image: Any | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.image is not None and self.error is None

    @classmethod
    def success(cls, image: Any) -> DecodeResult:
        return cls(image=image)

    @classmethod
    def failure(cls, error: str) -> DecodeResult:
        return cls(error=error)


@dataclass(frozen=True, slots=True)
class CanvasLayout:
    width: int
    map_height: int
    header_height: int

    @property
    def height(self) -> int:
        return self.map_height + self.header_height


@dataclass(slots=True)
class ExportReport:
    output_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and self.output_path is not None

    def add_error(self, msg: str) -> None:
        _LOGGER.error(msg)
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        _LOGGER.warning(msg)
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


def export_filename(
    title: str | None,
    fmt: str,
    *,
    default: str = DEFAULT_FILENAME,
) -> str:
    """`"My Map"` -> `my-map.png`; no title -> the default name."""
    stem = title.strip() if title else ""
    if stem:
        stem = _WHITESPACE_RE.sub("-", stem).lower()
        stem = stem.replace("/", "-").replace("\\", "-")
    return f"{stem or default}.{fmt}"


def resolve_background(options: ExportOptions) -> tuple[int, int, int, int]:
    """Transparent only when the format has alpha; otherwise white or the solid color."""
    if options.wants_transparency:
        return _CLEAR_RGBA if options.supports_alpha else _WHITE_RGBA
    return tuple(ImageColor.getcolor(options.background, "RGBA"))  # type: ignore[return-value]


def overlay_text_color(options: ExportOptions) -> str:
    if not options.dark_mode or options.wants_transparency:
        return _DARK_TEXT
    if ImageColor.getcolor(options.background, "RGBA") == _WHITE_RGBA:
        return _DARK_TEXT
    return _LIGHT_TEXT


def canvas_layout(
    scene_width: float,
    scene_height: float,
    options: ExportOptions,
    settings: ExportSettings = ExportSettings(),
) -> CanvasLayout:
    if not (math.isfinite(scene_width) and math.isfinite(scene_height)):
        raise ValueError(f"Scene dimensions are not finite: {scene_width}x{scene_height}")
    if scene_width <= 0 or scene_height <= 0:
        raise ValueError(f"Scene has no area: {scene_width}x{scene_height}")
    aspect_ratio = scene_width / scene_height
    map_height = int(round(settings.target_width_px / aspect_ratio))
    if map_height < 1:
        raise ValueError(f"Scene aspect ratio {aspect_ratio:.3f} yields an empty map height")
    return CanvasLayout(
        width=settings.target_width_px,
        map_height=map_height,
        header_height=settings.header_height_px if options.has_header else 0,
    )


def decode_svg_file(path: Path, width: int, height: int) -> Any:
    """Rasterize an SVG file to an RGBA image of exactly `width` x `height`."""
    cairosvg = _require_cairosvg()
    png_bytes = cairosvg.svg2png(url=str(path), output_width=width, output_height=height)
    with Image.open(io.BytesIO(png_bytes)) as image:
        return image.convert("RGBA")


async def export_scene(
    scene: VectorScene,
    options: ExportOptions,
    output_dir: Path,
    *,
    settings: ExportSettings = ExportSettings(),
    decoder: SceneDecoder = decode_svg_file,
    lock: asyncio.Lock | None = None,
) -> ExportReport:
    """Rasterize `scene` with overlays and write the image file into `output_dir`.

    Suspends while the scene is decoded. On any failure the report carries the
    error and no file is written. Pass a shared `lock` to keep at most one
    export in flight.
    """
    if lock is None:
        return await _export(scene, options, output_dir, settings=settings, decoder=decoder)
    async with lock:
        return await _export(scene, options, output_dir, settings=settings, decoder=decoder)


async def _export(
    scene: VectorScene,
    options: ExportOptions,
    output_dir: Path,
    *,
    settings: ExportSettings,
    decoder: SceneDecoder,
) -> ExportReport:
    report = ExportReport()
    try:
        scene_width, scene_height = scene.dimensions()
        layout = canvas_layout(scene_width, scene_height, options, settings)
        background = resolve_background(options)
        text_color = overlay_text_color(options)
    except ValueError as exc:
        report.add_error(f"Export aborted: {exc}")
        return report

    if options.wants_transparency and not options.supports_alpha:
        report.add_warning(
            f"Format '{options.format}' has no alpha channel; using a white background."
        )

    source_path = _create_data_source(scene.serialize())
    try:
        result = await asyncio.to_thread(_decode, decoder, source_path, layout)
        if not result.ok:
            report.add_error(f"Export aborted: scene decode failed: {result.error}")
            return report

        try:
            canvas = Image.new("RGBA", (layout.width, layout.height), background)
        except (MemoryError, ValueError) as exc:
            report.add_error(
                f"Export aborted: could not allocate {layout.width}x{layout.height} canvas: {exc}"
            )
            return report

        try:
            if options.has_header:
                _draw_header(canvas, options, settings, text_color)
            _draw_map(canvas, result.image, layout)
            payload = _encode(canvas, options, settings)
        except (OSError, RuntimeError) as exc:
            report.add_error(f"Export aborted: compositing failed: {exc}")
            return report
    finally:
        source_path.unlink(missing_ok=True)

    filename = export_filename(options.title, options.format, default=settings.default_filename)
    output_path = output_dir / filename
    try:
        _write_atomic(output_path, payload)
    except OSError as exc:
        report.add_error(f"Export aborted: failed writing {output_path}: {exc}")
        return report

    report.output_path = output_path
    report.add_info(
        f"Exported {layout.width}x{layout.height} {options.format.upper()} to {output_path}"
    )
    _LOGGER.info("Exported map image to %s", output_path)
    return report


def format_export_lines(report: ExportReport) -> Sequence[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Export completed with no errors.")
    return lines


def _decode(decoder: SceneDecoder, source_path: Path, layout: CanvasLayout) -> DecodeResult:
    try:
        image = decoder(source_path, layout.width, layout.map_height)
    except Exception as exc:
        return DecodeResult.failure(f"{type(exc).__name__}: {exc}")
    if image is None:
        return DecodeResult.failure("decoder returned no image")
    return DecodeResult.success(image)


def _create_data_source(markup: str) -> Path:
    fd, raw_path = tempfile.mkstemp(prefix="regionmap-", suffix=".svg")
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(markup)
    return Path(raw_path)


def _draw_header(
    canvas: Any,
    options: ExportOptions,
    settings: ExportSettings,
    text_color: str,
) -> None:
    red, green, blue = ImageColor.getrgb(text_color)[:3]
    center_x = canvas.width / 2.0
    y = settings.title_top_px

    if options.title:
        draw = ImageDraw.Draw(canvas)
        draw.text(
            (center_x, y),
            options.title,
            fill=(red, green, blue, 255),
            font=_load_font(settings.title_font_px, bold=True),
            anchor="ma",
        )
        y += settings.title_line_px

    if options.subtitle:
        # drawn on its own layer so the partial alpha blends instead of overwriting
        layer = Image.new("RGBA", canvas.size, _CLEAR_RGBA)
        alpha = int(round(255 * settings.subtitle_opacity))
        ImageDraw.Draw(layer).text(
            (center_x, y),
            options.subtitle,
            fill=(red, green, blue, alpha),
            font=_load_font(settings.subtitle_font_px, bold=False),
            anchor="ma",
        )
        canvas.alpha_composite(layer)


def _draw_map(canvas: Any, bitmap: Any, layout: CanvasLayout) -> None:
    image = bitmap.convert("RGBA")
    if image.size != (layout.width, layout.map_height):
        image = image.resize((layout.width, layout.map_height), resample=Image.Resampling.LANCZOS)
    canvas.alpha_composite(image, dest=(0, layout.header_height))


def _encode(canvas: Any, options: ExportOptions, settings: ExportSettings) -> bytes:
    buffer = io.BytesIO()
    pil_format = _PIL_FORMATS[options.format]
    if options.supports_alpha:
        canvas.save(buffer, format=pil_format)
    else:
        canvas.convert("RGB").save(buffer, format=pil_format, quality=settings.jpeg_quality)
    return buffer.getvalue()


def _write_atomic(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".part")
    try:
        tmp_path.write_bytes(payload)
        tmp_path.replace(path)
    finally:
        tmp_path.unlink(missing_ok=True)


@lru_cache(maxsize=8)
def _load_font(size_px: int, *, bold: bool) -> Any:
    font_manager = _require_font_manager()
    font_path = font_manager.findfont(
        font_manager.FontProperties(family="sans-serif", weight="bold" if bold else "normal")
    )
    return ImageFont.truetype(font_path, size_px)


def _require_font_manager() -> Any:
    try:
        from matplotlib import font_manager
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required to locate overlay fonts") from exc
    return font_manager


def _require_cairosvg() -> Any:
    try:
        import cairosvg  # type: ignore[import-untyped]
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("cairosvg is required to rasterize the map scene") from exc
    return cairosvg
