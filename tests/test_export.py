from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from PIL import Image

from regionmap.export import (
    ExportSettings,
    canvas_layout,
    decode_svg_file,
    export_filename,
    export_scene,
    format_export_lines,
    overlay_text_color,
    resolve_background,
)
from regionmap.models import ExportOptions
from regionmap.scene import VectorScene

SCENE = VectorScene(
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 960 600">'
    '<rect width="960" height="600" fill="#ef4444"/></svg>'
)
RED = (239, 68, 68, 255)


class _RecordingDecoder:
    """Stands in for the SVG rasterizer; remembers the data source it was given."""

    def __init__(self, fill: tuple[int, int, int, int] = RED, fail: bool = False) -> None:
        self.fill = fill
        self.fail = fail
        self.calls: list[tuple[Path, int, int]] = []

    def __call__(self, path: Path, width: int, height: int) -> Image.Image:
        assert path.exists()
        assert path.read_text(encoding="utf-8") == SCENE.serialize()
        self.calls.append((path, width, height))
        if self.fail:
            raise RuntimeError("boom")
        return Image.new("RGBA", (width, height), self.fill)


def _export(options: ExportOptions, output_dir: Path, decoder: _RecordingDecoder, scene=SCENE):
    return asyncio.run(export_scene(scene, options, output_dir, decoder=decoder))


def _cairosvg_available() -> bool:
    try:
        import cairosvg  # noqa: F401
    except (ImportError, OSError):
        return False
    return True


@pytest.mark.parametrize(
    ("title", "fmt", "expected"),
    [
        ("My Map", "png", "my-map.png"),
        ("  Europe \t 2024  ", "jpeg", "europe-2024.jpeg"),
        ("Sales/Q1 Report", "png", "sales-q1-report.png"),
        (None, "png", "choropleth-map.png"),
        ("   ", "jpeg", "choropleth-map.jpeg"),
    ],
)
def test_export_filename(title: str | None, fmt: str, expected: str) -> None:
    assert export_filename(title, fmt) == expected


def test_export_options_normalize_input() -> None:
    options = ExportOptions.create(format=" JPG ", background=" ", title="  ", subtitle=" Q1 ")
    assert options.format == "jpeg"
    assert options.background == "#ffffff"
    assert options.title is None
    assert options.subtitle == "Q1"
    assert options.has_header

    with pytest.raises(ValueError):
        ExportOptions(format="gif")


def test_background_policy() -> None:
    assert resolve_background(ExportOptions(format="png", background="transparent")) == (0, 0, 0, 0)
    assert resolve_background(ExportOptions(format="jpeg", background="transparent")) == (
        255,
        255,
        255,
        255,
    )
    assert resolve_background(ExportOptions(format="jpeg", background="#000080")) == (0, 0, 128, 255)


@pytest.mark.parametrize(
    ("dark_mode", "background", "expected"),
    [
        (True, "#0f172a", "#ffffff"),
        (True, "#ffffff", "#1f2937"),
        (True, "white", "#1f2937"),
        (True, "transparent", "#1f2937"),
        (False, "#0f172a", "#1f2937"),
        (False, "transparent", "#1f2937"),
    ],
)
def test_overlay_text_color(dark_mode: bool, background: str, expected: str) -> None:
    options = ExportOptions(background=background, dark_mode=dark_mode)
    assert overlay_text_color(options) == expected


def test_canvas_layout_header_only_with_title_or_subtitle() -> None:
    plain = canvas_layout(960, 600, ExportOptions())
    assert (plain.width, plain.map_height, plain.header_height, plain.height) == (2400, 1500, 0, 1500)

    titled = canvas_layout(960, 600, ExportOptions(subtitle="Q1"))
    assert (titled.header_height, titled.height) == (200, 1700)


@pytest.mark.parametrize(("width", "height"), [(0, 600), (960, 0), (-5, 10), (float("nan"), 600)])
def test_canvas_layout_rejects_degenerate_scene(width: float, height: float) -> None:
    with pytest.raises(ValueError):
        canvas_layout(width, height, ExportOptions())


def test_export_png_without_header(tmp_path: Path) -> None:
    decoder = _RecordingDecoder()
    report = _export(ExportOptions(), tmp_path, decoder)

    assert report.ok, report.errors
    assert report.output_path == tmp_path / "choropleth-map.png"
    assert decoder.calls[0][1:] == (2400, 1500)
    with Image.open(report.output_path) as image:
        assert image.format == "PNG"
        assert image.size == (2400, 1500)
        assert image.convert("RGBA").getpixel((10, 10)) == RED
    assert not decoder.calls[0][0].exists()
    assert format_export_lines(report)[-1].startswith("[OK]")


def test_export_png_with_title_adds_header_band(tmp_path: Path) -> None:
    pytest.importorskip("matplotlib")
    decoder = _RecordingDecoder()
    options = ExportOptions(background="#000080", title="My Map", subtitle="Allies", dark_mode=True)
    report = _export(options, tmp_path, decoder)

    assert report.ok, report.errors
    assert report.output_path == tmp_path / "my-map.png"
    with Image.open(report.output_path) as image:
        rgba = image.convert("RGBA")
        assert rgba.size == (2400, 1700)
        assert rgba.getpixel((5, 5)) == (0, 0, 128, 255)
        assert rgba.getpixel((5, 1650)) == RED
        header = rgba.crop((0, 0, 2400, 200))
        assert any(px[0] > 200 and px[1] > 200 for px in header.getdata())


def test_export_jpeg_never_transparent(tmp_path: Path) -> None:
    decoder = _RecordingDecoder(fill=(0, 0, 0, 0))
    options = ExportOptions.create(format="jpg", background="transparent")
    report = _export(options, tmp_path, decoder)

    assert report.ok, report.errors
    assert report.output_path == tmp_path / "choropleth-map.jpeg"
    assert report.warnings
    with Image.open(report.output_path) as image:
        assert image.format == "JPEG"
        assert image.mode == "RGB"
        assert all(channel >= 250 for channel in image.getpixel((100, 100)))


def test_export_png_keeps_transparency(tmp_path: Path) -> None:
    decoder = _RecordingDecoder(fill=(0, 0, 0, 0))
    report = _export(ExportOptions(background="transparent"), tmp_path, decoder)

    assert report.ok, report.errors
    with Image.open(report.output_path) as image:
        assert image.mode == "RGBA"
        assert image.getpixel((100, 100))[3] == 0


def test_invalid_scene_dimensions_write_nothing(tmp_path: Path) -> None:
    decoder = _RecordingDecoder()
    scene = VectorScene('<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 0 600"></svg>')
    report = _export(ExportOptions(), tmp_path, decoder, scene=scene)

    assert not report.ok
    assert report.output_path is None
    assert report.errors
    assert decoder.calls == []
    assert list(tmp_path.iterdir()) == []


def test_decode_failure_writes_nothing_and_removes_source(tmp_path: Path) -> None:
    decoder = _RecordingDecoder(fail=True)
    report = _export(ExportOptions(title="Broken"), tmp_path, decoder)

    assert not report.ok
    assert any("boom" in msg for msg in report.errors)
    assert list(tmp_path.iterdir()) == []
    assert not decoder.calls[0][0].exists()
    assert format_export_lines(report)[-1].startswith("[ERROR]")


def test_concurrent_exports_share_a_lock(tmp_path: Path) -> None:
    decoder = _RecordingDecoder()

    async def run_both():
        lock = asyncio.Lock()
        return await asyncio.gather(
            export_scene(SCENE, ExportOptions(title="First"), tmp_path, decoder=decoder, lock=lock),
            export_scene(SCENE, ExportOptions(title="Second"), tmp_path, decoder=decoder, lock=lock),
        )

    first, second = asyncio.run(run_both())
    assert first.ok and second.ok
    assert {p.name for p in tmp_path.iterdir()} == {"first.png", "second.png"}


def test_custom_settings_change_canvas(tmp_path: Path) -> None:
    decoder = _RecordingDecoder()
    settings = ExportSettings(target_width_px=480, default_filename="world")
    report = asyncio.run(
        export_scene(SCENE, ExportOptions(), tmp_path, settings=settings, decoder=decoder)
    )
    assert report.output_path == tmp_path / "world.png"
    with Image.open(report.output_path) as image:
        assert image.size == (480, 300)


@pytest.mark.skipif(not _cairosvg_available(), reason="cairosvg or libcairo not available")
def test_decode_svg_file_rasterizes_at_requested_size(tmp_path: Path) -> None:
    source = tmp_path / "scene.svg"
    source.write_text(SCENE.serialize(), encoding="utf-8")
    image = decode_svg_file(source, 480, 300)
    assert image.size == (480, 300)
    assert image.getpixel((240, 150)) == RED


def test_canvas_allocation_failure_writes_nothing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    decoder = _RecordingDecoder()
    real_new = Image.new

    def new_or_fail(mode, size, *args, **kwargs):
        # the titled canvas is 2400x1700; the decoded map is 2400x1500
        if tuple(size) == (2400, 1700):
            raise MemoryError("no room")
        return real_new(mode, size, *args, **kwargs)

    monkeypatch.setattr("regionmap.export.Image.new", new_or_fail)
    report = _export(ExportOptions(title="Too Big"), tmp_path, decoder)

    assert not report.ok
    assert report.output_path is None
    assert any("could not allocate 2400x1700 canvas" in msg for msg in report.errors)
    assert list(tmp_path.iterdir()) == []
    assert not decoder.calls[0][0].exists()


def test_blank_overlay_text_adds_no_header(tmp_path: Path) -> None:
    options = ExportOptions(title="   ", subtitle="\t")
    assert options.title is None
    assert options.subtitle is None
    assert not options.has_header
    assert canvas_layout(960, 600, options).header_height == 0
    assert ExportOptions(title="  My Map ").title == "My Map"

    report = _export(options, tmp_path, _RecordingDecoder())
    assert report.output_path == tmp_path / "choropleth-map.png"
    with Image.open(report.output_path) as image:
        assert image.size == (2400, 1500)
