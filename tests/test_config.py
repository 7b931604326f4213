from __future__ import annotations

from pathlib import Path

import pytest

from regionmap.config import load_config
from regionmap.world import WORLD_ATLAS_URL


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_minimal_config_uses_defaults(project_dir: Path) -> None:
    cfg = load_config(project_dir / "config.yaml")

    assert cfg.paths.catalog == project_dir.resolve() / "data" / "countries.yaml"
    assert cfg.paths.build_directories == (
        project_dir.resolve() / "build" / "exports",
        project_dir.resolve() / "build" / "logs",
    )
    assert cfg.world.source_url == WORLD_ATLAS_URL
    assert (cfg.viewport.width_px, cfg.viewport.height_px) == (960, 600)
    assert cfg.export.format == "png"
    assert cfg.theme.dark_mode is False

    policy = cfg.fit.to_policy()
    assert (policy.padding, policy.min_scale, policy.max_scale) == (0.9, 1.0, 8.0)

    settings = cfg.export.to_settings()
    assert (settings.target_width_px, settings.header_height_px, settings.jpeg_quality) == (2400, 200, 90)


def test_full_config(tmp_path: Path) -> None:
    cfg = load_config(
        _write(
            tmp_path,
            "paths:\n"
            "  catalog: /srv/regionmap/countries.yaml\n"
            "  world_geometry: world.json\n"
            "  output_dir: out\n"
            "  logs_dir: logs\n"
            "viewport: {width_px: 1200, height_px: 800}\n"
            "fit: {padding: 0.8, max_scale: 12, epsilon: 1.0e-9}\n"
            "export: {format: JPG, background: transparent, jpeg_quality: 75, default_filename: atlas}\n"
            "theme: {dark_mode: true}\n",
        )
    )
    assert cfg.paths.catalog == Path("/srv/regionmap/countries.yaml")
    assert cfg.paths.world_geometry == tmp_path.resolve() / "world.json"
    assert cfg.viewport.width_px == 1200
    assert cfg.fit.to_policy().max_scale == 12.0
    assert cfg.fit.epsilon == pytest.approx(1e-9)
    assert cfg.export.format == "jpeg"
    assert cfg.export.to_settings().default_filename == "atlas"
    assert cfg.theme.dark_mode is True


@pytest.mark.parametrize(
    "extra",
    [
        "viewport: {width_px: 0}\n",
        "viewport: {width_px: '960'}\n",
        "fit: {min_scale: 4, max_scale: 2}\n",
        "fit: {epsilon: 1e-6}\n",
        "export: {format: gif}\n",
        "export: {jpeg_quality: 101}\n",
        "export: {header_height_px: -1}\n",
        "theme: {dark_mode: 'yes please'}\n",
        "world: {request_timeout_s: 0}\n",
        "world: []\n",
    ],
)
def test_invalid_sections_are_rejected(tmp_path: Path, extra: str) -> None:
    body = (
        "paths:\n"
        "  catalog: c.yaml\n"
        "  world_geometry: w.json\n"
        "  output_dir: out\n"
        "  logs_dir: logs\n" + extra
    )
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, body))


def test_paths_section_is_required(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="paths"):
        load_config(_write(tmp_path, "viewport: {width_px: 960}\n"))


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_config(_write(tmp_path, "- just\n- a list\n"))


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")
