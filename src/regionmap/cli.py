"""CLI entrypoint for the regionmap choropleth builder."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Sequence

from .config import AppConfig, load_config
from .countries import load_catalog
from .export import export_filename, export_scene, format_export_lines
from .models import ColorGroup, ExportOptions, ViewTransform
from .resolver import ResolutionTables, build_tables
from .scene import Theme, render_scene
from .selection import (
    DEFAULT_SINGLE_COLOR,
    PRESETS,
    apply_preset,
    build_color_assignment,
    legend_entries,
    load_selection,
    single_group,
)
from .util import ensure_directories, format_code_list, setup_logging, write_json
from .validate import Validator, format_report_lines
from .viewport import active_predicate, compute_fit, fit_projection
from .world import WorldRepository, download_world

LOGGER = logging.getLogger("regionmap.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="regionmap",
        description="Color groups of countries on a world map and export it as an image.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    def add_selection(p: argparse.ArgumentParser) -> None:
        source = p.add_mutually_exclusive_group(required=True)
        source.add_argument(
            "--countries",
            help="Comma or newline separated country names/codes (single mode).",
        )
        source.add_argument("--selection", type=Path, help="YAML selection file with color groups.")
        p.add_argument(
            "--color",
            default=DEFAULT_SINGLE_COLOR,
            help="Fill color for --countries.",
        )
        p.add_argument(
            "--preset",
            action="append",
            default=[],
            choices=sorted(PRESETS),
            help="Append a preset region to the (last) group. Can be repeated.",
        )

    validate_p = subparsers.add_parser("validate", help="Validate config, catalog and geometry.")
    add_common(validate_p)
    validate_p.add_argument(
        "--strict-data-files",
        action="store_true",
        help="Treat a missing world geometry file as a validation error.",
    )
    validate_p.add_argument(
        "--skip-geometry",
        action="store_true",
        help="Do not load the world geometry for coverage checks.",
    )

    resolve_p = subparsers.add_parser("resolve", help="Resolve typed countries and list unknown terms.")
    add_common(resolve_p)
    add_selection(resolve_p)
    resolve_p.add_argument("--json", type=Path, default=None, help="Write the result as JSON.")

    fetch_p = subparsers.add_parser("fetch-world", help="Download the world geometry dataset.")
    add_common(fetch_p)
    fetch_p.add_argument("--url", default=None, help="Override the configured source URL.")
    fetch_p.add_argument("--force", action="store_true", help="Re-download an existing file.")

    render_p = subparsers.add_parser("render", help="Render and export the choropleth map.")
    add_common(render_p)
    add_selection(render_p)
    render_p.add_argument("--format", choices=("png", "jpeg", "jpg"), default=None)
    render_p.add_argument(
        "--background",
        default=None,
        help="Background color, or 'transparent' (PNG only).",
    )
    render_p.add_argument("--title", default=None)
    render_p.add_argument("--subtitle", default=None)
    theme_group = render_p.add_mutually_exclusive_group()
    theme_group.add_argument("--dark", dest="dark_mode", action="store_true", default=None)
    theme_group.add_argument("--light", dest="dark_mode", action="store_false")
    render_p.set_defaults(dark_mode=None)
    render_p.add_argument(
        "--no-fit",
        action="store_true",
        help="Keep the whole-world view instead of zooming to the selection.",
    )
    render_p.add_argument("--keep-svg", action="store_true", help="Also write the vector scene.")
    render_p.add_argument(
        "--manifest",
        action="store_true",
        help="Write a JSON sidecar with the color assignment and view transform.",
    )

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.paths.logs_dir / "regionmap.log", verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _load_tables(cfg: AppConfig) -> ResolutionTables:
    catalog = load_catalog(cfg.paths.catalog)
    LOGGER.info("Loaded %d catalog records from %s", len(catalog), cfg.paths.catalog)
    return build_tables(catalog)


def _groups_from_args(args: argparse.Namespace) -> tuple[ColorGroup, ...]:
    if args.selection is not None:
        groups = list(load_selection(args.selection).groups)
    else:
        groups = [single_group(str(args.countries), str(args.color))]
    if args.preset and groups:
        last = groups[-1]
        text = last.text
        for name in args.preset:
            text = apply_preset(text, PRESETS[name])
        groups[-1] = ColorGroup(name=last.name, color=last.color, text=text)
    return tuple(groups)


def _run_validate(cfg: AppConfig, *, strict_data_files: bool, skip_geometry: bool) -> int:
    report = Validator(cfg).run(strict_data_files=strict_data_files, check_geometry=not skip_geometry)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_resolve(cfg: AppConfig, args: argparse.Namespace) -> int:
    tables = _load_tables(cfg)
    groups = _groups_from_args(args)
    result = build_color_assignment(tables, groups)
    for name, color, count in legend_entries(groups, result):
        LOGGER.info("%s (%s): %d countries", name, color, count)
    LOGGER.info("Resolved codes: %s", format_code_list(sorted(result.assignment)) or "-")
    if result.unknown_terms:
        LOGGER.warning("Unknown terms: %s", format_code_list(list(result.unknown_terms)))
    if args.json is not None:
        write_json(
            args.json,
            {
                "assignment": dict(result.assignment),
                "unknown_terms": list(result.unknown_terms),
                "groups": [
                    {"name": name, "color": color, "count": count}
                    for name, color, count in legend_entries(groups, result)
                ],
            },
        )
        LOGGER.info("Resolution written to %s", args.json)
    return 0


def _run_fetch_world(cfg: AppConfig, *, url: str | None, force: bool) -> int:
    dest = cfg.paths.world_geometry
    if dest.exists() and not force:
        LOGGER.info("World geometry already present at %s (use --force to refresh).", dest)
        return 0
    source_url = url or cfg.world.source_url
    try:
        download_world(
            source_url,
            dest,
            timeout_s=cfg.world.request_timeout_s,
            user_agent=cfg.world.user_agent,
        )
    except Exception as exc:
        LOGGER.error("World geometry download failed from %s: %s", source_url, exc)
        return 1
    return 0


def _run_render(cfg: AppConfig, args: argparse.Namespace) -> int:
    tables = _load_tables(cfg)
    groups = _groups_from_args(args)
    result = build_color_assignment(tables, groups)
    if result.unknown_terms:
        LOGGER.warning("Unknown terms: %s", format_code_list(list(result.unknown_terms)))
    LOGGER.info("Color assignment covers %d countries.", len(result.assignment))

    try:
        features = WorldRepository(cfg.paths.world_geometry).load()
    except Exception as exc:
        LOGGER.error("World geometry unavailable (%s): %s", cfg.paths.world_geometry, exc)
        return 1

    policy = cfg.fit.to_policy()
    projection = fit_projection(
        features,
        cfg.viewport.width_px,
        cfg.viewport.height_px,
        margin=policy.projection_margin,
    )
    if args.no_fit:
        transform = ViewTransform.identity()
    else:
        transform = compute_fit(
            features,
            is_active=active_predicate(result.assignment, tables),
            projection=projection,
            policy=policy,
        )
    LOGGER.info(
        "View transform: translate=(%.2f, %.2f) scale=%.3f",
        transform.translate_x,
        transform.translate_y,
        transform.scale,
    )

    dark_mode = cfg.theme.dark_mode if args.dark_mode is None else bool(args.dark_mode)
    scene = render_scene(
        features,
        assignment=result.assignment,
        tables=tables,
        projection=projection,
        transform=transform,
        theme=Theme.for_mode(dark_mode),
    )

    options = ExportOptions.create(
        format=args.format or cfg.export.format,
        background=args.background or cfg.export.background,
        title=args.title,
        subtitle=args.subtitle,
        dark_mode=dark_mode,
    )
    settings = cfg.export.to_settings()
    if args.keep_svg:
        svg_path = cfg.paths.output_dir / export_filename(
            options.title, "svg", default=settings.default_filename
        )
        svg_path.write_text(scene.serialize(), encoding="utf-8")
        LOGGER.info("Vector scene written to %s", svg_path)

    report = asyncio.run(export_scene(scene, options, cfg.paths.output_dir, settings=settings))
    for line in format_export_lines(report):
        LOGGER.info(line)
    if not report.ok:
        return 1

    if args.manifest and report.output_path is not None:
        manifest_path = report.output_path.with_suffix(".json")
        write_json(
            manifest_path,
            {
                "image": report.output_path.name,
                "assignment": dict(result.assignment),
                "unknown_terms": list(result.unknown_terms),
                "view_transform": transform.to_dict(),
                "viewport": {"width_px": cfg.viewport.width_px, "height_px": cfg.viewport.height_px},
            },
        )
        LOGGER.info("Render manifest written to %s", manifest_path)
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "validate":
        return _run_validate(
            cfg,
            strict_data_files=bool(args.strict_data_files),
            skip_geometry=bool(args.skip_geometry),
        )
    if command == "resolve":
        return _run_resolve(cfg, args)
    if command == "fetch-world":
        return _run_fetch_world(cfg, url=args.url, force=bool(args.force))
    if command == "render":
        return _run_render(cfg, args)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
