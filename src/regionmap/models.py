"""Domain models shared across resolver, viewport and export modules."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


_EXPORT_FORMATS = ("png", "jpeg")
TRANSPARENT = "transparent"


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _normalize_iso(value: str, expected_len: int, field_name: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != expected_len or not normalized.isalpha():
        raise ValueError(f"Invalid {field_name}: '{value}'")
    return normalized


def _normalize_numeric(value: Any) -> str:
    # YAML turns unquoted 004 into the integer 4
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric id: {value!r}")
    if isinstance(value, int):
        return str(value)
    raw = _require_str(value, "numeric")
    if not raw.isdigit():
        raise ValueError(f"Invalid numeric id: '{raw}'")
    return raw


@dataclass(frozen=True, slots=True)
class CountryRecord:
    """Static catalog entry from `data/countries.yaml`."""

    numeric_id: str
    iso2: str
    iso3: str
    name: str
    aliases: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CountryRecord:
        numeric_id = _normalize_numeric(data.get("numeric"))
        iso2 = _normalize_iso(_require_str(data.get("iso2"), "iso2"), 2, "iso2")
        iso3 = _normalize_iso(_require_str(data.get("iso3"), "iso3"), 3, "iso3")
        name = _require_str(data.get("name"), "name")
        aliases_raw = data.get("aliases", [])
        aliases: list[str] = []
        if aliases_raw is not None:
            if not isinstance(aliases_raw, list):
                raise ValueError("Expected list for 'aliases'")
            for alias in aliases_raw:
                aliases.append(_require_str(alias, "aliases[]"))
        return cls(
            numeric_id=numeric_id,
            iso2=iso2,
            iso3=iso3,
            name=name,
            aliases=tuple(aliases),
        )

    @property
    def tokens(self) -> tuple[str, ...]:
        """Every free-text token that resolves to this record."""
        return (self.iso2, self.iso3, self.name, *self.aliases)


@dataclass(frozen=True, slots=True)
class ColorGroup:
    """A named set of typed country tokens sharing one fill color."""

    name: str
    color: str
    text: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ColorGroup:
        name_raw = data.get("name")
        name = name_raw.strip() if isinstance(name_raw, str) else ""
        color = _require_str(data.get("color"), "color")
        countries = data.get("countries", "")
        if countries is None:
            text = ""
        elif isinstance(countries, str):
            text = countries
        elif isinstance(countries, list):
            text = "\n".join(str(item) for item in countries)
        else:
            raise ValueError("Expected string or list for 'countries'")
        return cls(name=name, color=color, text=text)


@dataclass(frozen=True, slots=True)
class WorldFeature:
    """One polygon feature of the world geometry collection (lon/lat degrees)."""

    numeric_id: str
    geometry: Any
    name: str | None = None


@dataclass(frozen=True, slots=True)
class ViewTransform:
    """Pan + zoom applied to the projected scene: screen = translate + scale * point."""

    translate_x: float
    translate_y: float
    scale: float

    @classmethod
    def identity(cls) -> ViewTransform:
        return cls(translate_x=0.0, translate_y=0.0, scale=1.0)

    @property
    def is_identity(self) -> bool:
        return self.translate_x == 0.0 and self.translate_y == 0.0 and self.scale == 1.0

    def apply(self, x: float, y: float) -> tuple[float, float]:
        return (self.translate_x + self.scale * x, self.translate_y + self.scale * y)

    def visible_extent(self, width: float, height: float) -> tuple[float, float, float, float]:
        """Return the `(x0, x1, y0, y1)` window of untransformed screen space in view."""
        x0 = -self.translate_x / self.scale
        y0 = -self.translate_y / self.scale
        return (x0, x0 + width / self.scale, y0, y0 + height / self.scale)

    def to_dict(self) -> dict[str, float]:
        return {
            "translate_x": self.translate_x,
            "translate_y": self.translate_y,
            "scale": self.scale,
        }


@dataclass(frozen=True, slots=True)
class ExportOptions:
    """User-facing export choices."""

    format: str = "png"
    background: str = "#ffffff"
    title: str | None = None
    subtitle: str | None = None
    dark_mode: bool = False

    def __post_init__(self) -> None:
        if self.format not in _EXPORT_FORMATS:
            raise ValueError(
                f"Unsupported export format '{self.format}'; expected one of: "
                + ", ".join(_EXPORT_FORMATS)
            )
        # blank overlay text counts as absent, so no empty header band is allocated
        object.__setattr__(self, "title", _optional_text(self.title))
        object.__setattr__(self, "subtitle", _optional_text(self.subtitle))

    @classmethod
    def create(
        cls,
        *,
        format: str = "png",
        background: str = "#ffffff",
        title: str | None = None,
        subtitle: str | None = None,
        dark_mode: bool = False,
    ) -> ExportOptions:
        fmt = format.strip().casefold()
        if fmt == "jpg":
            fmt = "jpeg"
        return cls(
            format=fmt,
            background=background.strip() or "#ffffff",
            title=title,
            subtitle=subtitle,
            dark_mode=dark_mode,
        )

    @property
    def has_header(self) -> bool:
        return bool(self.title or self.subtitle)

    @property
    def wants_transparency(self) -> bool:
        return self.background.casefold() == TRANSPARENT

    @property
    def supports_alpha(self) -> bool:
        return self.format == "png"
