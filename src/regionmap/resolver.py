"""Free-text and numeric-id resolution to canonical ISO2 codes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping

from .models import CountryRecord


_TOKEN_SPLIT_RE = re.compile(r"[\n,]+")


@dataclass(frozen=True, slots=True)
class ResolutionTables:
    """Reverse lookup tables derived from the catalog.

    Built once by `build_tables` and passed explicitly to the resolve functions.
    Both mappings are read-only views.
    """

    numeric_to_code: Mapping[str, str]
    alias_to_code: Mapping[str, str]


@dataclass(frozen=True, slots=True)
class ParsedInput:
    codes: frozenset[str]
    unknown: tuple[str, ...]


def build_tables(catalog: Iterable[CountryRecord]) -> ResolutionTables:
    """Build numeric and alias lookup tables; later records win token collisions."""
    numeric_to_code: dict[str, str] = {}
    alias_to_code: dict[str, str] = {}
    for country in catalog:
        raw = country.numeric_id
        numeric_to_code[raw] = country.iso2
        numeric_to_code[raw.lstrip("0") or "0"] = country.iso2
        numeric_to_code[raw.zfill(3)] = country.iso2
        for token in country.tokens:
            alias_to_code[token.lower()] = country.iso2
    return ResolutionTables(
        numeric_to_code=MappingProxyType(numeric_to_code),
        alias_to_code=MappingProxyType(alias_to_code),
    )


def resolve_token(tables: ResolutionTables, token: str) -> str | None:
    """Resolve one typed token (name, alias, ISO2 or ISO3), case-insensitively."""
    key = token.strip().lower()
    if not key:
        return None
    return tables.alias_to_code.get(key)


def resolve_numeric(tables: ResolutionTables, numeric_id: str | int) -> str | None:
    """Resolve a geometry numeric id, with or without leading zeros."""
    id_str = str(numeric_id)
    code = tables.numeric_to_code.get(id_str)
    if code is not None:
        return code
    return tables.numeric_to_code.get(id_str.rjust(3, "0"))


def parse_input(tables: ResolutionTables, text: str) -> ParsedInput:
    """Split comma/newline separated text into resolved codes and unknown tokens.

    Unknown tokens keep their original casing and order and are not deduplicated.
    """
    codes: set[str] = set()
    unknown: list[str] = []
    for raw in _TOKEN_SPLIT_RE.split(text):
        token = raw.strip()
        if not token:
            continue
        code = resolve_token(tables, token)
        if code is None:
            unknown.append(token)
        else:
            codes.add(code)
    return ParsedInput(codes=frozenset(codes), unknown=tuple(unknown))
