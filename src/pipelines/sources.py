from __future__ import annotations

import io
import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

import pandas as pd

from app.logging import get_logger
from app.settings import Settings
from pipelines.common.http_client import HttpClient
from pipelines.common.integrity import verify_integrity
from pipelines.models import AggregateValues, Substance

TESTS_SOURCE = "tests"
SUBSTANCES_SOURCE = "substances"
TOPOJSON_SOURCE = "topojson"
VALUES_SOURCE = "values"

SOURCE_NAMES: tuple[str, ...] = (TESTS_SOURCE, SUBSTANCES_SOURCE, TOPOJSON_SOURCE, VALUES_SOURCE)

SUBSTANCE_COLUMNS = ("code", "limit", "name", "shortName")

# values csv column -> property key
CATEGORY_COLUMNS: dict[str, str] = {
    "atrazine_average_category": "atr_avg_cat",
    "atrazine_category": "atr_max_cat",
    "simazine_average_category": "sim_avg_cat",
    "simazine_category": "sim_max_cat",
}
NUMBER_COLUMNS: dict[str, str] = {
    "detected": "detected",
    "eq_br": "eq_br",
    "sup_br": "sup_br",
    "sup_eu": "sup_eu",
}
VALUES_ID_COLUMN = "ibge_code"

RawTests = dict[str, dict[str, list[Any]]]

# raw.githubusercontent.com serves every file as text/plain
CONTENT_TYPES: dict[str, list[str]] = {
    "json": ["json", "text/plain"],
    "csv": ["csv", "text/plain"],
}

logger = get_logger("pipelines.sources")


class SourceNotConfiguredError(ValueError):
    def __init__(self, settings_by_source: dict[str, str]) -> None:
        self.settings_by_source = dict(settings_by_source)
        names = ", ".join(f"{name} ({setting})" for name, setting in sorted(self.settings_by_source.items()))
        super().__init__(f"Source URL not configured: {names}.")

    def failures(self) -> dict[str, str]:
        return {
            name: f"{setting} is not set; configure a local path or URL for this source."
            for name, setting in self.settings_by_source.items()
        }


@dataclass(frozen=True)
class SourceConfig:
    name: str
    url: str
    integrity: str
    kind: Literal["json", "csv"]


def build_source_configs(settings: Settings, *, required: bool = True) -> dict[str, SourceConfig]:
    """Map each source name to its config.

    Raises SourceNotConfiguredError for a source without URL unless
    ``required`` is False, in which case that source is left out.
    """
    candidates = {
        TESTS_SOURCE: (settings.tests_url, settings.tests_integrity, "json"),
        SUBSTANCES_SOURCE: (settings.substances_url, settings.substances_integrity, "csv"),
        TOPOJSON_SOURCE: (settings.topojson_url, settings.topojson_integrity, "json"),
        VALUES_SOURCE: (settings.values_url, settings.values_integrity, "csv"),
    }
    missing = {name: f"{name.upper()}_URL" for name, (url, _, _) in candidates.items() if not url}
    if missing and required:
        raise SourceNotConfiguredError(missing)
    return {
        name: SourceConfig(name, url, integrity, kind)
        for name, (url, integrity, kind) in candidates.items()
        if name not in missing
    }


def _is_remote(url: str) -> bool:
    return urlparse(url).scheme in {"http", "https"}


def read_source_bytes(client: HttpClient, source: SourceConfig) -> bytes:
    if _is_remote(source.url):
        payload, _ = client.download_bytes(source.url, expected_content_types=CONTENT_TYPES[source.kind])
        return payload
    path = Path(urlparse(source.url).path if source.url.startswith("file:") else source.url)
    return path.read_bytes()


def _read_csv(raw_bytes: bytes, required: tuple[str, ...] | list[str], *, label: str) -> pd.DataFrame:
    df = pd.read_csv(io.BytesIO(raw_bytes), dtype=str, keep_default_na=False, encoding="utf-8")
    df = df.rename(columns={col: str(col).strip() for col in df.columns})
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise ValueError(f"{label} is missing columns: {missing}")
    return df


def _optional_float(value: Any) -> float | None:
    text_value = "" if value is None else str(value).strip()
    if not text_value:
        return None
    try:
        number = float(text_value)
    except ValueError:
        return None
    return None if math.isnan(number) else number


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text_value = str(value).strip()
    return text_value or None


def parse_substances(raw_bytes: bytes) -> tuple[Substance, ...]:
    df = _read_csv(raw_bytes, SUBSTANCE_COLUMNS, label="Substance catalog")
    by_code: dict[str, Substance] = {}
    for record in df.to_dict(orient="records"):
        code = str(record["code"]).strip()
        if not code:
            continue
        limit = _optional_float(record["limit"])
        if limit is None or math.isinf(limit):
            raise ValueError(f"Substance {code} has no numeric limit: '{record['limit']}'.")
        if code in by_code:
            logger.warning("Duplicate substance code in catalog; keeping the last row.", code=code)
        by_code[code] = Substance(
            code=code,
            name=str(record["name"]).strip(),
            short_name=str(record["shortName"]).strip(),
            limit=limit,
        )
    return tuple(by_code.values())


def parse_values(raw_bytes: bytes) -> tuple[AggregateValues, ...]:
    required = [VALUES_ID_COLUMN, *CATEGORY_COLUMNS, *NUMBER_COLUMNS]
    df = _read_csv(raw_bytes, required, label="Aggregate values table")
    rows: list[AggregateValues] = []
    for record in df.to_dict(orient="records"):
        ibge_code = str(record[VALUES_ID_COLUMN]).strip()
        if not ibge_code:
            continue
        rows.append(
            AggregateValues(
                ibge_code=ibge_code,
                category={key: _optional_text(record[column]) for column, key in CATEGORY_COLUMNS.items()},
                number={key: _optional_float(record[column]) for column, key in NUMBER_COLUMNS.items()},
            )
        )
    return tuple(rows)


def parse_tests_document(raw_bytes: bytes) -> RawTests:
    payload = json.loads(raw_bytes)
    if not isinstance(payload, dict):
        raise ValueError("Test results document must be an object keyed by municipality code.")
    tests: RawTests = {}
    for municipality_code, by_substance in payload.items():
        if not isinstance(by_substance, dict):
            raise ValueError(f"Tests for municipality {municipality_code} must be an object.")
        for substance_code, samples in by_substance.items():
            if not isinstance(samples, list):
                raise ValueError(
                    f"Samples for {municipality_code}/{substance_code} must be a list, "
                    f"got {type(samples).__name__}."
                )
        tests[str(municipality_code)] = by_substance
    return tests


def parse_topology(raw_bytes: bytes) -> dict[str, Any]:
    payload = json.loads(raw_bytes)
    if not isinstance(payload, dict) or payload.get("type") != "Topology":
        raise ValueError("Topology document must be a TopoJSON object with type 'Topology'.")
    if not isinstance(payload.get("objects"), dict):
        raise ValueError("Topology document has no 'objects' mapping.")
    return payload


_PARSERS = {
    TESTS_SOURCE: parse_tests_document,
    SUBSTANCES_SOURCE: parse_substances,
    TOPOJSON_SOURCE: parse_topology,
    VALUES_SOURCE: parse_values,
}


def fetch_source(client: HttpClient, source: SourceConfig) -> Any:
    raw_bytes = read_source_bytes(client, source)
    verify_integrity(raw_bytes, source.integrity, uri=source.url)
    parsed = _PARSERS[source.name](raw_bytes)
    logger.info("Source fetched.", source=source.name, uri=source.url, size_bytes=len(raw_bytes))
    return parsed
