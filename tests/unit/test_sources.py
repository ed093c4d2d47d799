from __future__ import annotations

import json
from pathlib import Path
from uuid import uuid4

import httpx
import pytest

from app.settings import Settings
from pipelines.common.http_client import HttpClient
from pipelines.common.integrity import IntegrityError, compute_integrity
from pipelines.models import Substance
from pipelines.sources import (
    SOURCE_NAMES,
    SourceConfig,
    SourceNotConfiguredError,
    build_source_configs,
    fetch_source,
    parse_substances,
    parse_tests_document,
    parse_topology,
    parse_values,
)

SUBSTANCES_CSV = (
    "code,limit,name,shortName\n"
    "ATR,0.1,Atrazine,ATR\n"
    "SIM,2,Simazina,SIM\n"
).encode("utf-8")

VALUES_CSV = (
    "ibge_code,atrazine_average_category,atrazine_category,simazine_average_category,"
    "simazine_category,detected,eq_br,sup_br,sup_eu\n"
    "3550308,1,2,0,1,27,0,1,12\n"
    "5300108,,,,,NA,,,\n"
).encode("utf-8")


def _local_test_dir() -> Path:
    path = Path("tests/_tmp") / str(uuid4())
    path.mkdir(parents=True, exist_ok=True)
    return path


def test_build_source_configs_covers_every_source() -> None:
    settings = Settings(
        tests_url="https://example.com/tests.json",
        tests_integrity="",
        topojson_url="data/br-px-topo.json",
    )
    sources = build_source_configs(settings)

    assert tuple(sources) == SOURCE_NAMES
    assert sources["tests"].url == "https://example.com/tests.json"
    assert sources["tests"].kind == "json"
    assert sources["values"].kind == "csv"


def test_build_source_configs_requires_topology_url_by_default(monkeypatch) -> None:
    monkeypatch.delenv("TOPOJSON_URL", raising=False)
    settings = Settings(_env_file=None)

    with pytest.raises(SourceNotConfiguredError) as exc_info:
        build_source_configs(settings)

    assert exc_info.value.failures() == {
        "topojson": "TOPOJSON_URL is not set; configure a local path or URL for this source."
    }
    assert set(build_source_configs(settings, required=False)) == {"tests", "substances", "values"}


def test_parse_substances_converts_limit_and_keeps_last_duplicate() -> None:
    raw = SUBSTANCES_CSV + b"ATR,0.2,Atrazina,ATZ\n"
    substances = parse_substances(raw)

    assert substances == (
        Substance(code="ATR", name="Atrazina", short_name="ATZ", limit=0.2),
        Substance(code="SIM", name="Simazina", short_name="SIM", limit=2.0),
    )


def test_parse_substances_requires_catalog_columns() -> None:
    with pytest.raises(ValueError, match="missing columns"):
        parse_substances(b"code,name\nATR,Atrazine\n")


def test_parse_substances_rejects_non_numeric_limit() -> None:
    with pytest.raises(ValueError, match="no numeric limit"):
        parse_substances(b"code,limit,name,shortName\nATR,n/a,Atrazine,ATR\n")


def test_parse_values_maps_categories_and_numbers() -> None:
    rows = parse_values(VALUES_CSV)

    assert [row.ibge_code for row in rows] == ["3550308", "5300108"]
    assert rows[0].category == {
        "atr_avg_cat": "1",
        "atr_max_cat": "2",
        "sim_avg_cat": "0",
        "sim_max_cat": "1",
    }
    assert rows[0].number == {"detected": 27.0, "eq_br": 0.0, "sup_br": 1.0, "sup_eu": 12.0}
    assert rows[1].category["atr_avg_cat"] is None
    assert rows[1].number["detected"] is None


def test_parse_tests_document_validates_shape() -> None:
    raw = json.dumps({"3550308": {"ATR": ["NA", "0.05"]}}).encode("utf-8")
    assert parse_tests_document(raw) == {"3550308": {"ATR": ["NA", "0.05"]}}

    with pytest.raises(ValueError):
        parse_tests_document(json.dumps({"3550308": {"ATR": "0.05"}}).encode("utf-8"))
    with pytest.raises(ValueError):
        parse_tests_document(b"[]")


def test_parse_topology_requires_topology_type() -> None:
    with pytest.raises(ValueError):
        parse_topology(json.dumps({"type": "FeatureCollection", "features": []}).encode("utf-8"))
    topology = parse_topology(json.dumps({"type": "Topology", "objects": {}, "arcs": []}).encode("utf-8"))
    assert topology["type"] == "Topology"


def _client_serving(
    payload: bytes, status_code: int = 200, content_type: str = "text/csv"
) -> HttpClient:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=payload, headers={"content-type": content_type})

    settings = Settings(http_max_retries=0)
    return HttpClient.from_settings(settings, transport=httpx.MockTransport(_handler))


def test_fetch_source_verifies_integrity_then_parses() -> None:
    source = SourceConfig(
        name="substances",
        url="https://example.com/substances.csv",
        integrity=compute_integrity(SUBSTANCES_CSV),
        kind="csv",
    )
    with _client_serving(SUBSTANCES_CSV) as client:
        substances = fetch_source(client, source)

    assert [substance.code for substance in substances] == ["ATR", "SIM"]


def test_fetch_source_rejects_tampered_payload() -> None:
    source = SourceConfig(
        name="substances",
        url="https://example.com/substances.csv",
        integrity=compute_integrity(SUBSTANCES_CSV),
        kind="csv",
    )
    with _client_serving(SUBSTANCES_CSV + b"XXX,1,Fake,XXX\n") as client:
        with pytest.raises(IntegrityError):
            fetch_source(client, source)


def test_fetch_source_reports_http_failure() -> None:
    source = SourceConfig(name="values", url="https://example.com/values.csv", integrity="", kind="csv")
    with _client_serving(b"missing", status_code=404) as client:
        with pytest.raises(RuntimeError, match="Request failed"):
            fetch_source(client, source)


def test_fetch_source_reads_local_paths() -> None:
    tmp_path = _local_test_dir()
    target = tmp_path / "substances.csv"
    target.write_bytes(SUBSTANCES_CSV)
    source = SourceConfig(name="substances", url=target.as_posix(), integrity="", kind="csv")

    with _client_serving(b"") as client:
        substances = fetch_source(client, source)

    assert len(substances) == 2


def test_fetch_source_accepts_raw_github_text_plain() -> None:
    payload = json.dumps({"3550308": {"ATR": ["0.05"]}}).encode("utf-8")
    source = SourceConfig(name="tests", url="https://example.com/tests.json", integrity="", kind="json")

    with _client_serving(payload, content_type="text/plain; charset=utf-8") as client:
        tests = fetch_source(client, source)

    assert tests == {"3550308": {"ATR": ["0.05"]}}


def test_fetch_source_rejects_html_error_page() -> None:
    source = SourceConfig(name="values", url="https://example.com/values.csv", integrity="", kind="csv")

    with _client_serving(b"<html>Not here</html>", content_type="text/html") as client:
        with pytest.raises(ValueError, match="content-type"):
            fetch_source(client, source)
