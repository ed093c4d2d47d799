from __future__ import annotations

import copy
from typing import Any

import pytest

from pipelines.enrichment import (
    DETECTED_VALUE,
    build_national_feature,
    combine,
    compute_substance_stats,
    enrich_municipalities,
    parse_sample,
    parse_tests,
    substances_by_code,
    values_by_municipality,
)
from pipelines.models import AggregateValues, Substance, SubstanceTest

ATRAZINE = Substance(code="ATR", name="Atrazine", short_name="ATR", limit=0.1)
SIMAZINE = Substance(code="SIM", name="Simazine", short_name="SIM", limit=2.0)


def _feature(ibge_code: str, name: str = "São Paulo", fu: str = "SP", **extra: Any) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [0.0, 0.0]},
        "properties": {"ibgeCode": ibge_code, "name": name, "fu": fu, **extra},
    }


def _collection(*features: dict[str, Any]) -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": list(features)}


def _values(ibge_code: str) -> AggregateValues:
    return AggregateValues(
        ibge_code=ibge_code,
        category={"atr_avg_cat": "1", "atr_max_cat": "2", "sim_avg_cat": "0", "sim_max_cat": "0"},
        number={"detected": 3.0, "eq_br": 0.0, "sup_br": 1.0, "sup_eu": 2.0},
    )


def _test(substance: Substance, *samples: float) -> SubstanceTest:
    return SubstanceTest(substance=substance, samples=samples, max=max(samples) if samples else None)


def test_parse_sample_handles_sentinel_numbers_and_garbage() -> None:
    assert parse_sample("NA") == DETECTED_VALUE
    assert parse_sample("0.05") == 0.05
    assert parse_sample(2) == 2.0
    assert parse_sample("<LQ") is None
    assert parse_sample("nan") is None


def test_parse_tests_computes_max_over_samples() -> None:
    tests = parse_tests({"ATR": ["NA", "0.05", "0.2"]}, {"ATR": ATRAZINE})

    assert tests == (SubstanceTest(substance=ATRAZINE, samples=(DETECTED_VALUE, 0.05, 0.2), max=0.2),)


def test_parse_tests_all_not_available_yields_placeholder_max() -> None:
    (test,) = parse_tests({"ATR": ["NA", "NA"]}, {"ATR": ATRAZINE})

    assert test.max == DETECTED_VALUE
    assert test.max > 0


def test_parse_tests_without_samples_has_no_max() -> None:
    (test,) = parse_tests({"ATR": []}, {"ATR": ATRAZINE})

    assert test.max is None
    assert not test.has_data


def test_parse_tests_skips_substances_missing_from_catalog() -> None:
    tests = parse_tests({"ATR": ["0.1"], "XYZ": ["0.3"]}, {"ATR": ATRAZINE})

    assert [test.substance.code for test in tests] == ["ATR"]


def test_enrich_municipalities_joins_values_and_tests_without_mutating_input() -> None:
    collection = _collection(_feature("3550308"), _feature("5300108", name="Brasília", fu="DF"))
    snapshot = copy.deepcopy(collection)

    enriched = enrich_municipalities(
        collection,
        values_by_municipality([_values("3550308"), _values("9999999")]),
        {"3550308": {"ATR": ["0.2"]}},
        substances_by_code([ATRAZINE]),
    )

    assert collection == snapshot
    sao_paulo, brasilia = enriched["features"]
    assert sao_paulo["properties"]["category"]["atr_max_cat"] == "2"
    assert sao_paulo["properties"]["number"]["detected"] == 3.0
    assert sao_paulo["properties"]["tests"][0].max == 0.2
    assert sao_paulo["properties"]["deburred_name"] == "Sao Paulo"
    assert sao_paulo["properties"]["fu_name"] == "São Paulo"

    assert "category" not in brasilia["properties"]
    assert "number" not in brasilia["properties"]
    assert "tests" not in brasilia["properties"]
    assert brasilia["geometry"] == {"type": "Point", "coordinates": [0.0, 0.0]}
    assert brasilia["properties"]["deburred_name"] == "Brasilia"
    assert brasilia["properties"]["fu_name"] == "Distrito Federal"


def test_enrich_municipalities_initializes_missing_properties() -> None:
    enriched = enrich_municipalities(
        _collection({"type": "Feature", "geometry": None}), {}, {}, {}
    )

    properties = enriched["features"][0]["properties"]
    assert properties == {"deburred_name": None, "fu_name": None}


def test_substance_stats_single_municipality_scenario() -> None:
    features = enrich_municipalities(
        _collection(_feature("3550308")),
        {},
        {"3550308": {"ATR": ["NA", "0.05", "0.2"]}},
        {"ATR": ATRAZINE},
    )["features"]

    (stat,) = compute_substance_stats([ATRAZINE], features)

    assert features[0]["properties"]["tests"][0].max == 0.2
    assert stat.tested_in == 1
    assert stat.detected_in == 1
    assert stat.median_concentration == 0.2


def test_substance_stats_median_averages_two_municipalities() -> None:
    features = [
        _feature("1", tests=(_test(ATRAZINE, 0.1),)),
        _feature("2", tests=(_test(ATRAZINE, 0.3),)),
    ]

    (stat,) = compute_substance_stats([ATRAZINE], features)

    assert stat.tested_in == 2
    assert stat.median_concentration == pytest.approx(0.2)


def test_substance_stats_counts_stay_within_bounds() -> None:
    features = [
        _feature("1", tests=(_test(ATRAZINE, 0.0), _test(SIMAZINE, 0.4))),
        _feature("2", tests=(_test(ATRAZINE, DETECTED_VALUE),)),
        _feature("3"),
        _feature("4", tests=(_test(ATRAZINE, 0.0, 0.7),)),
    ]

    stats = compute_substance_stats([ATRAZINE, SIMAZINE], features)

    for stat in stats:
        assert stat.detected_in <= stat.tested_in <= len(features)
    atrazine, simazine = stats
    assert (atrazine.tested_in, atrazine.detected_in) == (3, 2)
    assert (simazine.tested_in, simazine.detected_in) == (1, 1)


def test_substance_stats_exclude_duplicate_and_empty_tests() -> None:
    features = [
        _feature("1", tests=(_test(ATRAZINE, 0.1), _test(ATRAZINE, 0.5))),
        _feature("2", tests=(_test(ATRAZINE),)),
        _feature("3", tests=(_test(ATRAZINE, 0.9),)),
    ]

    (stat,) = compute_substance_stats([ATRAZINE], features)

    assert stat.tested_in == 1
    assert stat.median_concentration == 0.9


def test_substance_never_tested_has_no_median() -> None:
    (stat,) = compute_substance_stats([SIMAZINE], [_feature("1")])

    assert (stat.tested_in, stat.detected_in, stat.median_concentration) == (0, 0, None)


def test_build_national_feature_reuses_median_concentration() -> None:
    (stat,) = compute_substance_stats([ATRAZINE], [_feature("1", tests=(_test(ATRAZINE, 0.4),))])
    republic = _collection({"type": "Feature", "geometry": None, "properties": {"name": "Brasil"}})

    national = build_national_feature(republic, [stat])

    assert national["properties"]["name"] == "Brasil"
    (test,) = national["properties"]["tests"]
    assert test.max == 0.4
    assert test.substance.median_concentration == 0.4
    assert "tests" not in republic["features"][0]["properties"]


def test_build_national_feature_for_empty_republic_layer() -> None:
    national = build_national_feature(_collection(), [])

    assert national["geometry"] is None
    assert national["properties"]["tests"] == ()


def test_combine_builds_dataset_and_reports_unmatched_rows() -> None:
    dataset = combine(
        substances=[ATRAZINE, SIMAZINE],
        raw_tests={"3550308": {"ATR": ["NA", "0.05", "0.2"]}, "0000000": {"ATR": ["1"]}},
        values=[_values("3550308"), _values("1111111")],
        republic=_collection({"type": "Feature", "geometry": None, "properties": {}}),
        federative_units=_collection(),
        internal_federative_units=_collection(),
        municipalities=_collection(_feature("3550308"), _feature("5300108", name="Brasília", fu="DF")),
    )

    assert set(dataset.substances_lut) == {"ATR", "SIM"}
    assert dataset.substances_lut["ATR"].tested_in == 1
    assert dataset.substances_lut["ATR"].median_concentration == 0.2
    assert dataset.brazil["features"][0] is dataset.national
    assert len(dataset.mun["features"]) == 2
    assert len(dataset.warnings) == 2
