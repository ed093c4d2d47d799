"""Join of the four loaded datasets into map-ready features.

Municipality features are keyed by the ``ibgeCode`` property of the topology.
Aggregate values and raw test results are merged onto them, and per-substance
statistics are derived across every municipality. Inputs are never mutated:
each step returns new collections, features and property dicts.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from app.logging import get_logger
from pipelines.common.stats import median
from pipelines.federative_units import deburr, fu_name
from pipelines.models import (
    AggregateValues,
    Feature,
    FeatureCollection,
    MapDataset,
    Substance,
    SubstanceStat,
    SubstanceTest,
)

MUNICIPALITY_ID_PROPERTY = "ibgeCode"
NOT_AVAILABLE = "NA"
# Stands in for a non-detect: above zero so ratios and log scales stay defined.
DETECTED_VALUE = 1e-10

logger = get_logger("pipelines.enrichment")


def substances_by_code(substances: Iterable[Substance]) -> dict[str, Substance]:
    return {substance.code: substance for substance in substances}


def values_by_municipality(values: Iterable[AggregateValues]) -> dict[str, AggregateValues]:
    return {row.ibge_code: row for row in values}


def parse_sample(raw: Any) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    else:
        text_value = str(raw).strip()
        if text_value == NOT_AVAILABLE:
            return DETECTED_VALUE
        try:
            number = float(text_value)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_tests(
    raw_tests: Mapping[str, Sequence[Any]],
    substances_lut: Mapping[str, Substance],
    *,
    municipality_code: str | None = None,
) -> tuple[SubstanceTest, ...]:
    parsed: list[SubstanceTest] = []
    for substance_code, raw_samples in raw_tests.items():
        substance = substances_lut.get(substance_code)
        if substance is None:
            logger.warning(
                "Skipping test for substance missing from the catalog.",
                municipality_code=municipality_code,
                substance_code=substance_code,
            )
            continue

        samples: list[float] = []
        for raw in raw_samples:
            value = parse_sample(raw)
            if value is None:
                logger.warning(
                    "Skipping unparseable sample.",
                    municipality_code=municipality_code,
                    substance_code=substance_code,
                    sample=str(raw),
                )
                continue
            samples.append(value)

        parsed.append(
            SubstanceTest(
                substance=substance,
                samples=tuple(samples),
                max=max(samples) if samples else None,
            )
        )
    return tuple(parsed)


def _municipality_code(properties: Mapping[str, Any]) -> str | None:
    code = properties.get(MUNICIPALITY_ID_PROPERTY)
    if code is None:
        return None
    return str(code).strip()


def enrich_municipality(
    feature: Feature,
    values_lut: Mapping[str, AggregateValues],
    raw_tests: Mapping[str, Mapping[str, Sequence[Any]]],
    substances_lut: Mapping[str, Substance],
) -> Feature:
    properties = dict(feature.get("properties") or {})
    code = _municipality_code(properties)

    if code is not None and code in values_lut:
        row = values_lut[code]
        properties["category"] = dict(row.category)
        properties["number"] = dict(row.number)
    if code is not None and code in raw_tests:
        properties["tests"] = parse_tests(raw_tests[code], substances_lut, municipality_code=code)

    name = properties.get("name")
    properties["deburred_name"] = deburr(str(name)) if name is not None else None
    properties["fu_name"] = fu_name(properties.get("fu"))
    return {**feature, "properties": properties}


def enrich_municipalities(
    collection: FeatureCollection,
    values_lut: Mapping[str, AggregateValues],
    raw_tests: Mapping[str, Mapping[str, Sequence[Any]]],
    substances_lut: Mapping[str, Substance],
) -> FeatureCollection:
    features = [
        enrich_municipality(feature, values_lut, raw_tests, substances_lut)
        for feature in collection.get("features", [])
    ]
    return {**collection, "features": features}


def _single_test_for(feature: Feature, substance_code: str) -> SubstanceTest | None:
    tests = (feature.get("properties") or {}).get("tests") or ()
    matches = [test for test in tests if test.substance.code == substance_code]
    if not matches:
        return None
    properties = feature.get("properties") or {}
    if len(matches) > 1:
        logger.warning(
            "Substance tested more than once in a municipality; excluded from statistics.",
            municipality_code=_municipality_code(properties),
            substance_code=substance_code,
            occurrences=len(matches),
        )
        return None
    test = matches[0]
    if not test.has_data:
        logger.warning(
            "Substance test has no samples; excluded from statistics.",
            municipality_code=_municipality_code(properties),
            substance_code=substance_code,
        )
        return None
    return test


def compute_substance_stats(
    substances: Iterable[Substance],
    features: Sequence[Feature],
) -> tuple[SubstanceStat, ...]:
    stats: list[SubstanceStat] = []
    for substance in substances:
        candidates = (_single_test_for(feature, substance.code) for feature in features)
        tested = [test for test in candidates if test is not None]
        stats.append(
            SubstanceStat.from_substance(
                substance,
                tested_in=len(tested),
                detected_in=sum(1 for test in tested if test.detected),
                median_concentration=median(test.max for test in tested),
            )
        )
    return tuple(stats)


def build_national_feature(republic: FeatureCollection, stats: Iterable[SubstanceStat]) -> Feature:
    """Country-level feature whose tests show each substance's median concentration."""
    features = republic.get("features") or []
    base: Feature = features[0] if features else {"type": "Feature", "geometry": None, "properties": {}}
    tests = tuple(
        SubstanceTest(
            substance=stat,
            samples=() if stat.median_concentration is None else (stat.median_concentration,),
            max=stat.median_concentration,
        )
        for stat in stats
    )
    return {**base, "properties": {**(base.get("properties") or {}), "tests": tests}}


def combine(
    *,
    substances: Sequence[Substance],
    raw_tests: Mapping[str, Mapping[str, Sequence[Any]]],
    values: Iterable[AggregateValues],
    republic: FeatureCollection,
    federative_units: FeatureCollection,
    internal_federative_units: FeatureCollection,
    municipalities: FeatureCollection,
) -> MapDataset:
    substances_lut = substances_by_code(substances)
    values_lut = values_by_municipality(values)

    mun = enrich_municipalities(municipalities, values_lut, raw_tests, substances_lut)

    known_codes = {
        code
        for code in (_municipality_code(ft.get("properties") or {}) for ft in mun["features"])
        if code is not None
    }
    warnings: list[str] = []
    unmatched_values = len(set(values_lut) - known_codes)
    if unmatched_values:
        warnings.append(f"{unmatched_values} aggregate value rows matched no municipality feature.")
    unmatched_tests = len(set(raw_tests) - known_codes)
    if unmatched_tests:
        warnings.append(f"{unmatched_tests} municipalities with tests matched no feature.")
    for message in warnings:
        logger.warning(message)

    stats = compute_substance_stats(substances_lut.values(), mun["features"])
    national = build_national_feature(republic, stats)
    republic_features = list(republic.get("features") or [])
    brazil = {**republic, "features": [national, *republic_features[1:]]} if republic_features else republic

    return MapDataset(
        brazil=brazil,
        fu=federative_units,
        internal_fu=internal_federative_units,
        mun=mun,
        substances_lut={stat.code: stat for stat in stats},
        national=national,
        warnings=warnings,
    )
