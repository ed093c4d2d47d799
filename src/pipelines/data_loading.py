from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any

from app.logging import get_logger
from app.settings import Settings, get_settings
from pipelines.common.dispatcher import DATA_FAILED, DATA_LOADED, EventDispatcher, create_load_dispatcher
from pipelines.common.http_client import HttpClient
from pipelines.enrichment import combine
from pipelines.models import MapDataset
from pipelines.sources import (
    SOURCE_NAMES,
    SUBSTANCES_SOURCE,
    TESTS_SOURCE,
    TOPOJSON_SOURCE,
    VALUES_SOURCE,
    SourceConfig,
    SourceNotConfiguredError,
    build_source_configs,
    fetch_source,
)
from pipelines.topology import (
    FEDERATIVE_UNITS_LAYER,
    INTERNAL_FEDERATIVE_UNITS_LAYER,
    MUNICIPALITIES_LAYER,
    REPUBLIC_LAYER,
    to_features,
)

JOB_NAME = "map_data_load"
ENRICHMENT_STEP = "enrichment"


class DataLoadError(RuntimeError):
    """The load sequence failed; ``failures`` maps each failed step to its error."""

    def __init__(self, failures: dict[str, str]) -> None:
        self.failures = dict(failures)
        summary = "; ".join(f"{name}: {message}" for name, message in sorted(self.failures.items()))
        super().__init__(f"Map data load failed ({len(self.failures)} step(s)): {summary}")


def fetch_all(
    sources: dict[str, SourceConfig],
    client: HttpClient,
    *,
    max_workers: int = len(SOURCE_NAMES),
) -> dict[str, Any]:
    """Fetch every source concurrently; raise one DataLoadError if any fails."""
    logger = get_logger(JOB_NAME)
    results: dict[str, Any] = {}
    failures: dict[str, str] = {}
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        future_to_source = {
            executor.submit(fetch_source, client, source): name for name, source in sources.items()
        }
        for future in as_completed(future_to_source):
            name = future_to_source[future]
            try:
                results[name] = future.result()
            except Exception as exc:
                failures[name] = str(exc)
                logger.error("Source fetch failed.", source=name, error=str(exc))
    if failures:
        raise DataLoadError(failures)
    return results


def build_dataset(results: dict[str, Any]) -> MapDataset:
    topology = results[TOPOJSON_SOURCE]
    return combine(
        substances=results[SUBSTANCES_SOURCE],
        raw_tests=results[TESTS_SOURCE],
        values=results[VALUES_SOURCE],
        republic=to_features(topology, REPUBLIC_LAYER),
        federative_units=to_features(topology, FEDERATIVE_UNITS_LAYER),
        internal_federative_units=to_features(topology, INTERNAL_FEDERATIVE_UNITS_LAYER),
        municipalities=to_features(topology, MUNICIPALITIES_LAYER),
    )


def load_data(
    dispatcher: EventDispatcher,
    *,
    settings: Settings | None = None,
    client: HttpClient | None = None,
    sources: dict[str, SourceConfig] | None = None,
) -> MapDataset:
    """Fetch, join and publish the map dataset.

    Dispatches ``data-loaded`` with the MapDataset on success. On any failure
    dispatches ``data-failed`` with a DataLoadError and raises it.
    """
    settings = settings or get_settings()
    logger = get_logger(JOB_NAME)
    if sources is None:
        try:
            sources = build_source_configs(settings)
        except SourceNotConfiguredError as exc:
            error = DataLoadError(exc.failures())
            logger.error("Map data load cannot start.", error=str(exc))
            dispatcher.call(DATA_FAILED, error)
            raise error from exc
    owns_client = client is None
    client = client or HttpClient.from_settings(settings)
    started_at = time.perf_counter()
    logger.info("Map data load started.", sources=sorted(sources))

    try:
        results = fetch_all(sources, client, max_workers=settings.fetch_max_workers)
        try:
            dataset = build_dataset(results)
        except Exception as exc:
            raise DataLoadError({ENRICHMENT_STEP: str(exc)}) from exc
    except DataLoadError as exc:
        logger.exception(
            "Map data load failed.",
            failed_steps=sorted(exc.failures),
            duration_seconds=round(time.perf_counter() - started_at, 2),
        )
        dispatcher.call(DATA_FAILED, exc)
        raise
    finally:
        if owns_client:
            client.close()

    logger.info(
        "Map data load finished.",
        municipalities=len(dataset.mun["features"]),
        substances=len(dataset.substances_lut),
        warnings=len(dataset.warnings),
        duration_seconds=round(time.perf_counter() - started_at, 2),
    )
    dispatcher.call(DATA_LOADED, dataset)
    return dataset


def run(
    *,
    max_retries: int | None = None,
    timeout_seconds: int | None = None,
    settings: Settings | None = None,
    dispatcher: EventDispatcher | None = None,
) -> dict[str, Any]:
    """Job-style entry point: load once and report a status payload."""
    settings = settings or get_settings()
    dispatcher = dispatcher or create_load_dispatcher()
    started_at = time.perf_counter()
    client = HttpClient.from_settings(
        settings,
        timeout_seconds=timeout_seconds,
        max_retries=max_retries,
    )
    try:
        dataset = load_data(dispatcher, settings=settings, client=client)
    except DataLoadError as exc:
        return {
            "job": JOB_NAME,
            "status": "failed",
            "duration_seconds": round(time.perf_counter() - started_at, 2),
            "municipalities": 0,
            "substances": 0,
            "warnings": [],
            "errors": [f"{name}: {message}" for name, message in sorted(exc.failures.items())],
        }
    finally:
        client.close()

    return {
        "job": JOB_NAME,
        "status": "success",
        "duration_seconds": round(time.perf_counter() - started_at, 2),
        "municipalities": len(dataset.mun["features"]),
        "substances": len(dataset.substances_lut),
        "warnings": list(dataset.warnings),
        "errors": [],
    }
