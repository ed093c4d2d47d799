from __future__ import annotations

import threading
from functools import lru_cache
from typing import Any, Literal

from pipelines.common.dispatcher import DATA_FAILED, DATA_LOADED, EventDispatcher
from pipelines.models import MapDataset

LoadStatus = Literal["loading", "ready", "failed"]


class DataUnavailableError(RuntimeError):
    def __init__(self, status: LoadStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error
        message = "Map data is still loading." if status == "loading" else "Map data failed to load."
        super().__init__(message)


class DatasetStore:
    """Holds the loaded MapDataset and the state of the load sequence."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status: LoadStatus = "loading"
        self._dataset: MapDataset | None = None
        self._error: str | None = None

    @property
    def status(self) -> LoadStatus:
        with self._lock:
            return self._status

    @property
    def is_loading(self) -> bool:
        return self.status == "loading"

    def attach(self, dispatcher: EventDispatcher) -> EventDispatcher:
        dispatcher.on(f"{DATA_LOADED}.store", self.set_dataset)
        dispatcher.on(f"{DATA_FAILED}.store", self.set_error)
        return dispatcher

    def set_dataset(self, dataset: MapDataset) -> None:
        with self._lock:
            self._dataset = dataset
            self._error = None
            self._status = "ready"

    def set_error(self, error: BaseException) -> None:
        with self._lock:
            self._error = str(error)
            self._status = "failed"

    def reset(self) -> None:
        with self._lock:
            self._dataset = None
            self._error = None
            self._status = "loading"

    def require(self) -> MapDataset:
        with self._lock:
            if self._status == "ready" and self._dataset is not None:
                return self._dataset
            raise DataUnavailableError(self._status, self._error)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            dataset = self._dataset
            return {
                "status": self._status,
                "error": self._error,
                "municipalities": len(dataset.mun["features"]) if dataset else 0,
                "substances": len(dataset.substances_lut) if dataset else 0,
                "warnings": list(dataset.warnings) if dataset else [],
            }


@lru_cache(maxsize=1)
def get_store() -> DatasetStore:
    return DatasetStore()
