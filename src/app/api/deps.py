from __future__ import annotations

from fastapi import Depends

from app.store import DatasetStore, get_store
from pipelines.models import MapDataset


def get_dataset_store() -> DatasetStore:
    return get_store()


def get_dataset(store: DatasetStore = Depends(get_dataset_store)) -> MapDataset:
    return store.require()
