from __future__ import annotations

import os
from pathlib import Path
from tempfile import gettempdir
from typing import Any

# Ensure Prefect metadata storage is writable in local/dev environments.
if "PREFECT_HOME" not in os.environ:
    default_prefect_home = Path(gettempdir()) / "prefect-home"
    default_prefect_home.mkdir(parents=True, exist_ok=True)
    os.environ["PREFECT_HOME"] = str(default_prefect_home)

from prefect import flow

from app.logging import configure_logging
from app.settings import get_settings
from pipelines.data_loading import run as run_map_data_load

settings = get_settings()
configure_logging(settings.log_level)


@flow(name="map_data_load")
def map_data_load(
    max_retries: int = 0,
    timeout_seconds: int = 30,
) -> dict[str, Any]:
    result = run_map_data_load(max_retries=max_retries, timeout_seconds=timeout_seconds)
    if result["status"] != "success":
        raise RuntimeError("; ".join(result["errors"]) or "Map data load failed.")
    return result
