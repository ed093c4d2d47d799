from __future__ import annotations

import argparse
import json
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if SRC_PATH.exists():
    src_str = str(SRC_PATH)
    if src_str not in sys.path:
        sys.path.insert(0, src_str)

from app.settings import get_settings  # noqa: E402
from pipelines.common.http_client import HttpClient  # noqa: E402
from pipelines.common.integrity import (  # noqa: E402
    IntegrityError,
    SUPPORTED_ALGORITHMS,
    compute_integrity,
    verify_integrity,
)
from pipelines.sources import (  # noqa: E402
    SOURCE_NAMES,
    SourceConfig,
    build_source_configs,
    read_source_bytes,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Download every map data source, verify it against its pinned integrity digest "
            "and report size and computed digest."
        )
    )
    parser.add_argument(
        "--algorithm",
        choices=SUPPORTED_ALGORITHMS,
        default="sha384",
        help="Algorithm used to print the computed digest (default: sha384).",
    )
    parser.add_argument(
        "--source",
        action="append",
        default=None,
        help="Restrict the check to this source name (repeatable).",
    )
    parser.add_argument(
        "--output-json",
        action="store_true",
        help="Print the full report as JSON.",
    )
    return parser


def check_source(client: HttpClient, source: SourceConfig, *, algorithm: str) -> dict[str, Any]:
    item: dict[str, Any] = {"source": source.name, "uri": source.url, "expected": source.integrity}
    try:
        payload = read_source_bytes(client, source)
    except (RuntimeError, ValueError, OSError) as exc:
        return {**item, "status": "fail", "error": str(exc)}

    item.update(size_bytes=len(payload), computed=compute_integrity(payload, algorithm))
    try:
        matched = verify_integrity(payload, source.integrity, uri=source.url)
    except IntegrityError as exc:
        return {**item, "status": "fail", "error": str(exc)}
    return {**item, "status": "pass" if matched else "unpinned"}


def build_report(*, algorithm: str, only: list[str] | None = None) -> dict[str, Any]:
    settings = get_settings()
    sources = build_source_configs(settings, required=False)
    unconfigured = [name for name in SOURCE_NAMES if name not in sources and name in (only or SOURCE_NAMES)]
    selected = [sources[name] for name in (only or sources) if name in sources]
    unknown = sorted(set(only or []) - set(SOURCE_NAMES))

    with HttpClient.from_settings(settings) as client:
        items = [check_source(client, source, algorithm=algorithm) for source in selected]
    items += [
        {"source": name, "uri": None, "status": "fail", "error": f"{name.upper()}_URL is not set."}
        for name in unconfigured
    ]

    return {
        "generated_at_utc": datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
        "items": items,
        "failures": [item["source"] for item in items if item["status"] == "fail"],
        "unknown_sources": unknown,
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    report = build_report(algorithm=args.algorithm, only=args.source)

    is_ok = not report["failures"] and not report["unknown_sources"]
    print(
        "Map data sources: "
        + ("OK" if is_ok else "FAILED")
        + f" | checked={len(report['items'])}"
        + f" | failures={len(report['failures'])}"
    )
    for item in report["items"]:
        line = f"{item['status'].upper()}: {item['source']} {item.get('computed', '')}".rstrip()
        print(line)
        if item.get("error"):
            print(f"  {item['error']}")
    for name in report["unknown_sources"]:
        print(f"UNKNOWN: {name}")

    if args.output_json:
        print(json.dumps(report, ensure_ascii=False, indent=2, default=str))

    return 0 if is_ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
