from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .contracts import DarkExportResult


def serialize_export_result(result: DarkExportResult) -> str:
    payload: dict[str, Any] = result.to_dict()
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, indent=2) + "\n"


def write_export_report_json(*, result: DarkExportResult, out_report: Path) -> None:
    out_report.parent.mkdir(parents=True, exist_ok=True)
    out_report.write_text(serialize_export_result(result), encoding="utf-8")
