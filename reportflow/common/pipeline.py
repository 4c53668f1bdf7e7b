"""Storage layout helpers shared by the storage backends and the API."""
from __future__ import annotations

import json
import mimetypes
import re
from typing import Any, Optional, Tuple

_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".html": "text/html; charset=utf-8",
    ".json": "application/json",
    ".png": "image/png",
}

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]")


def safe_name(value: str) -> str:
    cleaned = _SAFE_NAME.sub("_", str(value)).strip("._")
    if not cleaned:
        raise ValueError(f"Invalid storage name: {value!r}")
    return cleaned


def report_key_for(report_id: str) -> str:
    return f"reports/{safe_name(report_id)}/report.json"


def output_key_for(report_id: str, filename: str) -> str:
    return f"reports/{safe_name(report_id)}/outputs/{safe_name(filename)}"


def chart_key_for(report_id: str, chart_id: str) -> str:
    return f"charts/{safe_name(report_id)}/{safe_name(chart_id)}.png"


def cost_key_for(report_id: str) -> str:
    return f"costs/{safe_name(report_id)}.json"


def output_filename(report_id: str, extension: str) -> str:
    return f"{report_id}.{extension}"


def content_type_for(filename: str) -> str:
    lowered = filename.lower()
    for suffix, content_type in _CONTENT_TYPES.items():
        if lowered.endswith(suffix):
            return content_type
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def s3_location(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def parse_s3_location(location: str) -> Optional[Tuple[str, str]]:
    if not location.startswith("s3://"):
        return None
    remainder = location[len("s3://"):]
    bucket, _, key = remainder.partition("/")
    if not bucket or not key:
        return None
    return bucket, key


def _json_bytes(data: Any) -> bytes:
    return json.dumps(data, indent=2, default=str).encode("utf-8")
