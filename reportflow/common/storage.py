"""Durable key-value and blob storage for reports, outputs, charts and cost ledgers."""
from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import boto3
from botocore.exceptions import ClientError

from .pipeline import (
    _json_bytes,
    chart_key_for,
    content_type_for,
    cost_key_for,
    output_key_for,
    parse_s3_location,
    report_key_for,
    s3_location,
)

logger = logging.getLogger(__name__)

_MISSING_CODES = ("404", "NotFound", "NoSuchKey")


class Storage:
    """Shared record logic; subclasses provide raw object access."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    # raw object access
    def _put(self, key: str, body: bytes, content_type: str) -> str:
        raise NotImplementedError

    def _get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def _list(self, prefix: str) -> List[str]:
        raise NotImplementedError

    def location_for(self, key: str) -> str:
        raise NotImplementedError

    def file_exists(self, location: str) -> bool:
        raise NotImplementedError

    def get_file_size(self, location: str) -> int:
        raise NotImplementedError

    def initialize(self) -> None:
        return None

    def _get_json(self, key: str) -> Optional[Dict[str, Any]]:
        body = self._get(key)
        if body is None:
            return None
        return json.loads(body.decode("utf-8"))

    # reports
    def save_report(self, report_id: str, partial: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge ``partial`` into the stored record and return the merged record."""
        key = report_key_for(report_id)
        with self._lock:
            merged = dict(self._get_json(key) or {})
            merged.update(partial)
            merged["id"] = report_id
            self._put(key, _json_bytes(merged), "application/json")
        return merged

    def get_report(self, report_id: str) -> Optional[Dict[str, Any]]:
        return self._get_json(report_key_for(report_id))

    def list_reports(self) -> List[Dict[str, Any]]:
        reports = []
        for key in self._list("reports/"):
            if not key.endswith("/report.json"):
                continue
            record = self._get_json(key)
            if record is not None:
                reports.append(record)
        reports.sort(key=lambda item: str(item.get("createdAt") or ""), reverse=True)
        return reports

    # output files
    def save_output_file(self, report_id: str, filename: str, data: bytes) -> str:
        return self._put(output_key_for(report_id, filename), bytes(data), content_type_for(filename))

    def get_output_file(self, report_id: str, filename: str) -> Optional[bytes]:
        return self._get(output_key_for(report_id, filename))

    def get_output_file_path(self, report_id: str, filename: str) -> str:
        return self.location_for(output_key_for(report_id, filename))

    # charts
    def save_chart(self, report_id: str, chart_id: str, data: bytes) -> str:
        return self._put(chart_key_for(report_id, chart_id), bytes(data), "image/png")

    def get_chart(self, report_id: str, chart_id: str) -> Optional[bytes]:
        return self._get(chart_key_for(report_id, chart_id))

    # cost ledgers
    def save_cost_metrics(self, report_id: str, metrics: Mapping[str, Any]) -> None:
        self._put(cost_key_for(report_id), _json_bytes(dict(metrics)), "application/json")

    def get_cost_metrics(self, report_id: str) -> Optional[Dict[str, Any]]:
        return self._get_json(cost_key_for(report_id))

    def list_cost_metrics(self) -> List[Dict[str, Any]]:
        ledgers = []
        for key in self._list("costs/"):
            if key.endswith(".json"):
                record = self._get_json(key)
                if record is not None:
                    ledgers.append(record)
        return ledgers


class LocalStorage(Storage):
    def __init__(self, root: str) -> None:
        super().__init__()
        self.root = Path(root).resolve()

    def initialize(self) -> None:
        for name in ("reports", "charts", "costs"):
            (self.root / name).mkdir(parents=True, exist_ok=True)
        logger.info("Local storage ready", extra={"root": str(self.root)})

    def _path(self, key: str) -> Path:
        return self.root / key

    def location_for(self, key: str) -> str:
        return str(self._path(key))

    def _put(self, key: str, body: bytes, content_type: str) -> str:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        temp.write_bytes(body)
        os.replace(temp, path)
        return str(path)

    def _get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _list(self, prefix: str) -> List[str]:
        base = self._path(prefix)
        if not base.exists():
            return []
        keys = []
        for path in base.rglob("*"):
            if path.is_file() and not path.name.endswith(".tmp"):
                keys.append(path.relative_to(self.root).as_posix())
        return sorted(keys)

    def file_exists(self, location: str) -> bool:
        return Path(location).is_file()

    def get_file_size(self, location: str) -> int:
        return Path(location).stat().st_size


class S3Storage(Storage):
    """S3 or any S3-compatible endpoint (MinIO)."""

    def __init__(self, bucket: str, *, client: Any = None, endpoint_url: Optional[str] = None) -> None:
        super().__init__()
        self.bucket = bucket
        self.s3 = client if client is not None else boto3.client("s3", endpoint_url=endpoint_url)

    def initialize(self) -> None:
        try:
            self.s3.head_bucket(Bucket=self.bucket)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code not in _MISSING_CODES:
                raise
            self.s3.create_bucket(Bucket=self.bucket)
            logger.info("Created bucket", extra={"bucket": self.bucket})

    def location_for(self, key: str) -> str:
        return s3_location(self.bucket, key)

    def _put(self, key: str, body: bytes, content_type: str) -> str:
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        return self.location_for(key)

    def _get(self, key: str) -> Optional[bytes]:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in _MISSING_CODES:
                return None
            raise
        return response["Body"].read()

    def _list(self, prefix: str) -> List[str]:
        keys: List[str] = []
        token: Optional[str] = None
        while True:
            kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
            if token:
                kwargs["ContinuationToken"] = token
            response = self.s3.list_objects_v2(**kwargs)
            keys.extend(item["Key"] for item in response.get("Contents", []))
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")
        return keys

    def _head(self, location: str) -> Optional[Dict[str, Any]]:
        parsed = parse_s3_location(location)
        bucket, key = parsed if parsed else (self.bucket, location)
        try:
            return self.s3.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in _MISSING_CODES:
                return None
            raise

    def file_exists(self, location: str) -> bool:
        return self._head(location) is not None

    def get_file_size(self, location: str) -> int:
        head = self._head(location)
        if head is None:
            raise FileNotFoundError(location)
        return int(head["ContentLength"])


def create_storage(settings: Any) -> Storage:
    if settings.storage_type == "s3":
        storage: Storage = S3Storage(settings.s3_bucket, endpoint_url=settings.s3_endpoint_url)
    else:
        storage = LocalStorage(settings.storage_path)
    storage.initialize()
    return storage
