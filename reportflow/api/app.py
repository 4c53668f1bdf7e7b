# reportflow/api/app.py
from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from reportflow.common.pipeline import content_type_for, output_filename
from reportflow.workers.client import PipelineClient, instance_id_for
from reportflow.workers.graph.core.constants import OUTPUT_EXTENSIONS, STATUS_COMPLETED, TERMINAL_STATUSES
from reportflow.workers.graph.core.errors import ValidationError

logger = logging.getLogger("reportflow.api")


# ---- Models ----
class CreateReport(BaseModel):
    """Request payload for report creation."""

    model_config = ConfigDict(populate_by_name=True)

    input_data: List[Dict[str, Any]] = Field(alias="inputData")
    config: Dict[str, Any]


def create_app(client: Optional[PipelineClient] = None) -> FastAPI:
    if client is None:
        from reportflow.config import configure_logging, load_settings
        from reportflow.workers.worker import build_client

        settings = load_settings()
        configure_logging(settings.log_level)
        client = build_client(settings)

    storage = client.storage
    app = FastAPI(title="ReportFlow API")
    app.state.client = client

    # --- CORS for local dashboard ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["*"],
        allow_credentials=False,
    )

    def ensure_report(report_id: str) -> dict:
        record = storage.get_report(report_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Report not found")
        return record

    def instance_for(record: dict) -> str:
        return record.get("instanceId") or instance_id_for(record["id"])

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.post("/reports")
    def create_report(body: CreateReport):
        try:
            started = client.start(body.input_data, body.config)
        except ValidationError as exc:
            logger.info("report rejected", extra={"detail": str(exc)})
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return started

    @app.get("/reports")
    def list_reports():
        return {"reports": storage.list_reports()}

    @app.get("/reports/{report_id}")
    def get_report(report_id: str):
        return ensure_report(report_id)

    @app.get("/reports/{report_id}/status")
    def get_report_status(report_id: str):
        record = ensure_report(report_id)
        state = client.status(instance_for(record))
        if state is None:
            raise HTTPException(status_code=404, detail="Status not available")
        return {"reportId": report_id, **state.to_dict()}

    @app.post("/reports/{report_id}/cancel")
    def cancel_report(report_id: str):
        record = ensure_report(report_id)
        return {"reportId": report_id, "cancelled": client.cancel(instance_for(record))}

    @app.post("/reports/{report_id}/retry")
    def retry_report(report_id: str):
        ensure_report(report_id)
        try:
            return client.retry(report_id)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @app.get("/reports/{report_id}/wait")
    def wait_for_report(report_id: str, timeout: float = Query(default=30.0, gt=0, le=600)):
        record = ensure_report(report_id)
        try:
            outcome = client.await_result(instance_for(record), timeout=timeout)
        except FutureTimeoutError as exc:
            raise HTTPException(status_code=408, detail="Report not finished within timeout") from exc
        if outcome is not None:
            return outcome.to_dict()

        # the instance belongs to an earlier process; answer from the record
        record = ensure_report(report_id)
        if record.get("status") not in TERMINAL_STATUSES:
            raise HTTPException(status_code=409, detail="Report is not running in this process")
        payload: Dict[str, Any] = {"report": record, "success": record["status"] == STATUS_COMPLETED}
        if record.get("errorMessage"):
            payload["error"] = record["errorMessage"]
        return payload

    @app.get("/reports/{report_id}/files")
    def download_report_file(report_id: str, format: str = Query(..., description="PDF, DOCX or HTML")):
        record = ensure_report(report_id)
        fmt = format.strip().upper()
        extension = OUTPUT_EXTENSIONS.get(fmt)
        if extension is None:
            raise HTTPException(status_code=400, detail=f"Unsupported format: {format}")
        if not any(item.get("format") == fmt for item in record.get("files") or []):
            raise HTTPException(status_code=404, detail="File not available")

        filename = output_filename(report_id, extension)
        data = storage.get_output_file(report_id, filename)
        if data is None:
            raise HTTPException(status_code=404, detail="File not available")
        return Response(
            content=data,
            media_type=content_type_for(filename),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @app.get("/reports/{report_id}/costs")
    def get_report_costs(report_id: str):
        ensure_report(report_id)
        metrics = client.get_cost_metrics(report_id)
        if metrics is None:
            raise HTTPException(status_code=404, detail="No cost metrics recorded")
        return metrics.to_dict()

    @app.get("/costs")
    def get_costs():
        return client.get_aggregated_costs()

    # ---- Middleware ----
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.time()
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        try:
            response = await call_next(request)
            duration_ms = int((time.time() - start) * 1000)
            logger.info(
                "request completed",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )
            response.headers.setdefault("x-request-id", request_id)
            return response
        except Exception:
            duration_ms = int((time.time() - start) * 1000)
            logger.exception(
                "request failed",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "request_id": request_id,
                    "duration_ms": duration_ms,
                },
            )
            raise

    return app
