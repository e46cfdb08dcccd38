"""FastAPI application exposing the EPCIS transformations.

Every route delegates to :class:`~epcis_transformer.coordinator.TransformationCoordinator`,
which tries the remote OpenEPCIS service first and falls back to the local
engine. Pass ``"local_only": true`` to skip the remote service entirely.

Quick start (run the server)::

    uvicorn epcis_transformer.app:app --reload

Endpoints:

    GET  /health                          Basic health probe
    POST /api/convert-to-epcis20-xml      EPCIS 1.x XML -> 2.0 XML
    POST /api/convert-to-jsonld           EPCIS 2.0 XML -> JSON-LD
    POST /api/convert-from-12-to-jsonld   EPCIS 1.x XML -> JSON-LD (two steps)
    GET  /api/openepcis/test-connection   Remote reachability (200 / 503)
    GET  /metrics/backends                Backend attempts, failures, fallbacks
    POST /metrics/reset                   Reset metrics

Example: migrate a document::

    curl -X POST http://localhost:8000/api/convert-to-epcis20-xml \
         -H "Content-Type: application/json" \
         -d '{"xml": "<epcis:EPCISDocument ...>", "options": {"preserve_comments": true}}'

Error handling:
    * ``ValidationError`` -> 400 ``{"message", "code": "INVALID_XML"}``
    * ``TransformationError`` -> 500 ``{"message", "code": "TRANSFORMATION_ERROR"}``
    * Malformed request bodies -> 422 (FastAPI default)
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from functools import lru_cache
from typing import Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from . import __version__
from .coordinator import TransformationCoordinator, create_coordinator
from .errors import TransformationError, ValidationError
from .models import JsonLdTransformOptions, XmlTransformOptions
from .monitoring import get_monitor

logger = logging.getLogger(__name__)

app = FastAPI(
    title="EPCIS Transformer API",
    version=__version__,
    description="Convert EPCIS 1.x XML to EPCIS 2.0 XML and JSON-LD with remote/local fallback",
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.middleware("http")
async def monitor_requests(request: Request, call_next):
    """Middleware to record endpoint latency."""
    start_time = time.time()
    response = await call_next(request)
    response_time = time.time() - start_time

    endpoint = f"{request.method} {request.url.path}"
    get_monitor().record_endpoint_request(endpoint, response_time, response.status_code)

    response.headers["X-Response-Time"] = f"{response_time:.3f}s"
    response.headers["X-API-Version"] = __version__
    return response


class XmlOptionsModel(BaseModel):
    """Options for the 1.x -> 2.0 migration."""

    validate_before_transform: bool = Field(
        False, description="Check the document type before migrating"
    )
    preserve_comments: bool = Field(False, description="Keep XML comments")

    def to_options(self) -> XmlTransformOptions:
        return XmlTransformOptions(
            validate_before_transform=self.validate_before_transform,
            preserve_comments=self.preserve_comments,
        )


class JsonLdOptionsModel(BaseModel):
    """Options for the JSON-LD projection."""

    pretty_print: bool = Field(True, description="Indent output with two spaces")
    include_context: bool = Field(True, description="Emit the @context URI")

    def to_options(self) -> JsonLdTransformOptions:
        return JsonLdTransformOptions(
            pretty_print=self.pretty_print, include_context=self.include_context
        )


class XmlConversionRequest(BaseModel):
    """Request model for the XML migration endpoint."""

    xml: str = Field(..., min_length=1, description="EPCIS 1.x XML document")
    options: Optional[XmlOptionsModel] = Field(None, description="Migration options")
    local_only: bool = Field(False, description="Skip the remote service")


class JsonLdConversionRequest(BaseModel):
    """Request model for the JSON-LD endpoints."""

    xml: str = Field(..., min_length=1, description="EPCIS XML document")
    options: Optional[JsonLdOptionsModel] = Field(None, description="Projection options")
    local_only: bool = Field(False, description="Skip the remote service")


class ConversionResponse(BaseModel):
    """Response model for every conversion endpoint."""

    result: str = Field(..., description="Converted document text")


@lru_cache(maxsize=1)
def get_coordinator() -> TransformationCoordinator:
    return create_coordinator()


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info(f"Rejected input on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(TransformationError)
async def transformation_error_handler(request: Request, exc: TransformationError):
    logger.error(f"Transformation failed on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=500, content=exc.to_dict())


@app.get("/health")
def health() -> Dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.post("/api/convert-to-epcis20-xml", response_model=ConversionResponse)
async def convert_to_epcis20_xml(
    request: XmlConversionRequest,
    coordinator: TransformationCoordinator = Depends(get_coordinator),
) -> ConversionResponse:
    """Convert an EPCIS 1.x XML document to EPCIS 2.0 XML."""
    options = request.options.to_options() if request.options else None
    result = await coordinator.convert_to_v2(request.xml, options, request.local_only)
    return ConversionResponse(result=result)


@app.post("/api/convert-to-jsonld", response_model=ConversionResponse)
async def convert_to_jsonld(
    request: JsonLdConversionRequest,
    coordinator: TransformationCoordinator = Depends(get_coordinator),
) -> ConversionResponse:
    """Convert an EPCIS 2.0 XML document to JSON-LD."""
    options = request.options.to_options() if request.options else None
    result = await coordinator.convert_to_jsonld(request.xml, options, request.local_only)
    return ConversionResponse(result=result)


@app.post("/api/convert-from-12-to-jsonld", response_model=ConversionResponse)
async def convert_from_12_to_jsonld(
    request: JsonLdConversionRequest,
    coordinator: TransformationCoordinator = Depends(get_coordinator),
) -> ConversionResponse:
    """Convert an EPCIS 1.x XML document straight to JSON-LD."""
    options = request.options.to_options() if request.options else None
    result = await coordinator.convert_v1_to_jsonld(
        request.xml, options, request.local_only
    )
    return ConversionResponse(result=result)


@app.get("/api/openepcis/test-connection")
async def test_connection(
    coordinator: TransformationCoordinator = Depends(get_coordinator),
):
    """Report whether the remote OpenEPCIS service is reachable."""
    if await coordinator.test_connection():
        return {"status": "connected", "message": "Successfully connected to OpenEPCIS API"}
    return JSONResponse(
        status_code=503,
        content={"status": "disconnected", "message": "Failed to connect to OpenEPCIS API"},
    )


@app.get("/metrics/backends")
def get_backend_metrics():
    """Backend attempts, failures, fallbacks and endpoint latency."""
    return get_monitor().get_backend_summary()


@app.post("/metrics/reset")
def reset_metrics():
    """Reset all metrics (useful for testing)."""
    get_monitor().reset_metrics()
    return {
        "message": "All metrics have been reset",
        "timestamp": datetime.now().isoformat(),
    }
