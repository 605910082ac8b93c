"""
Synthesis Routes

Thin HTTP wrappers over schema discovery, query synthesis and field mapping.
Pipeline rejections are returned as 422 responses carrying the same envelope
as successes; only unexpected failures reach the global 500 handler.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .dependencies import (
    get_datasource_client,
    get_field_mapper,
    get_llm_client,
    get_schema_discovery,
)
from .models import MappingRequest, MappingResponse, QueryRequest, QueryResponse
from ..datasource.client import DataSourceClient
from ..datasource.discovery import SchemaDiscovery
from ..graph.schema_graph import SchemaGraph
from ..ingest.attachments import AttachmentError, load_attachment_bytes
from ..ingest.csv_ingestor import PayloadTooLargeError
from ..llm.client import LLMClient
from ..synthesis.mapping import FieldMapper
from ..synthesis.models import Rejection
from ..synthesis.synthesizer import QuerySynthesizer

router = APIRouter(tags=["synthesis"])


def _respond(body, rejected: bool):
    if rejected:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )
    return body


@router.post(
    "/query",
    response_model=QueryResponse,
    summary="Synthesize and execute a read-only query",
    responses={422: {"model": QueryResponse}},
)
async def synthesize_query(
    req: QueryRequest,
    llm: Annotated[LLMClient, Depends(get_llm_client)],
    datasource: Annotated[DataSourceClient, Depends(get_datasource_client)],
    discovery: Annotated[SchemaDiscovery, Depends(get_schema_discovery)],
):
    """
    Discover the requested tables, then run the synthesis pipeline.

    Requests with an empty description or no tables skip discovery entirely
    and are rejected by the synthesizer before any network call.
    """
    graph: Optional[SchemaGraph] = None
    location: Optional[str] = req.snapshot_location
    failed = []

    if req.description.strip() and any(t.strip() for t in req.tables):
        discovered = await discovery.load_graph(req.tables, req.snapshot_location)
        graph = discovered.graph
        location = discovered.location
        failed = discovered.failed_tables

    synthesizer = QuerySynthesizer(
        llm=llm,
        executor=datasource,
        graph=graph,
        explorer_llm=llm,
    )
    result = await synthesizer.synthesize(req.description, req.tables, user_id=req.user_id)

    body = QueryResponse(result=result, snapshot_location=location, failed_tables=failed)
    return _respond(body, isinstance(result, Rejection))


@router.post(
    "/mapping",
    response_model=MappingResponse,
    summary="Map CSV headers to table fields",
    responses={422: {"model": MappingResponse}},
)
async def map_csv_fields(
    req: MappingRequest,
    mapper: Annotated[FieldMapper, Depends(get_field_mapper)],
    discovery: Annotated[SchemaDiscovery, Depends(get_schema_discovery)],
):
    if not req.table.strip():
        body = MappingResponse(
            result=Rejection(stage="input", reason="A target table name is required."),
        )
        return _respond(body, True)

    try:
        raw = await load_attachment_bytes(req.csv, max_bytes=mapper.max_bytes)
    except PayloadTooLargeError as exc:
        body = MappingResponse(
            result=Rejection(
                stage="input",
                reason=str(exc),
                suggestions=["Split the file into smaller parts."],
            ),
        )
        return _respond(body, True)
    except AttachmentError as exc:
        body = MappingResponse(result=Rejection(stage="input", reason=str(exc)))
        return _respond(body, True)

    discovered = await discovery.load_graph([req.table], req.snapshot_location)

    result = await mapper.map_fields(
        req.table,
        raw,
        discovered.graph,
        has_header=req.has_header,
        expected_columns=req.expected_columns,
        return_sample=req.return_sample,
    )

    body = MappingResponse(result=result, snapshot_location=discovered.location)
    return _respond(body, isinstance(result, Rejection))
