"""
Inspection API over one agent pipeline.
Read-mostly: outputs, correlation report and memory search. The pipeline is
provided by get_pipeline() so tests can override it.
"""

from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware

from .schemas import (
    HealthResponse,
    AgentOutputResponse,
    AgentOutputListResponse,
    ClearResponse,
    MemorySearchRequest,
    MemorySearchResponse,
    MemoryHit,
    MemoryStoreRequest,
    MemoryStoreResponse,
)
from ..agents.pipeline import AgentPipeline
from ..bootstrap import build_pipeline
from ..core.config import VERSION, debug_enabled
from ..core.models import AgentOutput, OutputKind

app = FastAPI(
    title="Glassmem Agent API",
    version=VERSION,
    description="Inspection API for the wearable agent pipeline",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_pipeline: Optional[AgentPipeline] = None


def get_pipeline() -> AgentPipeline:
    """Process-wide pipeline, built from configuration on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline


def _to_response(output: AgentOutput) -> AgentOutputResponse:
    return AgentOutputResponse(
        id=output.id,
        kind=output.kind.value,
        text=output.text,
        confidence=output.confidence,
        produced_at=output.produced_at,
        correlated_timestamps=list(output.correlated_timestamps),
        metadata=output.metadata.to_dict(),
    )


def _to_list(outputs) -> AgentOutputListResponse:
    return AgentOutputListResponse(outputs=[_to_response(o) for o in outputs], count=len(outputs))


def _require_memory(pipeline: AgentPipeline):
    if pipeline.memory is None:
        raise HTTPException(status_code=503, detail="Memory service not available")
    return pipeline.memory


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(pipeline: AgentPipeline = Depends(get_pipeline)):
    """Check pipeline health."""
    store = pipeline.context.document_store
    store_health = store.health_check() if store is not None else None
    memory_count = pipeline.memory.index.count() if pipeline.memory is not None else 0

    return HealthResponse(
        status="unhealthy" if store_health is False else "healthy",
        version=VERSION,
        state=pipeline.state.value,
        capabilities=pipeline.capabilities,
        output_count=pipeline.outputs.count(),
        memory_count=memory_count,
        store_health=store_health,
    )


@app.get("/agent/status")
def agent_status_endpoint(pipeline: AgentPipeline = Depends(get_pipeline)):
    return pipeline.status()


# Define fixed /agent/outputs/* paths before the query-parameter listing
@app.get("/agent/outputs/recent", response_model=AgentOutputListResponse)
def recent_outputs_endpoint(limit: int = 20, pipeline: AgentPipeline = Depends(get_pipeline)):
    return _to_list(pipeline.recent_outputs(limit))


@app.get("/agent/outputs/range", response_model=AgentOutputListResponse)
def outputs_in_range_endpoint(start: datetime, end: datetime,
                              pipeline: AgentPipeline = Depends(get_pipeline)):
    return _to_list(pipeline.outputs.in_range(start, end))


@app.get("/agent/outputs", response_model=AgentOutputListResponse)
def outputs_by_kind_endpoint(kind: Optional[str] = None, pipeline: AgentPipeline = Depends(get_pipeline)):
    if kind is None:
        return _to_list(pipeline.outputs.all())
    try:
        output_kind = OutputKind(kind)
    except ValueError:
        valid = [k.value for k in OutputKind]
        raise HTTPException(status_code=400, detail=f"Invalid kind: {kind}. Must be one of: {valid}")
    return _to_list(pipeline.outputs_by_kind(output_kind))


@app.delete("/agent/outputs", response_model=ClearResponse)
def clear_outputs_endpoint(pipeline: AgentPipeline = Depends(get_pipeline)):
    cleared = pipeline.outputs.count()
    pipeline.clear_outputs()
    return ClearResponse(success=True, cleared=cleared)


@app.get("/agent/report")
def correlation_report_endpoint(pipeline: AgentPipeline = Depends(get_pipeline)):
    report = pipeline.report()
    result = report.to_dict()
    result["summary"] = report.generate_summary()
    return result


@app.post("/memory/search", response_model=MemorySearchResponse)
async def memory_search_endpoint(request: MemorySearchRequest,
                                 pipeline: AgentPipeline = Depends(get_pipeline)):
    memory = _require_memory(pipeline)
    if request.threshold is None:
        hits = await memory.retrieve_memory(request.query, limit=request.top_k)
    else:
        hits = await memory.retrieve_memory(request.query, limit=request.top_k,
                                            threshold=request.threshold)
    return MemorySearchResponse(
        query=request.query,
        results=[MemoryHit(id=h.id, text=h.text, score=h.score, metadata=dict(h.metadata)) for h in hits],
        count=len(hits),
    )


@app.post("/memory", response_model=MemoryStoreResponse)
async def memory_store_endpoint(request: MemoryStoreRequest,
                                pipeline: AgentPipeline = Depends(get_pipeline)):
    memory = _require_memory(pipeline)
    record_id = await memory.store_memory(request.content, dict(request.metadata))
    return MemoryStoreResponse(success=record_id is not None, record_id=record_id)


@app.get("/memory/stats")
def memory_stats_endpoint(pipeline: AgentPipeline = Depends(get_pipeline)):
    return _require_memory(pipeline).memory_stats()
