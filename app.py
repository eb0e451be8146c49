import datetime
import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from models import (
    PipelineRequest, PipelineResponse, PerformanceInfo, OperationsResponse,
    ErrorResponse, HealthCheckResponse, SourceKind, OperationType
)
from utils import (
    PipelineError, evaluate_pipeline, measure_performance,
    registered_functions, get_performance_summary
)
from iterators import from_

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="pulliter")


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, error_code=code, timestamp=_now()).model_dump()
    )


@app.post("/pipeline/evaluate", response_model=PipelineResponse)
def evaluate(request: PipelineRequest) -> PipelineResponse:
    """
    Evaluate a pipeline described as a source plus operations, e.g.
    from [1..5] -> skip 1 -> map double -> take 2  =>  [4, 6]
    """
    try:
        info = measure_performance("pipeline", evaluate_pipeline, request)
    except (PipelineError, TypeError) as e:
        logger.info("rejected pipeline: %s", e)
        return _error(400, str(e), "PIPELINE_ERROR")
    except Exception as e:
        logger.exception("pipeline evaluation failed")
        return _error(500, f"Failed to evaluate pipeline: {e}", "EVALUATION_ERROR")

    outcome = info["result"]
    items = outcome.get("items")
    return PipelineResponse(
        ok=True,
        items=items,
        result=outcome.get("result"),
        operations_applied=outcome["operations_applied"],
        performance=PerformanceInfo(
            processing_time_ms=info["execution_time_ms"],
            memory_usage_mb=info["memory_usage_mb"],
            output_size=len(items) if items is not None else 1
        )
    )


@app.get("/operations", response_model=OperationsResponse)
async def operations() -> OperationsResponse:
    """List source kinds, operations and registered function names"""
    return OperationsResponse(
        sources=[k.value for k in SourceKind],
        operations=[o.value for o in OperationType],
        functions=registered_functions()
    )


@app.get("/metrics")
async def metrics():
    """Aggregate timing and memory across evaluated pipelines"""
    return get_performance_summary()


@app.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint"""
    checks = {
        "producers": from_([1, 2, 3]).fold(0, lambda elem, acc: acc + elem) == 6
    }
    return HealthCheckResponse(
        status="healthy" if all(checks.values()) else "unhealthy",
        timestamp=_now(),
        checks=checks
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
