"""FastAPI app evaluating declarative lazy sequence pipelines."""

import time
from datetime import datetime

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from errors import SeqError
from models import (
    ErrorResponse,
    HealthResponse,
    PageResponse,
    PerformanceSummary,
    PipelineRequest,
    PipelineResponse,
    ServiceSettings,
    StatusResponse,
)
from utils import (
    clear_performance_metrics,
    get_available_functions,
    get_performance_summary,
    process_pagination,
    process_pipeline,
    setup_logging,
)

settings = ServiceSettings()
logger = setup_logging(settings.log_level, settings.log_file)

START_TIME = time.time()

app = FastAPI(
    title="Lazy Sequence Pipeline Service",
    description="Evaluates map/filter/take/skip pipelines over lazy sequences",
    version="1.0.0"
)


def _evaluation_error(e: Exception, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=f"Pipeline evaluation failed: {str(e)}",
            error_code=error_code,
            error_type=type(e).__name__,
            timestamp=datetime.now()
        ).model_dump(mode="json")
    )


@app.get("/", response_model=StatusResponse)
async def root():
    """Basic service banner."""
    return StatusResponse(
        ok=True,
        message="Lazy Sequence Pipeline Service operational",
        available_functions=get_available_functions(),
        timestamp=datetime.now()
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Return health with performance summary and active settings."""
    return HealthResponse(
        healthy=True,
        uptime_seconds=time.time() - START_TIME,
        performance=PerformanceSummary(**get_performance_summary()),
        settings=settings,
        timestamp=datetime.now()
    )


# Evaluation is CPU bound, so these two run in the threadpool (plain def)

@app.post("/pipeline", response_model=PipelineResponse)
def evaluate_pipeline(request: PipelineRequest):
    """Evaluate a pipeline; at most settings.max_result_items items are produced."""
    try:
        result = process_pipeline(
            request,
            max_result_items=settings.max_result_items,
            max_source_items=settings.max_source_items
        )
    except SeqError as e:
        logger.error(f"Pipeline rejected by the sequence engine: {e}")
        return _evaluation_error(e, "SEQUENCE_ERROR")
    except (TypeError, ValueError, ArithmeticError) as e:
        logger.error(f"Pipeline evaluation failed: {e}", exc_info=True)
        return _evaluation_error(e, "EVALUATION_ERROR")

    return PipelineResponse(**result)


@app.post("/pipeline/page", response_model=PageResponse)
def paginate_pipeline(
    request: PipelineRequest,
    page_number: int = Query(1, description="Page number (1-indexed)", ge=1),
    page_size: int = Query(10, description="Items per page", ge=1, le=1000)
):
    """Return one page of the pipeline's items."""
    try:
        result = process_pagination(
            request,
            page_number=page_number,
            page_size=page_size,
            max_source_items=settings.max_source_items
        )
    except SeqError as e:
        logger.error(f"Page rejected by the sequence engine: {e}")
        return _evaluation_error(e, "SEQUENCE_ERROR")
    except (TypeError, ValueError, ArithmeticError) as e:
        logger.error(f"Pagination failed: {e}", exc_info=True)
        return _evaluation_error(e, "EVALUATION_ERROR")

    return PageResponse(**result)


@app.get("/metrics", response_model=PerformanceSummary)
async def get_metrics():
    """Performance summary of all evaluations so far."""
    return PerformanceSummary(**get_performance_summary())


@app.delete("/metrics", response_model=PerformanceSummary)
async def reset_metrics():
    """Clear recorded performance metrics."""
    clear_performance_metrics()
    logger.info("Performance metrics cleared")
    return PerformanceSummary(**get_performance_summary())


@app.exception_handler(SeqError)
async def seq_error_handler(request: Request, exc: SeqError):
    logger.error(f"Sequence error: {exc}")
    return _evaluation_error(exc, "SEQUENCE_ERROR")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    logger.warning(f"Rejected invalid request to {request.url.path}: {len(errors)} error(s)")
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=f"Invalid request: {errors[0]['msg']}" if errors else "Invalid request",
            error_code="VALIDATION_ERROR",
            error_type=type(exc).__name__,
            details={"errors": errors},
            timestamp=datetime.now()
        ).model_dump(mode="json")
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
