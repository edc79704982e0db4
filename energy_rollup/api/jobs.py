"""
Manual trigger for the aggregation job.

POST /v1/jobs/aggregate-energy runs one aggregation pass through the
scheduler's single-flight guard and reports how many minutes were rolled up.

CHANGELOG:
- 2026-10-06: Initial creation (STORY-022)

TODO:
- None
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from energy_rollup.api.deps import Scheduler
from energy_rollup.errors import CheckpointConflictError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/jobs", tags=["jobs"])


@router.post("/aggregate-energy")
async def aggregate_energy(scheduler: Scheduler) -> JSONResponse:
    """Run the aggregation job once.

    Returns:
        JSONResponse: 200 ``{"status": "success", "processed", "timestamp"}``,
            409 when another run holds the checkpoint, 500 on failure.
    """
    try:
        processed = await scheduler.run_once()
    except CheckpointConflictError as exc:
        return JSONResponse(status_code=409, content={"status": "conflict", "error": str(exc)})
    except Exception as exc:
        logger.exception("Manual aggregation run failed")
        return JSONResponse(status_code=500, content={"status": "error", "error": str(exc)})

    if processed is None:
        return JSONResponse(
            status_code=409,
            content={"status": "conflict", "error": "Aggregation run already in progress"},
        )

    return JSONResponse(
        status_code=200,
        content={"status": "success", "processed": processed, "timestamp": int(time.time())},
    )
