"""Migration execution endpoint."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...errors import DatastoreConnectionError
from ...executor import MigrationEngine
from ..deps import get_engine
from ..models import ExecuteRequest, MigrationResultResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/execute", response_model=MigrationResultResponse)
def execute_migration(request: ExecuteRequest, engine: MigrationEngine = Depends(get_engine)):
    """
    Run a confirmed mapping over the full dump.

    Row-level problems are reported inside the result. A lost datastore
    connection ends the run and is answered with 503, carrying the partial
    result in the error details.
    """
    logger.info(f"Migration requested into {request.target} by {request.acting_user_id}")
    result = engine.execute(
        request.dump,
        request.target,
        request.mapping,
        request.acting_user_id,
        scope=request.scope,
        source_table=request.source_table,
    )

    if result.error and result.error.get("kind") == DatastoreConnectionError.kind:
        return JSONResponse(
            status_code=503,
            content={
                "kind": result.error["kind"],
                "message": result.error["message"],
                "details": {"result": result.to_dict()},
            },
        )

    return MigrationResultResponse.model_validate(result.to_dict())
