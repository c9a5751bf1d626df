"""Dump preview endpoint."""

import logging

from fastapi import APIRouter, Depends

from ...executor import MigrationEngine
from ..deps import get_engine
from ..models import PreviewRequest, PreviewResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=PreviewResponse)
def preview_dump(request: PreviewRequest, engine: MigrationEngine = Depends(get_engine)):
    """
    Sample a dump and suggest a mapping onto the target.

    Read-only: nothing is written to the datastore.
    """
    logger.info(f"Preview requested for target {request.target}")
    preview = engine.preview(request.dump, request.target, request.source_table)
    return preview.to_dict()
