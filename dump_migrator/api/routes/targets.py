"""Target schema endpoints."""

from fastapi import APIRouter, Depends

from ...executor import MigrationEngine
from ..deps import get_engine
from ..models import TargetListResponse, TargetSchemaResponse

router = APIRouter()


@router.get("", response_model=TargetListResponse)
async def list_targets(engine: MigrationEngine = Depends(get_engine)):
    """List all migration targets."""
    targets = engine.targets()
    return TargetListResponse(targets=targets, total=len(targets))


@router.get("/{target}", response_model=TargetSchemaResponse)
async def get_target(target: str, engine: MigrationEngine = Depends(get_engine)):
    """Get the rule set and dedup key of a target."""
    return engine.catalog.get_schema(target).to_dict()
