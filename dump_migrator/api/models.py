"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


# Request Models
class PreviewRequest(BaseModel):
    dump: str = Field(..., description="Raw SQL dump text")
    target: str
    source_table: Optional[str] = None


class ExecuteRequest(BaseModel):
    dump: str = Field(..., description="Raw SQL dump text, re-parsed in full")
    target: str
    mapping: Dict[str, str] = Field(..., description="Target field -> source column")
    acting_user_id: str
    scope: Optional[str] = None
    source_table: Optional[str] = None


# Response Models
class ErrorResponse(BaseModel):
    kind: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class FieldRuleResponse(BaseModel):
    name: str
    type: str
    required: bool = False
    max_length: Optional[int] = None
    enum: Optional[List[str]] = None
    pattern: Optional[str] = None
    case_sensitive: bool = True
    description: str = ""


class TargetSchemaResponse(BaseModel):
    name: str
    description: str = ""
    fields: List[FieldRuleResponse]
    dedup_key: List[str]
    scope_field: Optional[str] = None
    metadata_field: Optional[str] = None


class TargetListResponse(BaseModel):
    targets: List[str]
    total: int


class ParseIssueResponse(BaseModel):
    message: str
    line: int
    position: Optional[int] = None
    table: Optional[str] = None


class PreviewResponse(BaseModel):
    source: str
    target: str
    tables: List[str] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    sample: List[Dict[str, Any]] = Field(default_factory=list)
    sample_size: Optional[int] = None
    total_rows: int = 0
    malformed_rows: int = 0
    parse_errors: List[ParseIssueResponse] = Field(default_factory=list)
    suggested_mapping: Dict[str, str] = Field(default_factory=dict)
    unmapped_fields: List[str] = Field(default_factory=list)
    missing_required: List[str] = Field(default_factory=list)
    alternatives: Dict[str, List[str]] = Field(default_factory=dict)


class FieldErrorResponse(BaseModel):
    field: str
    message: str
    error_type: str
    value: Any = None


class RowErrorResponse(BaseModel):
    position: int
    line: int
    errors: List[FieldErrorResponse]


class MigrationResultResponse(BaseModel):
    """Summary of a run, with the camelCase keys clients already consume."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    target: str
    records_processed: int = Field(0, alias="recordsProcessed")
    records_inserted: int = Field(0, alias="recordsInserted")
    records_updated: int = Field(0, alias="recordsUpdated")
    records_skipped: int = Field(0, alias="recordsSkipped")
    per_row_errors: List[RowErrorResponse] = Field(default_factory=list, alias="perRowErrors")
    parse_errors: List[ParseIssueResponse] = Field(default_factory=list, alias="parseErrors")
    completed: bool = True
    error: Optional[Dict[str, Any]] = None
    started_at: Optional[str] = Field(None, alias="startedAt")
    completed_at: Optional[str] = Field(None, alias="completedAt")
