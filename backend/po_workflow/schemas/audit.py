"""
Audit log schemas
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    id: int
    actor_id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    details: Dict[str, Any] = {}
    created_at: datetime

    class Config:
        from_attributes = True


class AuditBulkDeleteRequest(BaseModel):
    """Delete audit entries by id or by filter (at least one is required)"""
    ids: Optional[List[int]] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    actor_id: Optional[str] = Field(None, max_length=36)


class AuditBulkDeleteResponse(BaseModel):
    deleted: int
