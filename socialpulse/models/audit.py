"""Audit log entries appended by every mutation."""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from socialpulse.utils.clock import utc_now


class AuditEntry(BaseModel):
    """One audited change."""

    audit_id: str = Field(default_factory=lambda: str(uuid4()))
    actor_user_id: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    request_id: Optional[str] = None
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utc_now)
