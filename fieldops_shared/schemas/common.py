from enum import Enum
from typing import Optional
from pydantic import BaseModel

class TaskStatus(str, Enum):
    PREPARING = "PREPARING"
    READY = "READY"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"

class Role(str, Enum):
    ADMIN = "admin"
    WORKER = "worker"

class SortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    SCHEDULED_AT = "scheduled_at"
    COMPLETED_AT = "completed_at"
    ID = "id"

class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"

class DateField(str, Enum):
    SCHEDULED_AT = "scheduled_at"
    CREATED_AT = "created_at"
    COMPLETED_AT = "completed_at"

class ActivityAction(str, Enum):
    TASK_CREATED = "TASK_CREATED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_ASSIGNEES_UPDATED = "TASK_ASSIGNEES_UPDATED"
    TASK_STATUS_UPDATED = "TASK_STATUS_UPDATED"
    TASK_COMMENTED = "TASK_COMMENTED"

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int

class ErrorResponse(BaseModel):
    error: Optional[ErrorBody] = None
