from typing import Optional, Dict, List
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

class FileRecord(BaseModel):
    name: str
    path: str
    size: int
    type: str
    field_name: str = Field(alias="fieldName")

    model_config = ConfigDict(populate_by_name=True)

class SubmissionResponse(BaseModel):
    id: str
    form_id: str
    data: Dict[str, str]
    files: List[FileRecord]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class SubmissionListResponse(BaseModel):
    submissions: List[SubmissionResponse]

class SubmissionCreatedResponse(BaseModel):
    message: str
    submissionId: str
