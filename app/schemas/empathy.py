from __future__ import annotations
from pydantic import BaseModel, Field


class EmpathyCount(BaseModel):
    empathy_count: int = Field(ge=0)


class EmpathyStatus(BaseModel):
    has_empathy: bool
    empathy_count: int = Field(ge=0)
