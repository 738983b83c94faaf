"""
Note request schemas.
"""

from typing import Optional

from pydantic import BaseModel, Field


class NoteCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    content: str = Field(..., min_length=1)
    category: str = Field("Umum", max_length=100)
    is_pinned: bool = False
    module_id: Optional[str] = None
    sub_material_id: Optional[str] = None


class NoteUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    content: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, max_length=100)
    is_pinned: Optional[bool] = None
