"""Playbook and improvement-cycle request schemas."""
from typing import Optional
from uuid import UUID
from pydantic import BaseModel


class PlaybookCreate(BaseModel):
    strategy: str
    opener: str
    objection_style: str
    tone: str
    close_technique: str
    rationale: str


class ImprovementLogCreate(BaseModel):
    calls_analyzed: int
    old_playbook_id: Optional[UUID] = None
    new_playbook_id: Optional[UUID] = None
    analysis_summary: Optional[str] = None


class SaveTranscriptRequest(BaseModel):
    conversation_id: str
