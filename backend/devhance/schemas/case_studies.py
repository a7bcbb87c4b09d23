import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CaseStudyCreateRequest(BaseModel):
    repo_url: str = Field(..., min_length=1, max_length=512)


class CaseStudyCreateResponse(BaseModel):
    id: str
    slug: str
    # True when metadata or repository contents could not be fully read
    degraded: bool = False
    degraded_reasons: List[str] = []


class CaseStudyResponse(BaseModel):
    """Public view of a stored case study, serialized with camelCase keys."""
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    slug: str
    repo_url: str
    title: str
    summary: str
    problem_summary: str
    solution_summary: str
    tech_stack: str
    architecture_overview: str
    core_features: List[Any]
    challenges_and_solutions: str
    impact: str
    proof_data: Dict[str, Any]
    key_folders: List[Any]
    total_commits: int
    active_period: str
    created_at: datetime


class CaseStudyListItem(BaseModel):
    """One row of the signed-in user's case study list."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: uuid.UUID
    slug: str
    repo_url: str
    title: str
    summary: str
    total_commits: int
    active_period: str
    created_at: datetime
    report_id: Optional[uuid.UUID] = None
    has_report: bool = False


class ContextResetResponse(BaseModel):
    repo_url: str
    deleted: bool
