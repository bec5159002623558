from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from .common import CamelModel
from .criteria import FilterCriterion


class ProjectStatus(str, Enum):
    """Lifecycle of a research project. Any status may be set directly."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"


class ResearchProjectCreate(CamelModel):
    name: str
    description: str = ""
    hypothesis: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = ProjectStatus.DRAFT
    tags: List[str] = Field(default_factory=list)
    filter_criteria: List[FilterCriterion] = Field(default_factory=list)


class ResearchProjectUpdate(CamelModel):
    """Partial update; fields left as None are not touched."""
    name: Optional[str] = None
    description: Optional[str] = None
    hypothesis: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ProjectStatus] = None
    tags: Optional[List[str]] = None
    filter_criteria: Optional[List[FilterCriterion]] = None


class StatusUpdate(CamelModel):
    status: ProjectStatus


class ResearchProject(CamelModel):
    id: str
    name: str
    description: str = ""
    hypothesis: str = ""
    status: ProjectStatus = ProjectStatus.DRAFT
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    tags: List[str] = Field(default_factory=list)
    filter_criteria: List[FilterCriterion] = Field(default_factory=list)
    patient_count: int = 0
    created_at: Optional[datetime] = None


class ProjectResponse(CamelModel):
    success: bool = True
    project: ResearchProject


class ProjectListResponse(CamelModel):
    success: bool = True
    projects: List[ResearchProject] = Field(default_factory=list)
