"""Pipeline data model and API request/response schemas"""

from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import re


STYLESHEET_FILENAME = "style.css"
SCRIPT_FILENAME = "script.js"


class OutputMode(str, Enum):
    """Kind of site the prompt asks for"""
    MARKUP = "markup"
    SPA = "spa"
    FRAMEWORK = "framework"


class IssueKind(str, Enum):
    MISSING_TAG = "missing_tag"
    UNCLOSED_TAG = "unclosed_tag"
    INVALID_STRUCTURE = "invalid_structure"
    LOW_CONTENT = "low_content"
    FORBIDDEN_CONSTRUCT = "forbidden_construct"


class Severity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


# ============================================================================
# Pipeline model
# ============================================================================

class PageSpec(BaseModel):
    """One page of the requested site"""
    model_config = ConfigDict(frozen=True)

    slug: str = Field(..., pattern=r'^[a-z0-9]+(?:-[a-z0-9]+)*$')
    display_name: str
    description: str = ""

    @property
    def filename(self) -> str:
        return page_filename(self.slug)


class GenerationRequest(BaseModel):
    """Root prompt plus the ordered pages to build. Frozen once orchestration starts."""
    model_config = ConfigDict(frozen=True)

    root_prompt: str
    site_name: str
    pages: List[PageSpec]

    @field_validator("pages")
    @classmethod
    def slugs_unique(cls, v):
        slugs = [p.slug for p in v]
        if len(slugs) != len(set(slugs)):
            raise ValueError(f"Duplicate page slugs: {slugs}")
        return v


class SharedAssets(BaseModel):
    """Stylesheet, script and nav/footer fragments shared by every page"""
    model_config = ConfigDict(frozen=True)

    stylesheet_text: str
    script_text: str
    nav_fragment: str = ""
    footer_fragment: str = ""


class PageArtifact(BaseModel):
    """Content produced by one generation attempt for a page"""
    model_config = ConfigDict(frozen=True)

    filename: str
    content: str
    attempt: int = Field(default=1, ge=1)


class ValidationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    message: str
    severity: Severity
    code: str = ""

    @property
    def is_critical(self) -> bool:
        return self.severity == Severity.CRITICAL


class ValidationReport(BaseModel):
    """Result of validating one document"""
    issues: List[ValidationIssue] = Field(default_factory=list)
    score: int = Field(default=100, ge=0, le=100)
    passed: bool = True

    @property
    def critical_issues(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.is_critical]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if not i.is_critical]

    def has_code(self, code: str) -> bool:
        return any(i.code == code for i in self.issues)


class SiteReport(BaseModel):
    """Completeness validation across a whole file map"""
    pages: Dict[str, ValidationReport] = Field(default_factory=dict)
    missing_pages: List[str] = Field(default_factory=list)
    critical_errors: List[str] = Field(default_factory=list)
    passed: bool = True


class PipelineResult(BaseModel):
    """Terminal artifact of one orchestration run"""
    model_config = ConfigDict(frozen=True)

    files: Dict[str, str] = Field(default_factory=dict)
    mode: OutputMode = OutputMode.MARKUP
    pages: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    quality_score: int = Field(default=0, ge=0, le=100)
    success: bool = False


def page_filename(slug: str) -> str:
    """index.html for the home page, {slug}.html otherwise"""
    return "index.html" if slug == "index" else f"{slug}.html"


# ============================================================================
# API schemas
# ============================================================================

class BuildRequest(BaseModel):
    """POST /api/build request"""
    prompt: str = Field(..., min_length=1, max_length=20000, description="Free-form site description")
    site_name: Optional[str] = Field(default=None, max_length=120)
    scope_id: Optional[str] = Field(default=None, description="Scope for injected form/analytics calls")

    @field_validator("scope_id")
    @classmethod
    def validate_scope_id(cls, v):
        """
        Scope ids are embedded into generated scripts, so only a safe
        character set is accepted.
        """
        if v is None:
            return v
        v = v.strip()
        if not re.match(r'^[a-zA-Z0-9_\-]{1,64}$', v):
            raise ValueError(
                "scope_id contains invalid characters. Only alphanumeric, underscore and hyphen allowed."
            )
        return v


class BuildResponse(BaseModel):
    """POST /api/build response"""
    session_id: str


class ProgressEvent(BaseModel):
    """SSE progress event"""
    ts: str
    session_id: str
    phase: str
    step: str
    detail: str


class MarkupRequest(BaseModel):
    """POST /api/validate and /api/repair request"""
    content: str
    check_completeness: bool = False
    scope_id: str = "preview"


class RepairResponse(BaseModel):
    content: str
    fixes_applied: List[str] = Field(default_factory=list)
    report: ValidationReport
