"""POST /api/validate and POST /api/repair endpoints for hand-edited pages"""

from fastapi import APIRouter
from siteforge.models.schemas import MarkupRequest, RepairResponse, ValidationReport
from siteforge.core.structural_validator import validate
from siteforge.core.gap_repairer import repair_document
from siteforge.core.policy_injector import apply_policies
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/validate", response_model=ValidationReport)
async def validate_markup(request: MarkupRequest) -> ValidationReport:
    """Run structural (and optionally completeness) checks on one document."""
    report = validate(request.content, check_completeness=request.check_completeness)
    logger.info(f"POST /api/validate | issues: {len(report.issues)} | score: {report.score}")
    return report


@router.post("/repair", response_model=RepairResponse)
async def repair_markup(request: MarkupRequest) -> RepairResponse:
    """Repair the document, apply runtime policies, then report what is left."""
    repaired = repair_document(request.content)
    injected = apply_policies(repaired["fixed_html"], request.scope_id)
    report = validate(injected["html"], check_completeness=request.check_completeness)
    logger.info(
        f"POST /api/repair | fixes: {len(repaired['fixes_applied'])} | "
        f"injections: {len(injected['changes'])} | remaining: {len(report.issues)}"
    )
    return RepairResponse(
        content=injected["html"],
        fixes_applied=repaired["fixes_applied"] + injected["changes"],
        report=report,
    )
