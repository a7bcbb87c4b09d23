import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.core.auth import get_current_user
from devhance.core.errors import NotFoundError
from devhance.db.session import get_db
from devhance.models.user import User
from devhance.models.vc_report import VCReport
from devhance.schemas.vc_reports import VCReportResponse

router = APIRouter()


@router.get("/{report_id}", response_model=VCReportResponse)
async def get_vc_report(
    report_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Read a VC report. Only the purchaser can see it; anyone else gets 404."""
    report = await db.get(VCReport, report_id)
    if report is None or report.user_id != current_user.id:
        raise NotFoundError("VC report")
    return report
