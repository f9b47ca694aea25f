from datetime import date
from typing import Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User
from ..models.course import Course
from ..services.report_export import build_final_report, load_report_data, workbook_to_bytes, XLSX_MEDIA_TYPE
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/final-report")
async def export_final_report(course_id: Optional[int] = None, db: AsyncSession = Depends(get_db),
                              current_user: User = Depends(require_roles("admin", "instructor"))):
    """Download the final course report as .xlsx"""
    try:
        course_name = None
        if course_id is not None:
            result = await db.execute(select(Course.name).filter(Course.id == course_id))
            course_name = result.scalar_one_or_none()
            if course_name is None:
                raise HTTPException(status_code=404, detail="Course not found")

        data = await load_report_data(db, course_id=course_id, course_name=course_name)
        content = workbook_to_bytes(build_final_report(data))

        file_name = f"דוח_{course_name or 'קורס'}_{date.today().isoformat()}.xlsx"
        logger.info(f"Final report generated by {current_user.email} ({len(content)} bytes)")

        return StreamingResponse(
            iter([content]),
            media_type=XLSX_MEDIA_TYPE,
            headers={
                "Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_name)}"
            }
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error generating final report: {e}")
        raise HTTPException(status_code=500, detail="Error generating report")
