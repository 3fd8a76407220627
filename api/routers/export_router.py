"""
Export router - Download organization workbooks.

The exported workbook follows the import column contract, so it can be
edited and uploaded again.
"""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import get_db, get_current_user
from services.exceptions import ExportSelectionError
from services.export_service import ExportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/export', tags=['export'])

XLSX_MEDIA_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


@router.get('')
def export_workbook(
    company_id: Optional[int] = Query(None, description="Export everything owned by this company"),
    company_code: Optional[str] = Query(None, description="Export everything owned by this company"),
    process_ids: Optional[List[int]] = Query(None, description="Export these processes and what they depend on"),
    db: Session = Depends(get_db),
    current_user: str = Depends(get_current_user)
):
    """
    Export a company, or a set of processes, as an .xlsx workbook.

    Exactly one selector is required: `company_id`, `company_code`, or one
    or more `process_ids`.

    **Example:**
    ```bash
    curl -o acme.xlsx "http://localhost:8000/api/export?company_code=ACME"
    curl -o p.xlsx "http://localhost:8000/api/export?process_ids=3&process_ids=7"
    ```
    """
    selectors = [company_id is not None, bool(company_code), bool(process_ids)]
    if sum(selectors) != 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide exactly one of company_id, company_code or process_ids"
        )

    service = ExportService(db, max_cell_length=settings.EXPORT_MAX_CELL_LENGTH)

    try:
        if process_ids:
            scope = service.collect_process_scope(process_ids)
        else:
            scope = service.collect_company_scope(company_id=company_id, company_code=company_code)
    except ExportSelectionError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    data = service.export_scope(scope)
    filename = f"{scope.name}_export_{date.today().isoformat()}.xlsx"

    logger.info(f"Export '{filename}' requested by {current_user}")

    return Response(
        content=data,
        media_type=XLSX_MEDIA_TYPE,
        headers={'Content-Disposition': f'attachment; filename="{filename}"'}
    )
