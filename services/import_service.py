"""
Workbook Import Service - Framework-agnostic business logic.

Runs the reconcilers over a parsed workbook in dependency order inside one
transaction, with progress callback support for API and Celery integration.
"""

import logging
from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.import_summary import ImportResult, build_summary
from services.reconcilers import RECONCILERS
from services.sheet_schema import SHEET_ORDER, ParsedWorkbook, parse_workbook
from services.workbook_reader import WorkbookReader

logger = logging.getLogger(__name__)

# Default configuration (can be overridden)
DEFAULT_TRANSACTION_TIMEOUT_SECONDS = 600

SUCCESS_MESSAGE = 'Import completed successfully'
DRY_RUN_MESSAGE = 'Dry run completed successfully (no data saved)'

PARSE_PROGRESS = 10
PHASES_PROGRESS_END = 95


class WorkbookImportService:
    """
    Framework-agnostic workbook import service.

    Phases run strictly in order (Company, Function, Job, Task, Process,
    Task-Process, Job-Task, People) on a single session, so every row sees
    what earlier rows and phases created. The service owns the transaction
    outcome: commit, rollback for a dry run, or rollback on storage failure.
    """

    def __init__(
        self,
        db_session: Session,
        progress_callback: Optional[Callable[[str, float, str], None]] = None,
        transaction_timeout: int = DEFAULT_TRANSACTION_TIMEOUT_SECONDS,
        default_company_code: Optional[str] = None
    ):
        """
        Initialize workbook import service.

        Args:
            db_session: SQLAlchemy database session
            progress_callback: Optional callback for progress updates
                              Signature: callback(stage: str, percent: float, message: str)
            transaction_timeout: Statement/idle timeout of the import transaction, in seconds
            default_company_code: Company code used for rows with a blank Company Code
        """
        self.session = db_session
        self.progress_callback = progress_callback or (lambda *args: None)
        self.transaction_timeout = transaction_timeout
        self.default_company_code = (default_company_code or '').strip() or None

    def _emit_progress(self, stage: str, percent: float, message: str):
        """Emit progress update via callback."""
        self.progress_callback(stage, percent, message)
        logger.info(f"Progress: {stage} ({percent:.1f}%) - {message}")

    def read_workbook(self, data: bytes) -> ParsedWorkbook:
        """
        Decode, normalize and structurally validate a workbook.

        Raises:
            WorkbookReadError: The payload is not a readable workbook
            WorkbookStructureError: Required sheets or columns are missing
        """
        self._emit_progress('parsing', 0, 'Reading workbook...')
        reader = WorkbookReader(data)
        parsed = parse_workbook(reader)
        self._emit_progress(
            'parsing', PARSE_PROGRESS,
            f"Parsed {parsed.total_rows} rows from {len(parsed.sheet_names)} sheets"
        )
        return parsed

    def _apply_transaction_timeout(self):
        """Widen the transaction window on PostgreSQL; other backends have no equivalent."""
        if self.session.get_bind().dialect.name != 'postgresql':
            return
        timeout_ms = int(self.transaction_timeout * 1000)
        self.session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        self.session.execute(text(f"SET LOCAL idle_in_transaction_session_timeout = {timeout_ms}"))
        logger.debug(f"Import transaction timeout set to {self.transaction_timeout}s")

    def import_workbook(self, parsed: ParsedWorkbook, dry_run: bool = False) -> ImportResult:
        """
        Main import workflow.

        Args:
            parsed: Workbook returned by ``read_workbook``
            dry_run: Compute the full result, then discard every write

        Returns:
            ImportResult with per-sheet details, or ``success=False`` when
            the store rejected the transaction as a whole
        """
        mode = 'dry run' if dry_run else 'import'
        logger.info(f"Starting {mode} of {parsed.total_rows} rows")

        details = {}
        phase_span = PHASES_PROGRESS_END - PARSE_PROGRESS

        try:
            self._apply_transaction_timeout()

            for index, sheet_name in enumerate(SHEET_ORDER):
                reconciler = RECONCILERS[sheet_name](self.session, self.default_company_code)
                detail = reconciler.reconcile(parsed[sheet_name])
                details[sheet_name] = detail

                percent = PARSE_PROGRESS + phase_span * (index + 1) / len(SHEET_ORDER)
                self._emit_progress(
                    'importing', percent,
                    f"{sheet_name}: {detail.imported} imported, "
                    f"{detail.skipped} skipped, {detail.failed} failed"
                )

            processed_sheets = sum(1 for name in SHEET_ORDER if parsed.has_sheet(name))
            summary = build_summary(details, processed_sheets)

            if dry_run:
                self.session.rollback()
                message = DRY_RUN_MESSAGE
            else:
                self._emit_progress('committing', PHASES_PROGRESS_END, 'Committing transaction...')
                self.session.commit()
                message = SUCCESS_MESSAGE

        except SQLAlchemyError as e:
            logger.error(f"Import failed: {e}", exc_info=True)
            self.session.rollback()
            return ImportResult(success=False, message=f"Import failed: {e}")
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            f"{message}: {summary.imported} imported, {summary.skipped} skipped, "
            f"{summary.failed} failed of {summary.total_records} records"
        )
        self._emit_progress('complete', 100, message)
        return ImportResult(success=True, message=message, summary=summary, details=details)

    def import_bytes(self, data: bytes, dry_run: bool = False) -> ImportResult:
        """Read and import a workbook payload in one call."""
        parsed = self.read_workbook(data)
        return self.import_workbook(parsed, dry_run=dry_run)
