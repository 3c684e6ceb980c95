"""
Import stage: one audited ``import_csv_to_db`` invocation.

``rows_processed`` on the run record is the number of scan documents created;
duplicates from a replayed export count as zero. The full
:class:`~scanvault.models.report.ImportReport` is kept on ``last_report``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from scanvault.db.connection import get_connection
from scanvault.db.document_store import SqliteDocumentStore
from scanvault.importer import import_csv_to_db
from scanvault.models.meta import RunMetadata
from scanvault.models.report import ImportReport, ProgressCallback
from scanvault.pipeline.base import PipelineStage

logger = logging.getLogger(__name__)


class ImportStage(PipelineStage):
    """Imports one player or guild export into the document store."""

    stage_name = "import"

    last_report: Optional[ImportReport] = None

    def _execute(
        self,
        run: RunMetadata,
        kind: Optional[str] = None,
        rows: Optional[Sequence[Mapping[str, Any]]] = None,
        raw: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
        prefer_bulk: Optional[bool] = None,
        **kwargs,
    ) -> int:
        with get_connection(
            self.db_path,
            wal_mode=self.config.database.wal_mode,
            busy_timeout_ms=self.config.database.busy_timeout_ms,
        ) as conn:
            store = SqliteDocumentStore(conn, bulk_writer_enabled=self.config.database.bulk_writer)
            report = import_csv_to_db(
                store,
                kind,
                rows=rows,
                raw=raw,
                on_progress=on_progress,
                config=self.config,
                prefer_bulk=prefer_bulk,
            )

        self.last_report = report
        if report.errors:
            logger.warning("Import finished with %d write errors", len(report.errors))
        return report.status_counts()["created"]
