"""Export generator: persisted CSV/XML remittance artifacts"""

import logging
import uuid

from sqlalchemy.orm import Session

from remittance_engine.domain.exceptions import InvalidTransitionError, NotFoundError
from remittance_engine.domain.exports import content_hash, render_export
from remittance_engine.domain.models import CycleStatus, ExportFormat
from remittance_engine.infrastructure.database.models import RemittanceCycle, RemittanceExport
from remittance_engine.infrastructure.database.repositories import CycleRepository, ExportRepository
from remittance_engine.infrastructure.observability.logging import log_cycle_event
from remittance_engine.infrastructure.observability.metrics import export_counter
from remittance_engine.utils.clock import Clock, SystemClock

logger = logging.getLogger(__name__)

EXPORTABLE_STATUSES = (CycleStatus.LOCKED.value, CycleStatus.SETTLED.value)


class ExportGenerator:
    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.cycles = CycleRepository(db)
        self.exports = ExportRepository(db)

    def _exportable_cycle(self, cycle_id: uuid.UUID) -> RemittanceCycle:
        cycle = self.cycles.get_cycle(cycle_id)
        if cycle is None:
            raise NotFoundError(f"Cycle {cycle_id} not found")
        if cycle.status not in EXPORTABLE_STATUSES:
            raise InvalidTransitionError(
                str(cycle.id), cycle.status, "export", "only locked or settled cycles can be exported"
            )
        return cycle

    def generate_export(self, cycle_id: uuid.UUID, export_format: ExportFormat | str) -> bytes:
        """Render the cycle's items; identical cycle data gives identical bytes"""
        cycle = self._exportable_cycle(cycle_id)
        return render_export(export_format, cycle, self.cycles.get_items(cycle.id))

    def create_export(self, cycle_id: uuid.UUID, export_format: ExportFormat | str) -> RemittanceExport:
        """
        Render and persist an artifact.

        An artifact with the same (cycle, format, content hash) is returned
        instead of storing a duplicate.
        """
        content = self.generate_export(cycle_id, export_format)
        export_format = ExportFormat(export_format).value
        digest = content_hash(content)

        existing = self.exports.find_export(cycle_id, export_format, digest)
        if existing is not None:
            return existing

        try:
            export = self.exports.create_export(
                cycle_id=cycle_id,
                export_format=export_format,
                content=content,
                content_hash=digest,
                created_at=self.clock.now(),
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        export_counter.labels(format=export_format).inc()
        cycle = self.cycles.get_cycle(cycle_id)
        log_cycle_event(
            "exported",
            str(cycle.id),
            str(cycle.contract_id),
            export_id=str(export.id),
            format=export_format,
            content_hash=digest,
        )
        return export

    def get_export(self, export_id: uuid.UUID) -> RemittanceExport:
        export = self.exports.get_export(export_id)
        if export is None:
            raise NotFoundError(f"Export {export_id} not found")
        return export
