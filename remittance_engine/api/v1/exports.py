"""GET /v1/exports/{export_id}/download - Fetch a stored remittance artifact"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from starlette.responses import Response

from remittance_engine.api.dependencies import parse_uuid
from remittance_engine.domain.exports import sniff_content_type
from remittance_engine.infrastructure.database.session import get_db
from remittance_engine.services.exports import ExportGenerator

router = APIRouter()


@router.get("/exports/{export_id}/download")
def download_export(export_id: str, db: Session = Depends(get_db)):
    """Content type is sniffed from the stored bytes (`<?xml` means XML, otherwise CSV)"""
    export = ExportGenerator(db).get_export(parse_uuid(export_id, "export_id"))
    media_type, extension = sniff_content_type(export.content)
    return Response(
        content=export.content,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="remittance-{export.cycle_id}.{extension}"',
            "X-Content-SHA256": export.content_hash,
        },
    )
