"""Deterministic CSV/XML serialization of remittance items for investor reporting"""

import csv
import hashlib
import io
import xml.etree.ElementTree as ET
from typing import Any, List, Sequence, Tuple

from remittance_engine.domain.exceptions import ValidationError
from remittance_engine.domain.models import ExportFormat

CSV_FIELDS = [
    "loan_id",
    "principal_minor",
    "interest_minor",
    "fees_minor",
    "investor_share_minor",
    "servicer_fee_minor",
]

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def _ordered(items: Sequence[Any]) -> List[Any]:
    return sorted(items, key=lambda item: item.loan_id)


def render_csv(items: Sequence[Any]) -> bytes:
    """One header row plus one row per loan, ascending by loan_id, LF line endings"""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_FIELDS)
    for item in _ordered(items):
        writer.writerow([str(getattr(item, name)) for name in CSV_FIELDS])
    return buffer.getvalue().encode("utf-8")


def _text(parent: ET.Element, tag: str, value: Any) -> None:
    ET.SubElement(parent, tag).text = str(value)


def render_xml(cycle: Any, items: Sequence[Any]) -> bytes:
    """
    XML remittance report: cycle header, totals, then items ascending by loan_id.

    Elements only (no attributes) and no generation timestamp, so identical
    cycle content always serializes to identical bytes.
    """
    root = ET.Element("RemittanceReport")
    _text(root, "CycleId", cycle.id)
    _text(root, "ContractId", cycle.contract_id)
    _text(root, "PeriodStart", cycle.period_start.isoformat())
    _text(root, "PeriodEnd", cycle.period_end.isoformat())
    _text(root, "SettlementDate", cycle.settlement_date.isoformat())
    _text(root, "TotalPrincipal", cycle.total_principal_minor)
    _text(root, "TotalInterest", cycle.total_interest_minor)
    _text(root, "TotalFees", cycle.total_fees_minor)
    _text(root, "ServicerFee", cycle.servicer_fee_minor)
    _text(root, "InvestorDue", cycle.investor_due_minor)

    items_elem = ET.SubElement(root, "Items")
    for item in _ordered(items):
        item_elem = ET.SubElement(items_elem, "Item")
        _text(item_elem, "LoanId", item.loan_id)
        _text(item_elem, "Principal", item.principal_minor)
        _text(item_elem, "Interest", item.interest_minor)
        _text(item_elem, "Fees", item.fees_minor)
        _text(item_elem, "InvestorShare", item.investor_share_minor)
        _text(item_elem, "ServicerFee", item.servicer_fee_minor)

    ET.indent(root, space="  ")
    return (XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n").encode("utf-8")


def render_export(export_format: ExportFormat | str, cycle: Any, items: Sequence[Any]) -> bytes:
    try:
        export_format = ExportFormat(export_format)
    except ValueError as e:
        raise ValidationError(f"Unsupported export format: {export_format}") from e

    if export_format == ExportFormat.CSV:
        return render_csv(items)
    return render_xml(cycle, items)


def content_hash(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def sniff_content_type(content: bytes) -> Tuple[str, str]:
    """(media type, file extension) from the leading bytes: `<?xml` means XML, anything else CSV"""
    if content.startswith(b"<?xml"):
        return "application/xml", "xml"
    return "text/csv", "csv"
