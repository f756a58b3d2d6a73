"""
Audit trail exporters.

Renders audit events as JSON, CSV or XML. Metadata, device and location
details are opt-in per export.
"""

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence
import xml.etree.ElementTree as ET

from .entry import AuditEvent
from .filters import AuditFilters


class ExportFormat(str, Enum):
    """Supported export formats."""
    JSON = "json"
    CSV = "csv"
    XML = "xml"


@dataclass
class ExportOptions:
    """Options for an audit export."""

    format: ExportFormat = ExportFormat.JSON
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    filters: Optional[AuditFilters] = None
    include_metadata: bool = False
    include_device_info: bool = False
    include_location_info: bool = False

    @property
    def resolved_format(self) -> ExportFormat:
        try:
            return ExportFormat(getattr(self.format, "value", self.format))
        except ValueError:
            raise ValueError(f"Unsupported export format: {self.format}") from None


CSV_HEADERS = [
    "ID",
    "Type",
    "Timestamp",
    "User ID",
    "User Role",
    "User Email",
    "Action",
    "Resource",
    "Resource ID",
    "Success",
    "Reason",
    "Risk Level",
]

XML_FIELDS = [
    ("id", "event_id"),
    ("type", "event_type"),
    ("timestamp", "timestamp"),
    ("userId", "actor_id"),
    ("userRole", "actor_role"),
    ("userEmail", "actor_email"),
    ("action", "action"),
    ("resource", "resource"),
    ("resourceId", "resource_id"),
    ("success", "success"),
    ("reason", "reason"),
    ("riskLevel", "risk_level"),
]


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(getattr(value, "value", value))


def _json(value) -> str:
    return json.dumps(value, sort_keys=True, default=str) if value else ""


def export_json(events: Sequence[AuditEvent], options: ExportOptions) -> str:
    """Export events as a JSON array."""
    data = [
        event.to_dict(
            include_metadata=options.include_metadata,
            include_device=options.include_device_info,
            include_location=options.include_location_info,
        )
        for event in events
    ]
    return json.dumps(data, indent=2, default=str)


def export_csv(events: Sequence[AuditEvent], options: ExportOptions) -> str:
    """Export events as CSV with a header row."""
    headers = list(CSV_HEADERS)
    if options.include_metadata:
        headers.append("Metadata")
    if options.include_device_info:
        headers.append("Device Info")
    if options.include_location_info:
        headers.append("Location Info")

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)

    for event in events:
        row = [
            event.event_id,
            event.event_type.value,
            event.timestamp.isoformat(),
            event.actor_id,
            event.actor_role,
            event.actor_email,
            event.action,
            event.resource or "",
            event.resource_id or "",
            _text(event.success),
            event.reason or "",
            event.risk_level.value,
        ]
        if options.include_metadata:
            row.append(_json(event.metadata))
        if options.include_device_info:
            row.append(_json(event.device))
        if options.include_location_info:
            row.append(_json(event.location))
        writer.writerow(row)

    return output.getvalue()


XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'


def _add_text(parent: ET.Element, tag: str, text: str) -> None:
    element = ET.SubElement(parent, tag)
    element.text = text


def export_xml(events: Sequence[AuditEvent], options: ExportOptions) -> str:
    """Export events as an XML document rooted at ``<auditLogs>``."""
    root = ET.Element("auditLogs")

    for event in events:
        entry = ET.SubElement(root, "entry")
        for tag, attribute in XML_FIELDS:
            _add_text(entry, tag, _text(getattr(event, attribute)))
        if options.include_metadata and event.metadata:
            _add_text(entry, "metadata", _json(event.metadata))
        if options.include_device_info and event.device:
            _add_text(entry, "device", _json(event.device))
        if options.include_location_info and event.location:
            _add_text(entry, "location", _json(event.location))

    return XML_DECLARATION + "\n" + ET.tostring(root, encoding="unicode", method="xml")


EXPORTERS: Dict[ExportFormat, Callable[[Sequence[AuditEvent], ExportOptions], str]] = {
    ExportFormat.JSON: export_json,
    ExportFormat.CSV: export_csv,
    ExportFormat.XML: export_xml,
}


def export_events(events: Sequence[AuditEvent], options: ExportOptions) -> str:
    """
    Render events in the requested format.

    Raises:
        ValueError: If the format is not supported.
    """
    return EXPORTERS[options.resolved_format](list(events), options)


def select_for_export(events: List[AuditEvent], options: ExportOptions) -> List[AuditEvent]:
    """Apply the export's filters and date range, oldest first."""
    selected = events
    if options.filters is not None:
        selected = [e for e in selected if options.filters.matches(e)]
    date_range = AuditFilters(start_date=options.start_date, end_date=options.end_date)
    return [e for e in selected if date_range.matches(e)]
