"""Export utilities: JSON-lines result log, JSON snapshots and spreadsheet writers."""

from .logging import append_scan_result
from .reports import export_session_to_csv, export_session_to_xlsx, results_frame
from .writers import export_json_document

__all__ = [
    "append_scan_result",
    "export_json_document",
    "export_session_to_csv",
    "export_session_to_xlsx",
    "results_frame",
]
