"""Tabular exports of scan sessions."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable

import pandas as pd

from rangescout.scanner.prober import ProbeResult

RESULT_COLUMNS = ["address", "status", "latency_ms", "port"]


def results_frame(results: Iterable[ProbeResult | dict[str, Any]]) -> pd.DataFrame:
    """Build a DataFrame with one row per probe result, order preserved."""
    rows = [result.to_dict() if isinstance(result, ProbeResult) else dict(result) for result in results]
    frame = pd.DataFrame(rows, columns=RESULT_COLUMNS)
    frame["latency_ms"] = frame["latency_ms"].astype("Int64")
    frame["port"] = frame["port"].astype("Int64")
    return frame


def export_session_to_xlsx(
    results: Iterable[ProbeResult | dict[str, Any]],
    output_path: str | Path,
    *,
    summary: dict[str, Any] | None = None,
) -> Path:
    """Export a scan session to XLSX using pandas DataFrame.to_excel."""
    target = Path(output_path)
    target.parent.mkdir(parents=True, exist_ok=True)

    dataframe = results_frame(results)
    summary_df = pd.DataFrame([summary]) if summary else pd.DataFrame()

    with pd.ExcelWriter(target) as writer:
        dataframe.to_excel(writer, sheet_name="scan_results", index=False)
        if not summary_df.empty:
            summary_df.to_excel(writer, sheet_name="summary", index=False)
    return target


def export_session_to_csv(results: Iterable[ProbeResult | dict[str, Any]], output_path: str | Path) -> Path:
    target = Path(output_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    results_frame(results).to_csv(target, index=False)
    return target
