from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .analysis import AnalysisResult
from .results import SavingsEstimate
from .session import EditingSession


@dataclass(frozen=True)
class SavingsReport:
    created_utc: str
    source_name: str
    source_width: int
    source_height: int
    output_name: Optional[str]
    output_width: int
    output_height: int
    output_format: str
    quality: float
    original_bytes: int
    estimated_new_bytes: int
    saved_bytes: int
    saved_co2_grams: float
    percent_of_original: int
    smartphone_charges: int
    description: Optional[str] = None
    keywords: Optional[List[str]] = None
    eco_tip: Optional[str] = None


def build_report(
    session: EditingSession,
    output_path: Optional[Path] = None,
    analysis: Optional[AnalysisResult] = None,
) -> SavingsReport:
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

    est: SavingsEstimate = session.estimate
    payload = session.payload
    opts = session.options

    return SavingsReport(
        created_utc=created_utc,
        source_name=session.source.name,
        source_width=session.source.dimensions.width,
        source_height=session.source.dimensions.height,
        output_name=output_path.name if output_path else None,
        output_width=payload.width if payload else opts.width,
        output_height=payload.height if payload else opts.height,
        output_format=(payload.format if payload else opts.format).extension,
        quality=round(payload.quality if payload else opts.quality, 2),
        original_bytes=est.original_bytes,
        estimated_new_bytes=est.estimated_new_bytes,
        saved_bytes=est.saved_bytes,
        saved_co2_grams=round(est.saved_co2_grams, 6),
        percent_of_original=est.percent_of_original,
        smartphone_charges=est.smartphone_charges,
        description=analysis.description if analysis else None,
        keywords=list(analysis.keywords) if analysis else None,
        eco_tip=analysis.eco_tip if analysis else None,
    )


def save_report_json(report: SavingsReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)


_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_bytes(num: int, decimals: int = 2) -> str:
    """
    1536 -> "1.5 KB", 0 -> "0 Bytes".
    """
    if not num or num <= 0:
        return "0 Bytes"
    dm = max(0, decimals)
    i = min(int(math.floor(math.log(num) / math.log(1024))), len(_UNITS) - 1)
    value = round(num / (1024 ** i), dm)
    # "1.50" -> "1.5", "2.0" -> "2"
    text = f"{value:.{dm}f}".rstrip("0").rstrip(".") if dm else f"{value:.0f}"
    return f"{text} {_UNITS[i]}"
