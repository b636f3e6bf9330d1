from __future__ import annotations
import json
from typing import Any, Dict, Optional

from risklens.utils.types import AnalysisResult


def build_analysis_json(result: AnalysisResult, meta: Optional[Dict[str, Any]] = None) -> str:
    """Return a JSON snapshot of one analysis for the persistence/reporting side.

    meta can carry caller-side details such as session id, build or timestamps.
    """
    payload = {
        "meta": dict(meta or {}),
        "result": result.as_dict(),
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)
