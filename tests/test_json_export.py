import json

from risklens.report.json_export import build_analysis_json
from risklens.utils.types import AnalysisResult, RiskLevel


def test_json_export_structure():
    result = AnalysisResult(overall_risk_score=0, risk_level=RiskLevel.LOW, confidence_score=0)
    blob = build_analysis_json(result, meta={"app": "test"})
    assert '"app": "test"' in blob
    data = json.loads(blob)
    assert data["result"]["riskAssessments"] == []
    assert data["result"]["summary"]["riskBreakdown"] == {"critical": 0, "high": 0, "medium": 0, "low": 0}
