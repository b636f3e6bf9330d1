"""Analyse a text file and print the report as JSON.

Run with:  python main.py terms.txt --document-type privacy-policy
"""
from __future__ import annotations
import argparse
import hashlib
import logging
import sys
from pathlib import Path

from risklens.pipeline.orchestrator import AnalysisPipeline
from risklens.report.json_export import build_analysis_json
from risklens.utils.config import AppConfig, configure_logging
from risklens.utils.types import AnalysisInput, AnalysisOptions

logger = logging.getLogger("risklens.main")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Score risky clauses in a sanitized legal document.")
    p.add_argument("path", help="UTF-8 text file with the sanitized document")
    p.add_argument("--document-type", default=None)
    p.add_argument("--industry", default=None)
    p.add_argument("--depth", choices=["basic", "detailed", "comprehensive"], default=None)
    p.add_argument("--template", default=None, help="prompt template id")
    p.add_argument("--no-ai", action="store_true", help="pattern matching only")
    p.add_argument("--strict", action="store_true", help="reject model replies with validation errors")
    p.add_argument("--raw", action="store_true", help="include the raw model reply in the metadata")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    config = AppConfig.from_env()
    configure_logging(config.log_level)

    text = Path(args.path).read_text(encoding="utf-8")
    options = AnalysisOptions(
        enable_ai_analysis=False if args.no_ai else None,
        strict_validation=True if args.strict else None,
        include_raw_response=args.raw,
        template_id=args.template,
        document_type=args.document_type,
        industry=args.industry,
        analysis_depth=args.depth,
    )
    inp = AnalysisInput(
        sanitized_text=text,
        content_hash=hashlib.sha256(text.encode("utf-8")).hexdigest(),
        content_length=len(text),
        options=options,
    )
    result = AnalysisPipeline(config).analyze(inp)
    print(build_analysis_json(result, {"source": str(args.path)}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
