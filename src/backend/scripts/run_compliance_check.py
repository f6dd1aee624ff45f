from __future__ import annotations

import argparse
import importlib
import json
import logging
import sys
from pathlib import Path


def _ensure_backend_on_path() -> None:
    backend_dir = Path(__file__).resolve().parents[1]
    if str(backend_dir) not in sys.path:
        sys.path.insert(0, str(backend_dir))


_ensure_backend_on_path()

from common.compliance_engine.evaluator import RuleEvaluator  # noqa: E402
from common.compliance_engine.models import (  # noqa: E402
    BatchEvaluationResult,
    CheckFrequency,
    ComplianceCategory,
    ComplianceFramework,
    ComplianceSummary,
)
from common.compliance_engine.registry import CustomEvaluatorRegistry  # noqa: E402
from common.compliance_engine.runner import RulesRunner  # noqa: E402
from pipelines.config import EngineConfig, get_engine_config  # noqa: E402
from pipelines.data_source import get_sources  # noqa: E402

logger = logging.getLogger(__name__)


def load_checkers(registry: CustomEvaluatorRegistry, modules: list[str]) -> None:
    """Import checker modules; each must expose `register_evaluators(registry)`."""
    for name in modules:
        module = importlib.import_module(name)
        hook = getattr(module, "register_evaluators", None)
        if hook is None:
            raise SystemExit(f"Checker module {name} has no register_evaluators(registry)")
        hook(registry)
        logger.info("Loaded checker module %s", name)


def build_runner(
    config: EngineConfig,
    *,
    fixtures_dir: Path | None = None,
    checkers: list[str] | None = None,
) -> RulesRunner:
    sources = get_sources(config, fixtures_dir=fixtures_dir)
    registry = CustomEvaluatorRegistry()
    load_checkers(registry, checkers or [])
    evaluator = RuleEvaluator.build(
        query_executor=sources.query_executor,
        metrics=sources.metrics,
        patterns=sources.patterns,
        workflows=sources.workflows,
        registry=registry,
        repository=sources.repository,
    )
    return RulesRunner(evaluator, sources.repository, max_workers=config.max_workers)


def render_markdown(batch: BatchEvaluationResult, summary: ComplianceSummary | None = None) -> str:
    lines = [
        f"# Compliance Check {batch.organization_id}",
        "",
        f"Evaluated at: {batch.evaluated_at.isoformat()}",
        "",
        "## Totals",
        f"- Rules: {batch.total_rules}",
        f"- Passed: {batch.passed_rules}",
        f"- Failed: {batch.failed_rules}",
        f"- Skipped: {batch.skipped_rules}",
        f"- Execution time: {batch.execution_time_ms:.1f} ms",
    ]
    if summary is not None:
        lines.append(f"- Compliance score: {summary.compliance_score}%")
    lines.append("")
    lines.append("## Results")
    for res in batch.results:
        status = "PASS" if res.passed else "FAIL"
        lines.append("")
        lines.append(f"### {res.rule_name} ({res.rule_id}) - {status}")
        lines.append(f"- Framework: {res.framework.value} / {res.category.value} / {res.severity.value}")
        if res.details.message:
            lines.append(f"- Message: {res.details.message}")
        if res.error:
            lines.append(f"- Error: {res.error}")
        if res.details.exceptions:
            lines.append(f"- Exceptions: {'; '.join(res.details.exceptions)}")
        if res.details.findings:
            lines.append("- Findings:")
            for finding in res.details.findings:
                entity = finding.entity if not finding.entity_id else f"{finding.entity} [{finding.entity_id}]"
                lines.append(f"  - {finding.type}: {entity}: {finding.description}")
                if finding.remediation:
                    lines.append(f"    - Remediation: {finding.remediation}")
    return "\n".join(lines) + "\n"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Evaluate compliance rules for one organization.")
    parser.add_argument("--organization", required=True, help="Organization id.")
    parser.add_argument("--mode", choices=("all", "due"), default="all")
    parser.add_argument("--fixtures-dir", type=Path, default=None)
    parser.add_argument("--framework", choices=[f.value for f in ComplianceFramework], default=None)
    parser.add_argument("--category", choices=[c.value for c in ComplianceCategory], default=None)
    parser.add_argument("--frequency", choices=[f.value for f in CheckFrequency], default=None)
    parser.add_argument("--rule-id", action="append", dest="rule_ids", default=None)
    parser.add_argument("--checker", action="append", dest="checkers", default=[],
                        help="Module exposing register_evaluators(registry); repeatable.")
    parser.add_argument("--dry-run", action="store_true", help="Do not record rule statistics.")
    parser.add_argument("--format", choices=("json", "markdown"), default="json")
    parser.add_argument("--out", type=Path, default=None, help="Write output here instead of stdout.")
    args = parser.parse_args(argv)

    config = get_engine_config()
    logging.basicConfig(level=config.log_level)

    runner = build_runner(config, fixtures_dir=args.fixtures_dir, checkers=args.checkers)
    if args.mode == "due":
        batch = runner.evaluate_due(args.organization, dry_run=args.dry_run)
    else:
        batch = runner.evaluate_all(
            args.organization,
            framework=ComplianceFramework(args.framework) if args.framework else None,
            category=ComplianceCategory(args.category) if args.category else None,
            frequency=CheckFrequency(args.frequency) if args.frequency else None,
            rule_ids=args.rule_ids,
            dry_run=args.dry_run,
        )
    summary = runner.get_compliance_summary(args.organization)

    if args.format == "markdown":
        output = render_markdown(batch, summary)
    else:
        output = json.dumps(
            {"batch": batch.model_dump(mode="json"), "summary": summary.model_dump(mode="json")},
            indent=2,
        )

    if args.out:
        args.out.write_text(output)
    else:
        print(output)
    return 0 if batch.failed_rules == 0 and batch.skipped_rules == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
