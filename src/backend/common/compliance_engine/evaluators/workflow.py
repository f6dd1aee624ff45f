from __future__ import annotations

from typing import List

from ..config import RuleKind, WorkflowRuleConfig
from ..context import RuleEvaluationContext
from ..models import EvaluationFinding, EvaluationOutcome, WorkflowExecution
from ..sources import WorkflowSource
from .base import TypeEvaluator


def workflow_issues(execution: WorkflowExecution, config: WorkflowRuleConfig) -> List[str]:
    issues: List[str] = []
    completed = set(execution.completed_steps)
    if not all(step in completed for step in config.required_steps):
        issues.append("missing required steps")
    if config.required_approvers:
        # An approver matches by identity or substring (e.g. "cfo" in "cfo@acme.example").
        if not all(
            any(actual == required or required in actual for actual in execution.approvers)
            for required in config.required_approvers
        ):
            issues.append("missing required approvers")
    if config.max_duration_hours is not None and execution.duration_hours > config.max_duration_hours:
        issues.append("exceeded time limit")
    return issues


class WorkflowEvaluator(TypeEvaluator[WorkflowRuleConfig]):
    kind = RuleKind.WORKFLOW
    config_model = WorkflowRuleConfig

    def __init__(self, workflows: WorkflowSource):
        super().__init__()
        self._workflows = workflows

    def evaluate(self, config: WorkflowRuleConfig, ctx: RuleEvaluationContext) -> EvaluationOutcome:
        executions = [
            wf
            for wf in self._workflows.get_recent_workflow_executions(ctx.organization_id)
            if ctx.in_scope(wf.id)
        ]

        findings: List[EvaluationFinding] = []
        for wf in executions:
            issues = workflow_issues(wf, config)
            if issues:
                findings.append(
                    EvaluationFinding(
                        type="fail",
                        entity=wf.name,
                        entity_id=wf.id,
                        description=f"Workflow non-compliant: {', '.join(issues)}",
                        remediation=f"Review and update workflow {wf.name} to meet requirements",
                    )
                )

        all_passed = not findings
        if not executions:
            # Nothing to check still counts as passed; callers should read the
            # info finding as "not yet evaluated".
            findings.append(
                EvaluationFinding(type="info", entity="Workflows", description="No workflows found to evaluate")
            )
        elif all_passed:
            findings.append(
                EvaluationFinding(
                    type="pass",
                    entity="Workflows",
                    description=f"All {len(executions)} workflows meet compliance requirements",
                )
            )

        return EvaluationOutcome(
            passed=all_passed,
            findings=findings,
            message="Workflow compliance check passed" if all_passed else "Workflow compliance check failed",
        )
