from __future__ import annotations


class ComplianceEngineError(Exception):
    """Base class for errors raised by the compliance engine."""


class UnknownQueryError(ComplianceEngineError):
    def __init__(self, query_id: str):
        super().__init__(f"Query ID '{query_id}' is not in the query catalog")
        self.query_id = query_id


class UnregisteredEvaluatorError(ComplianceEngineError):
    def __init__(self, evaluator_name: str):
        super().__init__(f"Custom evaluator '{evaluator_name}' is not registered")
        self.evaluator_name = evaluator_name


class EvaluationError(ComplianceEngineError):
    """A rule could not be evaluated (collaborator failure, bad data, ...)."""

    def __init__(self, rule_id: str, cause: BaseException):
        super().__init__(f"Evaluation of rule '{rule_id}' failed: {cause}")
        self.rule_id = rule_id
        self.cause = cause


class PersistenceError(ComplianceEngineError):
    """Rule statistics could not be written. The evaluation result still stands."""

    def __init__(self, rule_id: str, message: str = ""):
        super().__init__(message or f"Could not record statistics for rule '{rule_id}'")
        self.rule_id = rule_id
