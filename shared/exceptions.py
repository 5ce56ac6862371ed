"""Structured exception hierarchy for the pipeline engine."""

from typing import List, Optional, Dict, Any


class WorkflowError(Exception):
    """Base exception for pipeline errors"""

    def __init__(self, message: str, pipeline_id: str = "", **context):
        self.message = message
        self.pipeline_id = pipeline_id
        self.context = context
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": type(self).__name__, "message": self.message}
        if self.pipeline_id:
            data["pipeline_id"] = self.pipeline_id
        if self.context:
            data["context"] = self.context
        return data


class ValidationFailed(WorkflowError):
    """Raised by callers when a pipeline has error-severity diagnostics"""

    def __init__(self, message: str, diagnostics: Optional[List[Any]] = None, pipeline_id: str = "", **context):
        super().__init__(message, pipeline_id=pipeline_id, **context)
        self.diagnostics = list(diagnostics or [])


class CompileError(WorkflowError):
    pass


class ConflictError(WorkflowError):
    pass


class NotFoundError(WorkflowError):
    pass


class CycleError(WorkflowError):

    def __init__(self, cycle: List[str], message: str = "", **context):
        self.cycle = list(cycle)
        super().__init__(message or f"Graph contains a cycle: {' -> '.join(self.cycle)}", **context)
