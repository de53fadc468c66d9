"""
Errors surfaced to engine callers.

Anything raised from an engine operation aborts its transaction, so callers
never observe a half-applied cascade. Duplicate starts, unsupported node
types and malformed triggers are not errors: they are logged and resolved
inside the engine.
"""


class WorkflowEngineError(Exception):
    """Base class for engine errors."""


class NotFound(WorkflowEngineError):
    """A trigger node, node-state or pending approval record does not exist."""


class MultipleMatches(WorkflowEngineError):
    """More than one trigger node matches an event and mapping id."""


class TriggerPermissionDenied(WorkflowEngineError):
    """The acting user is not among the humans allowed to fire a trigger."""
