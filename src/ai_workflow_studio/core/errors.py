"""
Engine Errors - Exceptions raised by the graph model and executor.

Provider-side errors (authentication, rate limits, transient failures)
live in ai_workflow_studio.providers.base. Cancellation is signalled with
asyncio.CancelledError.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base exception for workflow engine errors."""
    pass


class StructuralError(WorkflowError):
    """
    A graph mutation was rejected.

    Raised for cycles, duplicate ids, unknown nodes or handles,
    type-mismatched handles and already occupied target handles.
    The graph is left unchanged.
    """
    pass


class ValidationError(WorkflowError):
    """Required node input missing or unusable at generation time."""
    pass
