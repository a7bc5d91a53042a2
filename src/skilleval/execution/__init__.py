"""skilleval execution - cost, interpreter, single-case executors, and batch runner."""

from skilleval.execution.cases import execute_activation_case, execute_quality_case
from skilleval.execution.cost import UnknownModelError, estimate_cost, total_tokens
from skilleval.execution.interpreter import InterpretedOutput, interpret_stream, reduce_message
from skilleval.execution.runner import BatchOutcome, BatchRunner, RunState

__all__ = [
    "BatchOutcome",
    "BatchRunner",
    "InterpretedOutput",
    "RunState",
    "UnknownModelError",
    "estimate_cost",
    "execute_activation_case",
    "execute_quality_case",
    "interpret_stream",
    "reduce_message",
    "total_tokens",
]
