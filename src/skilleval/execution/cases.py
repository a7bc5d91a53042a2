"""Single-case executors.

Each executor runs one case end to end: invoke the agent, interpret the
stream, score, and meter. They never raise for agent or pricing
problems; those become fields on the returned result.
"""

from __future__ import annotations

import logging
import time

from skilleval.adapters.base import AgentOptions, BaseAgent
from skilleval.evaluation.scorer import score_activation, score_quality
from skilleval.execution.cost import UnknownModelError, estimate_cost, total_tokens
from skilleval.execution.interpreter import DEFAULT_ACTIVATION_TOOL, InterpretedOutput, interpret_stream
from skilleval.models.cases import ActivationTestCase, QualityTestCase
from skilleval.models.result import ActivationResult, CaseMetrics, CaseStatus, QualityResult

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_CHARS = 200


class CaseLog:
    """Collects a case's trace lines and mirrors them to the module logger."""

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.lines: list[str] = []

    def __call__(self, message: str) -> None:
        line = f"{self.prefix} {message}"
        self.lines.append(line)
        logger.debug(line)


def build_metrics(
    output: InterpretedOutput,
    latency_ms: int,
    model: str,
    log: CaseLog,
) -> tuple[CaseMetrics, str | None]:
    """Turn interpreted usage into a metrics record.

    Returns:
        (metrics, metrics_error). An unpriced model keeps the token counts
        and latency but leaves estimated_cost_usd as None, with the
        pricing error as metrics_error.
    """
    usage = output.usage
    metrics_error: str | None = None
    try:
        cost: float | None = estimate_cost(usage, model)
    except UnknownModelError as exc:
        cost = None
        metrics_error = str(exc)
        log(f"Cost unavailable: {exc}")
        logger.warning("Cannot price usage for model %s", model)

    metrics = CaseMetrics(
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        cache_creation_tokens=usage.cache_creation_tokens,
        cache_read_tokens=usage.cache_read_tokens,
        thinking_tokens=usage.thinking_tokens,
        total_tokens=total_tokens(usage),
        latency_ms=latency_ms,
        estimated_cost_usd=cost,
    )
    cost_text = f"${cost:.4f}" if cost is not None else "unknown"
    log(f"Metrics - Tokens: {metrics.total_tokens}, Latency: {latency_ms}ms, Cost: {cost_text}")
    return metrics, metrics_error


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


async def execute_activation_case(
    agent: BaseAgent,
    case: ActivationTestCase,
    options: AgentOptions,
    *,
    activation_tool: str = DEFAULT_ACTIVATION_TOOL,
) -> ActivationResult:
    """Run one activation case.

    The stream is abandoned as soon as an activation is seen. An agent
    failure yields status=error and passed=False, with whatever usage
    was reported before the failure still metered.

    Args:
        agent: Agent to query.
        case: The activation case.
        options: Per-call agent options (model, cwd, tools).
        activation_tool: Capability name that signals skill activation.

    Returns:
        ActivationResult with status, activation, metrics, and logs.
    """
    log = CaseLog("[ACTIVATION TEST]")
    log(f"Starting: {case.id}")
    log(f"Using model: {options.model}")
    log(f'Query: "{case.query}"')

    start = time.perf_counter()
    log("Calling agent...")
    output = await interpret_stream(
        lambda: agent.query(case.query, options),
        detect_activation=True,
        activation_tool=activation_tool,
        log=log,
    )
    latency_ms = _elapsed_ms(start)

    if output.error is not None:
        passed = False
        status = CaseStatus.error
        log(f"Error in {case.id}: {output.error}")
    else:
        passed = score_activation(output.activated_skill, case.expected_skill, case.should_activate)
        status = CaseStatus.passed if passed else CaseStatus.failed
        log(
            f"{case.id} - Expected: {case.expected_skill}, "
            f"Got: {output.activated_skill}, Passed: {passed}"
        )

    metrics, metrics_error = build_metrics(output, latency_ms, options.model, log)

    return ActivationResult(
        test_id=case.id,
        query=case.query,
        expected_skill=case.expected_skill,
        activated_skill=output.activated_skill,
        should_activate=case.should_activate,
        status=status,
        passed=passed,
        error=output.error,
        metrics_error=metrics_error,
        test_case_source=case.test_case_source,
        session_context=case.session_context,
        metrics=metrics,
        logs=log.lines,
    )


async def execute_quality_case(
    agent: BaseAgent,
    case: QualityTestCase,
    options: AgentOptions,
    *,
    preview_chars: int = DEFAULT_PREVIEW_CHARS,
) -> QualityResult:
    """Run one quality case.

    The stream is drained to completion. On agent failure the partial
    response is kept for the preview but the case is not scored.

    Args:
        agent: Agent to query.
        case: The quality case.
        options: Per-call agent options (model, cwd, tools).
        preview_chars: Length of the stored response preview.

    Returns:
        QualityResult with missing/forbidden lists, response text, and logs.
    """
    log = CaseLog("[QUALITY TEST]")
    log(f"Starting: {case.id}")
    log(f"Using model: {options.model}")
    log(f'Query: "{case.query}"')

    start = time.perf_counter()
    log("Calling agent...")
    output = await interpret_stream(
        lambda: agent.query(case.query, options),
        detect_activation=False,
        log=log,
    )
    latency_ms = _elapsed_ms(start)

    missing_facts: list[str] = []
    forbidden_content: list[str] = []
    if output.error is not None:
        passed = False
        status = CaseStatus.error
        log(f"Error in {case.id}: {output.error}")
    else:
        score = score_quality(output.response_text, case.expected_facts, case.must_not_contain)
        missing_facts = score.missing_facts
        forbidden_content = score.forbidden_content
        passed = score.passed
        status = CaseStatus.passed if passed else CaseStatus.failed
        log(f"{case.id} - Passed: {passed}")
        if missing_facts:
            log(f"Missing facts: {', '.join(missing_facts)}")
        if forbidden_content:
            log(f"Forbidden content found: {', '.join(forbidden_content)}")

    metrics, metrics_error = build_metrics(output, latency_ms, options.model, log)

    return QualityResult(
        test_id=case.id,
        query=case.query,
        skill=case.skill,
        status=status,
        passed=passed,
        missing_facts=missing_facts,
        forbidden_content=forbidden_content,
        response_preview=output.response_text[:preview_chars],
        response_full_text=output.response_text,
        error=output.error,
        metrics_error=metrics_error,
        test_case_source=case.test_case_source,
        session_context=case.session_context,
        metrics=metrics,
        logs=log.lines,
    )
