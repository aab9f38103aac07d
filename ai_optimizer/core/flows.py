"""
Optimized AI flows.

Each flow composes the same steps: rate limit, cache lookup, local fallback,
then an optimized prompt sent through a monitored generation call.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .context import OptimizationContext
from .monitor import with_monitoring
from .pricing import LOCAL_MODEL
from .prompts import get_optimized_prompt, select_prompt_version
from .rate_limit import RateLimitExceeded
from .token_counter import GenerationResult

logger = logging.getLogger(__name__)

Generator = Callable[[str, Mapping[str, Any]], Awaitable[Any]]

ANONYMOUS = "anonymous"
DEFAULT_AI_MODEL = "gemini-pro"
SUMMARY_TTL_MS = 60 * 60 * 1000
FLASHCARDS_TTL_MS = 30 * 60 * 1000
QUIZ_TTL_MS = 45 * 60 * 1000


class GeneratorNotConfigured(RuntimeError):
    """The input needs the AI path but no generation function was supplied."""


def _check_rate_limit(context: OptimizationContext, user_id: Optional[str], preset: str) -> None:
    identifier = user_id or ANONYMOUS
    result = context.limiter.check(identifier, context.rate_limit(preset))
    if not result.allowed:
        raise RateLimitExceeded(identifier, result)


async def _generate_with_ai(
    context: OptimizationContext,
    feature: str,
    text: str,
    variables: Mapping[str, Any],
    params: Mapping[str, Any],
    generate: Optional[Generator],
    model: str,
) -> Tuple[Any, str]:
    """Render the feature's prompt for ``text`` and call the monitored generator.

    Returns the unwrapped response and the prompt version used.
    """
    if generate is None:
        raise GeneratorNotConfigured(f"{feature.capitalize()} requires AI processing but no generator is configured")

    version = select_prompt_version(text, feature)
    prompt = get_optimized_prompt(feature, variables, version)
    logger.debug("Using %s %s prompt (%d chars)", version, feature, len(prompt))

    monitored = with_monitoring(generate, context.monitor, f"{feature}-ai", model)
    response = await monitored(prompt, params)
    if isinstance(response, GenerationResult):
        response = response.result
    return response, version


async def summarize_text_optimized(
    context: OptimizationContext,
    text: str,
    length: int = 5,
    user_id: Optional[str] = None,
    generate: Optional[Generator] = None,
    model: str = DEFAULT_AI_MODEL,
    enforce_rate_limit: bool = True,
) -> Dict[str, Any]:
    """Summarize ``text``, using the provider only when local processing can't.

    Pass ``enforce_rate_limit=False`` when the caller is already gated, e.g.
    by ``with_rate_limit`` on the HTTP route.

    Raises:
        RateLimitExceeded: If the caller is over the ``ai_summary`` preset
        GeneratorNotConfigured: If AI is required and ``generate`` is None
    """
    if enforce_rate_limit:
        _check_rate_limit(context, user_id, "ai_summary")

    cache_prompt = f"summary:{text}"
    params = {"length": length}
    cached = context.cache.get(cache_prompt, params)
    if cached is not None:
        return {**cached, "from_cache": True}

    local = context.processor.summarize(text, max_length=length)
    if local.success and not local.used_ai:
        context.monitor.record_usage("summary-local", LOCAL_MODEL, 0, 0, user_id=user_id)
        result = {"summary": local.data, "method": "local", "from_cache": False}
        context.cache.set(cache_prompt, result, params, SUMMARY_TTL_MS)
        return result

    response, version = await _generate_with_ai(
        context, "summary", text, {"text": text, "length": length}, params, generate, model,
    )
    result = {
        "summary": response,
        "method": "ai",
        "prompt_version": version,
        "from_cache": False,
    }
    context.cache.set(cache_prompt, result, params, SUMMARY_TTL_MS)
    return result


async def generate_flashcards_optimized(
    context: OptimizationContext,
    source_text: str,
    count: int = 10,
    existing_flashcard_ids: Sequence[str] = (),
    user_id: Optional[str] = None,
    generate: Optional[Generator] = None,
    model: str = DEFAULT_AI_MODEL,
    enforce_rate_limit: bool = True,
) -> Dict[str, Any]:
    """Flashcards for ``source_text``; short text gets local keyword cards.

    Raises:
        RateLimitExceeded: If the caller is over the ``ai_generation`` preset
        GeneratorNotConfigured: If AI is required and ``generate`` is None
    """
    if enforce_rate_limit:
        _check_rate_limit(context, user_id, "ai_generation")

    cache_prompt = f"flashcards:{source_text}"
    params = {"count": count, "existing": list(existing_flashcard_ids)}
    cached = context.cache.get(cache_prompt, params)
    if cached is not None:
        return {**cached, "from_cache": True}

    local = context.processor.generate_flashcards(source_text, count)
    if local.success:
        context.monitor.record_usage("flashcards-local", LOCAL_MODEL, 0, 0, user_id=user_id)
        result = {"flashcards": local.data, "method": "local", "from_cache": False}
        context.cache.set(cache_prompt, result, params, FLASHCARDS_TTL_MS)
        return result

    variables = {"count": count, "text": source_text, "existing": ", ".join(existing_flashcard_ids)}
    response, version = await _generate_with_ai(
        context, "flashcards", source_text, variables, params, generate, model,
    )

    result = {
        "flashcards": response,
        "method": "ai",
        "prompt_version": version,
        "from_cache": False,
    }
    context.cache.set(cache_prompt, result, params, FLASHCARDS_TTL_MS)
    return result


async def generate_quiz_optimized(
    context: OptimizationContext,
    topic: str,
    text: str,
    questions: int = 5,
    difficulty: str = "medium",
    user_id: Optional[str] = None,
    generate: Optional[Generator] = None,
    model: str = DEFAULT_AI_MODEL,
    enforce_rate_limit: bool = True,
) -> Dict[str, Any]:
    """Quiz questions about ``topic``; simple text gets local "What ...?" questions.

    Raises:
        RateLimitExceeded: If the caller is over the ``ai_quiz`` preset
        GeneratorNotConfigured: If AI is required and ``generate`` is None
    """
    if enforce_rate_limit:
        _check_rate_limit(context, user_id, "ai_quiz")

    cache_prompt = f"quiz:{topic}:{text}"
    params = {"questions": questions, "difficulty": difficulty}
    cached = context.cache.get(cache_prompt, params)
    if cached is not None:
        return {**cached, "from_cache": True}

    local = context.processor.generate_questions(text, questions)
    if local.success:
        context.monitor.record_usage("quiz-local", LOCAL_MODEL, 0, 0, user_id=user_id)
        result = {"questions": local.data, "method": "local", "from_cache": False}
        context.cache.set(cache_prompt, result, params, QUIZ_TTL_MS)
        return result

    variables = {"topic": topic, "text": text, "questions": questions, "difficulty": difficulty}
    response, version = await _generate_with_ai(
        context, "quiz", text, variables, params, generate, model,
    )

    result = {
        "questions": response,
        "method": "ai",
        "prompt_version": version,
        "from_cache": False,
    }
    context.cache.set(cache_prompt, result, params, QUIZ_TTL_MS)
    return result


async def batch_process_optimized(
    context: OptimizationContext,
    operations: Sequence[Mapping[str, Any]],
    generate: Optional[Generator] = None,
) -> List[Dict[str, Any]]:
    """Run summary/keywords/questions operations, collecting per-item errors.

    Each operation has ``type``, ``text`` and optional ``params`` and
    ``user_id``. A failing operation yields an error entry instead of
    aborting the batch.
    """
    results: List[Dict[str, Any]] = []

    for op in operations:
        op_type = op.get("type")
        params = op.get("params") or {}
        user_id = op.get("user_id")
        try:
            if op_type == "summary":
                summary = await summarize_text_optimized(
                    context,
                    op["text"],
                    length=params.get("length", 3),
                    user_id=user_id,
                    generate=generate,
                )
                results.append({"type": "summary", "success": True, **summary})
            elif op_type in ("keywords", "questions"):
                if op_type == "keywords":
                    outcome = context.processor.extract_keywords(op["text"], params.get("count", 5))
                else:
                    outcome = context.processor.generate_questions(op["text"], params.get("count", 3))
                if outcome.success:
                    context.monitor.record_usage(f"{op_type}-local", LOCAL_MODEL, 0, 0, user_id=user_id)
                results.append({
                    "type": op_type,
                    "success": outcome.success,
                    "data": outcome.data,
                    "used_ai": outcome.used_ai,
                    "reason": outcome.reason,
                })
            else:
                raise ValueError(f"Unknown operation type: {op_type}")
        except Exception as e:
            logger.info("Batch operation %s failed: %s", op_type, e)
            results.append({"type": op_type, "success": False, "error": str(e)})

    return results
