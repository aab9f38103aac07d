"""
Optimized OpenAI client wrapper.

Sends prompts through the response cache and token monitor so repeated
prompts are served from memory and every provider call is accounted for.
"""

from typing import Any, Dict, Mapping, Optional

from openai import AsyncOpenAI

from ..core.cache import with_cache
from ..core.context import OptimizationContext
from ..core.monitor import with_monitoring
from ..core.token_counter import GenerationResult, TokenUsage


class OptimizedOpenAI:
    """Chat-completions client composed as cache(monitoring(provider call)).

    A cache hit never reaches the monitor, so only real provider calls are
    recorded.
    """

    def __init__(
        self,
        model: str,
        feature: str,
        context: OptimizationContext,
        client: Optional[AsyncOpenAI] = None,
        ttl_ms: Optional[int] = None,
    ):
        """Initialize the optimized client.

        Args:
            model: OpenAI model name (required)
            feature: Feature identifier for tracking (required)
            context: Shared cache/monitor instances
            client: Preconfigured AsyncOpenAI client (defaults to a new one)
            ttl_ms: Cache lifetime for responses (defaults to the cache's)

        Raises:
            ValueError: If model or feature is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not feature or not feature.strip():
            raise ValueError("feature is required and cannot be empty")

        self.model = model
        self.feature = feature
        self.context = context
        self.client = client or AsyncOpenAI()

        monitored = with_monitoring(self._complete, context.monitor, feature, model)
        self._generate = with_cache(monitored, context.cache, ttl_ms)

    async def _complete(self, prompt: str, params: Optional[Mapping[str, Any]] = None) -> GenerationResult:
        # OpenAI API errors propagate without modification
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            **dict(params or {}),
        )

        usage = response.usage
        if not usage:
            raise ValueError("OpenAI response missing usage information")

        return GenerationResult(
            result=response.choices[0].message.content,
            usage=TokenUsage(
                prompt_tokens=usage.prompt_tokens,
                completion_tokens=usage.completion_tokens,
            ),
        )

    async def generate(self, prompt: str, params: Optional[Dict[str, Any]] = None) -> str:
        """Generate a completion for ``prompt``.

        ``params`` are passed to the chat completions call (temperature,
        max_tokens, ...) and are part of the cache key.

        Raises:
            ValueError: If prompt is empty
        """
        if not prompt:
            raise ValueError("prompt is required and cannot be empty")

        envelope = await self._generate(prompt, params)
        return envelope.result
