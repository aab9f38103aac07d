"""
FastAPI application exposing the optimizer over HTTP.

Serves usage stats, a health report and a rate-limited summarize endpoint
backed by one shared OptimizationContext.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ai_optimizer.core.context import OptimizationContext, run_periodic_cleanup
from ai_optimizer.core.flows import Generator, GeneratorNotConfigured, summarize_text_optimized
from ai_optimizer.core.reporting import check_system_health, get_optimization_stats
from .middleware import client_identifier, with_rate_limit

logger = logging.getLogger(__name__)


def create_app(
    context: Optional[OptimizationContext] = None,
    generate: Optional[Generator] = None,
) -> FastAPI:
    """Build the optimizer HTTP surface around one shared context.

    ``generate`` is the provider call used when input is too complex for the
    local fallbacks; without it those requests get a 503.
    """
    context = context or OptimizationContext()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        stop = asyncio.Event()
        cleanup = asyncio.create_task(run_periodic_cleanup(context, stop))
        try:
            yield
        finally:
            stop.set()
            await cleanup

    app = FastAPI(title="AI Optimizer", lifespan=lifespan)
    app.state.context = context

    @app.get("/stats")
    async def stats() -> dict:
        return get_optimization_stats(context)

    @app.get("/health")
    async def health() -> JSONResponse:
        report = check_system_health(context)
        return JSONResponse(status_code=200 if report["overall"] else 503, content=report)

    async def summarize(request: Request) -> Response:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(status_code=422, content={"error": "Request body must be JSON"})

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text.strip():
            return JSONResponse(status_code=422, content={"error": "'text' is required"})

        length = payload.get("length", 5)
        if isinstance(length, bool) or not isinstance(length, int) or length <= 0:
            return JSONResponse(status_code=422, content={"error": "'length' must be a positive integer"})

        try:
            result = await summarize_text_optimized(
                context,
                text,
                length=length,
                user_id=client_identifier(request),
                generate=generate,
                enforce_rate_limit=False,
            )
        except GeneratorNotConfigured as e:
            logger.warning("Summarize needs AI but no generator is configured")
            return JSONResponse(status_code=503, content={"error": str(e)})

        return JSONResponse(content=result)

    app.add_api_route(
        "/summarize",
        with_rate_limit(summarize, context.limiter, context.rate_limit("ai_summary")),
        methods=["POST"],
    )

    return app
