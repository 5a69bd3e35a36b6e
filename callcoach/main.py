import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI

from callcoach.context import AppContext
from callcoach.routers.bot import create_bot_router
from callcoach.routers.coaching import create_coaching_router
from callcoach.routers.logs import create_logs_router
from callcoach.routers.settings import create_settings_router
from callcoach.routers.webhook import create_webhook_router
from callcoach.services.background_tasks import BackgroundTaskRunner
from callcoach.services.coaching import CoachingService
from callcoach.services.crash_logging import enable_crash_logging
from callcoach.services.llm import LLMProvider
from callcoach.services.logging_setup import configure_logging
from callcoach.services.prompt_config import PromptConfigStore
from callcoach.services.recall_client import RecallClient
from callcoach.services.session_aggregator import SessionAggregator
from callcoach.services.session_queries import SessionQueries
from callcoach.services.session_store import SessionStore
from callcoach.services.webhook_auth import Verifier, svix_verify

SHUTDOWN_DRAIN_SECONDS = 10.0


def create_app(
    ctx: Optional[AppContext] = None,
    *,
    provider_factory: Optional[Callable[[], LLMProvider]] = None,
    recall_client: Optional[RecallClient] = None,
    verifier: Verifier = svix_verify,
    configure_logs: bool = True,
) -> FastAPI:
    if ctx is None:
        cwd = os.getcwd()
        ctx = AppContext(cwd=cwd, data_dir=os.path.join(cwd, "data"))
    ctx.ensure_dirs()

    if configure_logs:
        configure_logging(ctx.logs_dir)
        enable_crash_logging(ctx.logs_dir)
    logger = logging.getLogger("callcoach.boot")
    logger.info("Boot: starting create_app cwd=%s data_dir=%s", ctx.cwd, ctx.data_dir)
    logger.info("Boot: config_path=%s exists=%s", ctx.config_path, os.path.exists(ctx.config_path))

    version_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), "VERSION.txt")
    version = "v0.0.0"
    if os.path.exists(version_path):
        with open(version_path, "r", encoding="utf-8") as version_file:
            version = version_file.read().strip() or version
    logger.info("Boot: version=%s", version)

    # The store lives exactly as long as the app; restart is the only cleanup
    session_store = SessionStore()
    runner = BackgroundTaskRunner()
    prompt_store = PromptConfigStore.from_dir(ctx.prompts_dir)
    logger.info("Boot: default prompts loaded from %s", ctx.prompts_dir)
    coaching_service = CoachingService(
        ctx, prompt_store, session_store, runner, provider_factory=provider_factory
    )
    recall_client = recall_client or RecallClient(ctx)
    aggregator = SessionAggregator(session_store, coaching_service, recall_client)
    queries = SessionQueries(session_store)

    if not ctx.webhook_secret:
        logger.warning("Boot: RECALL_WEBHOOK_SECRET unset; webhook signatures are not verified")
    if not recall_client.configured:
        logger.warning("Boot: RECALL_API_KEY unset; bot creation and transcript backfill will fail")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutdown: waiting for %d in-flight background tasks", runner.inflight)
        drained = await asyncio.to_thread(runner.join_all, SHUTDOWN_DRAIN_SECONDS)
        if not drained:
            logger.warning("Shutdown: background tasks still running after %.0fs", SHUTDOWN_DRAIN_SECONDS)

    app = FastAPI(title="Call Coach", version="0.1.0", lifespan=lifespan)
    app.state.version = version
    app.state.ctx = ctx
    app.state.session_store = session_store
    app.state.background_tasks = runner
    app.state.prompt_store = prompt_store

    app.include_router(create_webhook_router(ctx, aggregator, verifier))
    logger.info("Boot: webhook router mounted")
    app.include_router(create_coaching_router(queries, coaching_service))
    logger.info("Boot: coaching router mounted")
    app.include_router(create_settings_router(prompt_store))
    logger.info("Boot: settings router mounted")
    app.include_router(create_bot_router(ctx, recall_client, session_store))
    logger.info("Boot: bot router mounted")
    app.include_router(create_logs_router(ctx))
    logger.info("Boot: logs router mounted")

    @app.get("/")
    def root() -> dict:
        return {"message": "Call Coach API running", "version": app.state.version}

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "version": app.state.version}

    logger.info("Boot: create_app complete")
    return app
