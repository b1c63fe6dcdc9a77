import logging
from dataclasses import dataclass
from datetime import timedelta

from .context import ContextAssembler
from .conversation import ConversationManager
from .llm import LLMClient, OpenAIChatClient
from .services.session_store import SessionStore, close_session_store, get_session_store_async
from .session.auto_summary import AutoSummarisationService
from .session.lifecycle import SessionLifecycleManager
from .session.summary import SummaryGenerationService
from .settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """The wired set of services sharing one store and one model client."""

    store: SessionStore
    llm: LLMClient
    lifecycle: SessionLifecycleManager
    summaries: SummaryGenerationService
    conversation: ConversationManager
    auto_summary: AutoSummarisationService


def build_pipeline(store: SessionStore, llm: LLMClient) -> Pipeline:
    settings = get_settings()
    lifecycle = SessionLifecycleManager(store)
    summaries = SummaryGenerationService(llm, store)
    conversation = ConversationManager(
        llm,
        store,
        lifecycle,
        summaries,
        context_assembler=ContextAssembler(
            total_budget=settings.context_total_budget,
            response_reserve=settings.context_response_reserve,
        ),
    )
    auto_summary = AutoSummarisationService(
        store,
        summaries,
        lifecycle,
        timeout=timedelta(seconds=settings.auto_summary_timeout_seconds),
        max_retries=settings.auto_summary_max_retries,
        check_interval=settings.auto_summary_check_interval_seconds,
        backoff_base=settings.auto_summary_backoff_base_seconds,
        max_concurrency=settings.auto_summary_max_concurrency,
    )
    return Pipeline(store, llm, lifecycle, summaries, conversation, auto_summary)


# Lazy singleton
_pipeline_instance: Pipeline | None = None


async def get_pipeline_async() -> Pipeline:
    """Return the shared pipeline, building it (and connecting the store) on first use."""
    global _pipeline_instance
    if _pipeline_instance is None:
        store = await get_session_store_async()
        _pipeline_instance = build_pipeline(store, OpenAIChatClient())
        logger.info("Pipeline ready (store=%s)", type(store).__name__)
    return _pipeline_instance


async def close_pipeline() -> None:
    """Stop the background worker and release the store. Idempotent."""
    global _pipeline_instance
    if _pipeline_instance is not None:
        await _pipeline_instance.auto_summary.stop()
        _pipeline_instance = None
    await close_session_store()
