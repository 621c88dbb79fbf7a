"""
Tutor Router - heuristic multi-provider LLM routing with chain fallback

Plain path (compiled LangGraph):
1. classify -> RoutingMeta (category, complexity)
2. route    -> ordered provider chain for the category and configured keys
3. invoke   -> chain-walk: try each candidate until one succeeds

Enhanced path:
    prompt enhancement -> primary model (bounded retry) -> secondary
    fallback (bounded retry) -> response refinement

Both paths run through the injected RequestQueue, one request at a time.
"""

import datetime
import json
import logging
import time
import uuid
from dataclasses import asdict
from typing import Any, Dict, List, Mapping, Optional, TypedDict

from langgraph.graph import END, StateGraph

from graph.chain import available_credentials, build_chain
from graph.classifier import classify_message
from graph.config import FALLBACK_MODELS, PRIMARY, REG, SECONDARY, Settings
from graph.errors import ErrorCode, MissingConfigError, ProviderError, ServiceUnavailableError
from graph.models import (
    ChatRequest,
    ChatResponse,
    EnhancedChatRequest,
    EnhancedChatResponse,
    ProviderReply,
    RoutingMeta,
    SelectedModel,
)
from graph.retry import execute_with_retry
from services.prompt_enhancer import safe_enhance_prompt
from services.request_queue import RequestQueue
from services.response_refiner import refine_response

logger = logging.getLogger("tutor-router.graph")

NOT_CONFIGURED_MESSAGE = (
    "No AI providers configured. Please set OPENROUTER_API_KEY and/or GROQ_API_KEY"
)


# ---------- State ----------
class RouterState(TypedDict, total=False):
    message: str
    history: Optional[List[Dict[str, str]]]
    routing_meta: Dict[str, Any]
    chain: List[SelectedModel]
    model: SelectedModel
    reply: ProviderReply
    attempts: List[Dict[str, str]]
    latency_ms: int


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _log_metric(meta: RoutingMeta, model: Optional[SelectedModel], latency_ms: int,
                attempts: List[Dict[str, str]], status: str, path: str):
    metric_event = {
        "ts": _now_iso(),
        "request_id": str(uuid.uuid4()),
        "path": path,
        "category": meta.category,
        "complexity": meta.complexity,
        "provider": model.provider if model else None,
        "model_id": model.id if model else None,
        "latency_ms": latency_ms,
        "attempts": len(attempts),
        "status": status,
    }
    logger.info(f"METRIC: {json.dumps(metric_event)}")


class Router:
    """
    Orchestrates classification, chain construction and provider calls.

    Constructed once at startup (see app.main lifespan) with the immutable
    Settings, one client per configured provider and the shared RequestQueue.
    """

    def __init__(self, settings: Settings, clients: Mapping[str, Any], queue: RequestQueue,
                 sleep=None):
        self.settings = settings
        self.clients = dict(clients)
        self.queue = queue
        self._sleep = sleep
        self._graph = build_compiled_router(self)

    # ---------- helpers ----------
    def _retry_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "max_attempts": self.settings.max_attempts,
            "initial_backoff_ms": self.settings.initial_backoff_ms,
        }
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return kwargs

    def _client_for(self, model: SelectedModel):
        client = self.clients.get(model.provider)
        if client is None:
            raise ProviderError(f"No client configured for provider {model.provider}", provider=model.provider)
        return client

    @staticmethod
    def _as_provider_error(exc: Exception, model: SelectedModel) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc
        logger.exception(f"Unexpected {type(exc).__name__} from {model.display_name} ({model.provider}/{model.id})")
        return ProviderError(f"{model.provider} error: {type(exc).__name__}", ErrorCode.UNKNOWN, provider=model.provider)

    def _ensure_configured(self):
        if not self.settings.is_configured:
            logger.error("No AI providers configured")
            raise MissingConfigError(NOT_CONFIGURED_MESSAGE)

    # ---------- plain path ----------
    async def send_chat_message(self, request: ChatRequest) -> ChatResponse:
        self._ensure_configured()
        logger.info(
            f"Chat request from user={request.context.userId} page={request.context.page} "
            f"len={len(request.message)} history={len(request.history or [])}"
        )
        return await self.queue.enqueue(self._run_plain, request)

    async def _run_plain(self, request: ChatRequest) -> ChatResponse:
        final = await self._graph.ainvoke({
            "message": request.message,
            "history": request.history_dicts(),
        })
        model: SelectedModel = final["model"]
        return ChatResponse(
            reply_text=final["reply"].text,
            provider_used=model.provider,
            model_used=model.display_name,
            model_category=model.category,
            latency_ms=final["latency_ms"],
            timestamp=_now_iso(),
            attempts=final.get("attempts", []),
        )

    async def walk_chain(self, message: str, history: Optional[List[Dict[str, str]]],
                         chain: List[SelectedModel], meta: RoutingMeta) -> RouterState:
        """
        Try each candidate in order; the first success wins.

        By default a failed candidate is abandoned immediately (no retry).
        With chain_walk_retry enabled each candidate gets the same bounded
        retry as the enhanced path before being abandoned.
        """
        attempts: List[Dict[str, str]] = []
        latency_ms = 0
        last_error: Optional[ProviderError] = None

        logger.info(f"Starting call chain for {meta.category} message ({len(chain)} candidates)")
        for i, model in enumerate(chain, 1):
            logger.info(f"Attempting ({i}/{len(chain)}): {model.display_name} via {model.provider}")
            t0 = time.perf_counter()
            try:
                client = self._client_for(model)
                if self.settings.chain_walk_retry:
                    reply = await execute_with_retry(
                        lambda: client.call(message, model, history),
                        operation_name=f"{model.provider}/{model.id}",
                        **self._retry_kwargs(),
                    )
                else:
                    reply = await client.call(message, model, history)
            except Exception as exc:
                e = self._as_provider_error(exc, model)
                latency_ms += int((time.perf_counter() - t0) * 1000)
                last_error = e
                attempts.append({"model": model.key, "provider": model.provider, "status": f"error:{e.kind.value}"})
                logger.warning(f"{model.display_name} ({model.provider}/{model.id}) failed: {e.message}")
                continue

            latency_ms += int((time.perf_counter() - t0) * 1000)
            attempts.append({"model": model.key, "provider": model.provider, "status": "success"})
            logger.info(f"{model.display_name} succeeded in {latency_ms}ms")
            _log_metric(meta, model, latency_ms, attempts, "success", "plain")
            return {"model": model, "reply": reply, "attempts": attempts, "latency_ms": latency_ms}

        last_msg = last_error.message if last_error is not None else "no candidates"
        logger.error(f"All models failed. Chain exhausted after {len(attempts)} candidate(s).")
        _log_metric(meta, None, latency_ms, attempts, "exhausted", "plain")
        raise ServiceUnavailableError(f"All AI providers failed: {last_msg}")

    # ---------- enhanced path ----------
    async def send_enhanced_chat_message(self, request: EnhancedChatRequest) -> EnhancedChatResponse:
        self._ensure_configured()
        logger.info(
            f"Enhanced chat request from user={request.context.userId} "
            f"type={request.requestType or 'auto'}"
        )
        return await self.queue.enqueue(self._run_enhanced, request)

    async def _run_enhanced(self, request: EnhancedChatRequest) -> EnhancedChatResponse:
        result = safe_enhance_prompt(request.message, request.requestType, request.userLearningContext)
        if not result.success:
            logger.error(f"Prompt enhancement failed for user={request.context.userId}: {result.error}")
            return EnhancedChatResponse(
                reply_text=result.fallback_message,
                provider_used=self._provider_label(PRIMARY),
                model_used="N/A (validation failed)",
                model_category="fallback",
                latency_ms=0,
                timestamp=_now_iso(),
                request_type="question",
                degraded=True,
            )

        enhancement = result.enhancement
        meta = classify_message(enhancement.original_request)
        attempts: List[Dict[str, str]] = []
        errors: Dict[str, str] = {}
        latency_ms = 0

        for role, model in self._enhanced_candidates(meta):
            provider = self.settings.provider(role)
            if model is None:
                errors[role] = f"No {provider.name if provider else role} key configured"
                continue

            logger.info(f"Trying {model.provider} with enhanced prompt ({role}) using {model.display_name}")
            t0 = time.perf_counter()
            try:
                client = self._client_for(model)
                reply = await execute_with_retry(
                    lambda: client.call_enhanced(enhancement.enhanced_request, enhancement.system_prompt, model),
                    operation_name=f"{model.provider} enhanced call",
                    **self._retry_kwargs(),
                )
            except Exception as exc:
                e = self._as_provider_error(exc, model)
                latency_ms += int((time.perf_counter() - t0) * 1000)
                errors[role] = e.message
                attempts.append({"model": model.key, "provider": model.provider, "status": f"error:{e.kind.value}"})
                logger.warning(f"{model.provider} failed after retries: {e.message}")
                continue

            latency_ms += int((time.perf_counter() - t0) * 1000)
            attempts.append({"model": model.key, "provider": model.provider, "status": "success"})
            refined = refine_response(reply.text, enhancement.request_type)
            _log_metric(meta, model, latency_ms, attempts, "success", "enhanced")
            return EnhancedChatResponse(
                reply_text=refined.refined_text,
                provider_used=model.provider,
                model_used=model.display_name,
                model_category=model.category,
                latency_ms=latency_ms,
                timestamp=_now_iso(),
                attempts=attempts,
                request_type=enhancement.request_type,
                refined=refined,
            )

        primary_name = self._provider_label(PRIMARY)
        secondary_name = self._provider_label(SECONDARY)
        primary_msg = errors.get(PRIMARY, f"No {primary_name} key configured")
        secondary_msg = errors.get(SECONDARY, f"No {secondary_name} key configured")
        logger.error(f"All AI providers failed: {primary_name}={primary_msg} {secondary_name}={secondary_msg}")
        _log_metric(meta, None, latency_ms, attempts, "exhausted", "enhanced")
        raise ServiceUnavailableError(
            f"All AI providers failed. {primary_name}: {primary_msg}, {secondary_name}: {secondary_msg}"
        )

    def _provider_label(self, role: str) -> str:
        p = self.settings.provider(role)
        return p.name if p else role

    def _enhanced_candidates(self, meta: RoutingMeta):
        """(role, model) pairs: the category's first primary model, then the secondary fallback."""
        primary = None
        if self.settings.has_credentials(PRIMARY):
            chain = build_chain(meta.category, {PRIMARY: True, SECONDARY: False})
            primary = chain[0] if chain else None

        secondary = None
        if self.settings.has_credentials(SECONDARY):
            secondary = next((REG[k] for k in FALLBACK_MODELS if k in REG), None)

        return [(PRIMARY, primary), (SECONDARY, secondary)]

    # ---------- debug ----------
    def debug_router_decision(self, message: str) -> Dict[str, Any]:
        """Show what routing decision would be made for a prompt, without calling any provider."""
        meta = classify_message(message)
        available = available_credentials(self.settings)
        chain = build_chain(meta.category, available)
        return {
            "routing_meta": asdict(meta),
            "chain": [{"key": m.key, "id": m.id, "provider": m.provider, "category": m.category} for m in chain],
            "available_credentials": available,
            "chain_walk_retry": self.settings.chain_walk_retry,
            "available_models": list(REG.keys()),
        }


# ---------- Graph ----------
def build_compiled_router(router: Router):
    """
    Build the compiled LangGraph for the plain path.

    Graph flow:
    1. classify -> heuristic category/complexity
    2. route    -> chain for the category (MissingConfigError if empty)
    3. invoke   -> chain-walk
    """

    def _node_classify(state: RouterState) -> RouterState:
        meta = classify_message(state["message"])
        logger.info(f"Routing decision: category={meta.category} complexity={meta.complexity} "
                    f"keyword={meta.matched_keyword}")
        return {"routing_meta": asdict(meta)}

    def _node_route(state: RouterState) -> RouterState:
        meta = RoutingMeta(**state["routing_meta"])
        chain = build_chain(meta.category, available_credentials(router.settings))
        if not chain:
            logger.error(f"No AI providers available for {meta.category} messages")
            raise MissingConfigError(NOT_CONFIGURED_MESSAGE)
        return {"chain": chain}

    async def _node_invoke(state: RouterState) -> RouterState:
        meta = RoutingMeta(**state["routing_meta"])
        return await router.walk_chain(state["message"], state.get("history"), state["chain"], meta)

    g = StateGraph(RouterState)

    g.add_node("classify", _node_classify)
    g.add_node("route", _node_route)
    g.add_node("invoke", _node_invoke)

    g.set_entry_point("classify")
    g.add_edge("classify", "route")
    g.add_edge("route", "invoke")
    g.add_edge("invoke", END)

    return g.compile()
