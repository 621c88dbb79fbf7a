import json
import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# ---------- Structured Logging ----------
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='{"time":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s"}',
    datefmt='%Y-%m-%dT%H:%M:%S'
)
logger = logging.getLogger("tutor-router")

# ---------- Prometheus & Rate Limiting ----------
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, default_limits=["200/minute"])


from graph.config import REG, load_settings
from graph.errors import RouterError
from graph.models import ChatRequest, EnhancedChatRequest
from graph.router import Router
from providers.openai_client import make_provider_clients
from services.request_queue import RequestQueue

PUBLIC_PATHS = ("/healthz", "/docs", "/openapi.json", "/metrics", "/api/ai/health")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the process-wide collaborators once; tear them down on shutdown."""
    settings = load_settings()
    http_client = httpx.AsyncClient(timeout=settings.timeout_sec)
    queue = RequestQueue()

    app.state.settings = settings
    app.state.queue = queue
    app.state.router = Router(settings, make_provider_clients(settings, http_client), queue)

    logger.info(f"Config validated. {len(REG)} models registered.")
    yield

    await queue.close()
    await http_client.aclose()
    logger.info("Shutting down Tutor Router.")


app = FastAPI(title="Tutor Router (LangGraph)", version="1.0.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Init Metrics
Instrumentator().instrument(app).expose(app)


@app.exception_handler(RouterError)
async def router_error_handler(request: Request, exc: RouterError):
    logger.error(f"{request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content={"status": "error", **exc.to_dict()})


# Global Exception Handler for clean 500s
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.exception(f"Unhandled error on {request.url.path}: {type(exc).__name__}")
    return Response(
        content=json.dumps({
            "error": "Internal Server Error",
            "detail": str(exc),
            "type": type(exc).__name__
        }),
        status_code=500,
        media_type="application/json"
    )


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'self'"
    return response


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if request.url.path.startswith(PUBLIC_PATHS):
        return await call_next(request)

    expected_key = os.getenv("TUTOR_ROUTER_API_KEY")
    if expected_key:
        client_key = request.headers.get("X-API-Key")
        if not client_key:
            auth_header = request.headers.get("Authorization")
            if auth_header:
                client_key = auth_header[7:] if auth_header.startswith("Bearer ") else auth_header

        logger.info(f"Auth request: path={request.url.path} auth_provided={bool(client_key)}")

        if not client_key or client_key != expected_key:
            return Response(content="Unauthorized: Invalid or missing API Key", status_code=401)

    return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ALLOW_ORIGINS", "*").split(","),
    allow_credentials=True, allow_methods=["*"], allow_headers=["*"],
)


# ---------- Chat ----------
@app.post("/api/ai/chat")
@limiter.limit("30/minute")
async def chat(request: Request, body: ChatRequest):
    reply = await request.app.state.router.send_chat_message(body)
    logger.info(f"Chat response sent: user={body.context.userId} provider={reply.provider_used} "
                f"len={len(reply.reply_text)}")
    return reply.to_dict()


@app.post("/api/ai/chat/enhanced")
@limiter.limit("30/minute")
async def chat_enhanced(request: Request, body: EnhancedChatRequest):
    reply = await request.app.state.router.send_enhanced_chat_message(body)
    logger.info(f"Enhanced chat response sent: user={body.context.userId} type={reply.request_type} "
                f"degraded={reply.degraded}")
    return reply.to_dict()


@app.get("/api/ai/health")
def ai_health(request: Request):
    settings = request.app.state.settings
    configured = settings.is_configured
    return {
        "status": "ok" if configured else "unconfigured",
        "service": "tutor-router",
        "providers": {name: p.configured for name, p in settings.providers.items()},
        "message": "AI service is properly configured" if configured
        else "AI service is not configured. Set OPENROUTER_API_KEY and/or GROQ_API_KEY.",
    }


# --- /debug/router_decision: introspect routing decision ---
class DebugRouteRequest(BaseModel):
    prompt: str = Field(..., min_length=1, description="Sample prompt to analyze")


@app.post("/debug/router_decision")
def debug_route_decision(request: Request, req: DebugRouteRequest):
    """
    Show what routing decision would be made for a prompt.

    Returns:
    - routing_meta: {category, complexity, matched_keyword}
    - chain: the candidates that would be tried, in order
    - available_credentials: which providers have keys
    """
    return request.app.state.router.debug_router_decision(req.prompt)


@app.get("/healthz")
def healthz(): return {"ok": True}


@app.head("/healthz")
def _healthz_head():
    return Response(status_code=200)


@app.get("/health")
async def health_check(request: Request):
    """Detailed health check including request queue stats."""
    return {
        "status": "ok",
        "service": "tutor-router",
        "request_queue": request.app.state.queue.get_metrics(),
    }
