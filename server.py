"""
BizTone Guard Server
HTTP front for the send guard: risk scoring, guard evaluation, list and
domain-rule management, guard-mode settings and metrics.

Run: python server.py
API: http://localhost:8003/docs
"""

import os
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field

from biztone import GuardConfig, build_engine
from biztone.errors import BizToneError, DuplicateItemError, RemoteServiceError, StorageError, ValidationError
from biztone.guard.decision_engine import GuardDecisionEngine
from biztone.guard.domain_policy import domain_from_url
from biztone.guard.list_override import ListKind
from biztone.logging.structured import configure_logging, get_logger

logger = get_logger("biztone.server")

ERROR_STATUS = {
    ValidationError: 400,
    DuplicateItemError: 409,
    RemoteServiceError: 502,
    StorageError: 503,
}


# === Request Models ===
class TextRequest(BaseModel):
    text: str


class AssessRequest(BaseModel):
    text: str
    stage: str = "enhanced"  # "quick" or "enhanced"


class EvaluateRequest(BaseModel):
    context_id: str = "default"
    text: str
    domain: Optional[str] = None
    url: Optional[str] = None


class CancelRequest(BaseModel):
    context_id: str


class GuardModeRequest(BaseModel):
    mode: str


class ListItemRequest(BaseModel):
    text: str
    match: str = "contains"
    locale: str = "all"
    weight: Optional[int] = None


class ListReplaceRequest(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)


class DomainRuleRequest(BaseModel):
    enabled: Optional[bool] = None
    pauseUntil: Optional[int] = None


class PauseRequest(BaseModel):
    minutes: float = 30


def ok(result: Any = None) -> Dict[str, Any]:
    return {"ok": True, "result": result}


def error_status(error: BizToneError) -> int:
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return 500


def list_kind(kind: str) -> ListKind:
    try:
        return ListKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown list kind: {kind!r}")


def create_app(engine: Optional[GuardDecisionEngine] = None) -> FastAPI:
    """Build the API around an engine (a fresh one from the environment if None)."""
    if engine is None:
        engine = build_engine(GuardConfig.from_env(), warm_up=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("server_started", status=engine.status()["compilers"])
        yield
        if engine.tone_backend is not None:
            await engine.tone_backend.shutdown()
        logger.info("server_stopped")

    app = FastAPI(
        title="BizTone Guard",
        description="Business-tone send guard with obfuscation-tolerant risk scoring",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    start_time = time.time()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BizToneError)
    async def handle_guard_error(request: Request, exc: BizToneError):
        status = error_status(exc)
        logger.warning("request_failed", path=request.url.path, code=exc.code, status=status)
        return JSONResponse(
            status_code=status,
            content={"ok": False, "error": {"code": exc.code, "message": str(exc)}},
        )

    # === Health / metrics ===
    @app.get("/health")
    async def health():
        return ok({
            "status": "ok",
            "uptime": time.time() - start_time,
            **engine.status(),
        })

    @app.get("/metrics")
    async def metrics():
        return Response(content=engine.metrics.get_metrics(), media_type=CONTENT_TYPE_LATEST)

    # === Scoring and guard ===
    @app.post("/assess")
    async def assess(request: AssessRequest):
        if request.stage == "quick":
            return ok(engine.quick_scorer.score(request.text).to_dict())
        if request.stage != "enhanced":
            raise ValidationError(f"Unknown stage: {request.stage!r}")
        return ok(engine.score(request.text).to_dict())

    @app.post("/guard/evaluate")
    async def evaluate(request: EvaluateRequest):
        domain = request.domain or (domain_from_url(request.url) if request.url else None)
        outcome = await engine.evaluate(request.context_id, request.text, domain)
        return ok(outcome.to_dict())

    @app.post("/guard/acknowledge")
    async def acknowledge(request: TextRequest):
        entry = engine.acknowledge_warning(request.text)
        return ok(entry.to_dict() if entry else None)

    @app.post("/guard/cancel")
    async def cancel(request: CancelRequest):
        return ok({"cancelled": engine.cancel(request.context_id)})

    @app.post("/convert")
    async def convert(request: TextRequest):
        if not request.text.strip():
            raise ValidationError("Text is required")
        return ok({"convertedText": await engine.convert_text(request.text)})

    # === Settings ===
    @app.get("/settings/guard-mode")
    async def get_guard_mode():
        return ok({"mode": (await engine.mode_provider.get()).value})

    @app.put("/settings/guard-mode")
    async def set_guard_mode(request: GuardModeRequest):
        return ok({"mode": engine.mode_provider.set(request.mode).value})

    # === Lists ===
    @app.get("/lists/{kind}")
    async def get_list(kind: str):
        return ok([item.to_dict() for item in engine.lists.get(list_kind(kind))])

    @app.put("/lists/{kind}")
    async def replace_list(kind: str, request: ListReplaceRequest):
        items = engine.lists.set(list_kind(kind), request.items)
        return ok([item.to_dict() for item in items])

    @app.post("/lists/{kind}/items")
    async def add_list_item(kind: str, request: ListItemRequest):
        item = engine.lists.add(list_kind(kind), request.model_dump(exclude_none=True))
        return ok(item.to_dict())

    @app.delete("/lists/{kind}/items/{item_id}")
    async def remove_list_item(kind: str, item_id: str):
        removed = engine.lists.remove(list_kind(kind), item_id)
        return ok({"removed": removed, "reason": None if removed else "not found"})

    @app.get("/lists/{kind}/export")
    async def export_list(kind: str):
        return ok(engine.lists.export_list(list_kind(kind)))

    @app.post("/lists/{kind}/import")
    async def import_list(kind: str, document: Dict[str, Any]):
        items = engine.lists.import_list(list_kind(kind), document)
        return ok({"imported": len(items)})

    # === Domain rules ===
    @app.get("/domains")
    async def get_domain_rules():
        rules = engine.domain_policy.get_rules()
        return ok({domain: rule.to_dict() for domain, rule in rules.items()})

    @app.get("/domains/{domain}")
    async def get_domain_status(domain: str):
        return ok(engine.domain_policy.status(domain))

    @app.put("/domains/{domain}")
    async def set_domain_rule(domain: str, request: DomainRuleRequest):
        rule = engine.domain_policy.set_rule(domain, **request.model_dump(exclude_none=True))
        return ok(rule.to_dict())

    @app.delete("/domains/{domain}")
    async def remove_domain_rule(domain: str):
        return ok({"removed": engine.domain_policy.remove_rule(domain)})

    @app.post("/domains/{domain}/toggle")
    async def toggle_domain(domain: str):
        return ok({"enabled": engine.domain_policy.toggle(domain)})

    @app.post("/domains/{domain}/pause")
    async def pause_domain(domain: str, request: PauseRequest):
        engine.domain_policy.pause(domain, request.minutes)
        return ok(engine.domain_policy.status(domain))

    @app.post("/domains/{domain}/resume")
    async def resume_domain(domain: str):
        engine.domain_policy.resume(domain)
        return ok(engine.domain_policy.status(domain))

    return app


if __name__ == "__main__":
    import uvicorn

    configure_logging(os.environ.get("BIZTONE_LOG_LEVEL", "INFO"), os.environ.get("BIZTONE_LOG_FORMAT", "json"))
    uvicorn.run(create_app(), host="0.0.0.0", port=int(os.environ.get("BIZTONE_PORT", "8003")))
