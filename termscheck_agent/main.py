from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from .config import EngineConfig
from .errors import MissingCredential
from .models import (
    ActivationEvent,
    AnalyzeRequest,
    NavigationEvent,
    RiskNotification,
    SettingsPatch,
    SettingsView,
    TabAnalysisResponse,
    TriggerResponse,
)
from .service import Engine, build_engine

# Load environment variables from the repo root .env (so OPENAI_API_KEY works in local dev)
_HERE = Path(__file__).resolve()
_AGENT_ROOT = _HERE.parents[1]
load_dotenv(_AGENT_ROOT / ".env", override=False)

logging.basicConfig(level=os.getenv("TERMSCHECK_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def _cors_allow_origins() -> list[str]:
    raw = os.getenv("TERMSCHECK_CORS_ORIGINS", "").strip()
    if not raw:
        return ["http://localhost:3000"]
    return [o.strip() for o in raw.split(",") if o.strip()]


def _settings_view(engine: Engine) -> SettingsView:
    current = engine.settings.current
    return SettingsView(
        auto_analyze=current.auto_analyze,
        show_notifications=current.show_notifications,
        credential_configured=bool(current.credential),
    )


def create_app(engine: Engine | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        eng = engine or build_engine(EngineConfig.from_env())
        app.state.engine = eng
        await eng.start()
        logger.info("TermsCheck agent ready (judge=%s, discovery=%s)", eng.config.judge_provider, eng.config.discovery_backend)
        try:
            yield
        finally:
            await eng.aclose()

    app = FastAPI(title="TermsCheck Agent", version="0.1.0", lifespan=lifespan)

    # For local dev, this defaults to allowing http://localhost:3000.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_allow_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _engine(request: Request) -> Engine:
        return request.app.state.engine

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    @app.post("/tabs/{tab_id}/navigated")
    async def tab_navigated(tab_id: int, event: NavigationEvent, request: Request):
        task = _engine(request).orchestrator.handle_navigation(tab_id, event.url, event.status)
        return {"discovery_started": task is not None}

    @app.post("/tabs/{tab_id}/activated")
    async def tab_activated(tab_id: int, event: ActivationEvent, request: Request):
        orchestrator = _engine(request).orchestrator
        orchestrator.handle_activated(tab_id, event.url)
        return {"tab_id": tab_id, "badge": orchestrator.badge_state(tab_id)}

    @app.delete("/tabs/{tab_id}", status_code=204)
    async def tab_closed(tab_id: int, request: Request):
        _engine(request).janitor.handle_tab_closed(tab_id)
        return Response(status_code=204)

    @app.post("/tabs/{tab_id}/analyze", response_model=TriggerResponse)
    async def analyze_tab(tab_id: int, req: AnalyzeRequest, request: Request):
        eng = _engine(request)
        task = eng.orchestrator.trigger_manual(tab_id, req.url)
        if task is None:
            raise HTTPException(status_code=400, detail="Please use an http(s) website URL.")
        return TriggerResponse(started=True, credential_configured=bool(eng.settings.credential))

    @app.post("/tabs/{tab_id}/analyze-page", response_model=TabAnalysisResponse)
    async def analyze_page(tab_id: int, req: AnalyzeRequest, request: Request):
        orchestrator = _engine(request).orchestrator
        try:
            analysis = await orchestrator.analyze_page(tab_id, req.url)
        except MissingCredential as e:
            raise HTTPException(status_code=412, detail=str(e))
        return TabAnalysisResponse(tab_id=tab_id, analysis=analysis, badge=orchestrator.badge_state(tab_id))

    @app.get("/tabs/{tab_id}/analysis", response_model=TabAnalysisResponse)
    async def tab_analysis(tab_id: int, request: Request):
        orchestrator = _engine(request).orchestrator
        return TabAnalysisResponse(
            tab_id=tab_id,
            analysis=orchestrator.get_analysis(tab_id),
            badge=orchestrator.badge_state(tab_id),
            links=orchestrator.get_links(tab_id),
        )

    @app.get("/settings", response_model=SettingsView)
    async def get_settings(request: Request):
        return _settings_view(_engine(request))

    @app.patch("/settings", response_model=SettingsView)
    async def patch_settings(patch: SettingsPatch, request: Request):
        eng = _engine(request)
        eng.settings.update(**patch.model_dump(exclude_none=True))
        return _settings_view(eng)

    @app.get("/notifications", response_model=list[RiskNotification])
    async def notifications(request: Request):
        return list(_engine(request).sink.notifications)

    return app


app = create_app()
