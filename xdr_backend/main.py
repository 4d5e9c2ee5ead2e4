from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from typing import Any, Dict, List, Optional
import logging

from xdr_backend import __version__
from xdr_backend.config import Settings, configure_logging, load_settings
from xdr_backend.context import SurveillanceContext, build_context
from xdr_backend.services.risk_scoring import WEIGHTS, clamp_factor

logger = logging.getLogger(__name__)


class RiskFactorsIn(BaseModel):
    """Risk factor form. Non-numeric levels become 0 and out-of-range levels are clamped."""
    model_config = ConfigDict(populate_by_name=True)

    age: int = 0
    immunity: int = 0
    locality: int = 0
    nutrition: int = 0
    icu_days: int = Field(0, alias="icuDays")
    mdr_history: int = Field(0, alias="mdrHistory")
    antibiotics: int = 0
    saps_score: int = Field(0, alias="sapsScore")

    @field_validator(*WEIGHTS, mode="before")
    @classmethod
    def coerce_level(cls, value: Any, info: ValidationInfo) -> int:
        return clamp_factor(info.field_name, value)


class StartTestIn(BaseModel):
    patient_id: str = Field(..., min_length=1, max_length=50)


def get_context(request: Request) -> SurveillanceContext:
    """Dependency returning the engine context owned by the running application."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Surveillance engine not started")
    return context


def create_app(context: Optional[SurveillanceContext] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or (context.settings if context else load_settings())
    configure_logging(settings)

    # NOTE: Initialize FastAPI over the in-memory surveillance engine
    app = FastAPI(
        title="MDR/XDR Surveillance API",
        description="Risk scoring, CBNAAT test tracking and resistance alerts for hospital wards",
        version=__version__,
    )
    app.state.context = context
    app.state.settings = settings

    @app.on_event("startup")
    async def startup_event():
        """Build the engine context and start periodic processing."""
        if app.state.context is None:
            app.state.context = build_context(settings)
        if settings.scheduler_autostart:
            app.state.context.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.context is not None:
            # Waiting for an in-flight task must not block the event loop
            await run_in_threadpool(app.state.context.stop)

    # NOTE: CORS configuration for the ward dashboard frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.post("/risk/score")
    async def score_risk(factors: RiskFactorsIn, ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        """
        Score a risk factor set without touching patient records.
        NOTE: Pure computation for the on-demand assessment form
        """
        result = ctx.score_factors(factors.model_dump())
        return result.to_dict()

    @app.get("/patients/")
    async def list_patients(ctx: SurveillanceContext = Depends(get_context)) -> List[Dict[str, Any]]:
        return [patient.to_dict() for patient in ctx.get_patients()]

    @app.get("/patients/{patient_id}")
    async def get_patient(patient_id: str, ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        patient = ctx.get_patient(patient_id)
        if patient is None:
            raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
        return patient.to_dict()

    @app.post("/patients/{patient_id}/assessment")
    async def assess_patient(
        patient_id: str,
        factors: RiskFactorsIn,
        ctx: SurveillanceContext = Depends(get_context),
    ) -> Dict[str, Any]:
        """
        Score a registered patient and store the result on the patient record.
        NOTE: An omitted age level is pre-filled from the patient record
        """
        result = ctx.assess_patient(patient_id, factors.model_dump(exclude_unset=True))
        if result is None:
            raise HTTPException(status_code=404, detail=f"Patient {patient_id} not found")
        return {
            "patient": ctx.get_patient(patient_id).to_dict(),
            "assessment": result.to_dict(),
        }

    @app.get("/tests/")
    async def list_tests(ctx: SurveillanceContext = Depends(get_context)) -> List[Dict[str, Any]]:
        """CBNAAT tests joined with patient names; unregistered patients show as Unknown."""
        rows = []
        for test in ctx.get_tests():
            row = test.to_dict()
            row["patient_name"] = ctx.registry.patient_name(test.patient_id)
            rows.append(row)
        return rows

    @app.post("/tests/", status_code=201)
    async def start_test(body: StartTestIn, ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        test = ctx.start_test(body.patient_id.strip())
        return test.to_dict()

    @app.get("/tests/summary")
    async def summarize_tests(ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, int]:
        """Counts of CBNAAT tests by state and detected resistance."""
        return ctx.test_summary()

    @app.get("/tests/{test_id}")
    async def get_test(test_id: str, ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        test = ctx.get_test(test_id)
        if test is None:
            raise HTTPException(status_code=404, detail=f"Test {test_id} not found")
        row = test.to_dict()
        row["patient_name"] = ctx.registry.patient_name(test.patient_id)
        return row

    @app.get("/alerts/")
    async def list_alerts(
        active_only: bool = False,
        ctx: SurveillanceContext = Depends(get_context),
    ) -> Dict[str, Any]:
        """Alert history, most recent first, with the active count used for the header badge."""
        alerts = ctx.alerts.active_alerts() if active_only else ctx.get_alerts()
        return {
            "active_count": ctx.alerts.active_count(),
            "critical_outbreak": ctx.alerts.has_critical_outbreak(),
            "alerts": [alert.to_dict() for alert in alerts],
        }

    @app.post("/alerts/{alert_id}/acknowledge")
    async def acknowledge_alert(alert_id: str, ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        if not ctx.acknowledge_alert(alert_id):
            raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
        return ctx.alerts.get_alert(alert_id).to_dict()

    @app.get("/statistics/")
    async def get_statistics(ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        """
        Dashboard metrics for the ward overview.
        NOTE: Computed fresh on request; the scheduler also refreshes the cached snapshot
        """
        try:
            return ctx.refresh_dashboard()
        except Exception as e:
            logger.exception("Statistics refresh failed")
            raise HTTPException(
                status_code=500,
                detail=f"Error getting statistics: {str(e)}"
            )

    @app.post("/scheduler/start")
    async def start_scheduler(ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        ctx.start()
        return {"running": ctx.scheduler.running, "tasks": ctx.scheduler.stats()}

    @app.post("/scheduler/stop")
    async def stop_scheduler(ctx: SurveillanceContext = Depends(get_context)) -> Dict[str, Any]:
        await run_in_threadpool(ctx.stop)
        return {"running": ctx.scheduler.running, "tasks": ctx.scheduler.stats()}

    @app.get("/health/")
    async def health_check() -> Dict[str, Any]:
        """
        Health check endpoint for monitoring the engine and its scheduler.
        NOTE: Degraded when the scheduler is not running
        """
        context = app.state.context
        scheduler_status = "running" if context is not None and context.scheduler.running else "stopped"
        return {
            "status": "healthy" if scheduler_status == "running" else "degraded",
            "scheduler": scheduler_status,
            "service": "mdr_xdr_surveillance",
        }

    @app.get("/")
    async def root() -> Dict[str, str]:
        """Root endpoint with API information."""
        return {
            "message": "MDR/XDR Surveillance API",
            "version": __version__,
            "endpoints": "/docs for API documentation"
        }

    return app


app = create_app()
