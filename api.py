"""
FastAPI web application for the search visibility orchestrator
"""
from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, validator
from typing import List, Dict, Any, Optional
import logging
from datetime import datetime

from app import VisibilityApp
from config import VisibilityConfig
from utils import validate_url

logger = logging.getLogger(__name__)


# Pydantic models for API requests
class PageOptimizationRequest(BaseModel):
    url: str
    page_type: str = "default"
    location: Optional[str] = None

    @validator('url')
    def url_must_be_path(cls, v):
        if not v.startswith('/'):
            raise ValueError('url must be a site path starting with /')
        return v


class PageSpec(BaseModel):
    url: str
    type: str = "default"
    location: Optional[str] = None


class OrchestrationRequest(BaseModel):
    pages: Optional[List[PageSpec]] = None
    deadline: Optional[float] = None


class SubmissionRequest(BaseModel):
    urls: List[str]
    deadline: Optional[float] = None

    @validator('urls')
    def urls_must_be_valid(cls, v):
        if not v:
            raise ValueError('URLs list cannot be empty')
        invalid = [url for url in v if not validate_url(url)]
        if invalid:
            raise ValueError(f'Malformed URLs: {", ".join(invalid[:5])}')
        return v


class HealthCheckRequest(BaseModel):
    base_url: Optional[str] = None


# Response models
class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    timestamp: datetime


class ServiceHealthResponse(BaseModel):
    status: str
    timestamp: datetime
    last_health_score: Optional[int] = None
    active_alerts: int
    scheduler_running: bool


app = FastAPI(
    title="Search Visibility API",
    description="Page scoring, IndexNow submission and site health monitoring",
    version="2.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

visibility_app = None


@app.on_event("startup")
async def startup_event():
    global visibility_app
    try:
        visibility_app = VisibilityApp(VisibilityConfig.from_env())
        logger.info("Search Visibility API started successfully")
    except Exception as e:
        logger.error(f"Failed to initialize visibility app: {e}")
        raise


@app.on_event("shutdown")
async def shutdown_event():
    global visibility_app
    if visibility_app:
        visibility_app.shutdown()
        logger.info("Search Visibility API shut down successfully")


def get_visibility_app():
    """Dependency to get the application instance"""
    if visibility_app is None:
        raise HTTPException(status_code=500, detail="Visibility app not initialized")
    return visibility_app


@app.get("/", response_model=Dict[str, str])
async def root():
    return {
        "message": "Search Visibility API",
        "version": "2.0.0",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health", response_model=ServiceHealthResponse)
async def service_health(app: VisibilityApp = Depends(get_visibility_app)):
    """Service liveness plus the latest site health score"""
    try:
        status = app.get_system_status()
        return ServiceHealthResponse(
            status="healthy",
            timestamp=datetime.now(),
            last_health_score=status["last_health_score"],
            active_alerts=status["active_alerts"],
            scheduler_running=status["scheduler"]["running"],
        )
    except Exception as e:
        logger.error(f"Service health failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/pages/optimize", response_model=APIResponse)
async def optimize_page(
    request: PageOptimizationRequest,
    app: VisibilityApp = Depends(get_visibility_app)
):
    result = await app.optimize_page(request.url, request.page_type, request.location)
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error", "Optimization failed"))
    return APIResponse(
        success=True,
        message=f"Page {request.url} scored {result['data']['score']}/100",
        data=result["data"],
        timestamp=datetime.now()
    )


@app.post("/orchestrate", response_model=APIResponse)
async def orchestrate(
    request: OrchestrationRequest,
    app: VisibilityApp = Depends(get_visibility_app)
):
    pages = [page.dict() for page in request.pages] if request.pages else None
    result = await app.orchestrate(pages, deadline=request.deadline)
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error", "Orchestration failed"))
    return APIResponse(
        success=True,
        message=f"Orchestrated {result['data']['total_pages']} pages",
        data=result["data"],
        timestamp=datetime.now()
    )


@app.post("/submit", response_model=APIResponse)
async def submit_urls(
    request: SubmissionRequest,
    app: VisibilityApp = Depends(get_visibility_app)
):
    logger.info(f"Submitting {len(request.urls)} URLs")
    result = await app.submit_urls(request.urls, deadline=request.deadline)
    if "data" not in result:
        raise HTTPException(status_code=400, detail=result.get("error", "Submission rejected"))
    report = result["data"]
    return APIResponse(
        success=result["success"],
        message=f"{report['successful_submissions']}/{report['total_submissions']} batches accepted",
        data={"report": report, "results": result["results"]},
        timestamp=datetime.now()
    )


@app.post("/health-check", response_model=APIResponse)
async def health_check(
    request: HealthCheckRequest,
    app: VisibilityApp = Depends(get_visibility_app)
):
    result = await app.health_check(request.base_url)
    if not result.get("success"):
        raise HTTPException(status_code=500, detail=result.get("error", "Health check failed"))
    report = result["data"]
    return APIResponse(
        success=True,
        message=f"Health score {report['overall_score']}/100 ({report['status']})",
        data={"report": report, "trend": result["trend"]},
        timestamp=datetime.now()
    )


@app.get("/alerts", response_model=APIResponse)
async def get_alerts(
    active_only: bool = Query(True, description="Get only unresolved alerts"),
    app: VisibilityApp = Depends(get_visibility_app)
):
    if active_only:
        alerts = app.alert_manager.get_active_alerts()
    else:
        alerts = app.alert_manager.get_all_alerts()

    alert_data = [alert.to_dict() for alert in alerts]
    return APIResponse(
        success=True,
        message=f"Retrieved {len(alert_data)} alerts",
        data={"alerts": alert_data, "total": len(alert_data)},
        timestamp=datetime.now()
    )


@app.post("/alerts/{alert_id}/resolve", response_model=APIResponse)
async def resolve_alert(alert_id: str, app: VisibilityApp = Depends(get_visibility_app)):
    if not app.alert_manager.resolve_alert(alert_id):
        raise HTTPException(status_code=404, detail=f"No open alert {alert_id}")
    return APIResponse(
        success=True,
        message=f"Alert {alert_id} resolved",
        data={"alert_id": alert_id},
        timestamp=datetime.now()
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
