"""
HTTP endpoints for SafeRoute observability.

This module implements health, readiness, metrics, and info endpoints
and mounts the connection gateway's WebSocket route.
"""

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import time
from typing import Optional
from saferoute.settings import Settings
from saferoute.gateway.gateway import ConnectionGateway
from saferoute.gateway.ws import create_ws_router
from saferoute.observability import metrics as service_metrics
from saferoute.observability.logging_setup import get_logger

log = get_logger("saferoute.http")

def create_app(settings: Settings, gateway: Optional[ConnectionGateway] = None) -> FastAPI:
    """FastAPI 애플리케이션을 생성합니다. gateway가 있으면 /ws 라우트를 등록합니다."""
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="SafeRoute Proximity Alert Service"
    )

    start_time = time.time()

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크 엔드포인트 (게이트웨이가 연결되어 있어야 ready)"""
        if gateway is None:
            return JSONResponse({
                "status": "not_ready",
                "service": settings.observability.service_name,
                "timestamp": time.time()
            }, status_code=503)

        return JSONResponse({
            "status": "ready",
            "service": settings.observability.service_name,
            "connections": gateway.connection_count(),
            "presence": len(gateway.presence),
            "alerts": len(gateway.engine.index),
            "timestamp": time.time()
        })

    @app.get("/metrics")
    async def metrics():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")

        try:
            service_metrics.uptime_seconds.set(time.time() - start_time)
            return Response(
                generate_latest(),
                media_type=CONTENT_TYPE_LATEST
            )
        except Exception as e:
            log.error(f"메트릭 생성 오류: {e}")
            raise HTTPException(status_code=500, detail="Metrics generation failed")

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        uptime = time.time() - start_time
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "build_date": settings.observability.build_date,
            "uptime_seconds": int(uptime),
            "metrics_enabled": settings.observability.metrics_enabled,
            "log_level": settings.observability.log_level,
            "default_region": settings.engine.default_region
        })

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "metrics": "/metrics",
                "info": "/info",
                "ws": "/ws"
            }
        })

    if gateway is not None:
        app.include_router(create_ws_router(gateway))

    return app
