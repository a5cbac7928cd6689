# saferoute/settings.py
from __future__ import annotations
from typing import List
from pydantic import BaseModel, Field
from saferoute.core.models import RoadSegment, WatchPoint

class AuthConfig(BaseModel):
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    admin_token: str = ""

class EngineConfig(BaseModel):
    default_region: str = "Lagos Mainland"
    region_center_lat: float = 6.5244
    region_center_lng: float = 3.3792
    grid_cell_deg: float = 0.01
    presence_ttl_sec: int = 1800
    sweep_interval_sec: int = 600
    hotspot_radius_m: float = 5000.0
    hotspot_limit: int = 10
    broadcast_radius_m: float = 5000.0

class ConnectionConfig(BaseModel):
    rain_check_enabled: bool = True
    rain_check_interval_sec: int = 300
    rain_threshold_mm: float = 1.0         # 초과 시 경보 생성
    rain_high_mm: float = 5.0              # 초과 시 high
    rain_forecast_slots: int = 1
    inbound_queue_maxsize: int = 100
    outbound_queue_maxsize: int = 256

class WeatherConfig(BaseModel):
    enabled: bool = True
    api_key: str = ""
    base_url: str = "https://api.openweathermap.org/data/2.5"
    timeout_sec: int = 10
    poll_interval_sec: int = 1800
    forecast_slots: int = 4
    alert_threshold_mm: float = 3.0
    high_threshold_mm: float = 10.0
    watch_points: List[WatchPoint] = Field(default_factory=lambda: [
        WatchPoint(region="Lagos Mainland", latitude=6.5244, longitude=3.3792),
    ])

class TrafficConfig(BaseModel):
    enabled: bool = True
    api_key: str = ""
    base_url: str = "https://maps.googleapis.com/maps/api/directions/json"
    timeout_sec: int = 10
    poll_interval_sec: int = 900
    segments: List[RoadSegment] = Field(default_factory=list)

class StorageConfig(BaseModel):
    backend: str = "sqlite"                # sqlite | memory
    hazard_db_path: str = "/data/hazards.db"

class Reliability(BaseModel):
    store_max_retries: int = 3
    store_backoff_sec: float = 0.2
    store_backoff_max_sec: float = 5.0
    fetch_max_retries: int = 2

class Observability(BaseModel):
    http_host: str = "0.0.0.0"
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "SafeRoute"
    build_version: str = "0.1.0"
    build_date: str = "2025-01-01"
    log_level: str = "INFO"

class Settings(BaseModel):
    # 하위 섹션 (기본값/팩토리로 누락 방지)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    weather: WeatherConfig = Field(default_factory=WeatherConfig)
    traffic: TrafficConfig = Field(default_factory=TrafficConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    reliability: Reliability = Field(default_factory=Reliability)
    observability: Observability = Field(default_factory=Observability)
