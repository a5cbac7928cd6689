# saferoute/main.py
import os, asyncio, signal
from typing import List
import uvicorn
from pydantic import TypeAdapter
from saferoute.settings import Settings
from saferoute.core.models import RoadSegment, WatchPoint
from saferoute.adapters.storage import InMemoryHazardStore, SQLiteHazardStore
from saferoute.adapters.membership import InMemoryMembershipStore
from saferoute.adapters.weather import OpenWeatherFetcher
from saferoute.adapters.traffic import DirectionsTrafficFetcher
from saferoute.engine import AlertEngine, AlertFanout, GeoIndex, PresenceRegistry, SubscriptionRouter
from saferoute.gateway import ConnectionGateway, TokenVerifier
from saferoute.ingestion import HazardIngestor
from saferoute.observability.health import create_app
from saferoute.observability.logging_setup import setup_logger, get_logger

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def build_settings() -> Settings:
    s = Settings()

    # 인증
    s.auth.jwt_secret = os.getenv("JWT_SECRET", s.auth.jwt_secret)
    s.auth.jwt_algorithm = os.getenv("JWT_ALGORITHM", s.auth.jwt_algorithm)
    s.auth.admin_token = os.getenv("ADMIN_TOKEN", s.auth.admin_token)

    # 엔진
    s.engine.default_region = os.getenv("DEFAULT_REGION", s.engine.default_region)
    s.engine.region_center_lat = float(os.getenv("REGION_CENTER_LAT", s.engine.region_center_lat))
    s.engine.region_center_lng = float(os.getenv("REGION_CENTER_LNG", s.engine.region_center_lng))
    s.engine.grid_cell_deg = float(os.getenv("GRID_CELL_DEG", s.engine.grid_cell_deg))
    s.engine.presence_ttl_sec = int(os.getenv("PRESENCE_TTL_SEC", s.engine.presence_ttl_sec))
    s.engine.sweep_interval_sec = int(os.getenv("SWEEP_INTERVAL_SEC", s.engine.sweep_interval_sec))

    # 연결
    s.connection.rain_check_enabled = _b("RAIN_CHECK_ENABLED", s.connection.rain_check_enabled)
    s.connection.rain_check_interval_sec = int(os.getenv("RAIN_CHECK_INTERVAL_SEC", s.connection.rain_check_interval_sec))
    s.connection.outbound_queue_maxsize = int(os.getenv("OUTBOUND_QUEUE_MAXSIZE", s.connection.outbound_queue_maxsize))

    # 날씨
    s.weather.enabled = _b("WEATHER_POLL_ENABLED", s.weather.enabled)
    s.weather.api_key = os.getenv("OPENWEATHER_API_KEY", s.weather.api_key)
    s.weather.base_url = os.getenv("OPENWEATHER_BASE_URL", s.weather.base_url)
    s.weather.poll_interval_sec = int(os.getenv("WEATHER_POLL_INTERVAL_SEC", s.weather.poll_interval_sec))
    if os.getenv("WEATHER_WATCH_POINTS"):
        s.weather.watch_points = TypeAdapter(List[WatchPoint]).validate_json(os.environ["WEATHER_WATCH_POINTS"])

    # 교통
    s.traffic.enabled = _b("TRAFFIC_POLL_ENABLED", s.traffic.enabled)
    s.traffic.api_key = os.getenv("GOOGLE_MAPS_API_KEY", s.traffic.api_key)
    s.traffic.poll_interval_sec = int(os.getenv("TRAFFIC_POLL_INTERVAL_SEC", s.traffic.poll_interval_sec))
    if os.getenv("TRAFFIC_SEGMENTS"):
        s.traffic.segments = TypeAdapter(List[RoadSegment]).validate_json(os.environ["TRAFFIC_SEGMENTS"])

    # 저장소
    s.storage.backend = os.getenv("STORAGE_BACKEND", s.storage.backend)
    s.storage.hazard_db_path = os.getenv("HAZARD_DB_PATH", s.storage.hazard_db_path)

    # 신뢰성
    s.reliability.store_max_retries = int(os.getenv("STORE_MAX_RETRIES", s.reliability.store_max_retries))

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("HTTP_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)

    return s

class Runtime:
    """조립된 서비스 구성요소"""

    def __init__(self, settings: Settings):
        s = settings
        self.settings = s
        if s.storage.backend == "memory":
            self.store = InMemoryHazardStore()
        else:
            self.store = SQLiteHazardStore(s.storage.hazard_db_path)

        self.weather = OpenWeatherFetcher(
            s.weather.api_key, s.weather.base_url,
            timeout=s.weather.timeout_sec, max_retries=s.reliability.fetch_max_retries,
        ) if s.weather.api_key else None
        self.traffic = DirectionsTrafficFetcher(
            s.traffic.api_key, s.traffic.base_url,
            timeout=s.traffic.timeout_sec, max_retries=s.reliability.fetch_max_retries,
        ) if s.traffic.api_key else None

        self.presence = PresenceRegistry()
        self.index = GeoIndex(cell_deg=s.engine.grid_cell_deg)
        self.engine = AlertEngine(
            self.store, self.index, self.presence,
            store_retries=s.reliability.store_max_retries,
            store_backoff_sec=s.reliability.store_backoff_sec,
            store_backoff_max_sec=s.reliability.store_backoff_max_sec,
        )
        self.rides = InMemoryMembershipStore("ride")
        self.trips = InMemoryMembershipStore("trip")
        self.router = SubscriptionRouter()
        self.fanout = AlertFanout(self.router, self.presence, [self.rides, self.trips])
        self.gateway = ConnectionGateway(
            self.engine, self.router, self.fanout,
            TokenVerifier(s.auth.jwt_secret, s.auth.jwt_algorithm, s.auth.admin_token),
            weather=self.weather,
            engine_config=s.engine,
            connection_config=s.connection,
        )
        self.ingestor = HazardIngestor(
            self.engine, self.fanout,
            weather=self.weather,
            traffic=self.traffic,
            weather_config=s.weather,
            traffic_config=s.traffic,
            engine_config=s.engine,
        )

    async def init(self) -> None:
        """저장소를 초기화하고 활성 경보를 인덱스에 적재합니다."""
        if isinstance(self.store, SQLiteHazardStore):
            await self.store.init()
        await self.engine.warm_up()

    async def close(self) -> None:
        await self.gateway.close_all()
        if self.weather is not None:
            await self.weather.close()
        if self.traffic is not None:
            await self.traffic.close()

def build_runtime(settings: Settings) -> Runtime:
    return Runtime(settings)

async def start_http(runtime: Runtime) -> asyncio.Task:
    s = runtime.settings
    app = create_app(s, runtime.gateway)
    return asyncio.create_task(uvicorn.Server(
        uvicorn.Config(app, host=s.observability.http_host, port=s.observability.http_port, log_level="info")
    ).serve())

async def main():
    # 로거 초기화 (환경변수 LOG_LEVEL 우선)
    setup_logger(os.getenv("LOG_LEVEL", "INFO"))
    log = get_logger()

    s = build_settings()
    log.info("설정 로드 완료")
    if not s.auth.jwt_secret:
        log.warning("JWT_SECRET이 설정되지 않아 모든 연결이 거부됩니다")
    if not s.weather.api_key:
        log.warning("OpenWeather API 키가 없어 날씨 폴링과 비 확인이 비활성화됩니다")
    if not s.traffic.api_key:
        log.warning("교통 API 키가 없어 교통 폴링이 비활성화됩니다")

    runtime = build_runtime(s)
    await runtime.init()
    log.info("런타임 구성 완료")

    http_task = await start_http(runtime)
    ingest_task = asyncio.create_task(runtime.ingestor.start())
    log.info("HTTP 서버 및 수집기 시작됨", port=s.observability.http_port)

    stop = asyncio.Future()
    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
            except NotImplementedError: pass
    except RuntimeError: pass

    await stop
    log.info("종료 중")
    ingest_task.cancel()
    await runtime.close()
    http_task.cancel()

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
