# api.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from fastapi_limiter import FastAPILimiter
import asyncio
import uvicorn

from config import settings
from database import DatabasePool
from middleware import setup_middleware
from routes import general, socket
from routes.benchmark import routes as benchmark
from routes.mining import routes as mining
from routes.users import routes as users
from routes.wallet import routes as wallet
from services.distribution import start_reward_distribution
from services.ledger import LedgerStore
from services.withdrawal import WithdrawalService
from utils.blockchain import create_transfer_executor
from utils.cache import setup_cache
from utils.logging import logger, start_telegram_handler, stop_telegram_handler
from utils.monitoring import HealthMonitor, monitor_system_health

STARTUP_ATTEMPTS = 3

async def startup(app: FastAPI):
    """Connect the store and shared services; returns the Redis client"""
    await DatabasePool.get_pool()
    await DatabasePool.migrate()

    store = LedgerStore()
    app.state.store = store
    app.state.withdrawals = WithdrawalService(store, create_transfer_executor(settings), settings)
    app.state.monitor = HealthMonitor()

    redis = await setup_cache(settings.REDIS_URL)
    await FastAPILimiter.init(redis)
    return redis

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the FastAPI application"""
    start_telegram_handler()

    for attempt in range(1, STARTUP_ATTEMPTS + 1):
        try:
            redis = await startup(app)
            break
        except Exception as e:
            logger.error(f"Startup attempt {attempt} failed: {str(e)}")
            if attempt == STARTUP_ATTEMPTS:
                raise
            await asyncio.sleep(5)

    tasks = start_reward_distribution(
        app.state.store, app.state.withdrawals, settings, app.state.monitor
    )
    tasks.append(asyncio.create_task(monitor_system_health(), name="monitor_system_health"))
    logger.info("Application startup completed successfully")

    yield

    logger.info("Starting application shutdown")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await redis.close()
    await DatabasePool.close()
    await stop_telegram_handler()
    logger.info("Application shutdown completed")

def create_application() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="BMT Rewards API",
        description="Mining and benchmark telemetry, token rewards and virtual wallet",
        version=general.API_VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings

    origins = [
        "http://localhost:5173",    # Vite development server
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]
    if settings.DEBUG:
        origins.append("*")
    elif settings.ALLOWED_ORIGINS:
        origins.extend(settings.ALLOWED_ORIGINS.split(','))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        max_age=86400,
    )

    app.include_router(general.router)
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(mining.router, prefix="/api/mining", tags=["mining"])
    app.include_router(benchmark.router, prefix="/api/benchmark", tags=["benchmark"])
    app.include_router(wallet.router, prefix="/api/wallet", tags=["wallet"])
    app.include_router(socket.router)

    setup_middleware(app)

    return app

app = create_application()

if __name__ == "__main__":
    uvicorn.run(
        "api:app",
        host="0.0.0.0",
        port=3001,
        loop="uvloop",
        limit_concurrency=100,
        timeout_keep_alive=30,
        access_log=True
    )
