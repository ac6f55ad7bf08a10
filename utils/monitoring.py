# utils/monitoring.py
import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict

import psutil

from config import settings
from database import DatabasePool
from utils.logging import logger

class HealthMonitor:
    """Keeps the outcome of every scheduled job run for the /health endpoint"""

    def __init__(self):
        self.started_at = datetime.now(timezone.utc)
        self.jobs: Dict[str, Dict[str, Any]] = {}

    def _job(self, name: str) -> Dict[str, Any]:
        return self.jobs.setdefault(name, {
            "runs": 0,
            "failures": 0,
            "last_run": None,
            "last_result": None,
            "last_error": None,
        })

    def record_success(self, name: str, result: Any = None):
        job = self._job(name)
        job["runs"] += 1
        job["last_run"] = datetime.now(timezone.utc).isoformat()
        job["last_result"] = result if isinstance(result, (int, float, dict)) else None
        job["last_error"] = None

    def record_failure(self, name: str, error: Exception):
        job = self._job(name)
        job["runs"] += 1
        job["failures"] += 1
        job["last_run"] = datetime.now(timezone.utc).isoformat()
        job["last_error"] = str(error)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "jobs": {name: dict(job) for name, job in self.jobs.items()},
        }

async def monitor_system_health():
    """Log system resource usage and database pool pressure"""
    unhealthy_count = 0
    while True:
        try:
            memory = psutil.virtual_memory()
            metrics = {
                "cpu_percent": psutil.cpu_percent(interval=None),
                "memory_percent": memory.percent,
                "disk_percent": psutil.disk_usage('/').percent,
            }
            pool_stats = await DatabasePool.get_pool_stats()
            pool_size = pool_stats.get("pool_size", 0)
            max_size = pool_stats.get("pool_max_size", settings.POOL_MAX_SIZE)
            metrics["pool_usage"] = f"{pool_size}/{max_size}"

            reasons = []
            if metrics["cpu_percent"] > 85:
                reasons.append(f"CPU usage critical: {metrics['cpu_percent']}%")
            if metrics["memory_percent"] > 90:
                reasons.append(f"Memory usage critical: {metrics['memory_percent']}%")
            if metrics["disk_percent"] > 95:
                reasons.append(f"Disk usage critical: {metrics['disk_percent']}%")
            if pool_size >= max_size and pool_stats.get("pool_available", 0) == 0:
                reasons.append(f"Connection pool exhausted: {pool_size}/{max_size}")

            if reasons:
                unhealthy_count += 1
                logger.warning(f"System resources critical: {metrics} Reasons: {', '.join(reasons)}")
                if unhealthy_count >= settings.MAX_UNHEALTHY_COUNT:
                    logger.critical(f"System consistently unhealthy! Metrics: {metrics}")
                    unhealthy_count = 0
            else:
                unhealthy_count = 0
                if time.time() % 300 < settings.HEALTH_CHECK_INTERVAL:
                    logger.info(f"System healthy - Metrics: {metrics}")

            await asyncio.sleep(settings.HEALTH_CHECK_INTERVAL)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error in health monitoring: {str(e)}")
            await asyncio.sleep(60)
