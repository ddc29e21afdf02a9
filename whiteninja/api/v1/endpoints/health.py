"""
Health Endpoint

Reports uptime, session table, process memory and the configured limits.
"""

from typing import Any, Dict

import psutil
from fastapi import APIRouter, Depends

from whiteninja.api.v1.deps import get_services
from whiteninja.core.config import settings
from whiteninja.modules.orchestrator.event_bus import now_ms
from whiteninja.services.build_services import BuildServices


router = APIRouter(tags=["Health"])


def format_bytes(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 B"
    size = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.1f} {unit}"
        size /= 1024


def format_uptime(seconds: int) -> str:
    """e.g. 93784 -> '1d 2h 3m 4s'; seconds are always shown"""
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return " ".join(parts)


def memory_snapshot() -> Dict[str, str]:
    info = psutil.Process().memory_info()
    system = psutil.virtual_memory()
    return {
        "rss": format_bytes(info.rss),
        "vms": format_bytes(info.vms),
        "systemAvailable": format_bytes(system.available),
        "systemPercent": f"{system.percent:.1f}%",
    }


@router.get("/health")
async def health_check(services: BuildServices = Depends(get_services)) -> Dict[str, Any]:
    uptime = services.uptime_seconds
    registry = services.registry
    return {
        "status": "ok",
        "version": settings.SERVER_VERSION,
        "uptime": {
            "seconds": uptime,
            "human": format_uptime(uptime),
        },
        "apiKeyConfigured": settings.has_valid_api_key,
        "activeSessions": len(registry),
        "maxConcurrentBuilds": registry.max_concurrent,
        "sessions": registry.snapshot(),
        "memory": memory_snapshot(),
        "config": {
            "maxApiCallsPerMinute": services.rate_limiter.max_calls,
            "sessionTimeoutMinutes": registry.idle_timeout / 60,
            "agentCallTimeoutSeconds": services.envelope.timeout_seconds,
            "apiRetryCount": services.envelope.retry_count,
        },
        "timestamp": now_ms(),
    }
