from fastapi import APIRouter

from whiteninja.api.v1.endpoints import build_socket, download, health, suggest

# HTTP routes, mounted under /api
api_router = APIRouter()
api_router.include_router(suggest.router)
api_router.include_router(download.router)
api_router.include_router(health.router)

# The build socket lives at the root: WS /ws
socket_router = APIRouter()
socket_router.include_router(build_socket.router)
