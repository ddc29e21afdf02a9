from fastapi import Request, WebSocket

from whiteninja.services.build_services import BuildServices


def get_services(request: Request) -> BuildServices:
    """Services wired by whiteninja.main and kept on app.state"""
    return request.app.state.services


def get_socket_services(websocket: WebSocket) -> BuildServices:
    return websocket.app.state.services
