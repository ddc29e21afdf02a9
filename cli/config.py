"""
CLI Configuration Management
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any


@dataclass
class CLIConfig:
    """Configuration for the White Ninja observer client"""

    # Server
    server_url: str = "ws://localhost:3001/ws"
    http_base_url: Optional[str] = None  # derived from server_url when None
    request_timeout: float = 60.0

    # Reconnection
    max_reconnect_attempts: int = 10
    reconnect_base_delay: float = 2.0
    reconnect_max_delay: float = 16.0

    # Latency ping
    ping_interval: float = 15.0

    # Output
    output_dir: str = "white-ninja-build"
    show_thinking: bool = True
    verbose: bool = False

    @property
    def api_base_url(self) -> str:
        """HTTP base for the REST endpoints, e.g. http://localhost:3001/api"""
        if self.http_base_url:
            return self.http_base_url.rstrip("/")
        base = self.server_url
        if base.startswith("wss://"):
            base = "https://" + base[len("wss://"):]
        elif base.startswith("ws://"):
            base = "http://" + base[len("ws://"):]
        if base.endswith("/ws"):
            base = base[:-len("/ws")]
        return base.rstrip("/") + "/api"

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file"""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
                for key, value in data.items():
                    if hasattr(self, key):
                        setattr(self, key, value)

    @classmethod
    def load_default(cls) -> "CLIConfig":
        """Defaults, then ~/.whiteninja/config.json, then WHITENINJA_* variables"""
        config = cls()
        default_config_path = Path.home() / ".whiteninja" / "config.json"
        if default_config_path.exists():
            config.load_from_file(str(default_config_path))

        config._load_from_env()
        return config

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            "WHITENINJA_SERVER_URL": "server_url",
            "WHITENINJA_HTTP_URL": "http_base_url",
            "WHITENINJA_OUTPUT_DIR": "output_dir",
            "WHITENINJA_MAX_RECONNECT_ATTEMPTS": ("max_reconnect_attempts", int),
            "WHITENINJA_RECONNECT_BASE_DELAY": ("reconnect_base_delay", float),
            "WHITENINJA_RECONNECT_MAX_DELAY": ("reconnect_max_delay", float),
            "WHITENINJA_PING_INTERVAL": ("ping_interval", float),
            "WHITENINJA_VERBOSE": ("verbose", lambda x: x.lower() == "true"),
        }

        for env_var, mapping in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(mapping, tuple):
                    attr, converter = mapping
                    setattr(self, attr, converter(value))
                else:
                    setattr(self, mapping, value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary"""
        return asdict(self)
