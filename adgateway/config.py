"""
Facebook Ads Gateway - Configuration
Settings are read from the environment once at startup.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_DEPLOYED_URL = "https://facebook-ads-mcp-btfuv.ondigitalocean.app"
PROTOCOL_VERSION = "2025-06-18"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class Settings:
    """Process-wide gateway settings"""
    server_name: str = "facebook-ads-universal"
    server_version: str = "2.0.0"
    host: str = "0.0.0.0"
    port: int = 3003
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    enable_metrics: bool = True

    # Credential resolution
    override_token: Optional[str] = None
    deployed_url: str = DEFAULT_DEPLOYED_URL
    prompt_timeout: float = 60.0
    service_timeout: float = 15.0
    token_cache_ttl: float = 3600.0

    # Session registry eviction
    session_ttl: float = 86400.0
    session_max_entries: int = 10000

    # Tool execution
    tool_timeout: float = 60.0
    catalog_path: Optional[str] = None
    graph_api_version: str = "v23.0"

    # OAuth login
    facebook_app_id: Optional[str] = None
    facebook_app_secret: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            server_name=os.getenv("MCP_SERVER_NAME", "facebook-ads-universal"),
            server_version=os.getenv("MCP_SERVER_VERSION", "2.0.0"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3003")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            cors_origins=os.getenv("CORS_ORIGINS", "*").split(","),
            enable_metrics=_env_bool("ENABLE_METRICS", "true"),
            override_token=os.getenv("FACEBOOK_ACCESS_TOKEN") or None,
            deployed_url=os.getenv("DEPLOYED_URL", DEFAULT_DEPLOYED_URL).rstrip("/"),
            prompt_timeout=float(os.getenv("PROMPT_TIMEOUT_SECONDS", "60")),
            service_timeout=float(os.getenv("CREDENTIAL_SERVICE_TIMEOUT_SECONDS", "15")),
            token_cache_ttl=float(os.getenv("TOKEN_CACHE_TTL_SECONDS", "3600")),
            session_ttl=float(os.getenv("SESSION_TTL_SECONDS", "86400")),
            session_max_entries=int(os.getenv("SESSION_MAX_ENTRIES", "10000")),
            tool_timeout=float(os.getenv("TOOL_TIMEOUT_SECONDS", "60")),
            catalog_path=os.getenv("TOOL_CATALOG") or None,
            graph_api_version=os.getenv("GRAPH_API_VERSION", "v23.0"),
            facebook_app_id=os.getenv("FACEBOOK_APP_ID"),
            facebook_app_secret=os.getenv("FACEBOOK_APP_SECRET"),
        )

    @property
    def oauth_redirect_uri(self) -> str:
        return f"{self.deployed_url}/auth/callback"
