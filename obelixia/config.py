"""Configuration settings for the ObelixIA backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    # New key system (preferred)
    supabase_secret_key: str | None = None  # Backend/admin access
    supabase_publishable_key: str | None = None  # Client/public access
    # Legacy key (deprecated)
    supabase_service_role_key: str | None = None

    # JWT - tokens are issued by Supabase Auth, we only verify them
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = "authenticated"

    # Edge function endpoints, one per feature area
    security_audit_function: str = "security-audit"
    compliance_monitor_function: str = "compliance-monitor"
    threat_detection_function: str = "threat-detection"
    access_control_function: str = "access-control"
    revenue_engine_function: str = "revenue-engine"
    automation_function: str = "automation-orchestrator"
    messaging_function: str = "whatsapp-business-api"

    # Auto-refresh intervals for admin panels (seconds)
    threat_refresh_seconds: float = 30.0
    security_refresh_seconds: float = 60.0
    revenue_refresh_seconds: float = 90.0

    # Visit sheet autosave debounce (seconds)
    autosave_delay_seconds: float = 1.0

    # App
    debug: bool = False
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "https://obelixia.com",
        "https://www.obelixia.com",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
