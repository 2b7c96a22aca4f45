from functools import lru_cache
from typing import List, Optional

from json import loads as json_loads, JSONDecodeError

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the CoachForge backend.

    All values come from environment variables or backend/.env.
    This is the single source of truth for:
    - environment (dev/staging/prod)
    - database URL
    - CORS / allowed origins
    - docs toggle
    - session token settings
    - invite token pepper + public base URL for invite links
    """

    # - env_file: backend/.env
    # - extra="ignore": tolerate unrelated env vars shared with the frontend
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # High-level environment flags
    environment: str = Field(
        default="dev",
        description="Deployment environment identifier (dev|staging|prod)",
    )
    debug: bool = Field(default=True)
    version: str = Field(default="dev")

    # Database
    database_url: str = Field(
        default="sqlite:///./coachforge.db",
        description="SQLAlchemy-style DB URL (SQLite for dev, Postgres in prod).",
    )

    # Session tokens
    jwt_secret: str = Field(
        default="supersecret",
        description="JWT signing secret; override in all non-dev environments.",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm. HS256 by default.",
    )
    access_token_expire_minutes: int = Field(
        default=12 * 60,
        description="Session token lifetime in minutes.",
    )

    # Invites
    invite_token_pepper: Optional[str] = Field(
        default=None,
        description=(
            "Server-side secret mixed into invite tokens before hashing. "
            "Never stored next to the invites. Required to issue or accept invites."
        ),
    )
    auth_url: Optional[str] = Field(
        default=None,
        description="Public base URL of the web app, used to build invite links.",
    )
    invite_expire_hours: int = Field(
        default=24,
        description="Invite link lifetime in hours.",
    )
    min_password_length: int = Field(default=8)

    # Rate limits (per client ip)
    login_rate_limit: int = Field(default=5)
    login_rate_window: int = Field(default=60)
    invite_accept_rate_limit: int = Field(default=10)
    invite_accept_rate_window: int = Field(default=60)
    trust_forwarded_for: bool = Field(
        default=False,
        description=(
            "Key rate limits on the first X-Forwarded-For hop. Enable only behind "
            "a proxy that overwrites the header; otherwise clients can rotate it."
        ),
    )

    # CORS / frontends
    allowed_origins: str = Field(
        default="http://localhost:3000,http://127.0.0.1:3000",
        description=(
            "Allowed frontend origins. Can be either a comma-separated string like "
            '"http://localhost:3000,http://127.0.0.1:3000" or a JSON list like '
            '["http://localhost:3000","http://127.0.0.1:3000"].'
        ),
    )

    # API docs toggle
    enable_docs: bool = Field(
        default=False,
        description="If true, exposes /api/v1/docs and /api/v1/redoc.",
    )

    # Performance budgets (warnings only)
    slow_http_ms: float = Field(default=1500.0)
    slow_db_query_ms: float = Field(default=250.0)
    slow_db_total_ms: float = Field(default=800.0)
    log_db_sql: bool = Field(default=False)

    def origins_list(self) -> List[str]:
        """
        ALLOWED_ORIGINS as a list for CORSMiddleware.

        Accepts a JSON array or a comma-separated string; a trailing "/" is
        dropped because browsers send Origin without it.
        """
        raw = (self.allowed_origins or "").strip()
        items: List[str] = []

        if raw.startswith("["):
            try:
                parsed = json_loads(raw)
            except JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                items = [str(o) for o in parsed]

        if not items:
            items = raw.strip("[]").replace('"', "").split(",")

        return [o.strip().rstrip("/") for o in items if o.strip()]

    @property
    def invites_configured(self) -> bool:
        """
        Invites work only when both the pepper and the public base URL are set.
        """
        return bool(self.invite_token_pepper and self.auth_url)

    @property
    def is_prod(self) -> bool:
        return self.environment.lower() in {"prod", "production"}


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance so the app only parses env once.
    """
    return Settings()


settings = get_settings()
