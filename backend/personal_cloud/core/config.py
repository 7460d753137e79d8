import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


GIB = 1024 * 1024 * 1024

DEFAULT_FORBIDDEN_EXTENSIONS = (
    ".cs,.cshtml,.exe,.js,.dll,.bat,.cmd,.com,.msi,.ps1,.sh,.php,.asp,.aspx,.jsp,.vbs,.scr"
)


class Settings(BaseSettings):
    """
    Application settings with Pydantic validation.
    Loads from environment variables with type checking and validation.
    """
    app_name: str = Field(default="Personal Cloud")
    environment: str = Field(default="development")
    debug: bool = Field(default=True)

    backend_cors_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000")

    database_url: str = Field(default="sqlite:///./personal_cloud.db")

    # Blob storage
    storage_root: str = Field(default="UserDocs")
    namespace_blobs_by_owner: bool = Field(default=True)
    upload_max_bytes: int = Field(default=5 * GIB, gt=0)
    forbidden_extensions: str = Field(default=DEFAULT_FORBIDDEN_EXTENSIONS)

    # Quotas (bytes) and premium capacity planning (GB per premium account)
    quota_standard_bytes: int = Field(default=10 * GIB, gt=0)
    quota_premium_bytes: int = Field(default=50 * GIB, gt=0)
    premium_gb_per_user: float = Field(default=50.0, gt=0)

    # Strict mode: serialize check-then-act sequences inside this process
    serialize_uploads: bool = Field(default=False)
    serialize_admission: bool = Field(default=False)

    # Identity collaborator (JWT issued elsewhere, verified here)
    jwt_secret_key: str = Field(default="dev-secret-key-change-in-production-d8f7g6h5j4k3l2m1n0", min_length=32)
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)
    cookie_access_name: str = Field(default="access_token")

    # Observability
    sentry_dsn: Optional[str] = Field(default=None)
    sentry_env: str = Field(default="development")
    metrics_token: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(
        # Load env file based on ENVIRONMENT; default to development
        env_file=".env.production" if os.getenv("ENVIRONMENT") == "production" else ".env.development",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret(cls, v: str, info: ValidationInfo) -> str:
        """Ensure JWT secret is strong in production"""
        if info.data.get("environment") == "production":
            if len(v) < 32 or "dev-secret" in v or "change" in v.lower():
                raise ValueError(
                    "JWT_SECRET_KEY must be a strong, unique secret (min 32 chars) in production. "
                    "Generate with: python3 -c \"import secrets; print(secrets.token_urlsafe(64))\""
                )
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str, info: ValidationInfo) -> str:
        """Validate database URL; disallow SQLite in production."""
        if info.data.get("environment") == "production" and v.startswith("sqlite"):
            raise ValueError("SQLite is not allowed for DATABASE_URL in production. Use PostgreSQL.")
        return v

    @field_validator("debug")
    @classmethod
    def validate_debug(cls, v: bool, info: ValidationInfo) -> bool:
        """Never allow DEBUG=true in production."""
        if info.data.get("environment") == "production" and v:
            raise ValueError("DEBUG must be false in production.")
        return v

    @field_validator("quota_premium_bytes")
    @classmethod
    def validate_premium_quota(cls, v: int, info: ValidationInfo) -> int:
        standard = info.data.get("quota_standard_bytes")
        if standard is not None and v < standard:
            raise ValueError("QUOTA_PREMIUM_BYTES must not be smaller than QUOTA_STANDARD_BYTES.")
        return v

    def forbidden_extension_set(self) -> frozenset:
        out: List[str] = []
        for part in (self.forbidden_extensions or "").split(","):
            ext = part.strip().lower()
            if not ext:
                continue
            out.append(ext if ext.startswith(".") else f".{ext}")
        return frozenset(out)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Validates all environment variables on first access.
    Raises ValidationError if configuration is invalid.
    """
    return Settings()
