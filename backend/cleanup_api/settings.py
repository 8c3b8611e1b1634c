from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    port: int = Field(default=8080, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # CORS / Frontend
    frontend_base_url: str = Field(
        default="http://localhost:3000", validation_alias="FRONTEND_BASE_URL"
    )
    frontend_urls: str | None = Field(default=None, validation_alias="FRONTEND_URLS")

    # AWS / data
    aws_region: str = Field(default="ap-south-1", validation_alias="AWS_REGION")
    ddb_table_name: str | None = Field(default=None, validation_alias="DDB_TABLE_NAME")
    # Optional override for DynamoDB Local / LocalStack.
    ddb_endpoint_url: str | None = Field(default=None, validation_alias="DDB_ENDPOINT_URL")

    # Auth (Firebase ID tokens)
    firebase_project_id: str | None = Field(
        default=None, validation_alias="FIREBASE_PROJECT_ID"
    )

    # Payments (Razorpay). When disabled, a placeholder order reference is used
    # and the gateway is never called.
    payments_enabled: bool = Field(default=False, validation_alias="PAYMENTS_ENABLED")
    payment_currency: str = Field(default="INR", validation_alias="PAYMENT_CURRENCY")
    razorpay_key_id: str | None = Field(default=None, validation_alias="RAZORPAY_KEY_ID")
    razorpay_key_secret: str | None = Field(
        default=None, validation_alias="RAZORPAY_KEY_SECRET"
    )
    razorpay_api_base: str = Field(
        default="https://api.razorpay.com/v1", validation_alias="RAZORPAY_API_BASE"
    )
    razorpay_timeout_seconds: float = Field(
        default=10.0, validation_alias="RAZORPAY_TIMEOUT_SECONDS"
    )

    # Cleanup campaign pricing curve (whole rupees).
    cleanup_base_price: int = Field(default=649, validation_alias="CLEANUP_BASE_PRICE")
    cleanup_floor_price: int = Field(default=99, validation_alias="CLEANUP_FLOOR_PRICE")
    cleanup_max_participants: int = Field(
        default=20, validation_alias="CLEANUP_MAX_PARTICIPANTS"
    )
    # Attempts for the join/create transaction before a conflict is surfaced.
    cleanup_transaction_max_attempts: int = Field(
        default=3, validation_alias="CLEANUP_TRANSACTION_MAX_ATTEMPTS"
    )

    # Observability (OpenTelemetry)
    otel_enabled: bool = Field(default=False, validation_alias="OTEL_ENABLED")
    otel_service_name: str | None = Field(
        default="cleanup-api", validation_alias="OTEL_SERVICE_NAME"
    )
    # OTLP/HTTP endpoint (e.g. http://adot-collector:4318/v1/traces)
    otel_exporter_otlp_endpoint: str | None = Field(
        default=None, validation_alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        return v or "development"

    @property
    def is_production(self) -> bool:
        return self.normalized_environment == "production"

    @property
    def is_development(self) -> bool:
        return self.normalized_environment == "development"

    def require_in_production(self) -> None:
        """
        Enforce required settings in production.

        Development/staging are allowed to run with partial config for local work,
        but production must be fully configured.
        """
        if not self.is_production:
            return

        missing: list[str] = []

        if not self.ddb_table_name:
            missing.append("DDB_TABLE_NAME")
        if not self.firebase_project_id:
            missing.append("FIREBASE_PROJECT_ID")

        # Payments (optional) - but if enabled, require gateway credentials.
        if bool(self.payments_enabled):
            if not self.razorpay_key_id:
                missing.append("RAZORPAY_KEY_ID")
            if not self.razorpay_key_secret:
                missing.append("RAZORPAY_KEY_SECRET")

        if missing:
            raise RuntimeError(
                "Missing required production environment variables: "
                + ", ".join(missing)
            )

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A redacted representation safe for structured logs / diagnostics.
        """
        def _has(v: object) -> bool:
            return v is not None and str(v).strip() != ""

        return {
            "environment": self.normalized_environment,
            "port": self.port,
            "log_level": self.log_level,
            "frontend": {
                "frontend_base_url": self.frontend_base_url,
                "frontend_urls": self.frontend_urls,
            },
            "aws": {
                "aws_region": self.aws_region,
                "ddb_table_name": self.ddb_table_name,
                "ddb_endpoint_url": self.ddb_endpoint_url,
            },
            "auth": {
                "firebase_project_id": self.firebase_project_id,
            },
            "payments": {
                "payments_enabled": bool(self.payments_enabled),
                "payment_currency": self.payment_currency,
                "razorpay_api_base": self.razorpay_api_base,
                "razorpay_key_id_configured": _has(self.razorpay_key_id),
                "razorpay_key_secret_configured": _has(self.razorpay_key_secret),
            },
            "cleanup": {
                "base_price": self.cleanup_base_price,
                "floor_price": self.cleanup_floor_price,
                "max_participants": self.cleanup_max_participants,
                "transaction_max_attempts": self.cleanup_transaction_max_attempts,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    s = Settings()
    s.require_in_production()
    return s


# Backwards-compatible module-level singleton.
settings = get_settings()
