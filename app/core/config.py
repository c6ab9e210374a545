from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    # Environment configuration
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Supabase configuration (identity provider)
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")

    # Database configuration (for SQLAlchemy - connects to Supabase PostgreSQL)
    database_url: Optional[str] = os.getenv("DATABASE_URL", "")
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Frontend URL (for CORS and checkout redirects)
    frontend_url: str = os.getenv("FRONTEND_URL", "http://localhost:5173")

    # JWT configuration (used by Supabase)
    jwt_secret_key: str = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-this")
    jwt_algorithm: str = "HS256"

    # Stripe configuration
    stripe_secret: str = os.getenv("STRIPE_SECRET", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    billing_currency: str = os.getenv("BILLING_CURRENCY", "usd")
    pro_price_cents: int = int(os.getenv("PRO_PRICE_CENTS", "999"))
    business_price_cents: int = int(os.getenv("BUSINESS_PRICE_CENTS", "2999"))

    # AI analysis gateway (OpenAI-compatible chat completions)
    ai_gateway_url: str = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions")
    ai_gateway_api_key: str = os.getenv("AI_GATEWAY_API_KEY", "")
    ai_model: str = os.getenv("AI_MODEL", "google/gemini-2.5-flash")
    analysis_timeout_seconds: float = float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", "60"))

    # Quota / billing cycle
    billing_cycle_days: int = int(os.getenv("BILLING_CYCLE_DAYS", "30"))
    commit_max_retries: int = int(os.getenv("COMMIT_MAX_RETRIES", "3"))

    class Config:
        env_file = ".env"


settings = Settings()
