import os
from pydantic import BaseModel


class Settings(BaseModel):
    # Size chart
    size_chart_unit: str = os.getenv("SIZE_CHART_UNIT", "cm")
    size_chart_path: str | None = os.getenv("SIZE_CHART_PATH")
    default_size: str = os.getenv("DEFAULT_SIZE", "M")

    # Analytics (Supabase / PostgREST)
    supabase_url: str | None = os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL")
    supabase_service_role: str | None = os.getenv("SUPABASE_SERVICE_ROLE")
    analytics_table: str = os.getenv("ANALYTICS_TABLE", "size_quiz_responses")
    analytics_timeout_seconds: float = float(os.getenv("ANALYTICS_TIMEOUT_SECONDS", "5"))

    # Rate limit (token bucket)
    rate_limit_per_min: int = int(os.getenv("RATE_LIMIT_PER_MIN", "60"))
    rate_limit_burst: int = int(os.getenv("RATE_LIMIT_BURST", "30"))

    cors_origins: str = os.getenv("CORS_ORIGINS", "*")


settings = Settings()
