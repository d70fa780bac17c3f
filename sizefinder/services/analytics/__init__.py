from .base import AnalyticsSink
from .supabase import SupabaseSink
from ...config import Settings


def get_sink(config: Settings) -> AnalyticsSink | None:
    """Build the analytics sink once at startup, or None when credentials are missing."""
    if not config.supabase_url or not config.supabase_service_role:
        return None
    return SupabaseSink(
        base_url=config.supabase_url,
        service_key=config.supabase_service_role,
        table=config.analytics_table,
        timeout=config.analytics_timeout_seconds,
    )
