import httpx
import structlog

from ...schemas.recommend import AnalyticsRecord


logger = structlog.get_logger("sizefinder")


class SupabaseSink:
    """Inserts size quiz rows through the Supabase REST (PostgREST) endpoint."""

    def __init__(self, base_url: str, service_key: str, table: str = "size_quiz_responses", timeout: float = 5.0) -> None:
        self.base = base_url.rstrip("/")
        self.table = table
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
                "Prefer": "return=minimal",
            },
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base}/rest/v1/{self.table}"

    async def write(self, record: AnalyticsRecord) -> None:
        resp = await self._client.post(self.endpoint, json=record.model_dump())
        resp.raise_for_status()
        logger.info("analytics_written", table=self.table, status=resp.status_code)

    async def aclose(self) -> None:
        await self._client.aclose()
