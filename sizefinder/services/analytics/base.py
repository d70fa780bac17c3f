from typing import Protocol

from ...schemas.recommend import AnalyticsRecord


class AnalyticsSink(Protocol):
    async def write(self, record: AnalyticsRecord) -> None:
        ...

    async def aclose(self) -> None:
        ...
