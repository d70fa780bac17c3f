import json
from fastapi import APIRouter, HTTPException, Request
import structlog

from ..schemas.recommend import RecommendResponse
from ..services.recommender import Recommender


logger = structlog.get_logger("sizefinder")

router = APIRouter(prefix="/size", tags=["size"])


@router.post("/recommend")
async def recommend(request: Request) -> RecommendResponse:
    """Recommend a size and coverage style for the storefront size finder.

    The body is a loose JSON object; unknown or mistyped fields are ignored rather
    than rejected. Only an unparseable body or a non-object body is a client error.
    """
    try:
        payload = json.loads(await request.body() or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")

    recommender: Recommender = request.app.state.recommender
    try:
        result = await recommender.recommend(payload)
    except Exception as e:
        logger.error("recommendation_failed", error=str(e), exc_info=True)
        raise HTTPException(status_code=400, detail=str(e) or "Recommendation failed")

    return RecommendResponse(size=result.size, coverage=result.coverage, fitNotes=result.fit_notes)
