# via/api/v1/routers/clarify.py
from fastapi import APIRouter, Depends, HTTPException

from via.api.deps import settings_dep
from via.api.v1.schemas.thread import ClarifyIn, ClarifyOut
from via.core.config import Settings
from via.domain.errors import ClarifyError
from via.domain.services.intent_svc import clarify_intent

router = APIRouter(prefix="/llm", tags=["clarify"])


@router.post("/clarify", response_model=ClarifyOut)
async def clarify(body: ClarifyIn, settings: Settings = Depends(settings_dep)) -> ClarifyOut:
    if not settings.OPENAI_API_KEY:
        raise HTTPException(status_code=500, detail="Missing OPENAI_API_KEY")
    if not body.user_text.strip():
        raise HTTPException(status_code=400, detail="Missing userText")
    try:
        result = await clarify_intent(body.user_text, body.history, settings=settings)
    except ClarifyError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return ClarifyOut(**result.model_dump())
