from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends

from lions_minutes.deps import get_current_user, get_pipeline
from lions_minutes.services.diagnostics import check_connections
from lions_minutes.services.pipeline import Pipeline


router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


@router.get("/connections")
def test_connections(
    _: str = Depends(get_current_user),
    pipeline: Pipeline = Depends(get_pipeline),
) -> Dict[str, Dict[str, str]]:
    return check_connections(pipeline.settings, pipeline.stt_client_factory, pipeline.llm_client_factory)
