"""
/settings — read and update user-tunable runtime settings.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import ValidationError

from ...settings import DEFAULTS

router = APIRouter(prefix="/settings", tags=["settings"])


def _get_monitor(request: Request):
    return request.app.state.monitor


@router.get("")
def read_settings(monitor=Depends(_get_monitor)):
    """Return current settings with their defaults for reference."""
    return {"settings": monitor.settings.model_dump(mode="json"), "defaults": DEFAULTS}


@router.put("")
async def write_settings(patch: Dict[str, Any] = Body(...), monitor=Depends(_get_monitor)):
    """Apply a partial update; unknown keys are ignored. Persists to data/settings.json."""
    try:
        updated = await monitor.apply_settings(patch)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    return {"settings": updated.model_dump(mode="json")}
