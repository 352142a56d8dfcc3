"""FastAPI dependencies and error translation shared by the routers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import Depends, Header, HTTPException, Request

from .context import CareContext, ContextRegistry
from .errors import ActionResult, InvalidTransitionError, SessionValidationError, StoreError

logger = logging.getLogger(__name__)


def get_registry(request: Request) -> ContextRegistry:
    return request.app.state.registry


def get_care_context(
    baby_id: str,
    registry: ContextRegistry = Depends(get_registry),
    user_id: Optional[str] = Header(None, alias="X-BabyTrack-User-Id"),
) -> CareContext:
    baby_id = baby_id.strip()
    if not baby_id:
        raise HTTPException(status_code=400, detail="baby_id is required")
    return registry.get(baby_id, user_id)


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except SessionValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreError as exc:
        logger.exception("store failure surfaced to client")
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def ensure_ok(result: ActionResult) -> ActionResult:
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.error or "Store write failed")
    return result
