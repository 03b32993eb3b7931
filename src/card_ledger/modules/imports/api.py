from __future__ import annotations

import asyncio
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from card_ledger.api.deps import get_current_user
from card_ledger.modules.identity.models import User
from card_ledger.modules.imports.jobs import ImportJob, job_registry
from card_ledger.modules.imports.schemas import ImportJobOut, ProgressEventOut

router = APIRouter(tags=["imports"])

_KEEPALIVE_SECONDS = 15.0


def _get_job(job_id: uuid.UUID, user: User) -> ImportJob:
    job = job_registry.get(job_id, user_id=user.id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Import job not found")
    return job


@router.get("/imports/{job_id}", response_model=ImportJobOut)
def get_import_endpoint(job_id: uuid.UUID, user: User = Depends(get_current_user)) -> ImportJobOut:
    return ImportJobOut.from_job(_get_job(job_id, user))


@router.post("/imports/{job_id}/cancel", response_model=ImportJobOut)
def cancel_import_endpoint(
    job_id: uuid.UUID, user: User = Depends(get_current_user)
) -> ImportJobOut:
    job = _get_job(job_id, user)
    job.cancel()
    return ImportJobOut.from_job(job)


@router.get("/imports/{job_id}/events")
async def import_events_endpoint(
    job_id: uuid.UUID, user: User = Depends(get_current_user)
) -> StreamingResponse:
    subscription = _get_job(job_id, user).subscribe()

    async def generate():
        try:
            while True:
                event = await asyncio.to_thread(subscription.get, _KEEPALIVE_SECONDS)
                if event is None:
                    if subscription.closed:
                        yield "event: done\ndata: {}\n\n"
                        return
                    yield ": keepalive\n\n"
                    continue
                payload = ProgressEventOut.from_event(event).model_dump_json(by_alias=True)
                yield f"event: progress\ndata: {payload}\n\n"
        finally:
            subscription.close()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
