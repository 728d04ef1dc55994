from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from backend.config import IMPORT_MAX_UPLOAD_MB
from backend.security import event_scope, require_session
from backend.services.extraction import read_roster_rows
from backend.services.registrations import register_participant
from backend.services.roster import reconcile

router = APIRouter(dependencies=[Depends(require_session)])


class RegistrationCreate(BaseModel):
    participant_id: int = Field(gt=0)


@router.post("/courses/{course_id}/registrations")
def create_course_registration(
    course_id: int,
    payload: RegistrationCreate,
    session: dict = Depends(require_session),
):
    return register_participant(course_id, payload.participant_id, scope_event_id=event_scope(session))


@router.post("/courses/{course_id}/registrations/import")
async def import_course_registrations(
    course_id: int,
    session: dict = Depends(require_session),
    file: UploadFile = File(...),
):
    content = await file.read()
    if len(content) > IMPORT_MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File exceeds {IMPORT_MAX_UPLOAD_MB} MB.")

    rows = read_roster_rows(file.filename or "", content)
    return reconcile(course_id, rows, scope_event_id=event_scope(session))
