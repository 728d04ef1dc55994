from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from backend.security import event_scope, require_session, staff_id
from backend.services.attendance import check_in, check_out, list_attendance, scan

router = APIRouter()


class ScanRequest(BaseModel):
    badge_id: str = Field(min_length=1)
    event_id: int = Field(gt=0)
    course_id: int | None = Field(default=None, gt=0)
    hall_id: int | None = Field(default=None, gt=0)


class CheckInRequest(BaseModel):
    participant_id: int = Field(gt=0)
    event_id: int = Field(gt=0)
    course_id: int | None = Field(default=None, gt=0)
    hall_id: int | None = Field(default=None, gt=0)


class CheckOutRequest(BaseModel):
    participant_id: int = Field(gt=0)
    event_id: int = Field(gt=0)
    course_id: int | None = Field(default=None, gt=0)


@router.post("/attendance/scan")
def scan_badge(payload: ScanRequest, response: Response, session: dict = Depends(require_session)):
    result = scan(
        payload.badge_id,
        payload.event_id,
        course_id=payload.course_id,
        hall_id=payload.hall_id,
        scanned_by_staff_id=staff_id(session),
        scope_event_id=event_scope(session),
    )
    response.status_code = 200 if result["alreadyScanned"] else 201
    return result


@router.post("/attendance/check-in")
def attendance_check_in(payload: CheckInRequest, session: dict = Depends(require_session)):
    attendance = check_in(
        payload.participant_id,
        payload.event_id,
        course_id=payload.course_id,
        hall_id=payload.hall_id,
        scanned_by_staff_id=staff_id(session),
        scope_event_id=event_scope(session),
    )
    return {"attendance": attendance, "message": "Check-in successful"}


@router.post("/attendance/check-out")
def attendance_check_out(payload: CheckOutRequest, session: dict = Depends(require_session)):
    attendance = check_out(
        payload.participant_id,
        payload.event_id,
        course_id=payload.course_id,
        scope_event_id=event_scope(session),
    )
    return {"attendance": attendance, "message": "Check-out successful"}


@router.get("/attendance")
def attendance(
    event_id: int,
    course_id: int | None = None,
    participant_id: int | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    session: dict = Depends(require_session),
):
    return list_attendance(
        event_id,
        course_id=course_id,
        participant_id=participant_id,
        page=page,
        limit=limit,
        scope_event_id=event_scope(session),
    )
