from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.security import event_scope, require_session
from backend.services.badges import assign_badge

router = APIRouter(dependencies=[Depends(require_session)])


class BadgeAssign(BaseModel):
    badge_id: str = Field(min_length=1, max_length=64)


@router.put("/participants/{participant_id}/badge")
def put_participant_badge(
    participant_id: int,
    payload: BadgeAssign,
    session: dict = Depends(require_session),
):
    participant = assign_badge(participant_id, payload.badge_id, scope_event_id=event_scope(session))
    return {"participant": participant, "message": "Badge assigned"}
