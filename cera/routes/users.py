"""
User routes - registration, volunteer approval and self-service profile updates.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from cera.core.errors import BadRequestError
from cera.models.incident import PhotoUpload
from cera.models.user import (
    Actor,
    AvailabilityRequest,
    AvailabilitySlot,
    LocationUpdate,
    ProfileUpdate,
    PushTokenRequest,
    StatusUpdate,
    User,
    UserFile,
    UserRegister,
    UserRole,
    VolunteerFiles,
    VolunteerStats,
    WorkLog,
    WorkLogRequest,
)
from cera.services.user_service import UserService, get_user_service
from cera.utils.security import get_current_actor, get_identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


async def _read_upload(upload: Optional[UploadFile], missing: str) -> PhotoUpload:
    if upload is None:
        raise BadRequestError(missing)
    return PhotoUpload(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
        data=await upload.read(),
    )


@router.get("", response_model=List[User])
def list_users(
    role: Optional[UserRole] = Query(None),
    approved: Optional[bool] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    """Coordinator view of the directory, filtered by role and approval."""
    return service.list_users(actor, role=role, approved=approved)


@router.post("/register", response_model=User, status_code=status.HTTP_201_CREATED)
def register(
    body: UserRegister,
    identity: str = Depends(get_identity),
    service: UserService = Depends(get_user_service),
):
    """
    Create the profile for the authenticated identity.

    Volunteers start unapproved; coordinators are notified to review them.
    """
    return service.register(identity, body)


@router.get("/me", response_model=User)
def get_me(
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.get(actor.id)


@router.patch("/me/status", response_model=User)
def update_status(
    body: StatusUpdate,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    """Set availability: active, busy, away or offline."""
    return service.set_status(actor.id, body.status)


@router.patch("/me/location", response_model=User)
def update_location(
    body: LocationUpdate,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.set_location(actor.id, body.longitude, body.latitude)


@router.post("/me/push-token", response_model=User)
def register_push_token(
    body: PushTokenRequest,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.add_push_token(actor.id, body.token, body.platform)


@router.post("/me/work-log", response_model=WorkLog, status_code=status.HTTP_201_CREATED)
def add_work_log(
    body: WorkLogRequest,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.add_work_log(actor.id, body.incident_id, body.hours)


@router.patch("/me", response_model=User)
def update_profile(
    body: ProfileUpdate,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.update_profile(actor.id, body)


@router.patch("/me/avatar", response_model=User)
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    upload = await _read_upload(avatar, "Image upload failed")
    return service.set_avatar(actor.id, upload)


@router.get("/me/availability", response_model=List[AvailabilitySlot])
def get_availability(
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.get_availability(actor.id)


@router.post("/me/availability", response_model=List[AvailabilitySlot])
def save_availability(
    body: AvailabilityRequest,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    """Set one day of a week's schedule, or every day with `repeat_all_week`."""
    return service.save_availability(actor.id, body)


@router.get("/me/files", response_model=List[UserFile])
def list_my_files(
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.list_files(actor.id)


@router.post("/me/files", response_model=List[UserFile], status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    category: Optional[str] = Form(None),
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    upload = await _read_upload(file, "No file uploaded")
    return service.upload_file(actor.id, upload, category)


@router.delete("/me/files/{file_id}", response_model=List[UserFile])
def delete_file(
    file_id: str,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.delete_file(actor.id, file_id)


@router.get("/pending", response_model=List[User])
def pending_volunteers(
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.list_pending_volunteers(actor)


@router.get("/eligible-for-dispatch", response_model=List[User])
def eligible_for_dispatch(
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.eligible_for_dispatch(actor)


@router.post("/{user_id}/approve", response_model=User)
def approve_volunteer(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.approve_volunteer(actor, user_id)


@router.post("/{user_id}/reject")
def reject_volunteer(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    service.reject_volunteer(actor, user_id)
    return {"message": "Volunteer rejected and removed"}


@router.get("/{user_id}/stats", response_model=VolunteerStats)
def volunteer_stats(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.stats(user_id)


@router.get("/{user_id}/files", response_model=VolunteerFiles)
def volunteer_files(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    service: UserService = Depends(get_user_service),
):
    return service.files_for(actor, user_id)
