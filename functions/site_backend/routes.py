"""
JSON API routes: public content reads, login/logout and admin CRUD.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, Response, UploadFile
from starlette.datastructures import UploadFile as StarletteUploadFile

from shared.firebase_constants import IMAGE_FOLDERS
from shared.types import User
from site_backend.auth import AuthClient, attempt_login
from site_backend.config import get_settings
from site_backend.content import ContentService, FileUpload
from site_backend.db import ContentDb
from site_backend.dependencies import (
    client_key,
    get_auth_client,
    get_content_service,
    get_db_client,
    get_current_user,
    get_rate_limiter,
    require_admin,
    session_max_age,
)
from site_backend.rate_limit import LoginRateLimiter
from site_backend.schemas import (
    ArtistDetailResponse,
    ArtistModel,
    ArtistPayload,
    ArtLocationModel,
    ArtLocationPayload,
    CreatedResponse,
    DocumentUrlResponse,
    ExhibitionModel,
    ExhibitionPayload,
    FeaturedExhibitionResponse,
    HistoryModel,
    HistoryPayload,
    HistoryResponse,
    ListArtistsResponse,
    ListExhibitionsResponse,
    LoginRequest,
    MapResponse,
    StatusResponse,
    UploadResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def read_upload(upload) -> Optional[FileUpload]:
    """Returns None for empty file inputs and plain form values."""
    if not isinstance(upload, StarletteUploadFile) or not upload.filename:
        return None
    data = await upload.read()
    if not data:
        return None
    return FileUpload(
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        data=data,
    )


def set_session_cookie(response: Response, session_cookie: str) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        session_cookie,
        max_age=int(session_max_age().total_seconds()),
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, is_admin=user.is_admin)


@router.get("/health", response_model=StatusResponse)
def health():
    return StatusResponse(status="ok")


# Public content


@router.get("/exhibitions", response_model=ListExhibitionsResponse)
def list_exhibitions(content: ContentService = Depends(get_content_service)):
    return ListExhibitionsResponse(
        exhibitions=[
            ExhibitionModel.model_validate(exhibition)
            for exhibition in content.list_exhibitions()
        ]
    )


@router.get("/exhibitions/featured", response_model=FeaturedExhibitionResponse)
def featured_exhibition(content: ContentService = Depends(get_content_service)):
    featured = content.get_featured_exhibition()
    return FeaturedExhibitionResponse(
        exhibition=ExhibitionModel.model_validate(featured) if featured else None
    )


@router.get("/exhibitions/{exhibition_id}", response_model=ExhibitionModel)
def get_exhibition(
    exhibition_id: str, content: ContentService = Depends(get_content_service)
):
    return ExhibitionModel.model_validate(content.get_exhibition(exhibition_id))


@router.get("/artists", response_model=ListArtistsResponse)
def list_artists(content: ContentService = Depends(get_content_service)):
    return ListArtistsResponse(
        artists=[ArtistModel.model_validate(a) for a in content.list_artists()]
    )


@router.get("/artists/{artist_id}", response_model=ArtistDetailResponse)
def get_artist(artist_id: str, content: ContentService = Depends(get_content_service)):
    artist = content.get_artist(artist_id)
    exhibitions = content.list_exhibitions_for_artist(artist_id)
    return ArtistDetailResponse(
        artist=ArtistModel.model_validate(artist),
        exhibitions=[ExhibitionModel.model_validate(e) for e in exhibitions],
    )


@router.get("/map", response_model=MapResponse)
def get_map(content: ContentService = Depends(get_content_service)):
    return MapResponse(
        map_url=content.get_map_url(),
        default_map_url=get_settings().default_map_url,
        locations=[
            ArtLocationModel.model_validate(location)
            for location in content.list_art_locations()
        ],
    )


@router.get("/history", response_model=HistoryResponse)
def get_history(content: ContentService = Depends(get_content_service)):
    history = content.get_history_content()
    return HistoryResponse(
        history=HistoryModel.model_validate(history) if history else None
    )


@router.get("/documents/{name}", response_model=DocumentUrlResponse)
def get_document(name: str, content: ContentService = Depends(get_content_service)):
    return DocumentUrlResponse(name=name, url=content.get_document_url(name))


# Auth


@router.post("/auth/login", response_model=UserResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    auth: AuthClient = Depends(get_auth_client),
    db: ContentDb = Depends(get_db_client),
    limiter: LoginRateLimiter = Depends(get_rate_limiter),
):
    outcome = attempt_login(
        auth,
        db,
        limiter,
        client_key(request),
        payload.email,
        payload.password,
        session_max_age(),
        get_settings().require_admin_flag,
    )
    if not outcome.success:
        headers = (
            {"Retry-After": str(outcome.remaining_seconds)}
            if outcome.remaining_seconds
            else None
        )
        raise HTTPException(
            status_code=outcome.status_code, detail=outcome.error, headers=headers
        )
    set_session_cookie(response, outcome.session_cookie)
    return _user_response(outcome.user)


@router.post("/auth/logout", response_model=StatusResponse)
def logout(
    response: Response,
    user: Optional[User] = Depends(get_current_user),
    auth: AuthClient = Depends(get_auth_client),
):
    if user:
        auth.revoke_sessions(user.id)
        logger.info("Signed out %s", user.id)
    response.delete_cookie(get_settings().session_cookie_name)
    return StatusResponse(status="ok")


@router.get("/auth/me", response_model=UserResponse)
def me(user: User = Depends(require_admin)):
    return _user_response(user)


# Admin


@router.post("/admin/uploads/{folder}", response_model=UploadResponse, status_code=201)
async def upload_image(
    folder: str,
    file: UploadFile = File(...),
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    if folder not in IMAGE_FOLDERS:
        raise HTTPException(status_code=404, detail="Unknown upload folder")
    upload = await read_upload(file)
    if upload is None:
        raise HTTPException(status_code=400, detail="File is empty")
    return UploadResponse(url=content.upload_image(upload, folder))


@router.post("/admin/exhibitions", response_model=CreatedResponse, status_code=201)
def create_exhibition(
    payload: ExhibitionPayload,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    return CreatedResponse(id=content.create_exhibition(payload.to_exhibition()))


@router.put("/admin/exhibitions/{exhibition_id}", response_model=StatusResponse)
def update_exhibition(
    exhibition_id: str,
    payload: ExhibitionPayload,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    exhibition = payload.to_exhibition()
    if not exhibition.main_image:
        exhibition.main_image = content.get_exhibition(exhibition_id).main_image
    content.update_exhibition(exhibition_id, exhibition)
    return StatusResponse(status="ok")


@router.delete("/admin/exhibitions/{exhibition_id}", response_model=StatusResponse)
def delete_exhibition(
    exhibition_id: str,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    content.delete_exhibition(exhibition_id)
    return StatusResponse(status="ok")


@router.post("/admin/artists", response_model=CreatedResponse, status_code=201)
def create_artist(
    payload: ArtistPayload,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    return CreatedResponse(id=content.create_artist(payload.to_artist()))


@router.put("/admin/artists/{artist_id}", response_model=StatusResponse)
def update_artist(
    artist_id: str,
    payload: ArtistPayload,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    artist = payload.to_artist()
    if not artist.main_image:
        artist.main_image = content.get_artist(artist_id).main_image
    content.update_artist(artist_id, artist)
    return StatusResponse(status="ok")


@router.delete("/admin/artists/{artist_id}", response_model=StatusResponse)
def delete_artist(
    artist_id: str,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    content.delete_artist(artist_id)
    return StatusResponse(status="ok")


@router.post("/admin/locations", response_model=CreatedResponse, status_code=201)
def create_location(
    payload: ArtLocationPayload,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    return CreatedResponse(id=content.create_art_location(payload.to_location()))


@router.put("/admin/locations/{location_id}", response_model=StatusResponse)
def update_location(
    location_id: str,
    payload: ArtLocationPayload,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    location = payload.to_location()
    if not location.image_url:
        location.image_url = content.get_art_location(location_id).image_url
    content.update_art_location(location_id, location)
    return StatusResponse(status="ok")


@router.delete("/admin/locations/{location_id}", response_model=StatusResponse)
def delete_location(
    location_id: str,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    content.delete_art_location(location_id)
    return StatusResponse(status="ok")


@router.put("/admin/map/image", response_model=UploadResponse)
async def upload_map_image(
    file: UploadFile = File(...),
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    upload = await read_upload(file)
    if upload is None:
        raise HTTPException(status_code=400, detail="File is empty")
    return UploadResponse(url=content.set_map_image(upload))


@router.put("/admin/history", response_model=CreatedResponse)
def save_history(
    payload: HistoryPayload,
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    content_id = content.save_history_content(
        payload.main_text, payload.to_milestones()
    )
    return CreatedResponse(id=content_id)


@router.put("/admin/documents/{name}", response_model=UploadResponse)
async def upload_document(
    name: str,
    file: UploadFile = File(...),
    user: User = Depends(require_admin),
    content: ContentService = Depends(get_content_service),
):
    upload = await read_upload(file)
    if upload is None:
        raise HTTPException(status_code=400, detail="File is empty")
    return UploadResponse(url=content.upload_document(upload, name))
