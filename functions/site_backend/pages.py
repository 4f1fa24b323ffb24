"""
Server-rendered pages: the public site and the admin panel.

Admin forms post back to the same URL; on validation errors the form is
rendered again with the submitted values and the messages to show.
"""

from __future__ import annotations

import logging
from datetime import date
from itertools import zip_longest
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from starlette.datastructures import FormData

from shared.firebase_constants import (
    ART_LOCATIONS_STORAGE_PATH,
    ARTISTS_STORAGE_PATH,
    EXHIBITIONS_STORAGE_PATH,
)
from shared.types import Artist, ArtLocation, Exhibition, HistoryContent, User
from site_backend.auth import AuthClient, attempt_login
from site_backend.config import get_settings
from site_backend.content import ContentService, ContentValidationError
from site_backend.db import ContentDb
from site_backend.dependencies import (
    client_key,
    get_auth_client,
    get_content_service,
    get_db_client,
    get_current_user,
    get_rate_limiter,
    session_max_age,
)
from site_backend.rate_limit import LoginRateLimiter
from site_backend.routes import read_upload, set_session_cookie
from site_backend.schemas import (
    ArtistPayload,
    ArtLocationPayload,
    ExhibitionPayload,
    HistoryPayload,
    validation_messages,
)

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter(default_response_class=HTMLResponse)


def format_date(value) -> str:
    """2024-05-01 -> 01.05.2024; anything unparseable is shown as is."""
    if not value:
        return ""
    try:
        return date.fromisoformat(str(value)[:10]).strftime("%d.%m.%Y")
    except ValueError:
        return str(value)


templates.env.filters["format_date"] = format_date
templates.env.globals["site_name"] = get_settings().site_name


def render(
    request: Request, name: str, context: Optional[dict] = None, status_code: int = 200
):
    return templates.TemplateResponse(
        request, name, context or {}, status_code=status_code
    )


def render_error(
    request: Request, message: str, status_code: int = 500, retry: bool = False
):
    return render(
        request,
        "error.html",
        {"message": message, "status_code": status_code, "retry": retry},
        status_code=status_code,
    )


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def _require_admin_page(request: Request, user: Optional[User]):
    """Returns a response to send instead of the admin page, if any."""
    if user is None:
        return _redirect("/login")
    if not user.is_admin:
        return render_error(request, "Kein Zugriff auf den Adminbereich.", 403)
    return None


def _text(form: FormData, name: str) -> str:
    value = form.get(name)
    return value.strip() if isinstance(value, str) else ""


def _texts(form: FormData, name: str) -> List[str]:
    return [value.strip() for value in form.getlist(name) if isinstance(value, str)]


def _artists_by_id(content: ContentService) -> Dict[str, Artist]:
    return {artist.id: artist for artist in content.list_artists()}


# Public site


@router.get("/")
def home(request: Request, content: ContentService = Depends(get_content_service)):
    exhibitions = content.list_exhibitions()
    featured = content.get_featured_exhibition(exhibitions)
    return render(
        request,
        "home.html",
        {
            "featured": featured,
            "exhibitions": content.list_regular_exhibitions(featured, exhibitions),
        },
    )


@router.get("/exhibition/{exhibition_id}")
def exhibition_page(
    exhibition_id: str,
    request: Request,
    content: ContentService = Depends(get_content_service),
):
    exhibition = content.get_exhibition(exhibition_id)
    artists = _artists_by_id(content)
    return render(
        request,
        "exhibition.html",
        {
            "exhibition": exhibition,
            "artists": [
                artists[artist_id]
                for artist_id in exhibition.artist_ids
                if artist_id in artists
            ],
        },
    )


@router.get("/artists")
def artists_page(
    request: Request, content: ContentService = Depends(get_content_service)
):
    return render(request, "artists.html", {"artists": content.list_artists()})


@router.get("/artist/{artist_id}")
def artist_page(
    artist_id: str,
    request: Request,
    content: ContentService = Depends(get_content_service),
):
    return render(
        request,
        "artist.html",
        {
            "artist": content.get_artist(artist_id),
            "exhibitions": content.list_exhibitions_for_artist(artist_id),
        },
    )


@router.get("/map")
def map_page(request: Request, content: ContentService = Depends(get_content_service)):
    return render(
        request,
        "map.html",
        {
            "map_url": content.get_map_url() or get_settings().default_map_url,
            "locations": content.list_art_locations(),
            "artists": _artists_by_id(content),
        },
    )


@router.get("/history")
def history_page(
    request: Request, content: ContentService = Depends(get_content_service)
):
    return render(request, "history.html", {"history": content.get_history_content()})


@router.get("/datenschutz")
def privacy_document(content: ContentService = Depends(get_content_service)):
    url = content.get_document_url(get_settings().privacy_document_name)
    return RedirectResponse(url, status_code=307)


# Login


@router.get("/login")
def login_page(request: Request, user: Optional[User] = Depends(get_current_user)):
    if user is not None and user.is_admin:
        return _redirect("/admin")
    return render(request, "login.html", {"email": ""})


@router.post("/login")
async def login_submit(
    request: Request,
    auth: AuthClient = Depends(get_auth_client),
    db: ContentDb = Depends(get_db_client),
    limiter: LoginRateLimiter = Depends(get_rate_limiter),
):
    form = await request.form()
    email = _text(form, "email")
    password = form.get("password") or ""
    if not email or not password:
        return render(
            request,
            "login.html",
            {"email": email, "error": "Please enter email and password"},
            status_code=400,
        )

    outcome = attempt_login(
        auth,
        db,
        limiter,
        client_key(request),
        email,
        password,
        session_max_age(),
        get_settings().require_admin_flag,
    )
    if not outcome.success:
        return render(
            request,
            "login.html",
            {"email": email, "error": outcome.error},
            status_code=outcome.status_code,
        )

    response = _redirect("/admin")
    set_session_cookie(response, outcome.session_cookie)
    return response


@router.post("/logout")
def logout(
    user: Optional[User] = Depends(get_current_user),
    auth: AuthClient = Depends(get_auth_client),
):
    if user is not None:
        auth.revoke_sessions(user.id)
    response = _redirect("/")
    response.delete_cookie(get_settings().session_cookie_name)
    return response


# Admin: dashboard


@router.get("/admin")
def admin_dashboard(request: Request, user: Optional[User] = Depends(get_current_user)):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return render(request, "admin/dashboard.html", {"user": user})


# Admin: exhibitions


def _exhibition_values(exhibition: Optional[Exhibition] = None) -> dict:
    exhibition = exhibition or Exhibition()
    return {
        "title": exhibition.title,
        "description": exhibition.description,
        "short_description": exhibition.short_description,
        "main_image": exhibition.main_image,
        "gallery": list(exhibition.gallery),
        "start_date": str(exhibition.start_date)[:10],
        "end_date": str(exhibition.end_date)[:10],
        "artist_ids": list(exhibition.artist_ids),
        "is_featured": exhibition.is_featured,
        "visitor_info": {
            "hours": exhibition.visitor_info.hours,
            "ticket_info": exhibition.visitor_info.ticket_info,
            "location": exhibition.visitor_info.location,
        },
    }


def _exhibition_form_values(form: FormData) -> dict:
    return {
        "title": _text(form, "title"),
        "description": _text(form, "description"),
        "short_description": _text(form, "short_description"),
        "main_image": _text(form, "main_image"),
        "gallery": [url for url in _texts(form, "gallery") if url],
        "start_date": _text(form, "start_date"),
        "end_date": _text(form, "end_date"),
        "artist_ids": [artist_id for artist_id in _texts(form, "artist_ids") if artist_id],
        "is_featured": form.get("is_featured") in ("on", "true", "1"),
        "visitor_info": {
            "hours": _text(form, "hours"),
            "ticket_info": _text(form, "ticket_info"),
            "location": _text(form, "location"),
        },
    }


def _render_exhibition_form(
    request: Request,
    content: ContentService,
    values: dict,
    exhibition_id: Optional[str] = None,
    errors: Optional[List[str]] = None,
):
    return render(
        request,
        "admin/exhibition_form.html",
        {
            "values": values,
            "exhibition_id": exhibition_id,
            "artists": content.list_artists(),
            "errors": errors or [],
        },
        status_code=400 if errors else 200,
    )


async def _save_exhibition(
    request: Request, content: ContentService, exhibition_id: Optional[str]
):
    form = await request.form()
    values = _exhibition_form_values(form)
    try:
        payload = ExhibitionPayload.model_validate(values)
    except ValidationError as e:
        return _render_exhibition_form(
            request, content, values, exhibition_id, validation_messages(e)
        )

    try:
        main_upload = await read_upload(form.get("main_image_file"))
        if main_upload:
            values["main_image"] = content.upload_image(
                main_upload, EXHIBITIONS_STORAGE_PATH
            )
        for item in form.getlist("gallery_files"):
            upload = await read_upload(item)
            if upload:
                values["gallery"].append(
                    content.upload_image(upload, EXHIBITIONS_STORAGE_PATH)
                )
        exhibition = payload.to_exhibition()
        exhibition.main_image = values["main_image"]
        exhibition.gallery = values["gallery"]
        if exhibition_id:
            content.update_exhibition(exhibition_id, exhibition)
        else:
            content.create_exhibition(exhibition)
    except ContentValidationError as e:
        logger.info("Rejected admin form on %s: %s", request.url.path, e)
        return _render_exhibition_form(
            request, content, values, exhibition_id, [str(e)]
        )
    return _redirect("/admin/exhibitions")


@router.get("/admin/exhibitions")
def admin_exhibitions(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return render(
        request,
        "admin/exhibitions.html",
        {"user": user, "exhibitions": content.list_exhibitions()},
    )


@router.get("/admin/exhibitions/new")
def admin_new_exhibition(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return _render_exhibition_form(request, content, _exhibition_values())


@router.post("/admin/exhibitions/new")
async def admin_create_exhibition(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return await _save_exhibition(request, content, None)


@router.get("/admin/exhibitions/{exhibition_id}/edit")
def admin_edit_exhibition(
    exhibition_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    exhibition = content.get_exhibition(exhibition_id)
    return _render_exhibition_form(
        request, content, _exhibition_values(exhibition), exhibition_id
    )


@router.post("/admin/exhibitions/{exhibition_id}/edit")
async def admin_update_exhibition(
    exhibition_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return await _save_exhibition(request, content, exhibition_id)


@router.post("/admin/exhibitions/{exhibition_id}/delete")
def admin_delete_exhibition(
    exhibition_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    content.delete_exhibition(exhibition_id)
    return _redirect("/admin/exhibitions")


# Admin: artists


def _artist_values(artist: Optional[Artist] = None) -> dict:
    artist = artist or Artist()
    return {
        "name": artist.name,
        "bio": artist.bio,
        "main_image": artist.main_image,
        "portfolio": [
            {"image_url": item.image_url, "title": item.title, "year": item.year}
            for item in artist.portfolio
        ],
    }


async def _artist_form_values(form: FormData, content: ContentService) -> dict:
    """
    Reads the portfolio rows and uploads the images attached to them. Rows
    that end up without an image are dropped.
    """
    portfolio = []
    rows = zip_longest(
        _texts(form, "portfolio_image_url"),
        _texts(form, "portfolio_title"),
        _texts(form, "portfolio_year"),
        form.getlist("portfolio_file"),
        fillvalue="",
    )
    for image_url, title, year, file in rows:
        upload = await read_upload(file)
        if upload:
            image_url = content.upload_image(upload, ARTISTS_STORAGE_PATH)
        if image_url:
            portfolio.append({"image_url": image_url, "title": title, "year": year})
    return {
        "name": _text(form, "name"),
        "bio": _text(form, "bio"),
        "main_image": _text(form, "main_image"),
        "portfolio": portfolio,
    }


def _render_artist_form(
    request: Request,
    values: dict,
    artist_id: Optional[str] = None,
    errors: Optional[List[str]] = None,
):
    return render(
        request,
        "admin/artist_form.html",
        {"values": values, "artist_id": artist_id, "errors": errors or []},
        status_code=400 if errors else 200,
    )


async def _save_artist(
    request: Request, content: ContentService, artist_id: Optional[str]
):
    form = await request.form()
    values = {
        "name": _text(form, "name"),
        "bio": _text(form, "bio"),
        "main_image": _text(form, "main_image"),
        "portfolio": [],
    }
    try:
        values = await _artist_form_values(form, content)
        payload = ArtistPayload.model_validate(values)
    except ValidationError as e:
        return _render_artist_form(request, values, artist_id, validation_messages(e))
    except ContentValidationError as e:
        logger.info("Rejected admin form on %s: %s", request.url.path, e)
        return _render_artist_form(request, values, artist_id, [str(e)])

    try:
        main_upload = await read_upload(form.get("main_image_file"))
        if main_upload:
            values["main_image"] = content.upload_image(
                main_upload, ARTISTS_STORAGE_PATH
            )
        artist = payload.to_artist()
        artist.main_image = values["main_image"]
        if artist_id:
            content.update_artist(artist_id, artist)
        else:
            content.create_artist(artist)
    except ContentValidationError as e:
        logger.info("Rejected admin form on %s: %s", request.url.path, e)
        return _render_artist_form(request, values, artist_id, [str(e)])
    return _redirect("/admin/artists")


@router.get("/admin/artists")
def admin_artists(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return render(
        request, "admin/artists.html", {"user": user, "artists": content.list_artists()}
    )


@router.get("/admin/artists/new")
def admin_new_artist(request: Request, user: Optional[User] = Depends(get_current_user)):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return _render_artist_form(request, _artist_values())


@router.post("/admin/artists/new")
async def admin_create_artist(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return await _save_artist(request, content, None)


@router.get("/admin/artists/{artist_id}/edit")
def admin_edit_artist(
    artist_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return _render_artist_form(
        request, _artist_values(content.get_artist(artist_id)), artist_id
    )


@router.post("/admin/artists/{artist_id}/edit")
async def admin_update_artist(
    artist_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return await _save_artist(request, content, artist_id)


@router.post("/admin/artists/{artist_id}/delete")
def admin_delete_artist(
    artist_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    content.delete_artist(artist_id)
    return _redirect("/admin/artists")


# Admin: map


def _location_values(location: Optional[ArtLocation] = None) -> dict:
    location = location or ArtLocation()
    return {
        "title": location.title,
        "description": location.description,
        "artist": location.artist,
        "artist_id": location.artist_id or "",
        "image_url": location.image_url,
        "coordinates": {"x": location.coordinates.x, "y": location.coordinates.y},
    }


def _location_form_values(form: FormData) -> dict:
    return {
        "title": _text(form, "title"),
        "description": _text(form, "description"),
        "artist": _text(form, "artist"),
        "artist_id": _text(form, "artist_id"),
        "image_url": _text(form, "image_url"),
        "coordinates": {"x": _text(form, "x"), "y": _text(form, "y")},
    }


def _render_map_admin(
    request: Request,
    content: ContentService,
    user: User,
    errors: Optional[List[str]] = None,
):
    return render(
        request,
        "admin/map.html",
        {
            "user": user,
            "map_url": content.get_map_url() or get_settings().default_map_url,
            "locations": content.list_art_locations(),
            "errors": errors or [],
        },
        status_code=400 if errors else 200,
    )


def _render_location_form(
    request: Request,
    content: ContentService,
    values: dict,
    location_id: Optional[str] = None,
    errors: Optional[List[str]] = None,
):
    return render(
        request,
        "admin/location_form.html",
        {
            "values": values,
            "location_id": location_id,
            "artists": content.list_artists(),
            "map_url": content.get_map_url() or get_settings().default_map_url,
            "errors": errors or [],
        },
        status_code=400 if errors else 200,
    )


async def _save_location(
    request: Request, content: ContentService, location_id: Optional[str]
):
    form = await request.form()
    values = _location_form_values(form)
    try:
        payload = ArtLocationPayload.model_validate(values)
    except ValidationError as e:
        return _render_location_form(
            request, content, values, location_id, validation_messages(e)
        )

    try:
        upload = await read_upload(form.get("image_file"))
        if upload:
            values["image_url"] = content.upload_image(
                upload, ART_LOCATIONS_STORAGE_PATH
            )
        location = payload.to_location()
        location.image_url = values["image_url"]
        if location_id:
            content.update_art_location(location_id, location)
        else:
            content.create_art_location(location)
    except ContentValidationError as e:
        logger.info("Rejected admin form on %s: %s", request.url.path, e)
        return _render_location_form(request, content, values, location_id, [str(e)])
    return _redirect("/admin/map")


@router.get("/admin/map")
def admin_map(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return _render_map_admin(request, content, user)


@router.post("/admin/map/image")
async def admin_upload_map_image(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    form = await request.form()
    upload = await read_upload(form.get("map_file"))
    if upload is None:
        return _render_map_admin(request, content, user, ["Please choose an image"])
    try:
        content.set_map_image(upload)
    except ContentValidationError as e:
        logger.info("Rejected admin form on %s: %s", request.url.path, e)
        return _render_map_admin(request, content, user, [str(e)])
    return _redirect("/admin/map")


@router.get("/admin/map/locations/new")
def admin_new_location(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return _render_location_form(request, content, _location_values())


@router.post("/admin/map/locations/new")
async def admin_create_location(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return await _save_location(request, content, None)


@router.get("/admin/map/locations/{location_id}/edit")
def admin_edit_location(
    location_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    location = content.get_art_location(location_id)
    return _render_location_form(
        request, content, _location_values(location), location_id
    )


@router.post("/admin/map/locations/{location_id}/edit")
async def admin_update_location(
    location_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return await _save_location(request, content, location_id)


@router.post("/admin/map/locations/{location_id}/delete")
def admin_delete_location(
    location_id: str,
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    content.delete_art_location(location_id)
    return _redirect("/admin/map")


# Admin: history


def _history_values(history: Optional[HistoryContent]) -> dict:
    if history is None:
        return {"main_text": "", "milestones": []}
    return {
        "main_text": history.main_text,
        "milestones": [
            {
                "year": milestone.year,
                "title": milestone.title,
                "description": milestone.description,
            }
            for milestone in history.milestones
        ],
    }


def _history_form_values(form: FormData) -> dict:
    rows = zip_longest(
        _texts(form, "milestone_year"),
        _texts(form, "milestone_title"),
        _texts(form, "milestone_description"),
        fillvalue="",
    )
    return {
        "main_text": _text(form, "main_text"),
        "milestones": [
            {"year": year, "title": title, "description": description}
            for year, title, description in rows
        ],
    }


def _render_history_form(
    request: Request,
    user: User,
    values: dict,
    errors: Optional[List[str]] = None,
    saved: bool = False,
):
    return render(
        request,
        "admin/history.html",
        {"user": user, "values": values, "errors": errors or [], "saved": saved},
        status_code=400 if errors else 200,
    )


@router.get("/admin/history")
def admin_history(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    return _render_history_form(
        request,
        user,
        _history_values(content.get_history_content()),
        saved=request.query_params.get("saved") == "1",
    )


@router.post("/admin/history")
async def admin_save_history(
    request: Request,
    user: Optional[User] = Depends(get_current_user),
    content: ContentService = Depends(get_content_service),
):
    denied = _require_admin_page(request, user)
    if denied:
        return denied
    form = await request.form()
    values = _history_form_values(form)

    # "add" and "remove:<index>" edit the rows without saving.
    action = _text(form, "action") or "save"
    if action == "add":
        values["milestones"].append(
            {"year": date.today().year, "title": "", "description": ""}
        )
        return _render_history_form(request, user, values)
    if action.startswith("remove:"):
        index = action.split(":", 1)[1]
        if index.isdigit() and int(index) < len(values["milestones"]):
            values["milestones"].pop(int(index))
        return _render_history_form(request, user, values)

    try:
        payload = HistoryPayload.model_validate(values)
    except ValidationError as e:
        return _render_history_form(request, user, values, validation_messages(e))
    content.save_history_content(payload.main_text, payload.to_milestones())
    return _redirect("/admin/history?saved=1")
