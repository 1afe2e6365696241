from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Type, TypeVar

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from unugha_core import AuthSessionStore, LoginRequired, SupabaseClient, SupabaseError
from unugha_core.models import EventForm, EventType
from unugha_core.pages import (
    CalendarController,
    CreateEventController,
    DashboardController,
    EventDetailController,
    LoginController,
    LoginMode,
    OrganizationDetailController,
    OrganizationListController,
    PageController,
    ProfileSettingsController,
    SeederController,
)
from unugha_core.storage import FileUpload

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=PageController)


class SessionUserModel(BaseModel):
    id: str
    email: str
    display_name: str = Field(alias="displayName")
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    role: str

    model_config = ConfigDict(populate_by_name=True)


class TokensModel(BaseModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    expires_at: int = Field(alias="expiresAt")
    token_type: str = Field(default="bearer", alias="tokenType")

    model_config = ConfigDict(populate_by_name=True)


class SessionResponse(BaseModel):
    state: str
    user: Optional[SessionUserModel] = None
    tokens: Optional[TokensModel] = None


class CredentialsPayload(BaseModel):
    email: str
    password: str = ""


class ForgotPasswordPayload(BaseModel):
    email: str


class UploadPayload(BaseModel):
    filename: str
    content_type: str = Field(alias="contentType")
    data: str = Field(description="Base64 encoded file content")

    model_config = ConfigDict(populate_by_name=True)

    def to_upload(self) -> FileUpload:
        try:
            content = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Upload data is not valid base64") from exc
        return FileUpload(filename=self.filename, content=content, content_type=self.content_type)


class EventCreatePayload(BaseModel):
    title: str
    type: str = EventType.SEMINAR.value
    date: str
    time: str
    location: str
    description: str = ""
    is_public: bool = Field(default=True, alias="isPublic")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    banner: Optional[UploadPayload] = None

    model_config = ConfigDict(populate_by_name=True)

    def form(self) -> EventForm:
        return EventForm(
            title=self.title,
            type=self.type,
            date=self.date,
            time=self.time,
            location=self.location,
            description=self.description,
            is_public=self.is_public,
            organization_id=self.organization_id,
        )


class EventUpdatePayload(BaseModel):
    title: Optional[str] = None
    type: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    is_public: Optional[bool] = Field(default=None, alias="isPublic")

    model_config = ConfigDict(populate_by_name=True)


class ProfileUpdatePayload(BaseModel):
    full_name: str = Field(alias="fullName")

    model_config = ConfigDict(populate_by_name=True)


class PasswordUpdatePayload(BaseModel):
    new_password: str = Field(alias="newPassword")
    confirm_password: str = Field(alias="confirmPassword")

    model_config = ConfigDict(populate_by_name=True)


class RefreshPayload(BaseModel):
    refresh_token: str = Field(alias="refreshToken")

    model_config = ConfigDict(populate_by_name=True)


@dataclass
class Caller:
    """Client and session store for one request, signed in as the bearer token's user."""

    client: SupabaseClient
    session: AuthSessionStore


@lru_cache(maxsize=1)
def supabase() -> SupabaseClient:
    return SupabaseClient()


app = FastAPI(title="UNUGHA Events API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": str(exc), "redirectTo": exc.redirect_to})


@app.exception_handler(PermissionError)
async def permission_error_handler(request: Request, exc: PermissionError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(SupabaseError)
async def supabase_error_handler(request: Request, exc: SupabaseError) -> JSONResponse:
    logger.exception("Unhandled Supabase failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


def bearer_token(authorization: str) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Authorization header must be 'Bearer <token>'")
    return token.strip()


async def get_caller(authorization: str = Header(default="")) -> AsyncIterator[Caller]:
    client = supabase().for_request()
    token = bearer_token(authorization)
    if token:
        try:
            await client.auth.verify_access_token(token)
        except SupabaseError as exc:
            if exc.status in (401, 403):
                raise HTTPException(status_code=401, detail="Invalid authentication token") from exc
            raise HTTPException(status_code=502, detail="Failed to verify authentication token") from exc

    session = AuthSessionStore(client)
    await session.start()
    try:
        yield Caller(client=client, session=session)
    finally:
        session.close()


def controller(page_class: Type[P]) -> Callable[[Caller], P]:
    """Dependency building a fresh ``page_class`` for every request."""

    def build(caller: Caller = Depends(get_caller)) -> P:
        return page_class(caller.client, caller.session)

    return build


def raise_for_page(page: PageController, default_status: int = 502) -> None:
    if not page.error:
        return
    detail: Dict[str, Any] = {"message": page.error, "missingSchema": page.missing_schema}
    for key in ("guidance", "conflict"):
        if hasattr(page, key):
            detail[key] = getattr(page, key)
    raise HTTPException(status_code=page.status_code or default_status, detail=detail)


def session_response(page: PageController, include_tokens: bool = False) -> SessionResponse:
    response = SessionResponse(**page.session.snapshot())
    current = page.client.auth.current_session
    if include_tokens and current is not None and page.session.is_authenticated:
        response.tokens = TokensModel(
            access_token=current.access_token,
            refresh_token=current.refresh_token,
            expires_at=current.expires_at,
            token_type=current.token_type,
        )
    return response


def signed_in_response(page: PageController) -> Dict[str, Any]:
    return {"session": session_response(page, include_tokens=True).model_dump(by_alias=True), "page": page.as_dict()}


@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok", "configured": supabase().configured}


# ----------------------------------------------------------------------
# Auth


@app.get("/auth/session", response_model=SessionResponse)
def auth_session(page: PageController = Depends(controller(PageController))):
    return session_response(page)


@app.post("/auth/login")
async def auth_login(payload: CredentialsPayload, page: LoginController = Depends(controller(LoginController))):
    await page.submit(payload.email, payload.password, mode=LoginMode.LOGIN)
    raise_for_page(page)
    return signed_in_response(page)


@app.post("/auth/register", status_code=201)
async def auth_register(payload: CredentialsPayload, page: LoginController = Depends(controller(LoginController))):
    await page.submit(payload.email, payload.password, mode=LoginMode.REGISTER)
    raise_for_page(page)
    return signed_in_response(page)


@app.post("/auth/refresh", response_model=SessionResponse)
async def auth_refresh(payload: RefreshPayload, page: PageController = Depends(controller(PageController))):
    if await page.client.auth.refresh_session(payload.refresh_token) is None:
        raise HTTPException(status_code=401, detail="Refresh token is invalid or expired")
    return session_response(page, include_tokens=True)


@app.post("/auth/forgot")
async def auth_forgot(payload: ForgotPasswordPayload, page: LoginController = Depends(controller(LoginController))):
    await page.submit(payload.email, mode=LoginMode.FORGOT)
    raise_for_page(page)
    return page.as_dict()


@app.post("/auth/logout", response_model=SessionResponse)
async def auth_logout(page: ProfileSettingsController = Depends(controller(ProfileSettingsController))):
    await page.sign_out()
    raise_for_page(page)
    return session_response(page)


# ----------------------------------------------------------------------
# Events


@app.get("/dashboard")
async def dashboard(
    view: Optional[str] = Query(default=None),
    tab: str = Query(default="Semua"),
    page: DashboardController = Depends(controller(DashboardController)),
):
    try:
        await page.load(view)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown view '{view}'") from exc
    raise_for_page(page)
    return page.as_dict(tab)


@app.post("/events", status_code=201)
async def create_event(
    payload: EventCreatePayload,
    page: CreateEventController = Depends(controller(CreateEventController)),
):
    try:
        banner = payload.banner.to_upload() if payload.banner else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await page.submit(payload.form(), banner)
    raise_for_page(page)
    return page.as_dict()


@app.get("/events/{event_id}")
async def event_detail(event_id: str, page: EventDetailController = Depends(controller(EventDetailController))):
    await page.load(event_id)
    raise_for_page(page)
    return page.as_dict()


@app.patch("/events/{event_id}")
async def update_event(
    event_id: str,
    payload: EventUpdatePayload,
    page: EventDetailController = Depends(controller(EventDetailController)),
):
    await page.update_event(event_id, payload.model_dump(exclude_unset=True))
    raise_for_page(page)
    return page.as_dict()


@app.delete("/events/{event_id}")
async def delete_event(event_id: str, page: EventDetailController = Depends(controller(EventDetailController))):
    await page.delete_event(event_id)
    raise_for_page(page)
    return page.as_dict()


@app.post("/events/{event_id}/registrations", status_code=201)
async def register_for_event(
    event_id: str,
    page: EventDetailController = Depends(controller(EventDetailController)),
):
    await page.load(event_id)
    raise_for_page(page)
    await page.register(event_id)
    raise_for_page(page)
    return page.as_dict()


@app.get("/events/{event_id}/registrations")
async def event_registrations(
    event_id: str,
    page: EventDetailController = Depends(controller(EventDetailController)),
):
    attendees: List[Dict[str, Any]] = await page.load_attendees(event_id)
    raise_for_page(page)
    return {
        "eventId": event_id,
        "registrations": [
            {
                "id": row.get("id"),
                "userId": row.get("user_id"),
                "status": row.get("status"),
                "ticketCode": row.get("ticket_code"),
                "createdAt": row.get("created_at"),
            }
            for row in attendees
        ],
    }


# ----------------------------------------------------------------------
# Organizations and calendar


@app.get("/organizations")
async def organizations(
    search: str = Query(default=""),
    page: OrganizationListController = Depends(controller(OrganizationListController)),
):
    await page.load()
    raise_for_page(page)
    return page.as_dict(search)


@app.get("/organizations/{org_id}")
async def organization_detail(
    org_id: str,
    page: OrganizationDetailController = Depends(controller(OrganizationDetailController)),
):
    await page.load(org_id)
    raise_for_page(page)
    return page.as_dict()


@app.get("/calendar")
async def calendar_month(
    year: Optional[int] = Query(default=None),
    month: Optional[int] = Query(default=None),
    page: CalendarController = Depends(controller(CalendarController)),
):
    await page.load(year, month)
    raise_for_page(page)
    return page.as_dict()


# ----------------------------------------------------------------------
# Profile


@app.get("/profile")
def profile(page: ProfileSettingsController = Depends(controller(ProfileSettingsController))):
    page.load()
    return page.as_dict()


@app.patch("/profile")
async def update_profile(
    payload: ProfileUpdatePayload,
    page: ProfileSettingsController = Depends(controller(ProfileSettingsController)),
):
    await page.update_profile(payload.full_name)
    raise_for_page(page)
    return page.as_dict()


@app.post("/profile/avatar")
async def upload_avatar(
    payload: UploadPayload,
    page: ProfileSettingsController = Depends(controller(ProfileSettingsController)),
):
    try:
        upload = payload.to_upload()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await page.upload_avatar(upload)
    raise_for_page(page)
    return page.as_dict()


@app.post("/profile/password")
async def update_password(
    payload: PasswordUpdatePayload,
    page: ProfileSettingsController = Depends(controller(ProfileSettingsController)),
):
    await page.update_password(payload.new_password, payload.confirm_password)
    raise_for_page(page)
    return page.as_dict()


# ----------------------------------------------------------------------
# Developer seeding


@app.post("/seed/admin")
async def seed_admin(payload: CredentialsPayload, page: SeederController = Depends(controller(SeederController))):
    await page.create_admin(payload.email, payload.password)
    raise_for_page(page, default_status=400)
    return signed_in_response(page)


@app.post("/seed/events", status_code=201)
async def seed_events(page: SeederController = Depends(controller(SeederController))):
    await page.seed_events()
    raise_for_page(page)
    return page.as_dict()
