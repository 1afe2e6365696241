from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..errors import SupabaseError, error_message
from ..models import EventStatus, EventType
from .base import PageController


logger = logging.getLogger(__name__)

ADMIN_METADATA = {"full_name": "Admin User", "role": "organizer"}

SAMPLE_EVENTS: List[Dict[str, Any]] = [
    {
        "title": "Seminar Nasional Kewirausahaan Digital",
        "date": "2025-03-12",
        "time": "09:00",
        "location": "Auditorium Utama UNUGHA",
        "description": "Talkshow bersama pelaku startup lokal tentang membangun usaha berbasis teknologi.",
        "type": EventType.SEMINAR.value,
        "status": EventStatus.OPEN.value,
        "is_public": True,
        "image_url": "https://images.unsplash.com/photo-1540575467063-178a50c2df87",
    },
    {
        "title": "Workshop UI/UX untuk Pemula",
        "date": "2025-03-20",
        "time": "13:00",
        "location": "Lab Komputer Gedung B",
        "description": "Belajar merancang antarmuka aplikasi dengan Figma dari nol.",
        "type": EventType.WORKSHOP.value,
        "status": EventStatus.OPEN.value,
        "is_public": True,
        "image_url": "https://images.unsplash.com/photo-1559028012-481c04fa702d",
    },
    {
        "title": "Lomba Debat Antar Fakultas",
        "date": "2025-04-05",
        "time": "08:00",
        "location": "Gedung Serbaguna",
        "description": "Kompetisi debat tahunan memperebutkan piala rektor.",
        "type": EventType.COMPETITION.value,
        "status": EventStatus.UPCOMING.value,
        "is_public": True,
        "image_url": "https://images.unsplash.com/photo-1475721027785-f74eccf877e2",
    },
    {
        "title": "Kelas Online: Pengantar Machine Learning",
        "date": "2025-04-18",
        "time": "19:30",
        "location": "Online via Zoom",
        "description": "Sesi daring mengenal konsep dasar machine learning dan penerapannya.",
        "type": EventType.AI.value,
        "status": EventStatus.OPEN.value,
        "is_public": True,
        "image_url": "https://images.unsplash.com/photo-1555949963-aa79dcee981c",
    },
    {
        "title": "Pentas Seni Budaya Nusantara",
        "date": "2024-11-30",
        "time": "18:30",
        "location": "Lapangan Kampus Utama",
        "description": "Pertunjukan tari dan musik tradisional dari UKM seni kampus.",
        "type": EventType.ART_CULTURE.value,
        "status": EventStatus.DONE.value,
        "is_public": True,
        "image_url": "https://images.unsplash.com/photo-1514525253161-7a46d19cd819",
    },
    {
        "title": "Rapat Kerja UKM Teknologi",
        "date": "2025-02-08",
        "time": "15:00",
        "location": "Sekretariat UKM Lt. 2",
        "description": "Penyusunan program kerja semester genap (khusus anggota).",
        "type": EventType.UKM.value,
        "status": EventStatus.DRAFT.value,
        "is_public": False,
        "image_url": None,
    },
]


class SeederController(PageController):
    """Developer page: create an organizer account and insert sample events."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # One of "success", "warning", "error" once an action has run.
        self.status: str | None = None

    def _report(self, status: str, message: str) -> None:
        self.status = status
        if status == "error":
            self.error = message
            self.notice = None
        else:
            self.notice = message
            self.error = None

    async def create_admin(self, email: str, password: str) -> str:
        self.status = None
        self.error = None
        self.notice = None
        self.status_code = None

        email = (email or "").strip()
        if not email or not password:
            self._invalid(ValueError("Email and password are required"))
            self.status = "error"
            return self.status

        self.loading = True
        try:
            response = await self.session.sign_up(email, password, metadata=dict(ADMIN_METADATA))
        except SupabaseError as exc:
            message = error_message(exc)
            if "already registered" in message or exc.code == "user_already_exists":
                logger.info("Admin account already exists; signing in instead")
                await self._sign_in_existing(email, password)
            else:
                self._report("error", f"Registration failed: {message}")
            return self.status or "error"
        finally:
            self.loading = False

        if response.user is not None and response.session is None:
            self._report(
                "warning",
                "User created but the email must be VERIFIED first. Check your inbox "
                "or disable \"Confirm email\" in the Supabase dashboard.",
            )
        else:
            self._report("success", "User created and signed in!")
        return self.status or "success"

    async def _sign_in_existing(self, email: str, password: str) -> None:
        try:
            await self.session.sign_in(email, password)
        except SupabaseError as exc:
            message = error_message(exc)
            logger.warning("Sign-in for existing admin account failed: %s", message)
            if "Invalid login credentials" in message:
                self._report(
                    "error",
                    "SIGN-IN FAILED: wrong password or the email is not confirmed. "
                    "Try again with a new email address.",
                )
            elif "Email not confirmed" in message:
                self._report(
                    "warning",
                    "This email is registered but NOT VERIFIED yet. Check your inbox or use another email.",
                )
            else:
                self._report("error", f"Sign-in failed: {message}")
            return
        self._report("success", "User already exists and is now signed in!")

    async def seed_events(self) -> str:
        self.status = None
        self.status_code = None
        user = self.user
        if user is None:
            self._report("error", "You must be signed in before seeding data.")
            self.status_code = 401
            return "error"

        rows = [dict(event, host_id=user.id, organization_id=None) for event in SAMPLE_EVENTS]
        self.loading = True
        try:
            await self.client.table("events").insert(rows).execute()
        except SupabaseError as exc:
            self._fail(exc, "Failed to seed data: ")
            self.status = "error"
            return "error"
        finally:
            self.loading = False

        self._report("success", f"Inserted {len(rows)} sample events. Open the Discover page to see them.")
        return "success"

    def as_dict(self) -> Dict[str, Any]:
        state = super().as_dict()
        state["status"] = self.status
        return state
