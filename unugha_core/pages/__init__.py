"""Per-page controllers that own local UI state."""

from .base import PageController
from .calendar_view import CalendarController
from .create_event import CreateEventController
from .dashboard import DashboardController
from .event_detail import EventDetailController
from .login import LoginController, LoginMode
from .organizations import OrganizationDetailController, OrganizationListController
from .profile import ProfileSettingsController
from .seeder import SeederController

__all__ = [
    "PageController",
    "CalendarController",
    "CreateEventController",
    "DashboardController",
    "EventDetailController",
    "LoginController",
    "LoginMode",
    "OrganizationDetailController",
    "OrganizationListController",
    "ProfileSettingsController",
    "SeederController",
]
