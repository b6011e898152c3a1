from dataclasses import dataclass

from ..application.services.account_service import AccountService
from ..application.services.admin_service import AdminService
from ..application.services.paywall_service import PaywallService
from ..application.services.profile_service import ProfileService
from ..application.services.session_service import SessionService
from .config import Settings
from ..domain.ports.persistence import CredentialStore, SessionRepository
from ..services.paywall_poller import PaywallPoller


@dataclass(slots=True)
class ApplicationContainer:
    """Dependency registry shared across the FastAPI application lifecycle."""

    settings: Settings
    users: CredentialStore
    session_store: SessionRepository
    session_service: SessionService
    account_service: AccountService
    profile_service: ProfileService
    paywall_service: PaywallService
    admin_service: AdminService
    paywall_poller: PaywallPoller
