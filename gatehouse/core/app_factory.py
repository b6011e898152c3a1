from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import ApplicationContainer
from .exceptions import register_exception_handlers
from .logging import configure_logging
from ..application.services.account_service import AccountService
from ..application.services.admin_service import AdminService
from ..application.services.paywall_service import PaywallService
from ..application.services.profile_service import ProfileService
from ..application.services.session_service import SessionService
from ..domain.models import utcnow
from ..domain.ports.persistence import AddressDeriver, Notifier, PaymentLookup
from ..infrastructure.persistence.sqlite import SQLiteSessionStore
from ..infrastructure.repositories.user_repository import UserRepository
from ..presentation.api.csrf import install_csrf_protection
from ..presentation.api.routers import admin as admin_router
from ..presentation.api.routers import auth as auth_router
from ..presentation.api.routers import meta as meta_router
from ..presentation.api.routers import user_router
from ..services.block_explorer import BlockExplorerClient
from ..services.email_service import EmailService
from ..services.passwords import PasswordHasher
from ..services.paywall_poller import PaywallPoller
from ..services.wallet import WalletAddressClient

logger = logging.getLogger(__name__)


def create_application(
    settings: Optional[Settings] = None,
    container: Optional[ApplicationContainer] = None,
) -> FastAPI:
    if settings is None:
        settings = container.settings if container is not None else Settings()

    app = FastAPI(title="Gatehouse", lifespan=_create_lifespan(settings))
    if container is not None:
        app.state.container = container  # type: ignore[attr-defined]

    register_exception_handlers(app)
    install_csrf_protection(app, cookie_secure=settings.cookie_secure)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-CSRF-Token"],
    )

    app.include_router(meta_router.router)
    app.include_router(auth_router.router)
    app.include_router(admin_router.router)
    app.include_router(user_router.router)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        container: ApplicationContainer = app.state.container  # type: ignore[attr-defined]
        return {"ok": True, "paywall_poller": container.paywall_poller.running}

    return app


def build_container(
    settings: Settings,
    *,
    notifier: Optional[Notifier] = None,
    payment_lookup: Optional[PaymentLookup] = None,
    address_deriver: Optional[AddressDeriver] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ApplicationContainer:
    """Wire stores, collaborators and workflows from ``settings``.

    The keyword arguments replace the outbound collaborators; anything left
    as ``None`` is built from configuration.
    """
    users = UserRepository(settings.database_path)
    session_store = SQLiteSessionStore(settings.database_path)

    if notifier is None:
        notifier = EmailService(
            settings.web_base_url,
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_username=settings.smtp_username,
            smtp_password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            timeout=settings.external_timeout_seconds,
        )
    if settings.paywall_enabled and payment_lookup is None:
        payment_lookup = BlockExplorerClient(
            settings.block_explorer_url, timeout=settings.external_timeout_seconds
        )
    if settings.paywall_enabled and address_deriver is None:
        address_deriver = WalletAddressClient(
            settings.wallet_url, timeout=settings.external_timeout_seconds
        )

    expose_tokens = not settings.email_enabled
    if expose_tokens:
        logger.warning("SMTP is not configured; verification tokens are returned in API replies.")

    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    paywall = PaywallService(
        users,
        payment_lookup,
        address_deriver,
        amount=settings.paywall_amount,
        expiry_hours=settings.paywall_expiry_hours,
        min_confirmations=settings.paywall_min_confirmations,
        clock=clock,
    )
    session_service = SessionService(
        session_store,
        users,
        settings.session_secret,
        max_age=settings.session_max_age,
        cookie_secure=settings.cookie_secure,
        clock=clock,
    )
    account_service = AccountService(
        users,
        notifier,
        paywall,
        hasher,
        verification_ttl=timedelta(hours=settings.verification_expiry_hours),
        reset_ttl=timedelta(hours=settings.reset_password_expiry_hours),
        lock_threshold=settings.login_attempts_to_lock,
        expose_tokens=expose_tokens,
        clock=clock,
    )
    profile_service = ProfileService(
        users,
        notifier,
        hasher,
        update_key_ttl=timedelta(hours=settings.update_key_expiry_hours),
        expose_tokens=expose_tokens,
        clock=clock,
    )
    admin_service = AdminService(users, paywall, clock=clock)
    poller = PaywallPoller(paywall, interval_seconds=settings.paywall_poll_seconds)

    return ApplicationContainer(
        settings=settings,
        users=users,
        session_store=session_store,
        session_service=session_service,
        account_service=account_service,
        profile_service=profile_service,
        paywall_service=paywall,
        admin_service=admin_service,
        paywall_poller=poller,
    )


def _create_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        container: Optional[ApplicationContainer] = getattr(app.state, "container", None)
        if container is None:
            container = build_container(settings)
            app.state.container = container  # type: ignore[attr-defined]

        purged = container.session_service.purge_expired()
        if purged:
            logger.info("Purged %s expired sessions.", purged)
        await container.paywall_poller.start()

        try:
            yield
        finally:
            await container.paywall_poller.stop()
            container.session_store.close()

    return lifespan
