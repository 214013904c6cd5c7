"""Auth facade - uniform results over the identity provider.

Every operation returns a value instead of raising for expected failures:
AuthSuccess/AuthFailure for sign-up, sign-in and sign-out, PasswordResult
for the two password flows and RecoveryState for link handling. Local
validation fails fast without touching the provider.
"""

import logging
import re

from starlette.concurrency import run_in_threadpool

from auth.config import AuthConfig
from auth.errors import classify
from auth.exceptions import IdentityProviderError, NoActiveSessionError
from auth.recovery import RecoveryLinkParser, create_recovery_parser, LINK_ERROR_MESSAGE
from auth.retry import RetryPolicy
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import AuthListener, AuthStateChange, AuthStateEmitter, Subscription
from auth.types import (
    AuthChangeEvent,
    AuthErrorKind,
    AuthFailure,
    AuthResult,
    AuthSuccess,
    NavigationContext,
    PasswordResult,
    ProviderSession,
    RecoveryState,
    SignInData,
    SignUpData,
)
from clients.identity_client import IdentityProviderClient
from quota.exceptions import AccountStoreError
from quota.manager import QuotaManager

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

INVALID_EMAIL_MESSAGE = "Enter a valid email address."
SIGN_UP_MESSAGE = "Account created. Check your email to confirm your account."
SIGN_IN_MESSAGE = "Login successful."
SIGN_OUT_MESSAGE = "Signed out."
RESET_SENT_MESSAGE = "Password reset link has been sent to your email."
PASSWORD_UPDATED_MESSAGE = "Password has been reset successfully."


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


class AuthGateway:
    """Sign-up, sign-in and password recovery as uniform result values.

    Session state is owned by the provider. The gateway mirrors it from the
    provider's change notifications and re-publishes them to its own
    subscribers, who hold a Subscription handle instead of shared state.
    """

    def __init__(
        self,
        provider: IdentityProviderClient,
        quota_manager: QuotaManager,
        config: AuthConfig,
        security_logger: SecurityLogger | None = None,
        recovery_parser: RecoveryLinkParser | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self._provider = provider
        self._quota = quota_manager
        self._config = config
        self._security_logger = security_logger
        self._recovery_parser = recovery_parser or create_recovery_parser(
            config.recovery_link_strategy, config.recovery_path
        )
        self._retry = retry_policy or RetryPolicy(
            times=config.retry_times,
            base_delay_seconds=config.retry_base_delay_ms / 1000,
        )
        self._emitter = AuthStateEmitter()
        self._session: ProviderSession | None = None
        self._provider_subscription: Subscription | None = None

    # -- session state ---------------------------------------------------

    async def start(self) -> ProviderSession | None:
        """Load the initial session and follow provider changes from now on."""
        if self._provider_subscription is None:
            self._provider_subscription = self._provider.on_auth_state_change(
                self._on_provider_change
            )
        self._session = await self._provider.get_session()
        self._emitter.emit(AuthChangeEvent.INITIAL_SESSION, self._session)
        return self._session

    def close(self) -> None:
        if self._provider_subscription is not None:
            self._provider_subscription.unsubscribe()
            self._provider_subscription = None

    def _on_provider_change(self, change: AuthStateChange) -> None:
        self._session = change.session
        self._emitter.emit(change.event, change.session)

    def subscribe(self, listener: AuthListener) -> Subscription:
        return self._emitter.subscribe(listener)

    @property
    def session(self) -> ProviderSession | None:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def identity_id(self) -> str | None:
        return self._session.user.id if self._session else None

    # -- helpers ---------------------------------------------------------

    async def _audit(self, event: SecurityEvent, **fields) -> None:
        if self._security_logger is not None:
            await run_in_threadpool(self._security_logger.record, event, **fields)

    async def _provider_failure(
        self, error: IdentityProviderError, event: SecurityEvent, email: str | None = None
    ) -> AuthFailure:
        classified = classify(error)
        logger.info(
            "%s: kind=%s status=%s", event.value, classified.kind.value, error.status
        )
        await self._audit(
            event,
            email=email,
            details={"kind": classified.kind.value, "status": error.status},
        )
        return AuthFailure(kind=classified.kind, message=classified.message, raw=error)

    def _weak_password_message(self) -> str:
        return f"Password must be at least {self._config.min_password_length} characters."

    # -- operations ------------------------------------------------------

    async def sign_up(self, email: str, password: str) -> AuthResult:
        """Register an identity and provision its quota account.

        A quota provisioning failure does not fail the sign-up; it is logged
        and reported as ``data.provisioned = False``. The account is created
        lazily on first sign-in instead.
        """
        email = email.strip()
        if not is_valid_email(email):
            return AuthFailure(kind=AuthErrorKind.INVALID_EMAIL, message=INVALID_EMAIL_MESSAGE)
        if len(password) < self._config.min_password_length:
            return AuthFailure(kind=AuthErrorKind.WEAK_PASSWORD, message=self._weak_password_message())

        try:
            user = await self._retry.run(lambda: self._provider.sign_up(email, password))
        except IdentityProviderError as e:
            return await self._provider_failure(e, SecurityEvent.SIGN_UP_FAILED, email)

        provisioned = True
        try:
            await run_in_threadpool(self._quota.provision, user.id, email)
        except AccountStoreError:
            provisioned = False
            logger.exception("Quota provisioning failed for new identity %s", user.id)
            await self._audit(SecurityEvent.QUOTA_PROVISION_FAILED, email=email, user_id=user.id)

        await self._audit(SecurityEvent.SIGN_UP_SUCCEEDED, email=email, user_id=user.id)
        return AuthSuccess(
            message=SIGN_UP_MESSAGE,
            data=SignUpData(user_id=user.id, provisioned=provisioned),
        )

    async def sign_in(self, email: str, password: str) -> AuthResult:
        email = email.strip()
        if not is_valid_email(email):
            return AuthFailure(kind=AuthErrorKind.INVALID_EMAIL, message=INVALID_EMAIL_MESSAGE)

        try:
            session = await self._retry.run(
                lambda: self._provider.sign_in_with_password(email, password)
            )
        except IdentityProviderError as e:
            return await self._provider_failure(e, SecurityEvent.SIGN_IN_FAILED, email)

        try:
            await run_in_threadpool(
                self._quota.ensure_account, session.user.id, session.user.email or email
            )
        except AccountStoreError:
            logger.exception("Lazy quota provisioning failed for %s", session.user.id)

        await self._audit(SecurityEvent.SIGN_IN_SUCCEEDED, email=email, user_id=session.user.id)
        return AuthSuccess(
            message=SIGN_IN_MESSAGE,
            data=SignInData(user_id=session.user.id, session=session),
        )

    async def sign_out(self) -> AuthResult:
        user_id = self.identity_id
        try:
            await self._provider.sign_out()
        except IdentityProviderError as e:
            return await self._provider_failure(e, SecurityEvent.SIGNED_OUT)
        await self._audit(SecurityEvent.SIGNED_OUT, user_id=user_id)
        return AuthSuccess(message=SIGN_OUT_MESSAGE)

    async def request_password_reset(self, email: str) -> PasswordResult:
        """Have the provider email a recovery link. Not retried."""
        email = email.strip()
        if not is_valid_email(email):
            return PasswordResult(success=False, message=INVALID_EMAIL_MESSAGE)

        try:
            await self._provider.reset_password_for_email(
                email, redirect_to=self._config.recovery_redirect_url
            )
        except IdentityProviderError as e:
            failure = await self._provider_failure(e, SecurityEvent.PASSWORD_RESET_FAILED, email)
            return PasswordResult(success=False, message=failure.message)

        await self._audit(SecurityEvent.PASSWORD_RESET_REQUESTED, email=email)
        return PasswordResult(success=True, message=RESET_SENT_MESSAGE)

    async def update_password(self, new_password: str) -> PasswordResult:
        """Set a new password inside the session the recovery link established."""
        if len(new_password) < self._config.min_password_length:
            return PasswordResult(success=False, message=self._weak_password_message())

        try:
            user = await self._provider.update_user(password=new_password)
        except NoActiveSessionError:
            logger.info("Password update attempted without a recovery session")
            return PasswordResult(success=False, message=LINK_ERROR_MESSAGE)
        except IdentityProviderError as e:
            failure = await self._provider_failure(e, SecurityEvent.PASSWORD_UPDATE_FAILED)
            return PasswordResult(success=False, message=failure.message)

        await self._audit(SecurityEvent.PASSWORD_UPDATED, email=user.email, user_id=user.id)
        return PasswordResult(success=True, message=PASSWORD_UPDATED_MESSAGE)

    async def init_recovery_from_context(
        self,
        navigation_context: NavigationContext | str,
        code_verifier: str | None = None,
    ) -> RecoveryState:
        """Decide what the landing URL means for the recovery flow.

        ``code_verifier`` is needed when the link carries a PKCE ``?code=``.
        """
        if isinstance(navigation_context, str):
            navigation_context = NavigationContext.from_url(navigation_context)
        return await self._recovery_parser.resolve(
            navigation_context, self._provider, code_verifier=code_verifier
        )
