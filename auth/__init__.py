"""Authentication facade over the external identity provider."""

from auth.exceptions import AuthError, IdentityProviderError, NoActiveSessionError
from auth.types import (
    AuthErrorKind,
    AuthFailure,
    AuthResult,
    AuthSuccess,
    NavigationContext,
    PasswordResult,
    RecoveryState,
    RecoveryStatus,
)
from auth.config import AuthConfig, IdentityProviderConfig
from auth.errors import classify
from auth.retry import RetryPolicy, with_retry
from auth.session import AuthStateChange, AuthStateEmitter, Subscription
