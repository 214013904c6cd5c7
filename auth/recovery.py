"""Interpreting the page a visitor lands on after following an emailed link.

Two strategies share one contract, ``await parser.resolve(context, provider)``:

- PathRecoveryParser only checks whether the landing path is the recovery
  page. The provider has already established the temporary session by then.
- TokenRecoveryParser reads link parameters from both the query string and
  the fragment (PKCE ``?code=`` and legacy ``#access_token=`` styles) and
  establishes the session itself.
"""

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import parse_qs

from auth.errors import classify
from auth.exceptions import IdentityProviderError
from auth.types import AuthChangeEvent, AuthErrorKind, NavigationContext, RecoveryState

logger = logging.getLogger(__name__)

CONFIRMATION_LINK_TYPES = frozenset({"signup", "email_change", "invite", "magiclink"})

EMAIL_CONFIRMED_MESSAGE = "Email confirmed. You can now sign in."
LINK_ERROR_MESSAGE = "This link is invalid or has expired."


@dataclass(frozen=True)
class LinkParams:
    code: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    type: str | None = None
    error: str | None = None
    error_description: str | None = None


def parse_link_params(context: NavigationContext) -> LinkParams:
    """Merge query and fragment parameters. Fragment wins for tokens, query for code."""
    query = {k: v[0] for k, v in parse_qs(context.query).items()}
    fragment = {k: v[0] for k, v in parse_qs(context.fragment.lstrip("#")).items()}

    def first(*sources: dict, key: str) -> str | None:
        for source in sources:
            if source.get(key):
                return source[key]
        return None

    return LinkParams(
        code=first(query, fragment, key="code"),
        access_token=first(fragment, query, key="access_token"),
        refresh_token=first(fragment, query, key="refresh_token"),
        type=first(fragment, query, key="type"),
        error=first(fragment, query, key="error") or first(fragment, query, key="error_code"),
        error_description=first(fragment, query, key="error_description"),
    )


def _same_path(left: str, right: str) -> bool:
    return "/" + left.strip("/") == "/" + right.strip("/")


class RecoveryLinkParser(Protocol):
    async def resolve(
        self, context: NavigationContext, provider, code_verifier: str | None = None
    ) -> RecoveryState:
        ...


class PathRecoveryParser:
    """Ready when the visitor is on the recovery page, otherwise nothing to do."""

    def __init__(self, recovery_path: str):
        self._recovery_path = recovery_path

    async def resolve(
        self, context: NavigationContext, provider, code_verifier: str | None = None
    ) -> RecoveryState:
        if _same_path(context.path, self._recovery_path):
            return RecoveryState.ready()
        return RecoveryState.no_action()


class TokenRecoveryParser:
    """Establishes the recovery session from link parameters."""

    def __init__(self, recovery_path: str, code_verifier: str | None = None):
        self._recovery_path = recovery_path
        self._code_verifier = code_verifier

    async def resolve(
        self, context: NavigationContext, provider, code_verifier: str | None = None
    ) -> RecoveryState:
        """
        Interpret the landing URL, establishing a session when it carries one.

        ``code_verifier`` is the PKCE verifier the browser kept when it asked
        for the emailed link. It overrides the one given at construction.
        """
        params = parse_link_params(context)
        on_recovery_page = _same_path(context.path, self._recovery_path)

        if params.error:
            logger.info("Auth link carried error %s: %s", params.error, params.error_description)
            return RecoveryState.error(
                AuthErrorKind.LINK_EXPIRED_OR_INVALID,
                LINK_ERROR_MESSAGE,
                raw={"error": params.error, "error_description": params.error_description},
            )

        recovering = params.type == "recovery" or (params.type is None and on_recovery_page)
        event = AuthChangeEvent.PASSWORD_RECOVERY if recovering else AuthChangeEvent.SIGNED_IN

        try:
            if params.code:
                await provider.exchange_code_for_session(
                    params.code, code_verifier=code_verifier or self._code_verifier, event=event
                )
            elif params.access_token:
                await provider.set_session(params.access_token, params.refresh_token, event=event)
            else:
                return RecoveryState.ready() if on_recovery_page else RecoveryState.no_action()
        except IdentityProviderError as e:
            classified = classify(e)
            return RecoveryState.error(classified.kind, classified.message, raw=e)

        if recovering:
            return RecoveryState.ready()
        if params.type in CONFIRMATION_LINK_TYPES:
            return RecoveryState.email_confirmed(EMAIL_CONFIRMED_MESSAGE)
        return RecoveryState.no_action()


def create_recovery_parser(strategy: str, recovery_path: str) -> RecoveryLinkParser:
    if strategy == "token":
        return TokenRecoveryParser(recovery_path)
    return PathRecoveryParser(recovery_path)
