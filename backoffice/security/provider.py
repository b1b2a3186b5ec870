"""
External authentication provider client.

Delegated email/password sign-in and OAuth id-token verification against
the Firebase Identity Toolkit REST API.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from backoffice.fastapi.core.init_settings import global_settings
from backoffice.security.errors import InvalidCredentials, ProviderError

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

# Identity Toolkit error codes that mean "wrong credentials" rather than an outage
CREDENTIAL_ERROR_CODES = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_EMAIL",
    "USER_DISABLED",
    "INVALID_IDP_RESPONSE",
    "INVALID_REFRESH_TOKEN",
    "TOKEN_EXPIRED",
    "USER_NOT_FOUND",
}


@dataclass
class ProviderAccount:
    """An account the provider has authenticated."""

    uid: str
    email: Optional[str]
    display_name: Optional[str] = None
    refresh_token: Optional[str] = field(default=None, repr=False)


class AuthProvider(Protocol):
    async def sign_in_with_password(self, email: str, password: str) -> ProviderAccount:
        ...

    async def verify_oauth_token(self, id_token: str) -> ProviderAccount:
        ...

    async def sign_out(self, account: Optional[ProviderAccount]) -> None:
        ...

    async def refresh(self, provider_token: str) -> Optional[ProviderAccount]:
        ...


class FirebaseAuthProvider:
    """
    AuthProvider backed by the Firebase Identity Toolkit REST API.

    Provider sessions are bearer tokens returned by sign-in; the server
    never stores them except inside an AdminFallback session blob, so
    signing out means discarding the tokens.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key if api_key is not None else global_settings.FIREBASE_API_KEY
        self.timeout = timeout if timeout is not None else global_settings.AUTH_PROVIDER_TIMEOUT

    async def sign_in_with_password(self, email: str, password: str) -> ProviderAccount:
        """
        Verify an email/password pair with the provider.

        Raises:
            InvalidCredentials: Provider rejected the credentials
            ProviderError: Provider unreachable or misconfigured
        """
        data = await self._post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return ProviderAccount(
            uid=data["localId"],
            email=data.get("email") or email,
            display_name=data.get("displayName"),
            refresh_token=data.get("refreshToken"),
        )

    async def verify_oauth_token(self, id_token: str) -> ProviderAccount:
        """
        Exchange a Google id token for a provider-verified account.

        Raises:
            InvalidCredentials: Token rejected by the provider
            ProviderError: No email on the account, or provider failure
        """
        data = await self._post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithIdp",
            {
                "postBody": f"id_token={id_token}&providerId=google.com",
                "requestUri": global_settings.API_BASE_URL,
                "returnSecureToken": True,
                "returnIdpCredential": True,
            },
        )
        email = data.get("email")
        if not email:
            raise ProviderError("No email address linked to this provider account.")
        return ProviderAccount(
            uid=data["localId"],
            email=email,
            display_name=data.get("displayName"),
            refresh_token=data.get("refreshToken"),
        )

    async def sign_out(self, account: Optional[ProviderAccount]) -> None:
        if account is not None:
            account.refresh_token = None
            logger.info("Discarded provider session for account %s", account.uid)

    async def refresh(self, provider_token: str) -> Optional[ProviderAccount]:
        """
        Revalidate a provider session by exchanging its refresh token.

        Returns:
            The account if the provider still accepts the session, None otherwise
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    SECURE_TOKEN_URL,
                    params={"key": self.api_key},
                    data={"grant_type": "refresh_token", "refresh_token": provider_token},
                )
        except httpx.RequestError as e:
            raise ProviderError(f"Network error: {e}") from e

        if response.status_code != 200:
            logger.info("Provider refused session refresh (status %s)", response.status_code)
            return None

        data = response.json()
        return ProviderAccount(
            uid=data["user_id"],
            email=None,
            refresh_token=data.get("refresh_token", provider_token),
        )

    async def _post(self, url: str, payload: dict) -> dict:
        if not self.api_key:
            raise ProviderError("Authentication provider is not configured.")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.TimeoutException as e:
            raise ProviderError("Request timeout - authentication provider did not respond") from e
        except httpx.RequestError as e:
            raise ProviderError(f"Network error: {e}") from e

        if response.status_code == 200:
            return response.json()

        try:
            code = response.json().get("error", {}).get("message", "")
        except ValueError:
            code = ""
        # Codes may carry a suffix, e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : ..."
        code = code.split(" ")[0]
        if code in CREDENTIAL_ERROR_CODES:
            raise InvalidCredentials()
        raise ProviderError(f"Provider returned {response.status_code}: {code or 'unknown error'}")
