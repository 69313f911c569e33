"""
Login provider adapters for Google, Facebook and Apple

Each adapter builds the consent URL, exchanges the authorization code for
tokens and normalizes the provider's profile into OAuthUserData. Outbound
calls go through httpx with a bounded timeout; transport failures are mapped
onto the application error taxonomy.
"""

import base64
import hashlib
import json
import logging
import secrets
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from app.config import Settings, get_settings
from app.core.exceptions import (
    InvalidArgument,
    NotConfigured,
    ProviderExchangeFailed,
    ProviderTimeout,
    ProviderUnreachable,
)
from app.core.time import utcnow
from app.schemas.oauth import AuthorizationRequest, OAuthTokens, OAuthUserData, ProviderInfo

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("google", "facebook", "apple")


def encode_state(state: str, custom_redirect: Optional[str] = None) -> str:
    """Append a base64-encoded redirect target to the CSRF state."""
    if not custom_redirect:
        return state
    encoded = base64.b64encode(custom_redirect.encode("utf-8")).decode("ascii")
    return f"{state}|{encoded}"


def split_state(returned_state: str) -> str:
    """Strip the redirect suffix from a state echoed back by a provider."""
    return returned_state.split("|", 1)[0]


def _provider_error_code(response: httpx.Response) -> str:
    """Extract the OAuth error code from a failed token response."""
    try:
        body = response.json()
    except ValueError:
        return "server_error" if response.status_code >= 500 else "invalid_request"

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, str):
        return error
    if isinstance(error, dict):
        # Graph API: {"error": {"type": "OAuthException", "code": 100, ...}}
        if error.get("type") == "OAuthException":
            return "invalid_grant"
        return "server_error"
    return "server_error" if response.status_code >= 500 else "invalid_request"


def _expires_at(expires_in: Any):
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        return None
    return utcnow() + timedelta(seconds=seconds)


class OAuthProvider(ABC):
    """Base class for login provider adapters."""

    name: str = ""
    display_name: str = ""
    scopes: List[str] = []

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            settings: Settings override
            transport: httpx transport override (tests pass a MockTransport)
        """
        self.settings = settings or get_settings()
        self.transport = transport

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether credentials for this provider are configured."""

    @property
    def redirect_uri(self) -> str:
        return self.settings.provider_redirect_uri(self.name)

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            name=self.name,
            display_name=self.display_name,
            auth_url=f"/api/v1/oauth/{self.name}"
        )

    @abstractmethod
    def generate_auth_url(self, custom_redirect: Optional[str] = None) -> AuthorizationRequest:
        """
        Build the consent URL and the values the callback must verify.

        Args:
            custom_redirect: Frontend URL to return to after login

        Returns:
            AuthorizationRequest: URL, state and (for PKCE) code verifier
        """

    @abstractmethod
    async def handle_callback(
        self,
        code: str,
        code_verifier: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> Tuple[OAuthUserData, OAuthTokens]:
        """
        Exchange an authorization code and fetch the user's identity.

        Raises:
            ProviderExchangeFailed: If the provider rejects the code or answers with unusable data
            ProviderTimeout: If the provider does not answer in time
            ProviderUnreachable: If the provider cannot be reached
        """

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        raise InvalidArgument("Token refresh is only available for Google")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.settings.oauth_http_timeout_seconds,
            transport=self.transport
        )

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request to the provider, translating transport failures."""
        try:
            async with self._client() as client:
                return await client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            logger.error(f"{self.display_name} request timed out: {url}")
            raise ProviderTimeout(f"{self.display_name} did not respond in time. Please try again later.")
        except httpx.TransportError as e:
            logger.error(f"{self.display_name} request failed: {url} - {e}")
            raise ProviderUnreachable(f"Unable to connect to {self.display_name}. Please try again later.")

    async def _exchange(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Call a token endpoint and return the decoded grant."""
        response = await self._send(method, url, **kwargs)
        if response.status_code >= 400:
            error_code = _provider_error_code(response)
            logger.error(f"{self.display_name} token exchange failed: {response.status_code} {error_code}")
            raise ProviderExchangeFailed(error_code, provider=self.name)

        try:
            data = response.json()
        except ValueError:
            raise ProviderExchangeFailed("invalid_response", provider=self.name)

        if not data.get("access_token"):
            logger.error(f"{self.display_name} token exchange returned no access token")
            raise ProviderExchangeFailed("invalid_response", provider=self.name)
        return data

    async def _fetch_profile(self, url: str, **kwargs) -> Dict[str, Any]:
        response = await self._send("GET", url, **kwargs)
        if response.status_code >= 400:
            logger.error(f"{self.display_name} profile request failed: {response.status_code} - {response.text}")
            raise ProviderExchangeFailed("invalid_response", provider=self.name)
        try:
            return response.json()
        except ValueError:
            raise ProviderExchangeFailed("invalid_response", provider=self.name)


class GoogleOAuthProvider(OAuthProvider):
    """Google OpenID Connect with PKCE."""

    name = "google"
    display_name = "Google"
    scopes = ["openid", "profile", "email"]

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

    @property
    def enabled(self) -> bool:
        return self.settings.google_configured

    @staticmethod
    def code_challenge(code_verifier: str) -> str:
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def generate_auth_url(self, custom_redirect: Optional[str] = None) -> AuthorizationRequest:
        state = secrets.token_urlsafe(32)
        code_verifier = secrets.token_urlsafe(64)

        params = {
            "response_type": "code",
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": encode_state(state, custom_redirect),
            "code_challenge": self.code_challenge(code_verifier),
            "code_challenge_method": "S256",
            # Offline access yields a refresh token; consent forces it on every login
            "access_type": "offline",
            "prompt": "consent",
        }

        return AuthorizationRequest(
            url=f"{self.AUTHORIZE_URL}?{urlencode(params)}",
            state=state,
            code_verifier=code_verifier
        )

    async def handle_callback(
        self,
        code: str,
        code_verifier: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> Tuple[OAuthUserData, OAuthTokens]:
        grant = await self._exchange(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier or "",
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
                "redirect_uri": self.redirect_uri,
            },
            headers={"Accept": "application/json"}
        )

        tokens = OAuthTokens(
            access_token=grant["access_token"],
            refresh_token=grant.get("refresh_token"),
            expires_at=_expires_at(grant.get("expires_in")),
            id_token=grant.get("id_token")
        )

        profile = await self._fetch_profile(
            self.USERINFO_URL,
            headers={
                "Authorization": f"Bearer {tokens.access_token}",
                "Accept": "application/json",
            }
        )

        if not profile.get("sub"):
            raise ProviderExchangeFailed("invalid_response", provider=self.name)

        name_parts = (profile.get("name") or "").split(" ")
        user_data = OAuthUserData(
            provider_id=str(profile["sub"]),
            email=profile.get("email") or "",
            email_verified=bool(profile.get("email_verified", False)),
            first_name=profile.get("given_name") or name_parts[0],
            last_name=profile.get("family_name") or " ".join(name_parts[1:]),
            profile_picture=profile.get("picture"),
            raw_data=profile
        )
        return user_data, tokens

    async def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        """
        Trade a stored refresh token for a new access token.

        Raises:
            ProviderExchangeFailed: If Google rejects the refresh token
        """
        grant = await self._exchange(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.settings.google_client_id,
                "client_secret": self.settings.google_client_secret,
            },
            headers={"Accept": "application/json"}
        )
        return OAuthTokens(
            access_token=grant["access_token"],
            refresh_token=grant.get("refresh_token"),
            expires_at=_expires_at(grant.get("expires_in"))
        )


class FacebookOAuthProvider(OAuthProvider):
    """Facebook Login through the Graph API."""

    name = "facebook"
    display_name = "Facebook"
    scopes = ["email", "public_profile"]

    GRAPH_VERSION = "v18.0"
    AUTHORIZE_URL = f"https://www.facebook.com/{GRAPH_VERSION}/dialog/oauth"
    TOKEN_URL = f"https://graph.facebook.com/{GRAPH_VERSION}/oauth/access_token"
    PROFILE_URL = f"https://graph.facebook.com/{GRAPH_VERSION}/me"
    PROFILE_FIELDS = "id,email,first_name,last_name,name,picture.type(large)"

    @property
    def enabled(self) -> bool:
        return self.settings.facebook_configured

    def generate_auth_url(self, custom_redirect: Optional[str] = None) -> AuthorizationRequest:
        state = secrets.token_urlsafe(32)
        params = {
            "client_id": self.settings.facebook_app_id,
            "redirect_uri": self.redirect_uri,
            "state": encode_state(state, custom_redirect),
            "scope": ",".join(self.scopes),
            "response_type": "code",
        }
        return AuthorizationRequest(url=f"{self.AUTHORIZE_URL}?{urlencode(params)}", state=state)

    async def handle_callback(
        self,
        code: str,
        code_verifier: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> Tuple[OAuthUserData, OAuthTokens]:
        grant = await self._exchange(
            "GET",
            self.TOKEN_URL,
            params={
                "client_id": self.settings.facebook_app_id,
                "client_secret": self.settings.facebook_app_secret,
                "redirect_uri": self.redirect_uri,
                "code": code,
            }
        )

        tokens = OAuthTokens(
            access_token=grant["access_token"],
            expires_at=_expires_at(grant.get("expires_in"))
        )

        profile = await self._fetch_profile(
            self.PROFILE_URL,
            params={"fields": self.PROFILE_FIELDS, "access_token": tokens.access_token}
        )

        if not profile.get("id"):
            raise ProviderExchangeFailed("invalid_response", provider=self.name)

        picture = ((profile.get("picture") or {}).get("data") or {}).get("url")
        email = profile.get("email") or ""

        user_data = OAuthUserData(
            provider_id=str(profile["id"]),
            email=email,
            # Facebook only returns confirmed addresses
            email_verified=bool(email),
            first_name=profile.get("first_name") or "",
            last_name=profile.get("last_name") or "",
            profile_picture=picture,
            raw_data=profile
        )
        return user_data, tokens


class AppleOAuthProvider(OAuthProvider):
    """Sign in with Apple (form_post callback, ES256 client secret)."""

    name = "apple"
    display_name = "Apple"
    scopes = ["name", "email"]

    ISSUER = "https://appleid.apple.com"
    AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
    TOKEN_URL = "https://appleid.apple.com/auth/token"
    KEYS_URL = "https://appleid.apple.com/auth/keys"

    CLIENT_SECRET_TTL_SECONDS = 60 * 60
    JWKS_TTL_SECONDS = 24 * 60 * 60

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._jwks: Optional[Dict[str, Any]] = None
        self._jwks_fetched_at = 0.0

    @property
    def enabled(self) -> bool:
        return self.settings.apple_configured

    def generate_auth_url(self, custom_redirect: Optional[str] = None) -> AuthorizationRequest:
        state = secrets.token_urlsafe(32)
        params = {
            "response_type": "code",
            "response_mode": "form_post",
            "client_id": self.settings.apple_client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": encode_state(state, custom_redirect),
        }
        return AuthorizationRequest(url=f"{self.AUTHORIZE_URL}?{urlencode(params)}", state=state)

    def client_secret(self) -> str:
        """Build the short-lived ES256 client secret Apple expects."""
        private_key = (self.settings.apple_private_key or "").replace("\\n", "\n")
        now = int(time.time())
        payload = {
            "iss": self.settings.apple_team_id,
            "iat": now,
            "exp": now + self.CLIENT_SECRET_TTL_SECONDS,
            "aud": self.ISSUER,
            "sub": self.settings.apple_client_id,
        }
        return jwt.encode(
            payload,
            private_key,
            algorithm="ES256",
            headers={"kid": self.settings.apple_key_id}
        )

    def _jwks_is_stale(self, kid: Optional[str]) -> bool:
        if self._jwks is None:
            return True
        if time.monotonic() - self._jwks_fetched_at > self.JWKS_TTL_SECONDS:
            return True
        # An unknown kid means Apple rotated its keys since the last fetch
        return kid not in {key.get("kid") for key in self._jwks["keys"] if isinstance(key, dict)}

    async def _signing_keys(self, kid: Optional[str] = None) -> Dict[str, Any]:
        """
        Get Apple's published signing keys, re-fetching them when the cached
        set is older than JWKS_TTL_SECONDS or does not contain kid.

        Raises:
            ProviderUnreachable: If the key set cannot be fetched or read
        """
        if not self._jwks_is_stale(kid):
            return self._jwks

        response = await self._send("GET", self.KEYS_URL)
        if response.status_code >= 400:
            logger.error(f"Apple key set request failed: {response.status_code}")
            raise ProviderUnreachable("Unable to connect to Apple. Please try again later.")

        try:
            jwks = response.json()
        except ValueError:
            jwks = None
        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            logger.error("Apple key set response is not a JWKS document")
            raise ProviderUnreachable("Unable to connect to Apple. Please try again later.")

        self._jwks = jwks
        self._jwks_fetched_at = time.monotonic()
        return self._jwks

    async def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        """
        Verify an identity token against Apple's published keys.

        Raises:
            ProviderExchangeFailed: If signature, audience, issuer or expiry do not check out
            ProviderUnreachable: If Apple's key set cannot be fetched
        """
        try:
            kid = jwt.get_unverified_header(id_token).get("kid")
        except JWTError as e:
            logger.error(f"Apple id_token is malformed: {e}")
            raise ProviderExchangeFailed("invalid_response", provider=self.name)

        jwks = await self._signing_keys(kid)
        try:
            return jwt.decode(
                id_token,
                jwks,
                algorithms=["RS256"],
                audience=self.settings.apple_client_id,
                issuer=self.ISSUER,
                options={"verify_at_hash": False}
            )
        except JWTError as e:
            logger.error(f"Apple id_token verification failed: {e}")
            raise ProviderExchangeFailed("invalid_response", provider=self.name)

    async def handle_callback(
        self,
        code: str,
        code_verifier: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ) -> Tuple[OAuthUserData, OAuthTokens]:
        extra = extra or {}

        grant = await self._exchange(
            "POST",
            self.TOKEN_URL,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.settings.apple_client_id,
                "client_secret": self.client_secret(),
                "redirect_uri": self.redirect_uri,
            },
            headers={"Accept": "application/json"}
        )

        id_token = grant.get("id_token") or extra.get("id_token")
        if not id_token:
            raise ProviderExchangeFailed("invalid_response", provider=self.name)

        claims = await self.verify_id_token(id_token)
        if not claims.get("sub"):
            raise ProviderExchangeFailed("invalid_response", provider=self.name)

        # Name is only posted on the very first authorization
        user_payload = extra.get("user") or {}
        if isinstance(user_payload, str):
            try:
                user_payload = json.loads(user_payload)
            except ValueError:
                logger.warning("Apple OAuth: failed to parse user data")
                user_payload = {}
        name = user_payload.get("name") or {}

        email_verified = claims.get("email_verified", False)
        user_data = OAuthUserData(
            provider_id=str(claims["sub"]),
            email=claims.get("email") or user_payload.get("email") or "",
            email_verified=email_verified is True or email_verified == "true",
            first_name=name.get("firstName") or "",
            last_name=name.get("lastName") or "",
            profile_picture=None,
            raw_data={"claims": claims, "user": user_payload}
        )

        tokens = OAuthTokens(
            access_token=grant["access_token"],
            refresh_token=grant.get("refresh_token"),
            expires_at=_expires_at(grant.get("expires_in")),
            id_token=id_token
        )
        return user_data, tokens


class ProviderRegistry:
    """Lookup of provider adapters by name."""

    def __init__(self, providers: List[OAuthProvider]):
        self._providers = {provider.name: provider for provider in providers}

    def get(self, name: str) -> OAuthProvider:
        """
        Get an enabled provider.

        Raises:
            InvalidArgument: If the provider name is unknown
            NotConfigured: If the provider has no credentials configured
        """
        provider = self._providers.get(name.lower())
        if provider is None:
            raise InvalidArgument(f"Invalid provider: {name}")
        if not provider.enabled:
            raise NotConfigured(f"{provider.display_name} login is not available at this time")
        return provider

    def available(self) -> List[OAuthProvider]:
        return [provider for provider in self._providers.values() if provider.enabled]


# Global provider registry instance
_provider_registry: Optional[ProviderRegistry] = None


def get_provider_registry() -> ProviderRegistry:
    """
    Get provider registry instance (singleton pattern).

    Returns:
        ProviderRegistry: Registry of all login providers
    """
    global _provider_registry
    if _provider_registry is None:
        _provider_registry = ProviderRegistry([
            GoogleOAuthProvider(),
            FacebookOAuthProvider(),
            AppleOAuthProvider(),
        ])
    return _provider_registry
