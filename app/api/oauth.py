"""
OAuth 2.0 Login Router
Provider login flows (Google, Facebook, Apple), linked account management
and role selection for OAuth users
"""

import logging
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Query, Request
from fastapi.responses import RedirectResponse

from app.config import get_settings
from app.core.dependencies import get_current_user, get_oauth_service, get_role_service
from app.core.exceptions import (
    AppError,
    InvalidArgument,
    InvalidRequest,
    MissingSessionState,
    StateMismatch,
)
from app.core.rate_limit import limit_oauth_attempts
from app.models.user import User
from app.schemas.oauth import (
    ApiResponse,
    AvailableProviders,
    LinkedProviders,
    OAuthCallbackResult,
    RefreshedToken,
    RefreshTokenRequest,
    RoleStatus,
    SetRoleRequest,
    SetRoleResponse,
)
from app.services.oauth_providers import (
    SUPPORTED_PROVIDERS,
    ProviderRegistry,
    get_provider_registry,
    split_state,
)
from app.services.oauth_service import OAuthService, is_allowed_redirect_url
from app.services.role_service import RoleService

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()

STATE_COOKIE = "oauth_state"
CODE_VERIFIER_COOKIE = "oauth_code_verifier"
REDIRECT_COOKIE = "oauth_redirect"

SELECTABLE_ROLES = ("CLIENT", "VIDEOGRAPHER", "VIDEO_EDITOR")

REDIRECT_ERROR_MESSAGES = {
    "access_denied": "You cancelled the login or denied permission.",
    "invalid_state": "Your session has expired. Please try again.",
    "invalid_request": "The authentication request was invalid.",
    "server_error": "An error occurred during authentication.",
    "temporarily_unavailable": "The service is temporarily unavailable.",
    "invalid_grant": "The authorization code has expired. Please try again.",
}


def _cookie_samesite(provider_name: str) -> str:
    # Apple posts the callback cross-site, which Lax cookies do not survive
    if provider_name == "apple" and settings.is_production:
        return "none"
    return "lax"


def _start_login(provider_name: str, redirect: Optional[str], registry: ProviderRegistry) -> RedirectResponse:
    """
    Send the browser to a provider's consent page.

    Stores the CSRF state, the PKCE verifier and the post-login redirect in
    short-lived http-only cookies that the callback consumes.
    """
    provider = registry.get(provider_name)

    if redirect and not is_allowed_redirect_url(redirect):
        raise InvalidRequest("Invalid redirect URL")

    auth_request = provider.generate_auth_url(redirect)

    response = RedirectResponse(url=auth_request.url, status_code=307)
    cookie_options = dict(
        max_age=settings.oauth_cookie_max_age_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite=_cookie_samesite(provider_name),
        path="/"
    )
    response.set_cookie(STATE_COOKIE, auth_request.state, **cookie_options)
    if auth_request.code_verifier:
        response.set_cookie(CODE_VERIFIER_COOKIE, auth_request.code_verifier, **cookie_options)
    if redirect:
        response.set_cookie(REDIRECT_COOKIE, redirect, **cookie_options)

    logger.info(f"Starting {provider_name} OAuth flow")
    return response


def _clear_flow_cookies(response: RedirectResponse, provider_name: str) -> None:
    for name in (STATE_COOKIE, CODE_VERIFIER_COOKIE, REDIRECT_COOKIE):
        response.delete_cookie(
            name,
            path="/",
            secure=settings.is_production,
            httponly=True,
            samesite=_cookie_samesite(provider_name)
        )


def _redirect_error_code(error: str) -> str:
    """Map any error code onto the set the frontend error page understands."""
    if error in REDIRECT_ERROR_MESSAGES:
        return error
    # e.g. Apple's user_cancelled_authorize
    if "cancel" in error or "denied" in error:
        return "access_denied"
    return "server_error"


def _error_redirect(error: str, message: Optional[str] = None) -> RedirectResponse:
    error = _redirect_error_code(error)
    params = {
        "error": error,
        "message": message or REDIRECT_ERROR_MESSAGES[error],
    }
    # 302 so the browser follows with a GET, also after Apple's form POST
    return RedirectResponse(url=f"{settings.oauth_error_url}?{urlencode(params)}", status_code=302)


def _success_redirect(
    result: OAuthCallbackResult,
    provider_name: str,
    custom_redirect: Optional[str]
) -> RedirectResponse:
    target = settings.oauth_success_url
    if custom_redirect and is_allowed_redirect_url(custom_redirect):
        target = custom_redirect

    params = {
        "token": result.token,
        "isNewUser": "true" if result.is_new_user else "false",
        "provider": provider_name,
        "userId": str(result.user.user_id),
    }
    return RedirectResponse(url=f"{target}?{urlencode(params)}", status_code=302)


def _check_state(provider_name: str, state: Optional[str], stored_state: Optional[str]) -> None:
    if not state:
        logger.warning(f"{provider_name} OAuth callback missing state parameter")
        raise InvalidRequest("Missing state parameter")

    if not stored_state:
        logger.warning(f"{provider_name} OAuth callback missing stored state cookie")
        raise MissingSessionState()

    if not secrets.compare_digest(split_state(state), stored_state):
        logger.warning(f"{provider_name} OAuth state mismatch")
        raise StateMismatch()


async def _finish_login(
    request: Request,
    provider_name: str,
    service: OAuthService,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str] = None,
    error_description: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None
) -> RedirectResponse:
    """
    Validate a provider callback, complete the login and redirect to the frontend.

    Every outcome is a redirect; the flow cookies are cleared on all of them.
    """
    stored_state = request.cookies.get(STATE_COOKIE)
    code_verifier = request.cookies.get(CODE_VERIFIER_COOKIE)
    custom_redirect = request.cookies.get(REDIRECT_COOKIE)

    try:
        if error:
            logger.warning(f"{provider_name} OAuth error: {error} - {error_description}")
            response = _error_redirect(error, error_description)
        else:
            if not code:
                logger.warning(f"{provider_name} OAuth callback missing authorization code")
                raise InvalidRequest("Missing authorization code")

            _check_state(provider_name, state, stored_state)

            if provider_name == "google" and not code_verifier:
                logger.warning("google OAuth callback missing code verifier")
                raise InvalidRequest("PKCE verification failed. Please try again.")

            result = await service.handle_callback(
                provider_name,
                code,
                code_verifier if provider_name == "google" else None,
                extra
            )
            response = _success_redirect(result, provider_name, custom_redirect)

    except AppError as e:
        logger.warning(f"{provider_name} OAuth callback failed: {e.error_code} - {e.message}")
        response = _error_redirect(e.error_code, e.message)
    except Exception as e:
        logger.error(f"{provider_name} OAuth callback error: {e}", exc_info=True)
        response = _error_redirect("server_error", "Authentication failed")

    _clear_flow_cookies(response, provider_name)
    return response


# Provider discovery
@router.get("/providers", response_model=ApiResponse[AvailableProviders])
async def list_providers(
    service: OAuthService = Depends(get_oauth_service)
) -> ApiResponse[AvailableProviders]:
    """
    List the login providers that are configured on this server.

    Returns:
        ApiResponse: Enabled providers with their login URLs
    """
    return ApiResponse(
        message="OAuth providers retrieved successfully",
        data=AvailableProviders(providers=service.get_available_providers())
    )


# Login initiation
@router.get("/google", dependencies=[Depends(limit_oauth_attempts)])
async def google_login(
    redirect: Optional[str] = Query(None, description="Frontend URL to return to after login"),
    registry: ProviderRegistry = Depends(get_provider_registry)
) -> RedirectResponse:
    return _start_login("google", redirect, registry)


@router.get("/facebook", dependencies=[Depends(limit_oauth_attempts)])
async def facebook_login(
    redirect: Optional[str] = Query(None, description="Frontend URL to return to after login"),
    registry: ProviderRegistry = Depends(get_provider_registry)
) -> RedirectResponse:
    return _start_login("facebook", redirect, registry)


@router.get("/apple", dependencies=[Depends(limit_oauth_attempts)])
async def apple_login(
    redirect: Optional[str] = Query(None, description="Frontend URL to return to after login"),
    registry: ProviderRegistry = Depends(get_provider_registry)
) -> RedirectResponse:
    return _start_login("apple", redirect, registry)


# Provider callbacks
@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    service: OAuthService = Depends(get_oauth_service)
) -> RedirectResponse:
    return await _finish_login(request, "google", service, code, state, error, error_description)


@router.get("/facebook/callback")
async def facebook_callback(
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    service: OAuthService = Depends(get_oauth_service)
) -> RedirectResponse:
    return await _finish_login(request, "facebook", service, code, state, error, error_description)


@router.post("/apple/callback")
async def apple_callback(
    request: Request,
    code: Optional[str] = Form(None),
    state: Optional[str] = Form(None),
    id_token: Optional[str] = Form(None),
    user: Optional[str] = Form(None),
    error: Optional[str] = Form(None),
    service: OAuthService = Depends(get_oauth_service)
) -> RedirectResponse:
    """
    Apple posts the callback as a form; `user` is only sent on the first authorization.
    """
    return await _finish_login(
        request,
        "apple",
        service,
        code,
        state,
        error,
        "Apple authentication failed" if error else None,
        extra={"id_token": id_token, "user": user}
    )


# Linked account management
@router.get("/linked", response_model=ApiResponse[LinkedProviders])
async def get_linked_providers(
    current_user: User = Depends(get_current_user),
    service: OAuthService = Depends(get_oauth_service)
) -> ApiResponse[LinkedProviders]:
    """
    List the providers linked to the current user.

    Args:
        current_user: Current authenticated user
        service: OAuth service

    Returns:
        ApiResponse: Linked provider names
    """
    providers = await service.get_linked_providers(current_user.user_id)
    return ApiResponse(
        message="Linked providers retrieved successfully",
        data=LinkedProviders(providers=providers)
    )


@router.delete("/unlink/{provider}", response_model=ApiResponse)
async def unlink_provider(
    provider: str,
    current_user: User = Depends(get_current_user),
    service: OAuthService = Depends(get_oauth_service)
) -> ApiResponse:
    """
    Unlink a provider from the current user.

    Raises:
        InvalidArgument: If the provider is unknown or is the only way to sign in
        NotFound: If the provider is not linked
    """
    provider = provider.lower()
    if provider not in SUPPORTED_PROVIDERS:
        raise InvalidArgument(f"Invalid provider: {provider}")

    await service.unlink_provider(current_user.user_id, provider)

    return ApiResponse(message=f"{provider.capitalize()} account unlinked successfully")


@router.post("/refresh", response_model=ApiResponse[RefreshedToken])
async def refresh_provider_token(
    refresh_request: RefreshTokenRequest,
    current_user: User = Depends(get_current_user),
    service: OAuthService = Depends(get_oauth_service)
) -> ApiResponse[RefreshedToken]:
    """
    Refresh the stored Google access token of the current user.

    Raises:
        InvalidArgument: If the provider is not Google or the user has to log in again
    """
    if refresh_request.provider.lower() != "google":
        raise InvalidArgument("Token refresh is only available for Google")

    tokens = await service.refresh_provider_token(current_user.user_id, "google")
    if not tokens:
        raise InvalidArgument("Unable to refresh token. Please re-authenticate with Google.")

    return ApiResponse(
        message="Token refreshed successfully",
        data=RefreshedToken(access_token=tokens.access_token, expires_at=tokens.expires_at)
    )


# Role selection
@router.post("/set-role", response_model=ApiResponse[SetRoleResponse])
async def set_role(
    role_request: SetRoleRequest,
    current_user: User = Depends(get_current_user),
    role_service: RoleService = Depends(get_role_service)
) -> ApiResponse[SetRoleResponse]:
    """
    Pick the business role of an OAuth user after the first login.

    Args:
        role_request: Requested role (CLIENT, VIDEOGRAPHER or VIDEO_EDITOR)
        current_user: Current authenticated user
        role_service: Role service

    Returns:
        ApiResponse: New token with the updated roles, dashboard hint and signup bonus outcome

    Raises:
        InvalidArgument: If the role cannot be self-assigned
    """
    user_id = current_user.user_id
    role = role_request.role.strip().upper()
    if role not in SELECTABLE_ROLES:
        raise InvalidArgument(f"Invalid role. Must be one of: {', '.join(SELECTABLE_ROLES)}")

    result = await role_service.set_role(user_id, role)

    redirect = "/dashboard/client-dashboard" if role == "CLIENT" else "/dashboard/freelancer-dashboard"

    message = "Role set successfully"
    if result.signup_bonus and result.signup_bonus.success:
        message = f"Role set successfully! {result.signup_bonus.message}"

    logger.info(f"User {user_id} set role to {role}")

    return ApiResponse(
        message=message,
        data=SetRoleResponse(
            user_id=user_id,
            role=role,
            redirect=redirect,
            token=result.token,
            signup_bonus=result.signup_bonus
        )
    )


@router.get("/role-status", response_model=ApiResponse[RoleStatus])
async def get_role_status(
    current_user: User = Depends(get_current_user),
    role_service: RoleService = Depends(get_role_service)
) -> ApiResponse[RoleStatus]:
    """
    Check whether the current user still has to pick a role.
    """
    status = await role_service.get_user_role_status(current_user.user_id)
    return ApiResponse(data=status)
