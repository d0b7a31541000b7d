"""Auth API routes."""

from __future__ import annotations

import secrets
from datetime import timedelta

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, Response, status

from auth.config import AuthConfig
from auth.dependencies import (
    enforce_login_rate_limit,
    enforce_refresh_rate_limit,
    enforce_register_rate_limit,
    get_auth_service,
    get_current_user,
    get_request_context,
    is_admin,
    require_csrf,
    set_cookie,
)
from auth.exceptions import AuthException, ForbiddenError
from auth.models import RequestContext
from auth.schemas import (
    ApiResponse,
    AuthUser,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SessionSummary,
    TokenPair,
    VerifyOtpRequest,
)
from auth.services.auth_service import AuthService

router = APIRouter()


def _set_token_cookies(response: Response, tokens: dict) -> None:
    access_max_age = int(timedelta(minutes=AuthConfig.ACCESS_TOKEN_EXPIRE_MINUTES).total_seconds())
    refresh_max_age = int(timedelta(days=AuthConfig.REFRESH_TOKEN_EXPIRE_DAYS).total_seconds())
    set_cookie(response, "access_token", tokens["access_token"], max_age=access_max_age)
    set_cookie(response, "refresh_token", tokens["refresh_token"], max_age=refresh_max_age)


def _clear_token_cookies(response: Response) -> None:
    response.delete_cookie("access_token", domain=AuthConfig.COOKIE_DOMAIN)
    response.delete_cookie("refresh_token", domain=AuthConfig.COOKIE_DOMAIN)


def _session_payload(result: dict) -> dict:
    return {
        "user": AuthUser(**result["user"]).model_dump(),
        **TokenPair(**result["tokens"]).model_dump(),
    }


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    response: Response,
    context: RequestContext = Depends(get_request_context),
    _: None = Depends(require_csrf),
    __: None = Depends(enforce_register_rate_limit),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        result = await auth_service.register(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            context=context,
        )
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    _set_token_cookies(response, result["tokens"])
    return ApiResponse(success=True, message="Registration successful", data=_session_payload(result))


@router.post("/login", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    response: Response,
    context: RequestContext = Depends(get_request_context),
    _: None = Depends(require_csrf),
    __: None = Depends(enforce_login_rate_limit),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        result = await auth_service.login(payload.email, payload.password, context=context)
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    _set_token_cookies(response, result["tokens"])
    return ApiResponse(success=True, message="Login successful", data=_session_payload(result))


@router.post("/refresh", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def refresh(
    response: Response,
    payload: RefreshTokenRequest | None = None,
    refresh_token: str | None = Cookie(default=None),
    context: RequestContext = Depends(get_request_context),
    _: None = Depends(require_csrf),
    __: None = Depends(enforce_refresh_rate_limit),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    token = (payload.refresh_token if payload else None) or refresh_token
    try:
        tokens = await auth_service.refresh(token, context=context)
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    _set_token_cookies(response, tokens)
    return ApiResponse(success=True, message="Token refreshed", data=TokenPair(**tokens).model_dump())


@router.post("/logout", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout(
    response: Response,
    payload: RefreshTokenRequest | None = None,
    refresh_token: str | None = Cookie(default=None),
    context: RequestContext = Depends(get_request_context),
    _: None = Depends(require_csrf),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    token = (payload.refresh_token if payload else None) or refresh_token
    try:
        result = await auth_service.logout(token, context=context)
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc

    _clear_token_cookies(response)
    return ApiResponse(success=True, message=result["message"], data={})


@router.post("/forgot-password", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def forgot_password(
    payload: ForgotPasswordRequest,
    _: None = Depends(require_csrf),
    __: None = Depends(enforce_login_rate_limit),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    result = await auth_service.forgot_password(payload.email)
    return ApiResponse(success=True, message=result["message"], data={})


@router.post("/verify-otp", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def verify_otp(
    payload: VerifyOtpRequest,
    _: None = Depends(require_csrf),
    __: None = Depends(enforce_login_rate_limit),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    result = await auth_service.verify_otp(payload.email, payload.otp)
    return ApiResponse(success=result["valid"], message=result["message"], data={"valid": result["valid"]})


@router.post("/reset-password", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def reset_password(
    payload: ResetPasswordRequest,
    _: None = Depends(require_csrf),
    __: None = Depends(enforce_login_rate_limit),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    try:
        result = await auth_service.reset_password(payload.email, payload.otp, payload.new_password)
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return ApiResponse(success=True, message=result["message"], data={})


@router.get("/me", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def me(current_user: dict = Depends(get_current_user)) -> ApiResponse:
    return ApiResponse(
        success=True,
        message="User retrieved",
        data={"user": AuthUser(**current_user).model_dump()},
    )


@router.get("/sessions", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def list_sessions(
    user_id: str | None = Query(default=None, alias="userId"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=20, ge=1, alias="perPage"),
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    if user_id and not is_admin(current_user):
        raise ForbiddenError()
    target_user_id = user_id or current_user["id"]

    result = await auth_service.list_sessions_for_user(target_user_id, page, per_page)
    result["items"] = [SessionSummary(**item).model_dump() for item in result["items"]]
    return ApiResponse(success=True, message="Sessions retrieved", data=result)


@router.post("/sessions/revoke-all", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def revoke_all_sessions(
    _: None = Depends(require_csrf),
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    revoked = await auth_service.revoke_all_sessions_except(
        current_user["id"], current_user.get("session_id")
    )
    return ApiResponse(success=True, message="All other sessions revoked", data={"revoked": revoked})


@router.post("/sessions/{session_id}/revoke", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def revoke_session(
    session_id: str,
    user_id: str | None = Query(default=None, alias="userId"),
    _: None = Depends(require_csrf),
    current_user: dict = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> ApiResponse:
    # Owners may revoke their own sessions; only admins may target another user
    if user_id and user_id != current_user["id"] and not is_admin(current_user):
        raise ForbiddenError("Cannot revoke sessions of other users")
    target_user_id = user_id or current_user["id"]

    try:
        await auth_service.revoke_session_by_id(target_user_id, session_id)
    except AuthException as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return ApiResponse(success=True, message="Session revoked", data={})


@router.get("/csrf", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def csrf_token(response: Response) -> ApiResponse:
    token = secrets.token_urlsafe(32)
    set_cookie(
        response,
        key=AuthConfig.CSRF_COOKIE_NAME,
        value=token,
        max_age=int(timedelta(hours=1).total_seconds()),
        http_only=AuthConfig.CSRF_COOKIE_HTTP_ONLY,
    )
    return ApiResponse(success=True, message="CSRF token issued", data={"csrf_token": token})
