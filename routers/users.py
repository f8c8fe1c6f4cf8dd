"""Users API router."""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from auth import get_current_user
from config import ACCESS_TOKEN_COOKIE
from database import get_db
from dependencies import get_user_service
from models import User
from schemas import (
    ApiResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserResponse,
    api_response
)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", status_code=201, response_model=ApiResponse[UserResponse])
def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    user_service = Depends(get_user_service)
):
    """Register a new buyer or seller."""
    user = user_service.register(db, request)
    return api_response(UserResponse.model_validate(user), "User registered successfully", 201)


@router.post("/login", response_model=ApiResponse[LoginResponse])
def login(
    request: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    user_service = Depends(get_user_service)
):
    """Authenticate with username or email and receive a bearer token."""
    token, user = user_service.login(
        db,
        password=request.password,
        username=request.username,
        email=request.email
    )
    response.set_cookie(ACCESS_TOKEN_COOKIE, token, httponly=True, secure=True)

    return api_response(
        LoginResponse(access_token=token, user=UserResponse.model_validate(user)),
        "User logged in successfully"
    )


@router.post("/logout", response_model=ApiResponse[dict])
def logout(
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    user_service = Depends(get_user_service)
):
    """Revoke the caller's access token - requires authentication."""
    user_service.logout(db, current_user.id)
    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    return api_response({}, "User logged out")
