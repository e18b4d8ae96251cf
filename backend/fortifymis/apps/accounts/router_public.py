# backend/fortifymis/apps/accounts/router_public.py

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from fortifymis.database import get_db
from fortifymis.schemas import ApiResponse, ok
from fortifymis.security import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    create_user_token,
    get_current_active_user,
)

from . import models, permissions, schemas, services

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


@router.post("/login", response_model=ApiResponse[schemas.Token])
def login(
    payload: schemas.LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    user = services.authenticate_user(
        db,
        email=payload.email,
        password=payload.password,
        ip_address=_client_ip(request),
        user_agent=_user_agent(request),
    )
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

    db.commit()
    db.refresh(user)
    return ok(
        {
            "access_token": create_user_token(user),
            "token_type": "bearer",
            "expires_in": ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "user": user,
        }
    )


@router.post(
    "/register",
    response_model=ApiResponse[schemas.UserRead],
    status_code=status.HTTP_201_CREATED,
)
def register(
    payload: schemas.UserRegister,
    request: Request,
    db: Session = Depends(get_db),
):
    try:
        user = services.register_user(
            db,
            payload,
            ip_address=_client_ip(request),
            user_agent=_user_agent(request),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    db.commit()
    db.refresh(user)
    return ok(user, message="User created successfully")


@router.get("/me", response_model=ApiResponse[schemas.CurrentUserRead])
def read_me(current_user: models.User = Depends(get_current_active_user)):
    data = schemas.UserRead.model_validate(current_user).model_dump()
    data["permissions"] = sorted(p.value for p in permissions.permissions_for(current_user.role))
    return ok(data)
