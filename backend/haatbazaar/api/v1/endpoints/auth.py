# haatbazaar/api/v1/endpoints/auth.py
from typing import Annotated
from fastapi import APIRouter, Depends, Request, status

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.core.rate_limit import limiter
from haatbazaar.core.security import CurrentUser
from haatbazaar.db.schemas.user_schemas import UserLogin, UserRegister
from haatbazaar.modules.users.service import UserService

router = APIRouter()

UserServiceDep = Annotated[UserService, Depends()]


@router.post("/register", status_code=status.HTTP_201_CREATED, summary="Register a buyer, farmer or admin")
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def register(request: Request, data: UserRegister, user_service: UserServiceDep):
    user, token = await user_service.register(data)
    message = (
        "Registration successful. Your farmer account is awaiting admin approval."
        if not user.approved else "User registered successfully"
    )
    return {"message": message, "token": token, "user": user.public()}


@router.post("/login", summary="Log in with phone and password")
@limiter.limit(settings.RATE_LIMIT_AUTH)
async def login(request: Request, data: UserLogin, user_service: UserServiceDep):
    user, token = await user_service.login(data)
    return {"message": "Login successful", "token": token, "user": user.public()}


@router.get("/me", summary="Current user profile")
async def me(current_user: CurrentUser):
    logger.bind(user_id=current_user.id).debug("Profile requested.")
    return {"user": current_user.public()}
