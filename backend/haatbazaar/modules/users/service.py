# haatbazaar/modules/users/service.py
from typing import Any, Dict, Tuple
from fastapi import Depends

from haatbazaar.core.config import settings
from haatbazaar.core.logging_setup import logger
from haatbazaar.core.security import create_access_token, hash_password, verify_password
from haatbazaar.db.repository import DuplicateRecordError
from haatbazaar.db.schemas.user_schemas import UserDoc, UserLogin, UserRegister, UserRole
from haatbazaar.modules.users.exceptions import (
    AdminRegistrationDisabledError, FarmerNotApprovedError, InvalidCredentialsError,
    UserAlreadyExistsError, UserNotFoundError,
)
from haatbazaar.modules.users.repository import UserRepository
from haatbazaar.services.audit_service import audit_service


class UserService:
    """Registration, login and profile lookups."""

    def __init__(self, user_repo: UserRepository = Depends()):
        self.user_repo = user_repo

    async def register(self, data: UserRegister) -> Tuple[UserDoc, str]:
        log = logger.bind(phone=data.phone, role=data.role.value)
        log.info("Registering user.")
        if data.role == UserRole.ADMIN and not settings.ALLOW_ADMIN_REGISTRATION:
            raise AdminRegistrationDisabledError()
        if await self.user_repo.get_by_phone(data.phone):
            raise UserAlreadyExistsError(data.phone)

        doc: Dict[str, Any] = {
            "name": data.name.strip(),
            "phone": data.phone,
            "hashed_password": hash_password(data.password),
            "role": data.role.value,
            "address": data.address if data.role == UserRole.FARMER else None,
            "profile_pic": data.profile_pic,
            # Farmers wait for admin approval before they can sign in
            "approved": data.role != UserRole.FARMER,
            "location": None,
        }
        if data.latitude is not None and data.longitude is not None:
            doc["location"] = {"latitude": data.latitude, "longitude": data.longitude}
        try:
            user = await self.user_repo.insert(doc)
        except DuplicateRecordError as e:
            raise UserAlreadyExistsError(data.phone) from e

        log.success(f"User registered: {user.id}")
        await audit_service.log_event(actor_id=user.id, action="register", entity_type="user", entity_id=user.id)
        return user, create_access_token(user.id)

    async def login(self, data: UserLogin) -> Tuple[UserDoc, str]:
        log = logger.bind(phone=data.phone)
        user = await self.user_repo.get_by_phone(data.phone.strip())
        if not user or not verify_password(data.password, user.hashed_password):
            log.warning("Login failed: bad credentials.")
            raise InvalidCredentialsError()
        if user.role == UserRole.FARMER and not user.approved:
            log.warning("Login blocked: farmer not approved.")
            raise FarmerNotApprovedError(user.id)
        log.info(f"User logged in: {user.id}")
        return user, create_access_token(user.id)

    async def get_user(self, user_id: str) -> UserDoc:
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def set_push_token(self, user: UserDoc, token: str) -> UserDoc:
        updated = await self.user_repo.update_by_id(user.id, {"$set": {"expo_push_token": token}})
        if not updated:
            raise UserNotFoundError(user.id)
        logger.bind(user_id=user.id).info("Expo push token registered.")
        return updated
