# tests/test_users.py
import jwt
import pytest
from pydantic import ValidationError

from haatbazaar.core.config import settings
from haatbazaar.core.exceptions import AuthenticationError, PermissionDeniedError
from haatbazaar.core.security import (
    create_access_token, decode_access_token, hash_password, require_role, verify_password,
)
from haatbazaar.db.schemas.user_schemas import UserLogin, UserRegister, UserRole
from haatbazaar.modules.users.exceptions import (
    AdminRegistrationDisabledError, FarmerNotApprovedError, InvalidCredentialsError, UserAlreadyExistsError,
)
from haatbazaar.modules.users.service import UserService

from tests.factories import make_user


class TestPasswords:
    def test_hash_round_trip(self):
        hashed = hash_password("s3cret!")
        assert hashed != "s3cret!"
        assert verify_password("s3cret!", hashed)
        assert not verify_password("wrong", hashed)

    def test_malformed_hash_is_a_mismatch(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")


class TestTokens:
    def test_token_carries_user_id(self):
        token = create_access_token("65f0c0ffee0000000000abcd")
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        assert claims["id"] == "65f0c0ffee0000000000abcd"
        assert decode_access_token(token) == "65f0c0ffee0000000000abcd"

    def test_expired_token(self):
        token = create_access_token("65f0c0ffee0000000000abcd", expires_minutes=-1)
        with pytest.raises(AuthenticationError, match="expired"):
            decode_access_token(token)

    def test_foreign_signature(self):
        token = jwt.encode({"id": "x"}, "another-key-entirely-0123456789abcdef", algorithm="HS256")
        with pytest.raises(AuthenticationError, match="invalid"):
            decode_access_token(token)

    def test_token_without_id(self):
        token = jwt.encode({"sub": "x"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        with pytest.raises(AuthenticationError):
            decode_access_token(token)


async def test_role_guard(user_repo):
    buyer = await make_user(user_repo)
    admin_only = require_role(["admin"])

    with pytest.raises(PermissionDeniedError):
        await admin_only(buyer)
    assert await require_role(["buyer", "admin"])(buyer) is buyer


# --- Registration and login ---

def test_registration_validation():
    with pytest.raises(ValidationError):
        UserRegister(name="Ram", phone="98-abc", password="secret1")
    with pytest.raises(ValidationError):
        UserRegister(name="Ram", phone="9800000001", password="secret1", role="farmer")
    farmer = UserRegister(name="Ram", phone=" 9800000001 ", password="secret1", role="farmer", address="Dhading")
    assert farmer.phone == "9800000001"


async def test_farmer_waits_for_approval(user_repo):
    service = UserService(user_repo)
    farmer, token = await service.register(UserRegister(
        name="Hari", phone="9811111111", password="secret1", role="farmer", address="Kavre",
        latitude=27.6, longitude=85.5,
    ))
    assert not farmer.approved
    assert farmer.location.latitude == 27.6
    assert decode_access_token(token) == farmer.id

    with pytest.raises(FarmerNotApprovedError):
        await service.login(UserLogin(phone="9811111111", password="secret1"))

    await user_repo.update_by_id(farmer.id, {"$set": {"approved": True}})
    user, _ = await service.login(UserLogin(phone=" 9811111111 ", password="secret1"))
    assert user.id == farmer.id


async def test_duplicate_phone_and_bad_credentials(user_repo):
    service = UserService(user_repo)
    buyer, _ = await service.register(UserRegister(name="Gita", phone="9822222222", password="secret1"))
    assert buyer.approved and buyer.role == UserRole.BUYER
    assert buyer.address is None

    with pytest.raises(UserAlreadyExistsError):
        await service.register(UserRegister(name="Other", phone="9822222222", password="secret2"))
    with pytest.raises(InvalidCredentialsError):
        await service.login(UserLogin(phone="9822222222", password="nope"))
    with pytest.raises(InvalidCredentialsError):
        await service.login(UserLogin(phone="9000000000", password="secret1"))


async def test_admin_self_registration_is_disabled(user_repo):
    with pytest.raises(AdminRegistrationDisabledError):
        await UserService(user_repo).register(UserRegister(name="Root", phone="9833333333", password="secret1", role="admin"))


async def test_public_profile_hides_secrets(user_repo):
    user = await make_user(user_repo, expo_push_token="ExponentPushToken[x]")
    public = user.public()
    assert "hashed_password" not in public
    assert "expo_push_token" not in public
    assert public["_id"] == user.id
