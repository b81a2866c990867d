"""JWT-based stateless authentication for academy staff."""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from academy.api.deps import CurrentUser, create_access_token, verify_password
from academy.models.user import User, UserOut

router = APIRouter()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: str
    password: str


@router.post("/login", response_model=TokenResponse)
async def login(req: LoginRequest):
    user = await User.find_one(User.email == req.email)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not verify_password(req.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return TokenResponse(access_token=create_access_token(str(user.id), user.role.value))


@router.get("/me", response_model=UserOut)
async def me(user: CurrentUser):
    return UserOut(
        id=str(user.id),
        email=user.email,
        role=user.role,
        full_name=user.full_name,
        is_active=user.is_active,
    )
