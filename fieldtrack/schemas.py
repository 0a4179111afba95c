from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

AccountType = Literal["user", "admin"]


class SignUpRequest(BaseModel):
    email: str
    password: str
    name: str
    accountType: AccountType = "user"
    code: Optional[str] = None  # admin or user sign-up code, depending on accountType


class SignInRequest(BaseModel):
    email: str
    password: str
    accountType: AccountType = "user"


class UserResponse(BaseModel):
    id: int
    uid: str
    name: Optional[str]
    email: str
    role: AccountType
    createdAt: Optional[datetime] = None


class SessionResponse(BaseModel):
    idToken: str
    refreshToken: Optional[str] = None
    expiresIn: int
    user: UserResponse


class MessageResponse(BaseModel):
    message: str
