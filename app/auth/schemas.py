from pydantic import BaseModel
from typing import Optional


class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


class UserBase(BaseSchema):
    email: str
    name: str


class UserCreate(UserBase):
    password: str


class UserOut(UserBase):
    id: int
    role: str = "USER"


class LoginRequest(BaseSchema):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[UserOut] = None
