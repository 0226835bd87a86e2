from pydantic import BaseModel


class LoginRequest(BaseModel):
    username: str | None = None
    password: str | None = None


class LoginResponse(BaseModel):
    success: bool = True
    username: str
    email: str


class RegisterRequest(BaseModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None
