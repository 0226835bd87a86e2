from pydantic import BaseModel


class BackgroundPreference(BaseModel):
    type: str
    value: str


class UserResponse(BaseModel):
    username: str
    email: str
    role: str
    created_at: int
    backgroundPreference: BackgroundPreference


class MeResponse(BaseModel):
    success: bool = True
    user: UserResponse


class UserListResponse(BaseModel):
    success: bool = True
    users: list[UserResponse]


class SettingsUpdate(BaseModel):
    currentPassword: str | None = None
    newPassword: str | None = None
    newUploadToken: str | None = None


class EmailUpdate(BaseModel):
    email: str | None = None


class BackgroundUpdate(BaseModel):
    preference: dict | None = None


class BackgroundResponse(BaseModel):
    success: bool = True
    backgroundPreference: BackgroundPreference


class BackgroundTemplatesResponse(BaseModel):
    success: bool = True
    templates: list[str]
    defaultBackground: BackgroundPreference


class UserCreate(BaseModel):
    newUsername: str | None = None
    email: str | None = None
    password: str | None = None


class RegisterLockUpdate(BaseModel):
    blocked: bool | str | None = None


class RegisterLockResponse(BaseModel):
    success: bool = True
    blocked: bool
