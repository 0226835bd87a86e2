from pydantic import BaseModel


class ImageResponse(BaseModel):
    id: str
    filename: str
    originalname: str | None
    size: int
    url: str
    owner: str | None
    uploaded_at: int


class ImageListResponse(BaseModel):
    success: bool = True
    images: list[ImageResponse]


class UploadResponse(BaseModel):
    success: bool = True
    url: str
    delete_url: str | None = None


class DeleteByFilenameRequest(BaseModel):
    filename: str | None = None
