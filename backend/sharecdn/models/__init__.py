from sharecdn.models.user import User
from sharecdn.models.image import Image
from sharecdn.models.setting import AppSetting

__all__ = ["User", "Image", "AppSetting"]
