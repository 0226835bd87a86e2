from sqlalchemy import Column, Integer, Text
from sqlalchemy.orm import relationship
from sharecdn.database import Base


class User(Base):
    __tablename__ = "users"

    username = Column(Text, primary_key=True)
    email = Column(Text, nullable=False)
    password_hash = Column(Text, nullable=False)
    role = Column(Text, nullable=False, default="user")
    created_at = Column(Integer, nullable=False)
    background_type = Column(Text, nullable=False, default="color")
    background_value = Column(Text, nullable=False, default="#05080f")

    images = relationship("Image", back_populates="owner_user", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
