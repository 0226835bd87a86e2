from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from sharecdn.database import Base


class Image(Base):
    __tablename__ = "images"

    id = Column(Text, primary_key=True)
    filename = Column(Text, nullable=False, unique=True)
    original_name = Column(Text)
    size_bytes = Column(Integer, nullable=False)
    url = Column(Text, nullable=False)
    owner = Column(Text, ForeignKey("users.username", ondelete="CASCADE"), nullable=True)
    uploaded_at = Column(Integer, nullable=False)

    owner_user = relationship("User", back_populates="images")
