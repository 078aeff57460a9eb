from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database.database import Base


class Language(Base):
    __tablename__ = "languages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(10), unique=True, nullable=False)  # sq, en, es...
    name = Column(String(100), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)

    strings = relationship("LocalizationString", back_populates="language", cascade="all, delete-orphan")


class LocalizationString(Base):
    __tablename__ = "localization_strings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    string_key = Column(String(200), nullable=False, index=True)
    language_id = Column(Integer, ForeignKey("languages.id"), nullable=False)
    value = Column(Text, nullable=False)

    language = relationship("Language", back_populates="strings")

    __table_args__ = (
        UniqueConstraint("string_key", "language_id", name="uq_localization_key_language"),
    )
