from sqlalchemy import Column, String, Text, JSON, ForeignKey, Boolean, DateTime
from sqlalchemy.orm import relationship
from .base import BaseModel, utcnow


class Form(BaseModel):
    __tablename__ = "forms"

    user_id = Column(String, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    fields = Column(JSON, nullable=False, default=list)  # ordered list of field dicts
    settings = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    # Relationships
    submissions = relationship(
        "Submission",
        back_populates="form",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Submission(BaseModel):
    __tablename__ = "submissions"

    form_id = Column(String, ForeignKey("forms.id", ondelete="CASCADE"), nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)
    files = Column(JSON, nullable=False, default=list)  # list of FileRecord dicts
    ip_address = Column(String(45), nullable=True)  # IPv6 compatible
    user_agent = Column(Text, nullable=True)

    # Relationships
    form = relationship("Form", back_populates="submissions")
