from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class StudentSkills(Base):
    __tablename__ = "student_skills"

    id = Column(Integer, primary_key=True, index=True)
    meters_30 = Column(Boolean, nullable=False, default=False)
    meters_40 = Column(Boolean, nullable=False, default=False)
    guidance = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), unique=True, nullable=False)

    student = relationship("Student", back_populates="skills")
