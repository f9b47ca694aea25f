from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class StudentAbsence(Base):
    __tablename__ = "student_absences"

    id = Column(Integer, primary_key=True, index=True)
    absence_date = Column(Date, nullable=False)
    reason = Column(String(255), nullable=True)
    is_excused = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)

    student = relationship("Student", back_populates="absences")
