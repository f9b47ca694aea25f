from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    unit_id = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    enrollments = relationship("CourseStudent", back_populates="student", cascade="all, delete-orphan")
    absences = relationship("StudentAbsence", back_populates="student", cascade="all, delete-orphan")
    evaluations = relationship("StudentEvaluation", back_populates="student", cascade="all, delete-orphan")
    external_test = relationship("ExternalTest", back_populates="student", uselist=False,
                                 cascade="all, delete-orphan")
    skills = relationship("StudentSkills", back_populates="student", uselist=False,
                          cascade="all, delete-orphan")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"
