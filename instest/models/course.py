from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base

# Stored value -> display label
COURSE_TYPE_LABELS = {
    "מדריך_עוזר": "מדריך עוזר",
    "מדריך": "מדריך",
    "מדריך_עוזר_משולב_עם_מדריך": "מדריך עוזר משולב עם מדריך",
    "קרוסאובר": "קרוסאובר",
}


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    course_type = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    students = relationship("CourseStudent", back_populates="course", cascade="all, delete-orphan")
    instructors = relationship("CourseInstructor", back_populates="course", cascade="all, delete-orphan")

    @property
    def course_type_label(self):
        return COURSE_TYPE_LABELS.get(self.course_type, self.course_type)


class CourseStudent(Base):
    __tablename__ = "course_students"

    id = Column(Integer, primary_key=True, index=True)
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now())
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)

    course = relationship("Course", back_populates="students")
    student = relationship("Student", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="unique_course_student"),
    )


class CourseInstructor(Base):
    __tablename__ = "course_instructors"

    id = Column(Integer, primary_key=True, index=True)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    instructor_id = Column(Integer, ForeignKey("instructors.id", ondelete="CASCADE"), nullable=False)

    course = relationship("Course", back_populates="instructors")
    instructor = relationship("Instructor", back_populates="assignments")

    __table_args__ = (
        UniqueConstraint("course_id", "instructor_id", name="unique_course_instructor"),
    )
