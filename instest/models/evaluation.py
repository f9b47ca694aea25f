from sqlalchemy import (Column, Integer, String, Text, Boolean, Date, DateTime, Numeric,
                        ForeignKey, CheckConstraint, UniqueConstraint)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class StudentEvaluation(Base):
    __tablename__ = "student_evaluations"

    id = Column(Integer, primary_key=True, index=True)
    evaluation_type = Column(String(20), nullable=False, default="practice")
    course_name = Column(String(255), nullable=True)
    lesson_name = Column(String(255), nullable=True)
    evaluation_date = Column(Date, nullable=False)
    raw_score = Column(Integer, nullable=False)
    percentage_score = Column(Numeric(5, 2, asdecimal=False), nullable=False)
    final_score = Column(Numeric(5, 2, asdecimal=False), nullable=False)
    is_passing = Column(Boolean, nullable=False)
    has_critical_fail = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(Integer, ForeignKey("evaluation_subjects.id"), nullable=False)
    instructor_id = Column(Integer, ForeignKey("instructors.id", ondelete="SET NULL"), nullable=True)

    student = relationship("Student", back_populates="evaluations")
    subject = relationship("EvaluationSubject", back_populates="evaluations")
    instructor = relationship("Instructor", back_populates="evaluations")
    item_scores = relationship("EvaluationItemScore", back_populates="evaluation",
                               cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("evaluation_type IN ('practice', 'test')", name="check_evaluation_type"),
        CheckConstraint("raw_score >= 0", name="check_raw_score"),
    )


class EvaluationItemScore(Base):
    __tablename__ = "evaluation_item_scores"

    id = Column(Integer, primary_key=True, index=True)
    score = Column(Integer, nullable=False)
    evaluation_id = Column(Integer, ForeignKey("student_evaluations.id", ondelete="CASCADE"), nullable=False)
    criterion_id = Column(Integer, ForeignKey("evaluation_criteria.id"), nullable=False)

    evaluation = relationship("StudentEvaluation", back_populates="item_scores")
    criterion = relationship("EvaluationCriterion", back_populates="item_scores")

    __table_args__ = (
        UniqueConstraint("evaluation_id", "criterion_id", name="unique_evaluation_criterion"),
    )
