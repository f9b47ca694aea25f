from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class EvaluationSubject(Base):
    __tablename__ = "evaluation_subjects"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)
    name_he = Column(String(255), nullable=False)
    description_he = Column(Text, nullable=True)
    max_raw_score = Column(Integer, nullable=False)
    passing_raw_score = Column(Integer, nullable=False)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    criteria = relationship("EvaluationCriterion", back_populates="subject",
                            cascade="all, delete-orphan",
                            order_by="EvaluationCriterion.display_order")
    lessons = relationship("Lesson", back_populates="subject")
    evaluations = relationship("StudentEvaluation", back_populates="subject")

    __table_args__ = (
        CheckConstraint("passing_raw_score <= max_raw_score", name="check_passing_le_max"),
    )


class EvaluationCriterion(Base):
    __tablename__ = "evaluation_criteria"

    id = Column(Integer, primary_key=True, index=True)
    name_he = Column(String(255), nullable=False)
    description_he = Column(Text, nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    # Points obtainable on this criterion; the subject's max_raw_score is their sum
    max_score = Column(Integer, nullable=False, default=10)
    is_critical = Column(Boolean, nullable=False, default=False)
    subject_id = Column(Integer, ForeignKey("evaluation_subjects.id", ondelete="CASCADE"), nullable=False)

    subject = relationship("EvaluationSubject", back_populates="criteria")
    item_scores = relationship("EvaluationItemScore", back_populates="criterion")
