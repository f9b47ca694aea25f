from sqlalchemy import Column, Integer, DateTime, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base

# Column name -> display name
EXTERNAL_TEST_NAMES = {
    "physics_score": "פיזיקה",
    "physiology_score": "פיזיולוגיה",
    "eye_contact_score": "קשר עין",
    "equipment_score": "ציוד",
    "decompression_score": "דקומפרסיה",
}


class ExternalTest(Base):
    __tablename__ = "external_tests"

    id = Column(Integer, primary_key=True, index=True)
    physics_score = Column(Numeric(5, 2, asdecimal=False), nullable=True)
    physiology_score = Column(Numeric(5, 2, asdecimal=False), nullable=True)
    eye_contact_score = Column(Numeric(5, 2, asdecimal=False), nullable=True)
    equipment_score = Column(Numeric(5, 2, asdecimal=False), nullable=True)
    decompression_score = Column(Numeric(5, 2, asdecimal=False), nullable=True)
    average_score = Column(Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), unique=True, nullable=False)

    student = relationship("Student", back_populates="external_test")

    __table_args__ = tuple(
        CheckConstraint(f"{column} IS NULL OR ({column} >= 0 AND {column} <= 100)", name=f"check_{column}")
        for column in EXTERNAL_TEST_NAMES
    )

    def scores(self):
        return {column: getattr(self, column) for column in EXTERNAL_TEST_NAMES}
