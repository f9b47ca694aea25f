from dataclasses import dataclass
from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from ..models.criteria import EvaluationSubject, EvaluationCriterion
from ..utils.scoring import ValidationError
import logging

logger = logging.getLogger(__name__)


class CatalogError(ValidationError):
    pass


@dataclass(frozen=True)
class CriterionInfo:
    id: int
    subject_id: int
    weight: int
    is_critical: bool
    display_order: int
    name: str = ""

    def __post_init__(self):
        if self.id is None or self.subject_id is None:
            raise CatalogError("Criterion requires id and subject_id")
        if not isinstance(self.weight, int) or self.weight <= 0:
            raise CatalogError(f"Criterion {self.id} has invalid weight {self.weight!r}")


@dataclass(frozen=True)
class SubjectInfo:
    id: int
    code: str
    name_he: str
    max_raw_score: int
    passing_raw_score: int
    display_order: int = 0

    def __post_init__(self):
        if self.id is None or not self.code:
            raise CatalogError("Subject requires id and code")
        if self.max_raw_score < 0 or self.passing_raw_score < 0:
            raise CatalogError(f"Subject {self.code} has negative scores")
        if self.passing_raw_score > self.max_raw_score:
            raise CatalogError(
                f"Subject {self.code}: passing score {self.passing_raw_score} exceeds max {self.max_raw_score}"
            )


@dataclass(frozen=True)
class CatalogSnapshot:
    """One subject and its criteria, read once and used for a whole evaluation."""
    subject: SubjectInfo
    criteria: Tuple[CriterionInfo, ...]

    def __post_init__(self):
        ordered = tuple(sorted(self.criteria, key=lambda c: (c.display_order, c.id)))
        object.__setattr__(self, "criteria", ordered)

        for criterion in ordered:
            if criterion.subject_id != self.subject.id:
                raise CatalogError(
                    f"Criterion {criterion.id} belongs to subject {criterion.subject_id}, not {self.subject.id}"
                )

        total_weight = sum(c.weight for c in ordered)
        if ordered and total_weight != self.subject.max_raw_score:
            raise CatalogError(
                f"Subject {self.subject.code}: max_raw_score {self.subject.max_raw_score} "
                f"does not match criteria total {total_weight}"
            )

    def criteria_for(self, subject_id: int) -> Tuple[CriterionInfo, ...]:
        if subject_id != self.subject.id:
            return ()
        return self.criteria

    def criterion(self, criterion_id: int) -> Optional[CriterionInfo]:
        for criterion in self.criteria:
            if criterion.id == criterion_id:
                return criterion
        return None


def snapshot_from_model(subject: EvaluationSubject) -> CatalogSnapshot:
    """Map a loaded EvaluationSubject (criteria eager-loaded) to a snapshot"""
    return CatalogSnapshot(
        subject=SubjectInfo(
            id=subject.id,
            code=subject.code,
            name_he=subject.name_he,
            max_raw_score=subject.max_raw_score,
            passing_raw_score=subject.passing_raw_score,
            display_order=subject.display_order or 0
        ),
        criteria=tuple(
            CriterionInfo(
                id=c.id,
                subject_id=c.subject_id,
                weight=c.max_score,
                is_critical=bool(c.is_critical),
                display_order=c.display_order or 0,
                name=c.name_he
            )
            for c in subject.criteria
        )
    )


async def load_catalog_snapshot(session: AsyncSession, subject_id: Optional[int] = None,
                                code: Optional[str] = None) -> Optional[CatalogSnapshot]:
    """
    Read one subject with all of its criteria. Returns None when the subject
    does not exist.
    """
    if subject_id is None and code is None:
        raise ValueError("subject_id or code is required")

    query = select(EvaluationSubject).options(selectinload(EvaluationSubject.criteria))
    if subject_id is not None:
        query = query.filter(EvaluationSubject.id == subject_id)
    else:
        query = query.filter(EvaluationSubject.code == code)

    result = await session.execute(query)
    subject = result.scalar_one_or_none()
    if not subject:
        logger.warning(f"Evaluation subject not found (id={subject_id}, code={code})")
        return None

    return snapshot_from_model(subject)


# Standard rubric: code, name, max, passing, description, criteria (name, description, critical)
STANDARD_SUBJECTS = [
    {
        "code": "intro_dive",
        "name_he": "צלילת הכרות",
        "max_raw_score": 70,
        "passing_raw_score": 40,
        "description_he": "הערכת צלילת הכרות - 7 קריטריונים",
        "criteria": [
            ("הכנה והצגת הציוד", "הכנת הציוד והצגתו לתלמיד", False),
            ("הסברים ברורים", "הסבר ברור ומובן של השלבים", False),
            ("בדיקת ציוד עם התלמיד", "ביצוע בדיקת ציוד יחד עם התלמיד", True),
            ("כניסה למים ושליטה", "כניסה בטוחה למים ושמירה על שליטה", True),
            ("תקשורת מתחת למים", "שימוש נכון בסימני יד ותקשורת", False),
            ("שמירה על קשר עין", "שמירה רציפה על קשר עין עם התלמיד", True),
            ("יציאה בטוחה", "יציאה מסודרת ובטוחה מהמים", False),
        ],
    },
    {
        "code": "equipment_lesson",
        "name_he": "שיעור ציוד",
        "max_raw_score": 110,
        "passing_raw_score": 61,
        "description_he": "הערכת שיעור ציוד - 4 חלקים",
        "criteria": [
            ("פתיחה - הצגה עצמית", "הצגה עצמית מקצועית", False),
            ("פתיחה - הצגת מטרות השיעור", "הצגה ברורה של מטרות השיעור", False),
            ("פתיחה - יצירת עניין", "יצירת מוטיבציה ועניין בנושא", False),
            ("גוף - ארגון והצגת הציוד", "ארגון מסודר והצגה נכונה של הציוד", False),
            ("גוף - הסברים מקצועיים", "מתן הסברים מקצועיים ומדויקים", True),
            ("גוף - הדגמה מעשית", "הדגמה מעשית של השימוש בציוד", False),
            ("גוף - מעורבות התלמידים", "שיתוף והפעלת התלמידים", False),
            ("בטיחות - הדגשת נקודות בטיחות", "הדגשת נקודות בטיחות חיוניות", True),
            ("בטיחות - תחזוקת ציוד", "הסבר על תחזוקה נכונה של הציוד", False),
            ("סיכום - חזרה על נקודות מפתח", "סיכום וחזרה על הנקודות העיקריות", False),
            ("סיכום - מענה לשאלות", "מענה לשאלות התלמידים", False),
        ],
    },
    {
        "code": "pre_dive_briefing",
        "name_he": "העברת תדריך לפני צלילה",
        "max_raw_score": 70,
        "passing_raw_score": 40,
        "description_he": "הערכת תדריך לפני צלילה - 7 קריטריונים",
        "criteria": [
            ("הצגת אתר הצלילה", "תיאור ברור של אתר הצלילה ומאפייניו", False),
            ("תנאי הצלילה", "סקירת תנאי מזג האוויר והים", False),
            ("תוכנית הצלילה", "הצגת תוכנית הצלילה: עומק, זמן, מסלול", True),
            ("נהלי חירום", "סקירת נהלי חירום ונקודות יציאה", True),
            ("חלוקת תפקידים", "חלוקת תפקידים ברורה בין חברי הקבוצה", False),
            ("בדיקת ציוד", "הנחיות לבדיקת ציוד לפני הצלילה", True),
            ("סימנים ותקשורת", "סקירת סימני יד ואמצעי תקשורת", False),
        ],
    },
    {
        "code": "lecture_delivery",
        "name_he": "העברת הרצאה",
        "max_raw_score": 110,
        "passing_raw_score": 72,
        "description_he": "הערכת העברת הרצאה - 4 חלקים",
        "criteria": [
            ("פתיחה - משיכת תשומת לב", "פתיחה חזקה שמושכת תשומת לב", False),
            ("פתיחה - הצגת הנושא", "הצגה ברורה של נושא ההרצאה", False),
            ("פתיחה - מטרות למידה", "הגדרת מטרות הלמידה", False),
            ("תוכן - ארגון לוגי", "ארגון לוגי ורציף של החומר", False),
            ("תוכן - דיוק מקצועי", "דיוק מקצועי בתוכן המועבר", True),
            ("תוכן - שימוש בדוגמאות", "שימוש בדוגמאות והמחשות", False),
            ("תוכן - עזרי הוראה", "שימוש יעיל בעזרי הוראה", False),
            ("העברה - שפת גוף", "שפת גוף פתוחה ומזמינה", False),
            ("העברה - קשר עין", "שמירה על קשר עין עם הקהל", False),
            ("העברה - קול ודיקציה", "קול ברור ודיקציה טובה", False),
            ("סיכום - חזרה על נקודות מפתח", "סיכום הנקודות העיקריות", False),
        ],
    },
    {
        "code": "water_lesson",
        "name_he": "העברת שיעור מים",
        "max_raw_score": 130,
        "passing_raw_score": 78,
        "description_he": "הערכת שיעור מים - 5 חלקים",
        "criteria": [
            ("הכנה - בדיקת אתר", "בדיקת האתר לפני השיעור", False),
            ("הכנה - סידור ציוד", "סידור הציוד באופן מאורגן", False),
            ("הכנה - תדריך יבשה", "תדריך מקדים ביבשה", False),
            ("הדגמה - ביצוע נכון", "הדגמה נכונה של המיומנות", True),
            ("הדגמה - מיקום נכון", "מיקום נכון ביחס לתלמידים", False),
            ("הדגמה - קצב מתאים", "קצב הדגמה מתאים להבנה", False),
            ("תרגול - הנחיות ברורות", "מתן הנחיות ברורות לתרגול", False),
            ("תרגול - מעקב אחר התלמידים", "מעקב רציף אחר ביצוע התלמידים", True),
            ("תרגול - משוב מיידי", "מתן משוב מיידי ובונה", False),
            ("בטיחות - מודעות מתמדת", "מודעות מתמדת לסביבה ולתלמידים", True),
            ("בטיחות - שליטה בקבוצה", "שליטה ובקרה על הקבוצה", True),
            ("סיום - סיכום במים", "סיכום קצר במים", False),
            ("סיום - תחקיר ביבשה", "תחקיר מסכם ביבשה", False),
        ],
    },
]

CRITERION_MAX_SCORE = 10


async def seed_catalog(session: AsyncSession) -> int:
    """Insert the standard subjects and criteria if the catalog is empty"""
    existing = await session.execute(select(func.count(EvaluationSubject.id)))
    if existing.scalar():
        return 0

    logger.info("Seeding evaluation catalog...")
    for order, data in enumerate(STANDARD_SUBJECTS, start=1):
        subject = EvaluationSubject(
            code=data["code"],
            name_he=data["name_he"],
            description_he=data["description_he"],
            max_raw_score=data["max_raw_score"],
            passing_raw_score=data["passing_raw_score"],
            display_order=order
        )
        subject.criteria = [
            EvaluationCriterion(
                name_he=name,
                description_he=description,
                display_order=index,
                max_score=CRITERION_MAX_SCORE,
                is_critical=is_critical
            )
            for index, (name, description, is_critical) in enumerate(data["criteria"], start=1)
        ]
        session.add(subject)

    await session.commit()
    logger.info(f"Seeded {len(STANDARD_SUBJECTS)} evaluation subjects")
    return len(STANDARD_SUBJECTS)
