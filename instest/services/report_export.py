"""
Final course report as an Excel workbook.

Sheets: course details, passing thresholds, absences matrix, exams matrix
(latest evaluation per student and subject) and one card per student.
The workbook is built from plain dicts so it can be produced without a
database; load_report_data() reads them from one.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from io import BytesIO
from typing import List, Optional
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import joinedload
from ..models.student import Student
from ..models.course import CourseStudent
from ..models.criteria import EvaluationSubject
from ..models.evaluation import StudentEvaluation
from ..models.absence import StudentAbsence
from ..utils.scoring import round0
import logging

logger = logging.getLogger(__name__)

HEBREW_MONTHS = [
    "ינואר", "פברואר", "מרץ", "אפריל", "מאי", "יוני",
    "יולי", "אוגוסט", "ספטמבר", "אוקטובר", "נובמבר", "דצמבר",
]
DEFAULT_COURSE_NAME = "קורס מדריכי צלילה"
CHART_PASSING_LINE = 60
SHEET_TITLE_LIMIT = 31

HEADER_FILL = PatternFill(fill_type="solid", fgColor="FFE0E0E0")
PASS_FILL = PatternFill(fill_type="solid", fgColor="FFC6EFCE")
FAIL_FILL = PatternFill(fill_type="solid", fgColor="FFFFC7CE")
EXCUSED_FILL = PatternFill(fill_type="solid", fgColor="FFFFEB9C")
PASS_FONT = Font(bold=True, color="FF008000")
FAIL_FONT = Font(bold=True, color="FFFF0000")
CENTER = Alignment(horizontal="center")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class ReportData:
    students: List[dict] = field(default_factory=list)
    subjects: List[dict] = field(default_factory=list)
    evaluations: List[dict] = field(default_factory=list)
    absences: List[dict] = field(default_factory=list)
    course_name: Optional[str] = None


def format_month_year(value: date) -> str:
    return f"{HEBREW_MONTHS[value.month - 1]} {value.year}"


def derive_course_info(evaluations: List[dict], today: Optional[date] = None) -> dict:
    """Most common course name and the month of the earliest evaluation"""
    today = today or date.today()
    if not evaluations:
        return {"name": DEFAULT_COURSE_NAME, "date": format_month_year(today)}

    names = Counter(e["course_name"] for e in evaluations if e.get("course_name"))
    dates = [e["evaluation_date"] for e in evaluations if e.get("evaluation_date")]

    return {
        "name": names.most_common(1)[0][0] if names else DEFAULT_COURSE_NAME,
        "date": format_month_year(min(dates) if dates else today)
    }


def evaluation_passed(evaluation: dict) -> bool:
    return bool(evaluation["is_passing"]) and not evaluation["has_critical_fail"]


def latest_evaluation(evaluations: List[dict], student_id: int, subject_id: int) -> Optional[dict]:
    matching = [e for e in evaluations if e["student_id"] == student_id and e["subject_id"] == subject_id]
    if not matching:
        return None
    return max(matching, key=lambda e: (e["evaluation_date"], e.get("id") or 0))


def _full_name(person: dict) -> str:
    return f"{person['first_name']} {person['last_name']}"


def _new_sheet(workbook: Workbook, title: str):
    title = re.sub(r"[\[\]:*?/\\]", "", title)[:SHEET_TITLE_LIMIT] or "Sheet"
    sheet = workbook.create_sheet(title)
    sheet.sheet_view.rightToLeft = True
    return sheet


def _style_header_row(sheet, row: int, columns: int):
    for column in range(1, columns + 1):
        cell = sheet.cell(row=row, column=column)
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL


def _course_sheet(workbook: Workbook, course_info: dict):
    sheet = _new_sheet(workbook, "קורס")
    sheet["A1"] = "פרטי הקורס"
    sheet["A1"].font = Font(bold=True, size=16)
    sheet["A3"] = "שם הקורס:"
    sheet["A3"].font = Font(bold=True)
    sheet["B3"] = course_info["name"]
    sheet["A4"] = "תאריך:"
    sheet["A4"].font = Font(bold=True)
    sheet["B4"] = course_info["date"]
    sheet.column_dimensions["A"].width = 15
    sheet.column_dimensions["B"].width = 30


def _main_sheet(workbook: Workbook, subjects: List[dict]):
    sheet = _new_sheet(workbook, "ראשי")
    sheet["A1"] = "הגדרות ציון מעבר"
    sheet["A1"].font = Font(bold=True, size=14)

    for column, title in enumerate(["נושא הערכה", "ציון מקסימלי", "ציון מעבר", "אחוז מעבר"], start=1):
        sheet.cell(row=3, column=column, value=title)
    _style_header_row(sheet, 3, 4)

    for row, subject in enumerate(subjects, start=4):
        sheet.cell(row=row, column=1, value=subject["name_he"])
        sheet.cell(row=row, column=2, value=subject["max_raw_score"])
        sheet.cell(row=row, column=3, value=subject["passing_raw_score"])
        if subject["max_raw_score"]:
            percent = round0(Decimal(subject["passing_raw_score"]) * 100 / Decimal(subject["max_raw_score"]))
            sheet.cell(row=row, column=4, value=f"{percent}%")
        else:
            sheet.cell(row=row, column=4, value="-")

    sheet.column_dimensions["A"].width = 25
    sheet.column_dimensions["B"].width = 15


def _absences_sheet(workbook: Workbook, students: List[dict], absences: List[dict]):
    sheet = _new_sheet(workbook, "העדרויות")
    sheet["A1"] = "ריכוז העדרויות"
    sheet["A1"].font = Font(bold=True, size=14)

    if not absences:
        sheet["A3"] = "אין רשומות העדרות"
        return

    dates = sorted({a["absence_date"] for a in absences})
    by_key = {(a["student_id"], a["absence_date"]): a for a in absences}

    sheet.cell(row=3, column=1, value="שם התלמיד")
    for column, day in enumerate(dates, start=2):
        sheet.cell(row=3, column=column, value=day.strftime("%d/%m"))
    _style_header_row(sheet, 3, len(dates) + 1)

    for row, student in enumerate(students, start=4):
        sheet.cell(row=row, column=1, value=_full_name(student))
        for column, day in enumerate(dates, start=2):
            absence = by_key.get((student["id"], day))
            if absence:
                cell = sheet.cell(row=row, column=column, value="מ" if absence["is_excused"] else "ח")
                cell.fill = EXCUSED_FILL if absence["is_excused"] else FAIL_FILL
                cell.alignment = CENTER

    legend_row = len(students) + 6
    sheet.cell(row=legend_row, column=1, value="מקרא:").font = Font(bold=True)
    sheet.cell(row=legend_row + 1, column=1, value="ח = חיסור")
    sheet.cell(row=legend_row + 2, column=1, value="מ = חיסור מאושר")
    sheet.column_dimensions["A"].width = 20


def _exams_sheet(workbook: Workbook, students: List[dict], subjects: List[dict], evaluations: List[dict]):
    sheet = _new_sheet(workbook, "מבחנים")
    sheet["A1"] = "ריכוז מבחנים"
    sheet["A1"].font = Font(bold=True, size=14)

    sheet.cell(row=3, column=1, value="שם התלמיד")
    for column, subject in enumerate(subjects, start=2):
        sheet.cell(row=3, column=column, value=subject["name_he"])
    _style_header_row(sheet, 3, len(subjects) + 1)

    passed_counts = [0] * len(subjects)
    for row, student in enumerate(students, start=4):
        sheet.cell(row=row, column=1, value=_full_name(student))
        for index, subject in enumerate(subjects):
            cell = sheet.cell(row=row, column=index + 2)
            cell.alignment = CENTER

            latest = latest_evaluation(evaluations, student["id"], subject["id"])
            if latest is None:
                cell.value = "-"
                continue

            passed = evaluation_passed(latest)
            cell.value = "V" if passed else "X"
            cell.font = PASS_FONT if passed else FAIL_FONT
            cell.fill = PASS_FILL if passed else FAIL_FILL
            if passed:
                passed_counts[index] += 1

    summary_row = len(students) + 5
    sheet.cell(row=summary_row, column=1, value='סה"כ עברו:').font = Font(bold=True)
    for index, count in enumerate(passed_counts):
        cell = sheet.cell(row=summary_row, column=index + 2, value=f"{count}/{len(students)}")
        cell.font = Font(bold=True)
        cell.alignment = CENTER

    sheet.column_dimensions["A"].width = 20


def _student_sheet(workbook: Workbook, student: dict, subjects: List[dict], evaluations: List[dict],
                   absences: List[dict]):
    sheet = _new_sheet(workbook, _full_name(student))
    sheet["A1"] = f"כרטיס תלמיד: {_full_name(student)}"
    sheet["A1"].font = Font(bold=True, size=14)
    sheet["A2"] = "אימייל:"
    sheet["B2"] = student["email"]
    sheet["A3"] = "טלפון:"
    sheet["B3"] = student.get("phone") or "-"
    sheet["A4"] = "יחידה:"
    sheet["B4"] = student.get("unit_id") or "-"

    sheet["A6"] = "הערכות לפי נושא"
    sheet["A6"].font = Font(bold=True, size=12)

    for column, title in enumerate(["נושא", "תאריך", "ציון גולמי", "אחוז", "סטטוס", "מדריך"], start=1):
        sheet.cell(row=8, column=column, value=title)
    _style_header_row(sheet, 8, 6)

    student_evaluations = [e for e in evaluations if e["student_id"] == student["id"]]
    row = 9
    for subject in subjects:
        subject_evaluations = sorted(
            (e for e in student_evaluations if e["subject_id"] == subject["id"]),
            key=lambda e: e["evaluation_date"]
        )
        for evaluation in subject_evaluations:
            passed = evaluation_passed(evaluation)
            sheet.cell(row=row, column=1, value=subject["name_he"])
            sheet.cell(row=row, column=2, value=evaluation["evaluation_date"].strftime("%d/%m/%Y"))
            sheet.cell(row=row, column=3, value=evaluation["raw_score"])
            sheet.cell(row=row, column=4, value=f"{round0(evaluation['percentage_score'])}%")
            status = sheet.cell(row=row, column=5, value="עבר" if passed else "נכשל")
            status.font = PASS_FONT if passed else FAIL_FONT
            status.fill = PASS_FILL if passed else FAIL_FILL
            sheet.cell(row=row, column=6, value=evaluation.get("instructor_name") or "-")
            row += 1

    absence_row = row + 2
    sheet.cell(row=absence_row, column=1, value="העדרויות").font = Font(bold=True, size=12)
    student_absences = sorted(
        (a for a in absences if a["student_id"] == student["id"]), key=lambda a: a["absence_date"]
    )
    if not student_absences:
        sheet.cell(row=absence_row + 1, column=1, value="אין העדרויות רשומות")
    else:
        for column, title in enumerate(["תאריך", "סיבה", "סטטוס"], start=1):
            sheet.cell(row=absence_row + 1, column=column, value=title).font = Font(bold=True)
        for offset, absence in enumerate(student_absences, start=2):
            sheet.cell(row=absence_row + offset, column=1, value=absence["absence_date"].strftime("%d/%m/%Y"))
            sheet.cell(row=absence_row + offset, column=2, value=absence.get("reason") or "-")
            sheet.cell(row=absence_row + offset, column=3, value="מאושר" if absence["is_excused"] else "לא מאושר")

    summary_row = absence_row + max(4, len(student_absences) + 4)
    passed_subjects = []
    for subject in subjects:
        latest = latest_evaluation(student_evaluations, student["id"], subject["id"])
        if latest and evaluation_passed(latest):
            passed_subjects.append(subject)
    overall_passed = bool(subjects) and len(passed_subjects) == len(subjects)

    sheet.cell(row=summary_row, column=1, value="סיכום").font = Font(bold=True, size=12)
    sheet.cell(row=summary_row + 1, column=1, value="נושאים שעברו:")
    sheet.cell(row=summary_row + 1, column=2, value=f"{len(passed_subjects)} / {len(subjects)}")
    sheet.cell(row=summary_row + 2, column=1, value='סה"כ העדרויות:')
    sheet.cell(row=summary_row + 2, column=2, value=len(student_absences))
    sheet.cell(row=summary_row + 3, column=1, value="סטטוס כללי:")
    overall = sheet.cell(row=summary_row + 3, column=2, value="עבר את הקורס" if overall_passed else "בתהליך")
    overall.font = Font(bold=True, color="FF008000" if overall_passed else "FFFF6600")

    # Progress data: class subjects, then the water lesson, against the passing line
    chart_row = summary_row + 6
    sheet.cell(row=chart_row, column=1, value="נתוני גרף התקדמות").font = Font(bold=True)
    water_ids = {s["id"] for s in subjects if s.get("code") == "water_lesson"}
    class_scores = [e for e in sorted(student_evaluations, key=lambda e: e["evaluation_date"])
                    if e["subject_id"] not in water_ids]
    water_scores = [e for e in sorted(student_evaluations, key=lambda e: e["evaluation_date"])
                    if e["subject_id"] in water_ids]

    sheet.cell(row=chart_row + 1, column=1, value="ציוני כיתה")
    sheet.cell(row=chart_row + 2, column=1, value="ציוני מים")
    sheet.cell(row=chart_row + 3, column=1, value="ציון מעבר")
    for column, evaluation in enumerate(class_scores, start=2):
        sheet.cell(row=chart_row + 1, column=column, value=round0(evaluation["percentage_score"]))
    for column, evaluation in enumerate(water_scores, start=2):
        sheet.cell(row=chart_row + 2, column=column, value=round0(evaluation["percentage_score"]))
    for column in range(2, max(len(class_scores), len(water_scores), 5) + 2):
        sheet.cell(row=chart_row + 3, column=column, value=CHART_PASSING_LINE)

    sheet.column_dimensions["A"].width = 20
    sheet.column_dimensions["B"].width = 15
    sheet.column_dimensions["F"].width = 20


def build_final_report(data: ReportData, today: Optional[date] = None) -> Workbook:
    workbook = Workbook()
    workbook.remove(workbook.active)

    course_info = derive_course_info(data.evaluations, today)
    if data.course_name:
        course_info["name"] = data.course_name

    _course_sheet(workbook, course_info)
    _main_sheet(workbook, data.subjects)
    _absences_sheet(workbook, data.students, data.absences)
    _exams_sheet(workbook, data.students, data.subjects, data.evaluations)
    for student in data.students:
        _student_sheet(workbook, student, data.subjects, data.evaluations, data.absences)

    return workbook


def workbook_to_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


async def load_report_data(session: AsyncSession, course_id: Optional[int] = None,
                           course_name: Optional[str] = None) -> ReportData:
    """Read report rows; course_id restricts students to that course's enrollment"""
    students_query = select(Student).order_by(Student.last_name, Student.first_name)
    if course_id is not None:
        students_query = students_query.filter(
            Student.id.in_(select(CourseStudent.student_id).filter(CourseStudent.course_id == course_id))
        )
    students = (await session.execute(students_query)).scalars().all()
    student_ids = [s.id for s in students]

    subjects = (await session.execute(
        select(EvaluationSubject).order_by(EvaluationSubject.display_order, EvaluationSubject.id)
    )).scalars().all()

    evaluations = (await session.execute(
        select(StudentEvaluation)
        .options(joinedload(StudentEvaluation.instructor))
        .filter(StudentEvaluation.student_id.in_(student_ids))
    )).scalars().all()

    absences = (await session.execute(
        select(StudentAbsence).filter(StudentAbsence.student_id.in_(student_ids))
    )).scalars().all()

    logger.info(f"Report data: {len(students)} students, {len(evaluations)} evaluations, {len(absences)} absences")

    return ReportData(
        students=[
            {"id": s.id, "first_name": s.first_name, "last_name": s.last_name, "email": s.email,
             "phone": s.phone, "unit_id": s.unit_id}
            for s in students
        ],
        subjects=[
            {"id": s.id, "code": s.code, "name_he": s.name_he, "max_raw_score": s.max_raw_score,
             "passing_raw_score": s.passing_raw_score}
            for s in subjects
        ],
        evaluations=[
            {"id": e.id, "student_id": e.student_id, "subject_id": e.subject_id, "course_name": e.course_name,
             "evaluation_date": e.evaluation_date, "raw_score": e.raw_score,
             "percentage_score": e.percentage_score, "is_passing": e.is_passing,
             "has_critical_fail": e.has_critical_fail,
             "instructor_name": e.instructor.full_name if e.instructor else None}
            for e in evaluations
        ],
        absences=[
            {"student_id": a.student_id, "absence_date": a.absence_date, "reason": a.reason,
             "is_excused": a.is_excused}
            for a in absences
        ],
        course_name=course_name
    )
