#!/usr/bin/env python3
"""
Fill the database with a demo course: staff, students, a course and a set of
scored evaluations. Evaluations go through the same builder and store as the
API, so their verdicts follow the normal scoring rules.
"""

import asyncio
import random
import sys
from datetime import date, timedelta
from pathlib import Path

from sqlalchemy import select

sys.path.append(str(Path(__file__).parent))

from instest.core.auth import get_password_hash
from instest.core.database import AsyncSessionLocal, create_tables, close_db
from instest.models import (User, Student, Instructor, Course, CourseStudent, CourseInstructor,
                            EvaluationSubject, ExternalTest, StudentSkills, EXTERNAL_TEST_NAMES)
from instest.services.catalog import seed_catalog, load_catalog_snapshot
from instest.services.evaluation_builder import build_evaluation, EvaluationType
from instest.services.evaluation_store import create_evaluation
from instest.utils.scoring import ALLOWED_SCORES, compute_external_average

DEMO_PASSWORD = "demo123"
COURSE_NAME = "קורס מדריכים - הדגמה"

DEMO_STAFF = [
    ("admin@instest.demo", "מנהל", "ראשי", "admin", None),
    ("madar@instest.demo", "דנה", "כהן", "madar", 101),
    ("instructor1@instest.demo", "יואב", "לוי", "instructor", 102),
    ("instructor2@instest.demo", "מיכל", "אברהם", "instructor", 103),
]

DEMO_STUDENTS = [
    ("נועה", "פרץ"), ("איתי", "מזרחי"), ("שירה", "ביטון"), ("עומר", "דהן"),
    ("תמר", "אזולאי"), ("אורי", "פרידמן"), ("יעל", "שפירא"), ("רון", "גולן"),
]

# Weighted toward passing scores
SCORE_WEIGHTS = (1, 3, 5, 4)


async def seed_staff(session):
    instructors = []
    for email, first_name, last_name, role, number in DEMO_STAFF:
        existing = await session.execute(select(User).filter(User.email == email))
        if existing.scalar_one_or_none():
            print(f"   - {email} already exists")
        else:
            session.add(User(
                email=email,
                password_hash=get_password_hash(DEMO_PASSWORD),
                first_name=first_name,
                last_name=last_name,
                role=role,
                instructor_number=number
            ))
            print(f"   + {email} ({role})")

        result = await session.execute(select(Instructor).filter(Instructor.email == email))
        instructor = result.scalar_one_or_none()
        if instructor is None:
            instructor = Instructor(first_name=first_name, last_name=last_name, email=email)
            session.add(instructor)
        instructors.append(instructor)

    await session.commit()
    return instructors


async def seed_students(session):
    students = []
    for index, (first_name, last_name) in enumerate(DEMO_STUDENTS, start=1):
        email = f"student{index}@instest.demo"
        result = await session.execute(select(Student).filter(Student.email == email))
        student = result.scalar_one_or_none()
        if student is None:
            student = Student(first_name=first_name, last_name=last_name, email=email,
                              phone=f"050-000{index:04d}", unit_id=f"U{index % 3 + 1}")
            session.add(student)
            session.add(User(
                email=email,
                password_hash=get_password_hash(DEMO_PASSWORD),
                first_name=first_name,
                last_name=last_name,
                role="student"
            ))
        students.append(student)

    await session.commit()
    print(f"   + {len(students)} students")
    return students


async def seed_course(session, students, instructors):
    start = date.today() - timedelta(days=30)
    course = Course(name=COURSE_NAME, course_type="מדריך", start_date=start, end_date=start + timedelta(days=60),
                    description="נתוני הדגמה")
    session.add(course)
    await session.flush()

    for student in students:
        session.add(CourseStudent(course_id=course.id, student_id=student.id))
    for instructor in instructors[1:]:
        session.add(CourseInstructor(course_id=course.id, instructor_id=instructor.id))

    await session.commit()
    print(f"   + course '{course.name}' with {len(students)} students")
    return course


async def seed_evaluations(session, students, instructors, rng):
    result = await session.execute(select(EvaluationSubject.id).order_by(EvaluationSubject.display_order))
    subject_ids = result.scalars().all()

    evaluators = instructors[1:]
    created = 0
    passed = 0

    for subject_id in subject_ids:
        snapshot = await load_catalog_snapshot(session, subject_id=subject_id)

        for student in students:
            for attempt in range(rng.randint(1, 2)):
                scores = {
                    criterion.id: rng.choices(ALLOWED_SCORES, weights=SCORE_WEIGHTS)[0]
                    for criterion in snapshot.criteria
                }
                evaluation_type = EvaluationType.TEST if attempt else EvaluationType.PRACTICE
                record, items = build_evaluation(
                    snapshot,
                    student_id=student.id,
                    instructor_id=rng.choice(evaluators).id,
                    lesson_name=snapshot.subject.name_he,
                    evaluation_date=date.today() - timedelta(days=rng.randint(0, 25)),
                    item_scores=scores,
                    course_name=COURSE_NAME,
                    evaluation_type=evaluation_type,
                    require_instructor=evaluation_type == EvaluationType.TEST
                )
                await create_evaluation(session, record, items)
                created += 1
                passed += record.is_passing

    print(f"   + {created} evaluations ({passed} passing)")


async def seed_external_tests(session, students, rng):
    for student in students:
        values = {column: float(rng.randint(60, 100)) for column in EXTERNAL_TEST_NAMES}
        # Some students have not taken every test yet
        if rng.random() < 0.3:
            values[rng.choice(list(EXTERNAL_TEST_NAMES))] = None

        session.add(ExternalTest(student_id=student.id, average_score=compute_external_average(values), **values))
        session.add(StudentSkills(student_id=student.id, meters_30=True, meters_40=rng.random() < 0.7,
                                  guidance=rng.random() < 0.5))

    await session.commit()
    print(f"   + external tests and skills for {len(students)} students")


async def main():
    print("🌊 Seeding InsTest demo data")
    print("=" * 50)

    rng = random.Random(2026)

    try:
        await create_tables()

        async with AsyncSessionLocal() as session:
            print("\n📋 Evaluation catalog")
            seeded = await seed_catalog(session)
            print(f"   + {seeded} subjects" if seeded else "   - catalog already present")

            existing = await session.execute(select(Course).filter(Course.name == COURSE_NAME))
            if existing.scalar_one_or_none():
                print("\n⚠️  Demo course already exists, nothing else to do")
                return

            print("\n📋 Staff")
            instructors = await seed_staff(session)

            print("\n📋 Students")
            students = await seed_students(session)

            print("\n📋 Course")
            await seed_course(session, students, instructors)

            print("\n📋 Evaluations")
            await seed_evaluations(session, students, instructors, rng)

            print("\n📋 External tests")
            await seed_external_tests(session, students, rng)

        print("\n✅ Demo data ready")
        print(f"   Log in with any demo account and the password '{DEMO_PASSWORD}'")
    except Exception as e:
        print(f"\n❌ Seeding failed: {e}")
        raise
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
