import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_instest.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SENDGRID_API_KEY"] = ""

import pytest
from httpx import AsyncClient, ASGITransport
from instest.main import app
from instest.core.auth import get_password_hash
from instest.core.database import AsyncSessionLocal, create_tables, drop_tables
from instest.models import User, Student, Instructor
from instest.services.catalog import seed_catalog

ADMIN_EMAIL = "admin@diving.com"
PASSWORD = "secret123"


@pytest.fixture
async def db():
    await drop_tables()
    await create_tables()
    async with AsyncSessionLocal() as session:
        await seed_catalog(session)
    yield
    await drop_tables()


@pytest.fixture
async def session(db):
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
async def client(db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def create_user(email, role, password=PASSWORD, first_name="Test", last_name="User", is_active=True):
    async with AsyncSessionLocal() as session:
        user = User(
            email=email,
            password_hash=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active
        )
        session.add(user)
        if role == "student":
            session.add(Student(first_name=first_name, last_name=last_name, email=email))
        else:
            session.add(Instructor(first_name=first_name, last_name=last_name, email=email))
        await session.commit()
        return user.id


async def login(client, email, password=PASSWORD):
    response = await client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
async def admin_headers(client):
    await create_user(ADMIN_EMAIL, "admin", first_name="Admin")
    return await login(client, ADMIN_EMAIL)


@pytest.fixture
async def student_id(client, admin_headers):
    response = await client.post(
        "/students",
        json={"first_name": "Noa", "last_name": "Diver", "email": "noa@diving.com"},
        headers=admin_headers
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


@pytest.fixture
async def instructor_id(client, admin_headers):
    response = await client.post(
        "/instructors",
        json={"first_name": "Yoav", "last_name": "Levi", "email": "yoav@diving.com"},
        headers=admin_headers
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]
