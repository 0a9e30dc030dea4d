"""
Shared fixtures: every test gets its own mongomock database.
"""
import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from config import Settings
from database import ensure_indexes
from storage import Storage

LONG_DESCRIPTION = "We need a responsive marketing landing page with a signup form and analytics."
LONG_REQUIREMENTS = "React, Tailwind, deployed to Vercel."


class FailingCollection:
    """Stands in for a collection whose server is unreachable."""

    def __init__(self, name: str):
        self.name = name

    def __getattr__(self, item):
        def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("No servers available")
        return fail


@pytest.fixture
def settings():
    return Settings(
        database_name="marketplace_test",
        admin_password="bootstrap-secret",
        log_json=False,
    )


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def db(mongo_client):
    database = mongo_client["marketplace_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def storage(db):
    return Storage(db)


@pytest.fixture
def client_user(storage):
    return storage.create_user({
        "username": "acme",
        "email": "owner@acme.example.com",
        "password": "hunter22",
        "user_type": "client",
        "full_name": "Acme Owner",
        "company": "Acme",
    })


@pytest.fixture
def hacker_user(storage):
    return storage.create_user({
        "username": "zero_cool",
        "email": "zero@example.com",
        "password": "hackthe",
        "user_type": "hacker",
        "full_name": "Dade Murphy",
    })


@pytest.fixture
def project_data(client_user):
    return {
        "client_id": client_user["id"],
        "title": "Need a landing page built",
        "description": LONG_DESCRIPTION,
        "requirements": LONG_REQUIREMENTS,
        "skills": ["react"],
    }


@pytest.fixture
def project(storage, project_data):
    return storage.create_project(project_data)
