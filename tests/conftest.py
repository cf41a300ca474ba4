import os

# Throwaway SQLite file; must be set before main is imported
os.environ["DATABASE_URL"] = "sqlite:////tmp/insurance_records_test.db"
os.environ.setdefault("AUTO_CREATE_DB", "true")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

import main


@pytest.fixture(autouse=True)
def fresh_tables():
    SQLModel.metadata.drop_all(main.engine)
    SQLModel.metadata.create_all(main.engine)
    yield
    SQLModel.metadata.drop_all(main.engine)


@pytest.fixture
def client():
    with TestClient(main.app) as c:
        yield c
