# main.py
import os
import sys
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import String, delete, literal, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine, select

from models import InsuranceRecord

# ---------- Config ----------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./insurance.db")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
DB_POOL_TIMEOUT_SEC = int(os.getenv("DB_POOL_TIMEOUT_SEC", "30"))

# Only for local/dev databases; production schema already exists
AUTO_CREATE_DB = os.getenv("AUTO_CREATE_DB", "false").lower() in {"1", "true", "yes"}

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# ---------- Logging ----------
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


# ---------- Engine ----------
def build_engine(url: str):
    if url.startswith("sqlite"):
        # SQLite picks its own pool class; let FastAPI's threadpool share it
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
        pool_timeout=DB_POOL_TIMEOUT_SEC,
    )


engine = build_engine(DATABASE_URL)


# ---------- App ----------
app = FastAPI(title="Insurance Records")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- DB helpers ----------
def create_db_and_tables():
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def matches(column, value: Optional[str]):
    # ILIKE on Postgres, lower() LIKE lower() elsewhere. The value is bound
    # explicitly so a missing one becomes NULL and matches no row.
    return column.ilike(literal(value, String))


async def json_body(request: Request) -> Dict[str, Any]:
    """
    Request body as a dict. An empty, malformed or non-object body
    counts as no fields at all, so it fails validation instead of 500.
    """
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def store_error_message(route: str, exc: SQLAlchemyError) -> str:
    """First line of the driver message; DETAIL/LINE context stays in the log."""
    full = str(getattr(exc, "orig", None) or exc).strip()
    message = full.split("\n")[0]
    logger.error(f"{route} failed: {full}")
    return message


# ---------- Startup ----------
@app.on_event("startup")
def on_startup():
    if AUTO_CREATE_DB:
        create_db_and_tables()
        logger.info("insurance table ensured")


# ---------- Routes ----------
@app.get("/getAll")
def get_all(session: Session = Depends(get_session)):
    try:
        return session.exec(select(InsuranceRecord)).all()
    except SQLAlchemyError as e:
        return PlainTextResponse(store_error_message("getAll", e), status_code=500)


@app.get("/search")
def search(
    name: Optional[str] = None,
    model: Optional[str] = None,
    session: Session = Depends(get_session),
):
    statement = select(InsuranceRecord).where(
        matches(InsuranceRecord.name, name),
        matches(InsuranceRecord.model, model),
    )
    try:
        return session.exec(statement).all()
    except SQLAlchemyError as e:
        return PlainTextResponse(store_error_message("search", e), status_code=500)


@app.get("/delete")
def delete_records(
    name: Optional[str] = None,
    model: Optional[str] = None,
    contact_number: Optional[str] = None,
    session: Session = Depends(get_session),
):
    statement = (
        delete(InsuranceRecord)
        .where(
            matches(InsuranceRecord.name, name),
            matches(InsuranceRecord.model, model),
            matches(InsuranceRecord.contact_number, contact_number),
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = session.exec(statement)
        session.commit()
    except SQLAlchemyError as e:
        return PlainTextResponse(store_error_message("delete", e), status_code=500)
    logger.info(f"deleted {result.rowcount} record(s) for name={name!r} model={model!r}")
    return {"status": "deleted"}


@app.put("/update")
def update_records(
    name: Optional[str] = None,
    model: Optional[str] = None,
    vehicle_number: Optional[str] = None,
    body: Dict[str, Any] = Depends(json_body),
    session: Session = Depends(get_session),
):
    due_date = body.get("due_date")
    contact_number = body.get("contact_number")
    insurer = body.get("insurer")

    if not all([name, model, vehicle_number, due_date, contact_number, insurer]):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing one or more required fields"},
        )

    # The identifying triple is also written back as the new value
    statement = (
        update(InsuranceRecord)
        .where(
            matches(InsuranceRecord.name, name),
            matches(InsuranceRecord.model, model),
            matches(InsuranceRecord.vehicle_number, vehicle_number),
        )
        .values(
            name=name,
            model=model,
            vehicle_number=vehicle_number,
            due_date=due_date,
            contact_number=contact_number,
            insurer=insurer,
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = session.exec(statement)
        session.commit()
    except SQLAlchemyError as e:
        return PlainTextResponse(store_error_message("update", e), status_code=500)
    logger.info(f"updated {result.rowcount} record(s) for vehicle {vehicle_number!r}")
    return {"status": "updated"}


REQUIRED_ADD_FIELDS = (
    "name",
    "due_date",
    "vehicle_number",
    "contact_number",
    "model",
    "insurer",
)


@app.post("/add")
def add_record(
    body: Dict[str, Any] = Depends(json_body),
    session: Session = Depends(get_session),
):
    fields = {key: body.get(key) for key in REQUIRED_ADD_FIELDS}
    # UTC wall-clock time; the column carries no timezone
    joining_date = datetime.now(timezone.utc).replace(tzinfo=None)

    if not all(fields.values()):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Missing required fields"},
        )

    record = InsuranceRecord(**fields, joining_date=joining_date)
    try:
        session.add(record)
        session.commit()
        session.refresh(record)
    except SQLAlchemyError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": store_error_message("add", e)},
        )

    logger.info(f"added record {record.id} ({record.vehicle_number})")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={"success": True, "data": jsonable_encoder(record)},
    )


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
