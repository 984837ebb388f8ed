from fastapi import FastAPI, Depends, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional, List
from datetime import date as Date
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import io
import openpyxl

import crud
from config import settings
from database import engine, get_db
from logger import setup_logger
from models import Base, User

logger = setup_logger(__name__, settings.LOG_LEVEL)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Expense Tracker API")

# CORS for the single-page client
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Schemas ----------
class CategoryOut(BaseModel):
    id: int
    name: str
    user_id: int = Field(serialization_alias="userId")

    class Config:
        from_attributes = True


class ExpenseIn(BaseModel):
    amount: float = Field(ge=0, allow_inf_nan=False)
    date: Date
    category_name: str = Field(alias="categoryName")
    description: Optional[str] = None

    @field_validator("category_name")
    @classmethod
    def category_name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("categoryName must not be empty")
        return v

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class ExpenseOut(BaseModel):
    id: int
    amount: float
    date: Date
    description: Optional[str] = None
    category_id: int = Field(serialization_alias="categoryId")
    user_id: int = Field(serialization_alias="userId")
    category: CategoryOut

    class Config:
        from_attributes = True


# ---------- Errors ----------
def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@app.exception_handler(StarletteHTTPException)
def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        # drop the "body"/"query"/"path" prefix
        field = ".".join(str(part) for part in err.get("loc", ())[1:])
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return _error(status.HTTP_400_BAD_REQUEST, "; ".join(problems) or "Invalid request")


@app.exception_handler(SQLAlchemyError)
def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ---------- Dependencies ----------
def get_demo_user(db: Session = Depends(get_db)) -> User:
    return crud.get_or_create_user(db, settings.DEMO_USER_EMAIL)


def get_user_expense_or_404(expense_id: int, db: Session, user: User):
    exp = crud.get_user_expense(db, user, expense_id)
    if not exp:
        raise HTTPException(status_code=404, detail="Expense not found")
    return exp


# ---------- Routes ----------
@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/expenses", response_model=List[ExpenseOut])
def list_expenses(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_demo_user),
):
    return crud.filter_expenses(db, user, month=month, category=category)


@app.get("/api/expenses/summary")
def expense_summary(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_demo_user),
):
    return crud.summarize_expenses(db, user, month=month, category=category)


@app.get("/api/expenses/export")
def export_expenses(
    month: Optional[str] = Query(None, description="YYYY-MM"),
    category: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_demo_user),
):
    expenses = crud.filter_expenses(db, user, month=month, category=category)

    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "Expenses"

    sheet.append(["ID", "Date", "Category", "Amount", "Description"])

    for exp in expenses:
        sheet.append([
            exp.id,
            exp.date,
            exp.category.name,
            float(exp.amount),
            exp.description,
        ])

    stream = io.BytesIO()
    workbook.save(stream)
    stream.seek(0)

    filename = "expenses"
    if crud.month_bounds(month):
        filename += f"_{month.strip()}"

    return StreamingResponse(
        stream,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename={filename}.xlsx"
        },
    )


@app.post("/api/expenses", response_model=ExpenseOut, status_code=status.HTTP_201_CREATED)
def add_expense(payload: ExpenseIn, db: Session = Depends(get_db), user: User = Depends(get_demo_user)):
    return crud.create_expense(
        db,
        user,
        amount=payload.amount,
        expense_date=payload.date,
        category_name=payload.category_name,
        description=payload.description,
    )


@app.put("/api/expenses/{expense_id}", response_model=ExpenseOut)
def update_expense(
    expense_id: int,
    payload: ExpenseIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_demo_user),
):
    exp = get_user_expense_or_404(expense_id, db, user)
    return crud.update_expense(
        db,
        user,
        exp,
        amount=payload.amount,
        expense_date=payload.date,
        category_name=payload.category_name,
        description=payload.description,
    )


@app.delete("/api/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(expense_id: int, db: Session = Depends(get_db), user: User = Depends(get_demo_user)):
    exp = get_user_expense_or_404(expense_id, db, user)
    crud.delete_expense(db, exp)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/categories", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db), user: User = Depends(get_demo_user)):
    return crud.list_categories(db, user)


@app.api_route("/api/seed", methods=["GET", "POST"])
def seed(db: Session = Depends(get_db)):
    return crud.seed_demo_data(db, settings.DEMO_USER_EMAIL)
