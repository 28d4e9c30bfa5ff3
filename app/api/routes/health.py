"""Health check route."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import DependencyError

router = APIRouter()


@router.get("/health")
def health_check(db: Session = Depends(get_db)) -> dict[str, str]:
    """Report service and database health."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        raise DependencyError("Database unavailable") from exc
    return {"status": "healthy", "service": "meter-reading", "database": "ok"}
