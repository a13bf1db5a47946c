import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from expense_ai.auth import get_current_user
from expense_ai.config import get_settings
from expense_ai.database import User, get_db
from expense_ai.errors import ValidationError
from expense_ai.responses import ok
from expense_ai.schemas import CategoryOut, ProcessReceiptRequest, ProcessTextRequest
from expense_ai.services import screens
from expense_ai.services.ai import ExpenseExtractor, get_extractor
from expense_ai.services.storage import DATA_URL, save_receipt
from expense_ai.services.subscriptions import require_active_subscription

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/dashboard")
async def dashboard(
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    data = screens.get_dashboard(db, current_user.id, month=month, year=year)
    return ok("Dashboard data retrieved successfully", data)


@router.get("/expenses")
async def expenses(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: Optional[str] = Query(default=None, max_length=100),
    category: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort_by: Literal["date", "amount"] = "date",
    sort_order: Literal["asc", "desc"] = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be before end_date")
    data = screens.get_expenses_screen(
        db,
        current_user.id,
        page=page,
        limit=limit,
        search=search,
        category=category,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ok("Expenses data retrieved successfully", data)


@router.get("/analytics")
async def analytics(
    period: Literal["week", "month", "year"] = "month",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok("Analytics data retrieved successfully", screens.get_analytics(db, current_user.id, period))


@router.get("/categories")
@router.get("/settings", include_in_schema=False)
async def categories(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items = [CategoryOut.model_validate(c) for c in screens.get_categories(db, current_user.id)]
    return ok("Categories retrieved successfully", {"categories": items})


# AI capture endpoints are sync; FastAPI runs them in its threadpool.


@router.post("/camera/process-receipt")
def process_receipt(
    payload: ProcessReceiptRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_active_subscription),
    extractor: ExpenseExtractor = Depends(get_extractor),
):
    image = payload.image.strip()
    if DATA_URL.match(image):
        receipt_url = save_receipt(current_user.id, image)["image_url"]
    elif image.startswith(("http://", "https://")):
        receipt_url = image
    else:
        raise ValidationError("Image must be a base64 data URL or an http(s) URL")

    categories = screens.get_categories(db, current_user.id)
    result = extractor.process_receipt_image(image, categories)
    data = result.model_dump()
    data["receipt_image_url"] = receipt_url
    return ok("Receipt processed successfully", data)


@router.post("/voice/process-audio")
def process_audio(
    audio: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_active_subscription),
    extractor: ExpenseExtractor = Depends(get_extractor),
):
    settings = get_settings()
    content = audio.file.read(settings.max_upload_size_bytes + 1)
    if len(content) > settings.max_upload_size_bytes:
        raise ValidationError(f"Maximum file upload size limit ({settings.max_upload_size_mb} MB) exceeded.")

    transcript = extractor.transcribe_audio(content, audio.filename or "audio.wav")
    if not transcript:
        raise ValidationError("No speech detected in the audio")

    categories = screens.get_categories(db, current_user.id)
    result = extractor.process_expense_text(transcript, categories)
    result.transcript = transcript
    return ok("Audio processed successfully", result)


@router.post("/voice/process-text")
def process_text(
    payload: ProcessTextRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_active_subscription),
    extractor: ExpenseExtractor = Depends(get_extractor),
):
    categories = screens.get_categories(db, current_user.id)
    result = extractor.process_expense_text(payload.text, categories)
    return ok("Text processed successfully", result)
