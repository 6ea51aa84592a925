from datetime import datetime
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse

from fleetdesk.core.auth import CurrentUser, get_current_user
from fleetdesk.core.config import settings
from fleetdesk.db.mongo import get_db
from fleetdesk.models.journey import Journey, JourneyStatus, PaidOption
from fleetdesk.repositories.journey_repo import page_count
from fleetdesk.schemas.journey import (
    AttachmentBase,
    ExpenseAdd,
    InstallmentAdd,
    JourneyCreate,
    JourneyFilters,
    JourneyListResponse,
    JourneyResponse,
    JourneyStats,
    JourneyUpdate,
    strip_attachments,
)
from fleetdesk.services.file_service import FileStorage, UploadRejected
from fleetdesk.services.journey_service import JourneyService, find_attachment

router = APIRouter(prefix="/journeys", tags=["journeys"])


def get_file_storage() -> FileStorage:
    return FileStorage()


def _journey_oid(journey_id: str) -> ObjectId:
    if not ObjectId.is_valid(journey_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid journey ID format"
        )
    return ObjectId(journey_id)


def _to_journey_response(journey: Journey) -> JourneyResponse:
    """Convert Journey model to JourneyResponse schema."""
    pay = journey.pay
    return JourneyResponse(
        id=str(journey.id),
        driver_id=str(journey.driver_id),
        truck_id=str(journey.truck_id),
        customer_id=str(journey.customer_id),
        created_by=str(journey.created_by),
        departure_city=journey.departure_city,
        destination_city=journey.destination_city,
        cargo=journey.cargo,
        notes=journey.notes,
        date=journey.date,
        status=journey.status,
        pay={
            "total_amount": pay.total_amount,
            "currency": pay.currency,
            "exchange_rate": pay.exchange_rate,
            "paid_option": pay.paid_option,
            "attachment": pay.attachment.model_dump() if pay.attachment else None,
            "installments": [
                {
                    "amount": installment.amount,
                    "date": installment.date,
                    "note": installment.note,
                    "attachment": (
                        installment.attachment.model_dump() if installment.attachment else None
                    )
                }
                for installment in pay.installments
            ],
            "total_paid": pay.total_paid(),
            "remaining": pay.remaining(),
            "is_fully_paid": pay.is_fully_paid()
        },
        expenses=[
            {
                "title": expense.title,
                "amount": expense.amount,
                "note": expense.note,
                "attachment": expense.attachment.model_dump() if expense.attachment else None
            }
            for expense in journey.expenses
        ],
        total_expenses=journey.total_expenses(),
        total_amount_canonical=journey.total_amount_canonical(),
        total_paid_canonical=journey.total_paid_canonical(),
        balance=journey.balance,
        version=journey.version,
        created_at=journey.created_at,
        updated_at=journey.updated_at
    )


async def _store_upload(upload: UploadFile, storage: FileStorage):
    if upload.size is not None and upload.size > settings.MAX_FILE_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File exceeds {settings.MAX_FILE_SIZE} bytes"
        )
    # One byte past the limit is enough for save() to reject it
    content = await upload.read(settings.MAX_FILE_SIZE + 1)
    try:
        return storage.save(upload.filename, content, upload.content_type)
    except UploadRejected as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc)
        )


def _proof_response(attachment, storage: FileStorage) -> FileResponse:
    if not storage.exists(attachment):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Proof file not found"
        )
    return FileResponse(
        storage.resolve(attachment),
        media_type=attachment.mimetype,
        filename=attachment.filename
    )


@router.get("", response_model=JourneyListResponse)
async def list_journeys(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = Query("", max_length=100),
    journey_status: Optional[JourneyStatus] = Query(None, alias="status"),
    truck_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    departure_city: str = "",
    destination_city: str = "",
    paid_option: Optional[PaidOption] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: str = Query("date", pattern="^(date|total_amount|balance|departure_city|destination_city)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    """List journeys with filters, sorting and pagination."""
    for label, value in (("truck", truck_id), ("driver", driver_id), ("customer", customer_id)):
        if value and not ObjectId.is_valid(value):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid {label} ID format"
            )

    filters = JourneyFilters(
        page=page,
        limit=limit,
        search=search,
        status=journey_status,
        truck_id=truck_id or None,
        driver_id=driver_id or None,
        customer_id=customer_id or None,
        departure_city=departure_city,
        destination_city=destination_city,
        paid_option=paid_option,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        sort_order=sort_order
    )
    service = JourneyService(db)
    journeys, total = await service.list_journeys(filters)
    return JourneyListResponse(
        journeys=[_to_journey_response(journey) for journey in journeys],
        pagination={
            "total": total,
            "page": page,
            "limit": limit,
            "pages": page_count(total, limit)
        }
    )


@router.get("/stats", response_model=JourneyStats)
async def get_journey_stats(
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    """Counts and canonical-currency totals across all journeys."""
    return await JourneyService(db).get_journey_stats()


@router.get("/{journey_id}", response_model=JourneyResponse)
async def get_journey(
    journey_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    journey = await JourneyService(db).get_journey(_journey_oid(journey_id))
    return _to_journey_response(journey)


@router.post("", response_model=JourneyResponse, status_code=status.HTTP_201_CREATED)
async def create_journey(
    journey_data: JourneyCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    """Create a journey. Driver, truck and customer must exist."""
    service = JourneyService(db)
    journey = await service.create_journey(
        strip_attachments(journey_data), ObjectId(current_user.id)
    )
    return _to_journey_response(journey)


@router.patch("/{journey_id}", response_model=JourneyResponse)
async def update_journey(
    journey_id: str,
    update_data: JourneyUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    """
    Partially update a journey.

    - Proofs are uploaded through the proof routes; stored ones are kept
    - Completing requires the journey to be fully paid
    """
    service = JourneyService(db)
    journey = await service.update_journey(
        _journey_oid(journey_id), strip_attachments(update_data)
    )
    return _to_journey_response(journey)


@router.delete("/{journey_id}", status_code=status.HTTP_200_OK)
async def delete_journey(
    journey_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    await JourneyService(db).delete_journey(_journey_oid(journey_id))
    return {"message": "Journey deleted successfully"}


@router.post("/{journey_id}/installments", response_model=JourneyResponse)
async def add_installment(
    journey_id: str,
    amount: float = Form(..., ge=0),
    date: Optional[datetime] = Form(None),
    note: Optional[str] = Form(None, max_length=200),
    proof: Optional[UploadFile] = File(None),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """Append one installment, with optional proof of payment."""
    oid = _journey_oid(journey_id)
    installment = InstallmentAdd(amount=amount, date=date, note=note)
    attachment = await _store_upload(proof, storage) if proof is not None else None
    if attachment is not None:
        installment.attachment = AttachmentBase(**attachment.model_dump())

    try:
        journey = await JourneyService(db).add_installment(oid, installment)
    except Exception:
        storage.delete(attachment)
        raise
    return _to_journey_response(journey)


@router.post("/{journey_id}/expenses", response_model=JourneyResponse)
async def add_expense(
    journey_id: str,
    expense: ExpenseAdd,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db)
):
    journey = await JourneyService(db).add_expense(
        _journey_oid(journey_id), strip_attachments(expense)
    )
    return _to_journey_response(journey)


@router.post("/{journey_id}/payment-proof", response_model=JourneyResponse)
async def upload_payment_proof(
    journey_id: str,
    proof: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    """Attach proof of a full payment."""
    oid = _journey_oid(journey_id)
    attachment = await _store_upload(proof, storage)
    try:
        journey, replaced = await JourneyService(db).attach_payment_proof(oid, attachment)
    except Exception:
        storage.delete(attachment)
        raise
    storage.delete(replaced)
    return _to_journey_response(journey)


@router.post("/{journey_id}/expenses/{index}/proof", response_model=JourneyResponse)
async def upload_expense_proof(
    journey_id: str,
    index: int,
    proof: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    oid = _journey_oid(journey_id)
    attachment = await _store_upload(proof, storage)
    try:
        journey, replaced = await JourneyService(db).attach_expense_proof(oid, index, attachment)
    except Exception:
        storage.delete(attachment)
        raise
    storage.delete(replaced)
    return _to_journey_response(journey)


@router.get("/{journey_id}/payment-proof")
async def get_payment_proof(
    journey_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    journey = await JourneyService(db).get_journey(_journey_oid(journey_id))
    return _proof_response(find_attachment(journey, "payment"), storage)


@router.get("/{journey_id}/installments/{index}/proof")
async def get_installment_proof(
    journey_id: str,
    index: int,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    journey = await JourneyService(db).get_journey(_journey_oid(journey_id))
    return _proof_response(find_attachment(journey, "installment", index), storage)


@router.get("/{journey_id}/expenses/{index}/proof")
async def get_expense_proof(
    journey_id: str,
    index: int,
    current_user: CurrentUser = Depends(get_current_user),
    db = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage)
):
    journey = await JourneyService(db).get_journey(_journey_oid(journey_id))
    return _proof_response(find_attachment(journey, "expense", index), storage)
