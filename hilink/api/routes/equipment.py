from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from ...api import deps
from ...config import get_settings
from ...db.session import get_db
from ...db import models, schemas
from ...services import hold_service, inventory_ledger

router = APIRouter(prefix="/equipment", tags=["equipment"])


def _hold_view(hold: models.EquipmentHold) -> schemas.Hold:
    view = schemas.Hold.model_validate(hold)
    view.time_remaining = hold_service.format_hold_expiration(hold.expires_at)
    return view


def _owned_hold(db: Session, hold_id: int, user: models.User) -> models.EquipmentHold:
    hold = db.get(models.EquipmentHold, hold_id)
    if not hold or hold.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hold not found")
    return hold


def _availability_view(item: inventory_ledger.EquipmentAvailability) -> schemas.EquipmentAvailability:
    return schemas.EquipmentAvailability(
        equipment_id=item.equipment_id,
        name=item.name,
        stock_quantity=item.stock_quantity,
        held_quantity=item.held_quantity,
        booked_quantity=item.booked_quantity,
        available_quantity=item.available_quantity,
    )


@router.get("/availability", response_model=list[schemas.EquipmentAvailability])
def list_availability(
    equipment_ids: str | None = None,
    db: Session = Depends(get_db),
):
    ids = None
    if equipment_ids:
        try:
            ids = [int(value) for value in equipment_ids.split(",") if value.strip()]
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="equipment_ids must be a comma separated list of integers",
            ) from exc
    return [_availability_view(item) for item in inventory_ledger.availability_snapshot(db, ids)]


@router.get("/{equipment_id}/availability", response_model=schemas.EquipmentAvailability)
def equipment_availability(equipment_id: int, db: Session = Depends(get_db)):
    snapshot = inventory_ledger.availability_snapshot(db, [equipment_id])
    if not snapshot:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Equipment not found")
    return _availability_view(snapshot[0])


@router.post("/holds", response_model=schemas.Hold, status_code=status.HTTP_201_CREATED)
def create_hold(
    payload: schemas.HoldCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    duration = payload.duration_minutes or get_settings().hold_duration_minutes
    hold = hold_service.create_hold(
        db,
        payload.equipment_id,
        payload.quantity,
        user.id,
        booking_id=payload.booking_id,
        duration_minutes=duration,
    )
    return _hold_view(hold)


@router.get("/holds", response_model=list[schemas.Hold])
def list_holds(
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    return [_hold_view(hold) for hold in hold_service.user_active_holds(db, user.id)]


@router.delete("/holds", response_model=schemas.HoldReleaseResult)
def release_holds(
    equipment_id: int | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    released = hold_service.release_user_holds(db, user.id, equipment_id)
    return schemas.HoldReleaseResult(released=released)


@router.post("/holds/cleanup")
def cleanup_holds(
    db: Session = Depends(get_db),
    _: models.User = Depends(deps.get_current_user),
):
    removed = hold_service.cleanup_expired_holds(db)
    return {"removed": removed}


@router.post("/holds/{hold_id}/extend", response_model=schemas.Hold)
def extend_hold(
    hold_id: int,
    payload: schemas.HoldExtend,
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    _owned_hold(db, hold_id, user)
    if not hold_service.extend_hold(db, hold_id, payload.additional_minutes):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hold not found")
    hold = db.get(models.EquipmentHold, hold_id)
    db.refresh(hold)
    return _hold_view(hold)


@router.delete("/holds/{hold_id}", status_code=status.HTTP_204_NO_CONTENT)
def release_hold(
    hold_id: int,
    db: Session = Depends(get_db),
    user: models.User = Depends(deps.get_current_user),
):
    _owned_hold(db, hold_id, user)
    if not hold_service.release_hold(db, hold_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Hold not found")
