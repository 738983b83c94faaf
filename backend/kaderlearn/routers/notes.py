"""
Notes router for Kader Learn.

Learners keep private notes while reading. Every query is scoped to the
caller, so another user's note reads as not found.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from kaderlearn.core.config import settings
from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import NotFoundError
from kaderlearn.core.responses import success_response
from kaderlearn.models import Profile, UserNote
from kaderlearn.routers.auth import get_current_user
from kaderlearn.schemas.note import NoteCreate, NoteUpdate


router = APIRouter()


def _get_own_note(db: Session, user_id: str, note_id: str) -> UserNote:
    note = db.query(UserNote).filter(
        UserNote.id == note_id,
        UserNote.user_id == user_id
    ).first()
    if note is None:
        raise NotFoundError("Note not found", code="NOTE_NOT_FOUND")
    return note


@router.get("")
async def list_notes(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    category: Optional[str] = None,
    search: Optional[str] = None,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    List the caller's notes, pinned first, then most recently updated.
    """
    query = db.query(UserNote).filter(UserNote.user_id == current_user.id)

    if category:
        query = query.filter(UserNote.category == category)

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                UserNote.title.ilike(search_term),
                UserNote.content.ilike(search_term)
            )
        )

    total = query.count()
    notes = (
        query.order_by(UserNote.is_pinned.desc(), UserNote.updated_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return success_response("NOTES_FETCHED", "Notes fetched", {
        "items": [note.to_dict() for note in notes],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": -(-total // limit),
        },
    })


@router.get("/categories")
async def list_note_categories(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    rows = (
        db.query(UserNote.category)
        .filter(UserNote.user_id == current_user.id)
        .distinct()
        .order_by(UserNote.category)
        .all()
    )
    return success_response("CATEGORIES_FETCHED", "Categories fetched", [row[0] for row in rows])


@router.get("/{note_id}")
async def get_note(
    note_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    note = _get_own_note(db, current_user.id, note_id)
    return success_response("NOTE_FETCHED", "Note fetched", note.to_dict())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_note(
    payload: NoteCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    note = UserNote(user_id=current_user.id, **payload.model_dump())
    db.add(note)
    db.commit()
    db.refresh(note)
    return success_response("NOTE_CREATED", "Note created", note.to_dict(), status.HTTP_201_CREATED)


@router.put("/{note_id}")
async def update_note(
    note_id: str,
    payload: NoteUpdate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    note = _get_own_note(db, current_user.id, note_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(note, field, value)

    db.commit()
    db.refresh(note)
    return success_response("NOTE_UPDATED", "Note updated", note.to_dict())


@router.patch("/{note_id}/pin")
async def toggle_note_pin(
    note_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    note = _get_own_note(db, current_user.id, note_id)
    note.is_pinned = not note.is_pinned
    db.commit()
    db.refresh(note)
    message = "Note pinned" if note.is_pinned else "Note unpinned"
    return success_response("NOTE_PIN_TOGGLED", message, note.to_dict())


@router.delete("/{note_id}")
async def delete_note(
    note_id: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    note = _get_own_note(db, current_user.id, note_id)
    db.delete(note)
    db.commit()
    return success_response("NOTE_DELETED", "Note deleted", {"id": note_id})
