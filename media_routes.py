import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from pymongo import DESCENDING, ReturnDocument

from database import create_document, get_db, get_documents, is_object_id, now_utc, oid, paginate, to_public, update_document
from errors import NotFound
from schemas import ApiModel, Media, MediaType
from security import get_current_admin, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/media", tags=["Media"])

PUBLIC_FILTER = {"is_published": True, "is_active": True}


class MediaPayload(ApiModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    type: MediaType
    content: str = Field(..., min_length=1)
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_published: bool = False
    is_broadcast: bool = False


def _clean_tags(tags: List[str]) -> List[str]:
    return [t.strip() for t in tags if t and t.strip()]


def _with_authors(db, items: List[dict]) -> List[dict]:
    """Render media with `createdBy` expanded to the author's id and username."""
    author_ids = {m["created_by"] for m in items if is_object_id(m.get("created_by") or "")}
    usernames = {
        str(a["_id"]): a.get("username")
        for a in db["admin"].find({"_id": {"$in": [oid(i) for i in author_ids]}}, {"username": 1})
    }
    rendered = []
    for m in items:
        item = to_public(m)
        item["createdBy"] = {"id": m.get("created_by"), "username": usernames.get(m.get("created_by"))}
        rendered.append(item)
    return rendered


@router.get("")
def list_media(
    type: Optional[MediaType] = None,
    tag: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db=Depends(get_db),
):
    query = dict(PUBLIC_FILTER)
    if type:
        query["type"] = type
    if tag:
        query["tags"] = {"$in": [tag]}
    items, meta = paginate(db, "media", query, page, limit, [("published_at", DESCENDING), ("created_at", DESCENDING)])
    return {"media": _with_authors(db, items), **meta}


@router.get("/broadcast/updates")
def broadcast_updates(current_user: dict = Depends(get_current_user), db=Depends(get_db)):
    query = {**PUBLIC_FILTER, "type": "update", "is_broadcast": True}
    updates = get_documents(db, "media", query, limit=10, sort=[("published_at", DESCENDING)])
    return _with_authors(db, updates)


@router.get("/admin/all")
def admin_list_media(
    type: Optional[MediaType] = None,
    status: Optional[Literal["published", "draft", "deleted"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: dict = Depends(get_current_admin),
    db=Depends(get_db),
):
    # soft-deleted items stay visible here
    query = {}
    if type:
        query["type"] = type
    if status == "published":
        query.update({"is_published": True, "is_active": True})
    elif status == "draft":
        query.update({"is_published": False, "is_active": True})
    elif status == "deleted":
        query["is_active"] = False
    items, meta = paginate(db, "media", query, page, limit, [("created_at", DESCENDING)])
    return {"media": _with_authors(db, items), **meta}


@router.get("/{media_id}")
def get_media(media_id: str, db=Depends(get_db)):
    # a public read counts as a view
    media = db["media"].find_one_and_update(
        {"_id": oid(media_id), **PUBLIC_FILTER},
        {"$inc": {"view_count": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if not media:
        raise NotFound("Media not found")
    return _with_authors(db, [media])[0]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_media(payload: MediaPayload, admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    media = Media(
        **payload.model_dump(exclude={"tags"}),
        tags=_clean_tags(payload.tags),
        created_by=str(admin["_id"]),
        published_at=now_utc() if payload.is_published else None,
    )
    media_id = create_document(db, "media", media)
    logger.info("Media %s created by admin %s", media_id, admin["_id"])
    return {"message": "Media created successfully", "media": _with_authors(db, [db["media"].find_one({"_id": oid(media_id)})])[0]}


@router.put("/{media_id}")
def update_media(media_id: str, payload: MediaPayload, admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    media = db["media"].find_one({"_id": oid(media_id)})
    if not media:
        raise NotFound("Media not found")
    updates = payload.model_dump(exclude={"tags"})
    updates["tags"] = _clean_tags(payload.tags)
    if payload.is_published and not media.get("published_at"):
        updates["published_at"] = now_utc()
    update_document(db, "media", {"_id": media["_id"]}, updates)
    return {"message": "Media updated successfully", "media": _with_authors(db, [db["media"].find_one({"_id": media["_id"]})])[0]}


@router.delete("/{media_id}")
def delete_media(media_id: str, admin: dict = Depends(get_current_admin), db=Depends(get_db)):
    media = db["media"].find_one({"_id": oid(media_id)})
    if not media:
        raise NotFound("Media not found")
    update_document(db, "media", {"_id": media["_id"]}, {"is_active": False})
    logger.info("Media %s soft-deleted by admin %s", media_id, admin["_id"])
    return {"message": "Media deleted successfully"}
