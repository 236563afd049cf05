"""
AI roadmap routes.

Generation is delegated to the n8n workflow (see
app/services/roadmap_generator.py); the finished roadmap either comes back in
the webhook's response or later through `/webhook/n8n-callback`.

Static paths (`/generate`, `/meta/*`, `/webhook/*`) are declared before the
`/{roadmap_id}` routes.
"""
import math
import secrets
import time
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete

from app.config import get_settings
from app.database import get_db
from app.middleware.auth import get_current_user
from app.middleware.error_handler import error_response
from app.models.roadmap import Roadmap, RoadmapDocumentation, ROADMAP_FIELDS, slugify
from app.models.user import User
from app.models.user_progress import UserProgress, mirror_phases
from app.schemas.roadmap import (
    GenerateRequest,
    GenerationResult,
    ProgressActionRequest,
    RateRoadmapRequest,
    WebhookCallback,
)
from app.services.roadmap_generator import (
    RoadmapGenerationError,
    RoadmapGeneratorClient,
    apply_generation_result,
    build_roadmap_id,
    extract_generation_result,
    get_roadmap_generator,
)
from app.utils.logger import logger

router = APIRouter()

ESTIMATED_GENERATION_TIME = "2-3 minutes"
MIN_RATINGS_FOR_POPULAR = 5


async def _get_roadmap(db: AsyncSession, roadmap_id: str) -> Roadmap:
    result = await db.execute(select(Roadmap).where(Roadmap.roadmap_id == roadmap_id))
    roadmap = result.scalar_one_or_none()
    if not roadmap:
        raise HTTPException(status_code=404, detail="Roadmap not found")
    return roadmap


async def _get_progress(db: AsyncSession, user_id: int, roadmap_id: str) -> Optional[UserProgress]:
    result = await db.execute(
        select(UserProgress).where(UserProgress.user_id == user_id, UserProgress.roadmap_id == roadmap_id)
    )
    return result.scalar_one_or_none()


def _ensure_readable(roadmap: Roadmap, user: User) -> None:
    if roadmap.user_id != user.id and not roadmap.is_public:
        raise HTTPException(status_code=403, detail="Access denied")


async def verify_webhook_secret(authorization: Optional[str] = Header(None)) -> None:
    """The workflow authenticates its callback with the shared bearer secret"""
    expected = get_settings().n8n_webhook_secret
    token = (authorization or "").replace("Bearer ", "", 1)
    if not expected or not secrets.compare_digest(token.encode(), expected.encode()):
        logger.warning("[Roadmap] Rejected webhook callback with a bad secret")
        raise HTTPException(status_code=401, detail="Unauthorized webhook request")


# ========== Generation ==========
@router.post("/generate", status_code=202)
async def generate_roadmap(
    request: GenerateRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    generator: RoadmapGeneratorClient = Depends(get_roadmap_generator)
):
    """
    Start AI generation of a roadmap for a field and level

    Returns 202 with the placeholder roadmap and its progress record; the
    roadmap becomes `completed` once the workflow delivers it.
    """
    existing = (await db.execute(
        select(Roadmap).where(
            Roadmap.user_id == current_user.id,
            Roadmap.field == request.field,
            Roadmap.level == request.level,
            Roadmap.status.in_(("generating", "completed")),
        )
    )).scalars().first()

    if existing:
        return error_response(
            409,
            "You already have a roadmap for this field and level",
            roadmap=existing.to_dict()
        )

    roadmap_id = build_roadmap_id(request.field, request.level)
    roadmap = Roadmap(
        user_id=current_user.id,
        roadmap_id=roadmap_id,
        title=f"{request.field} Career Path - {request.level} Level",
        field=request.field,
        level=request.level,
        overview={
            "description": "AI-generated roadmap is being created...",
            "duration": "TBD",
            "difficulty": 3,
            "outcomes": [],
        },
        phases=[],
        connections=[],
        roadmap_metadata={
            "aiModel": "GPT-4",
            "tags": [slugify(request.field), request.level.lower()],
        },
        documentation="Generating documentation...",
        status="generating",
        is_public=False,
        rating_average=0.0,
        rating_count=0,
    )
    db.add(roadmap)
    await db.commit()

    try:
        response = await generator.trigger(
            field=request.field,
            level=request.level,
            user_id=current_user.id,
            roadmap_id=roadmap_id,
            custom_requirements=request.custom_requirements,
        )
    except RoadmapGenerationError as e:
        logger.error(f"[Roadmap] n8n trigger failed: {e}", extra={"roadmap_id": roadmap_id})
        roadmap.status = "failed"
        await db.commit()
        extra = {"error": str(e)} if get_settings().is_development else {}
        return error_response(500, "Failed to trigger AI roadmap generation", **extra)

    roadmap.workflow_id = (response.get("workflowId") if isinstance(response, dict) else None) \
        or f"workflow-{int(time.time() * 1000)}"

    try:
        result = extract_generation_result(response)
        if result is not None:
            await apply_generation_result(db, roadmap, result)
    except ValidationError as e:
        logger.error(f"[Roadmap] Workflow returned an invalid roadmap: {e.error_count()} errors",
                     extra={"roadmap_id": roadmap_id})
        roadmap.status = "failed"
        await db.commit()
        return error_response(500, "AI roadmap generation returned an invalid roadmap")

    progress = UserProgress(
        user_id=current_user.id,
        roadmap_id=roadmap_id,
        roadmap_pk=roadmap.id,
        phases=mirror_phases(roadmap.phases),
    )
    db.add(progress)
    await db.commit()

    logger.info(f"[Roadmap] Generation started for {roadmap_id} (status={roadmap.status})",
                extra={"roadmap_id": roadmap_id, "workflow_id": roadmap.workflow_id})

    return {
        "success": True,
        "message": "Roadmap generated" if roadmap.status == "completed" else "Roadmap generation started",
        "data": {
            "roadmap": roadmap.to_dict(),
            "progress": progress.to_dict(),
            "estimatedTime": ESTIMATED_GENERATION_TIME,
        }
    }


# ========== Listing & metadata ==========
@router.get("/")
@router.get("", include_in_schema=False)
async def list_roadmaps(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    field: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The user's roadmaps, newest first, each paired with its progress"""
    filters = [Roadmap.user_id == current_user.id]
    if status:
        filters.append(Roadmap.status == status)
    if field:
        filters.append(Roadmap.field == field)

    result = await db.execute(
        select(Roadmap).where(*filters)
        .order_by(Roadmap.created_at.desc(), Roadmap.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    roadmaps = result.scalars().unique().all()

    progress_by_roadmap = {}
    if roadmaps:
        progress_rows = await db.execute(
            select(UserProgress).where(
                UserProgress.user_id == current_user.id,
                UserProgress.roadmap_id.in_([r.roadmap_id for r in roadmaps]),
            )
        )
        progress_by_roadmap = {p.roadmap_id: p for p in progress_rows.scalars().unique().all()}

    total = (await db.execute(select(func.count(Roadmap.id)).where(*filters))).scalar() or 0

    return {
        "success": True,
        "data": [
            {
                **roadmap.to_dict(),
                "progress": progress_by_roadmap[roadmap.roadmap_id].to_dict()
                if roadmap.roadmap_id in progress_by_roadmap else None,
            }
            for roadmap in roadmaps
        ],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        }
    }


@router.get("/meta/fields")
async def list_fields(db: AsyncSession = Depends(get_db)):
    """Every supported field with its completed-roadmap count and average rating"""
    counts = dict((await db.execute(
        select(Roadmap.field, func.count(Roadmap.id))
        .where(Roadmap.status == "completed")
        .group_by(Roadmap.field)
    )).all())
    ratings = dict((await db.execute(
        select(Roadmap.field, func.avg(Roadmap.rating_average))
        .where(Roadmap.status == "completed", Roadmap.rating_count > 0)
        .group_by(Roadmap.field)
    )).all())

    fields = [
        {
            "name": field,
            "slug": slugify(field),
            "roadmapCount": counts.get(field, 0),
            "averageRating": round(ratings[field], 1) if ratings.get(field) is not None else 0,
        }
        for field in ROADMAP_FIELDS
    ]

    return {"success": True, "data": fields}


@router.get("/meta/popular")
async def popular_roadmaps(
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db)
):
    """Best-rated public roadmaps with enough ratings to be meaningful"""
    result = await db.execute(
        select(Roadmap)
        .where(
            Roadmap.status == "completed",
            Roadmap.is_public.is_(True),
            Roadmap.rating_count >= MIN_RATINGS_FOR_POPULAR,
        )
        .order_by(Roadmap.rating_average.desc(), Roadmap.rating_count.desc())
        .limit(limit)
    )

    return {
        "success": True,
        "data": [
            {**r.to_dict(), "owner": {"id": r.owner.id, "name": r.owner.name} if r.owner else None}
            for r in result.scalars().unique().all()
        ]
    }


# ========== Workflow callback ==========
@router.post("/webhook/n8n-callback", dependencies=[Depends(verify_webhook_secret)])
async def n8n_callback(
    callback: WebhookCallback,
    db: AsyncSession = Depends(get_db)
):
    """Receive the outcome of a generation run from the n8n workflow"""
    roadmap = await _get_roadmap(db, callback.roadmap_id)

    if callback.workflow_id:
        roadmap.workflow_id = callback.workflow_id

    if callback.status == "completed" and callback.data is not None:
        try:
            result = GenerationResult.model_validate(callback.data)
            await apply_generation_result(db, roadmap, result)
        except ValidationError as e:
            logger.error(f"[Roadmap] Callback carried an invalid roadmap: {e.error_count()} errors",
                         extra={"roadmap_id": roadmap.roadmap_id})
            roadmap.status = "failed"
            await db.commit()
            raise HTTPException(status_code=400, detail="Invalid roadmap data")
    elif callback.status == "failed":
        logger.warning(f"[Roadmap] Generation failed for {roadmap.roadmap_id}: {callback.error}",
                       extra={"roadmap_id": roadmap.roadmap_id})
        roadmap.status = "failed"

    await db.commit()

    return {"success": True, "message": "Webhook processed successfully"}


# ========== Single roadmap ==========
@router.get("/{roadmap_id}")
async def get_roadmap(
    roadmap_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """A roadmap the user owns or that is public, with the owner's progress and documentation"""
    roadmap = await _get_roadmap(db, roadmap_id)
    _ensure_readable(roadmap, current_user)

    progress = None
    if roadmap.user_id == current_user.id:
        progress = await _get_progress(db, current_user.id, roadmap_id)

    documentation = (await db.execute(
        select(RoadmapDocumentation).where(RoadmapDocumentation.roadmap_pk == roadmap.id)
    )).scalar_one_or_none()

    return {
        "success": True,
        "data": {
            "roadmap": roadmap.to_dict(),
            "progress": progress.to_dict() if progress else None,
            "documentation": documentation.to_dict() if documentation else None,
        }
    }


@router.get("/{roadmap_id}/status")
async def get_roadmap_status(
    roadmap_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Lightweight poll while a roadmap is generating"""
    roadmap = await _get_roadmap(db, roadmap_id)
    _ensure_readable(roadmap, current_user)

    return {
        "success": True,
        "data": {
            "roadmapId": roadmap.roadmap_id,
            "status": roadmap.status,
            "workflowId": roadmap.workflow_id,
            "updatedAt": roadmap.updated_at.isoformat() if roadmap.updated_at else None,
        }
    }


@router.put("/{roadmap_id}/progress")
async def update_roadmap_progress(
    roadmap_id: str,
    body: ProgressActionRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Apply one step action (complete, uncomplete, note, rate) to the user's progress"""
    progress = await _get_progress(db, current_user.id, roadmap_id)
    if not progress:
        raise HTTPException(status_code=404, detail="Progress record not found")

    if body.rating is not None and not 1 <= body.rating <= 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")

    try:
        if body.action == "complete_step":
            progress.complete_step(body.phase_id, body.step_id, body.time_spent or 0,
                                   body.rating, body.notes or "")
        elif body.action == "uncomplete_step":
            progress.uncomplete_step(body.phase_id, body.step_id)
        elif body.action == "add_note":
            progress.set_step_notes(body.phase_id, body.step_id, body.notes or "")
        elif body.action == "rate_step":
            progress.rate_step(body.phase_id, body.step_id, body.rating)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    await db.commit()

    logger.info(f"[Progress] {body.action} {body.phase_id}/{body.step_id} on {roadmap_id} "
                f"-> {progress.overall_progress}%", extra={"roadmap_id": roadmap_id})

    return {
        "success": True,
        "message": "Progress updated successfully",
        "data": progress.to_dict()
    }


@router.post("/{roadmap_id}/rate")
async def rate_roadmap(
    roadmap_id: str,
    body: RateRoadmapRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    roadmap = await _get_roadmap(db, roadmap_id)

    roadmap.add_rating(body.rating)

    progress = await _get_progress(db, current_user.id, roadmap_id)
    if progress:
        progress.rate_roadmap(body.rating, body.feedback)

    await db.commit()

    return {
        "success": True,
        "message": "Rating added successfully",
        "data": {
            "roadmap": roadmap.to_dict(),
            "userRating": {"rating": body.rating, "feedback": body.feedback},
        }
    }


@router.delete("/{roadmap_id}")
async def delete_roadmap(
    roadmap_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Delete one of the user's roadmaps together with its progress and documentation"""
    result = await db.execute(
        select(Roadmap).where(Roadmap.roadmap_id == roadmap_id, Roadmap.user_id == current_user.id)
    )
    roadmap = result.scalar_one_or_none()
    if not roadmap:
        raise HTTPException(status_code=404, detail="Roadmap not found")

    await db.execute(delete(UserProgress).where(UserProgress.roadmap_pk == roadmap.id))
    await db.execute(delete(RoadmapDocumentation).where(RoadmapDocumentation.roadmap_pk == roadmap.id))
    await db.delete(roadmap)
    await db.commit()

    logger.info(f"[Roadmap] Deleted {roadmap_id}", extra={"roadmap_id": roadmap_id})

    return {"success": True, "message": "Roadmap deleted successfully"}
