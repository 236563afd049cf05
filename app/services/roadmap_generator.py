"""
Client for the n8n roadmap generation workflow.

Generation runs out of process: we POST the request to the workflow's
webhook and the roadmap document comes back either in the webhook's own
response or later through the callback route. Both paths end in
`apply_generation_result`.
"""
import time
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.models.roadmap import Roadmap, RoadmapDocumentation, slugify
from app.models.user_progress import UserProgress, mirror_phases
from app.schemas.roadmap import GenerationResult, RoadmapDocument
from app.utils.logger import logger


class RoadmapGenerationError(Exception):
    """The workflow could not be reached or rejected the request"""


def build_roadmap_id(field: str, level: str, now_ms: Optional[int] = None) -> str:
    """'Data Science', 'Beginner' -> 'data-science-beginner-1700000000000'"""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{slugify(field)}-{level.lower()}-{now_ms}"


def extract_generation_result(body: Any) -> Optional[GenerationResult]:
    """Pull a finished roadmap out of a synchronous webhook response, if any"""
    if not isinstance(body, dict):
        return None
    for candidate in (body, body.get("data")):
        if isinstance(candidate, dict) and isinstance(candidate.get("roadmap_json"), dict):
            return GenerationResult.model_validate(candidate)
    return None


class RoadmapGeneratorClient:
    """Triggers the n8n workflow over HTTP"""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.transport = transport

    @property
    def callback_url(self) -> str:
        return f"{self.settings.backend_url.rstrip('/')}/api/roadmaps/webhook/n8n-callback"

    async def trigger(self, *, field: str, level: str, user_id: int, roadmap_id: str,
                      custom_requirements: Optional[str] = None) -> Dict[str, Any]:
        webhook_url = self.settings.n8n_roadmap_webhook_url
        if not webhook_url:
            raise RoadmapGenerationError("n8n webhook URL not configured")

        payload = {
            "field": field,
            "level": level,
            "userId": user_id,
            "roadmapId": roadmap_id,
            "customRequirements": custom_requirements,
            "callbackUrl": self.callback_url,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.n8n_webhook_secret}",
        }

        logger.info(f"[Roadmap] Triggering generation workflow for {roadmap_id}",
                    extra={"roadmap_id": roadmap_id})
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.settings.webhook_timeout_seconds) as client:
                response = await client.post(webhook_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise RoadmapGenerationError(str(e) or type(e).__name__) from e

        try:
            return response.json()
        except ValueError:
            return {}


def get_roadmap_generator() -> RoadmapGeneratorClient:
    """FastAPI dependency"""
    return RoadmapGeneratorClient()


async def apply_generation_result(db: AsyncSession, roadmap: Roadmap, result: GenerationResult) -> None:
    """
    Store a generated roadmap and mirror its phases into the owner's progress.

    Raises pydantic.ValidationError when the document does not match the
    roadmap schema; the roadmap is left untouched in that case.
    """
    document = RoadmapDocument.model_validate(result.roadmap_json)
    raw = result.roadmap_json

    roadmap.overview = raw["overview"]
    roadmap.phases = raw.get("phases") or []
    roadmap.connections = raw.get("connections") or []
    roadmap.roadmap_metadata = {**(roadmap.roadmap_metadata or {}), **(raw.get("metadata") or {})}
    roadmap.documentation = result.roadmap_doc
    roadmap.status = "completed"

    progress = (await db.execute(
        select(UserProgress).where(UserProgress.roadmap_pk == roadmap.id)
    )).scalar_one_or_none()
    if progress is not None:
        progress.phases = mirror_phases(roadmap.phases)
        progress.overall_progress = 0

    docs = (await db.execute(
        select(RoadmapDocumentation).where(RoadmapDocumentation.roadmap_pk == roadmap.id)
    )).scalar_one_or_none()
    if docs is None:
        docs = RoadmapDocumentation(roadmap_pk=roadmap.id, roadmap_id=roadmap.roadmap_id)
        db.add(docs)
    docs.title = document.title or roadmap.title
    docs.markdown_content = result.roadmap_doc
    docs.ai_model = document.metadata.aiModel
    docs.tokens = result.tokens

    logger.info(f"[Roadmap] Stored generated roadmap {roadmap.roadmap_id} "
                f"({len(roadmap.phases)} phases, {roadmap.total_steps()} steps)",
                extra={"roadmap_id": roadmap.roadmap_id})
