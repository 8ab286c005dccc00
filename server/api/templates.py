"""
Template Management API endpoints.
"""

from uuid import UUID

from fastapi import APIRouter, Query
from sqlalchemy import func, select

from server.core.errors import InvalidArgument, NotFound
from server.core.monitoring import log_event
from server.dependencies import SessionDep
from server.models.messaging import Template
from server.schemas.templates import (
    TemplateCreate,
    TemplateEnvelope,
    TemplateListResponse,
    TemplateResponse,
    TemplateUpdate,
)

router = APIRouter(prefix="/templates", tags=["Templates"])


async def _get_template(session, template_id: UUID) -> Template:
    template = await session.get(Template, template_id)
    if not template:
        raise NotFound("Template not found")
    return template


# ============================================================================
# ENDPOINTS
# ============================================================================


@router.get("", response_model=TemplateListResponse)
async def list_templates(
    session: SessionDep,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """List message templates, newest first."""
    total_result = await session.execute(select(func.count()).select_from(Template))
    total = total_result.scalar() or 0

    result = await session.execute(
        select(Template).order_by(Template.created_at.desc()).offset(offset).limit(limit)
    )
    templates = result.scalars().all()

    return TemplateListResponse(
        templates=[TemplateResponse.model_validate(t) for t in templates],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=TemplateEnvelope)
async def create_template(data: TemplateCreate, session: SessionDep):
    """Create a new message template."""
    template = Template(name=data.name, content=data.content)

    session.add(template)
    await session.commit()
    await session.refresh(template)

    log_event("template_created", template_id=str(template.id), name=data.name)

    return TemplateEnvelope(template=TemplateResponse.model_validate(template))


@router.get("/{template_id}", response_model=TemplateEnvelope)
async def get_template(template_id: UUID, session: SessionDep):
    """Get a template by ID."""
    template = await _get_template(session, template_id)
    return TemplateEnvelope(template=TemplateResponse.model_validate(template))


@router.put("/{template_id}", response_model=TemplateEnvelope)
async def update_template(
    template_id: UUID, data: TemplateUpdate, session: SessionDep
):
    """Update a template's name and/or content."""
    if data.name is None and data.content is None:
        raise InvalidArgument("Name or content required")

    template = await _get_template(session, template_id)

    if data.name is not None:
        template.name = data.name
    if data.content is not None:
        template.content = data.content

    await session.commit()
    await session.refresh(template)

    log_event("template_updated", template_id=str(template_id))

    return TemplateEnvelope(template=TemplateResponse.model_validate(template))


@router.delete("/{template_id}")
async def delete_template(template_id: UUID, session: SessionDep):
    """Delete a template."""
    template = await _get_template(session, template_id)

    await session.delete(template)
    await session.commit()

    log_event("template_deleted", template_id=str(template_id))

    return {"success": True, "message": "Template deleted"}
