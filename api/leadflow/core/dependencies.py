from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.core.errors import NotFoundError
from leadflow.models.lead import Lead


async def get_lead_or_404(lead_id: UUID, db: AsyncSession) -> Lead:
    """Load a lead by id.

    Raises NotFoundError (mapped to HTTP 404) if it does not exist.
    """
    result = await db.execute(select(Lead).where(Lead.id == lead_id))
    lead = result.scalar_one_or_none()
    if lead is None:
        raise NotFoundError("Lead", lead_id)
    return lead
