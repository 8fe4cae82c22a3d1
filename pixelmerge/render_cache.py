from __future__ import annotations

import logging

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pixelmerge.errors import UpstreamError
from pixelmerge.models import PersonalizationRender

logger = logging.getLogger(__name__)


class RenderCache:
    """(template id, cache key) -> artifact URL, stored in ``personalization_renders``.

    There is no TTL and no locking here. Two concurrent misses may both insert;
    lookups read the newest row, so the last write wins.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, template_id: str, cache_key: str) -> str | None:
        stmt = (
            select(PersonalizationRender.storage_url)
            .where(
                PersonalizationRender.template_id == template_id,
                PersonalizationRender.token_hash == cache_key,
            )
            .order_by(desc(PersonalizationRender.created_at), desc(PersonalizationRender.id))
            .limit(1)
        )
        try:
            return self.session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UpstreamError(f"Render cache lookup failed: {exc}") from exc

    def put(self, template_id: str, cache_key: str, storage_url: str) -> None:
        entry = PersonalizationRender(
            template_id=template_id,
            token_hash=cache_key,
            storage_url=storage_url,
        )
        try:
            self.session.add(entry)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UpstreamError(f"Render cache insert failed: {exc}") from exc
        logger.debug("Cached render template_id=%s key=%s", template_id, cache_key)
