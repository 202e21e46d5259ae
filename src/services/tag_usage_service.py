"""Service for per-shop tag usage counters."""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.models import TagUsage, utc_now_iso

logger = logging.getLogger(__name__)


class TagUsageService:
    """Upserts and reads TagUsage rows."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get_usage(self, shop: str, tag_name: str) -> TagUsage | None:
        return (
            self._db.query(TagUsage)
            .filter(TagUsage.shop == shop, TagUsage.tag_name == tag_name)
            .first()
        )

    def record_usage(self, shop: str, tag_name: str) -> TagUsage:
        """Increment the usage counter for a tag, creating it at 1.

        Raises:
            SQLAlchemyError: If the upsert cannot be committed.
        """
        now = utc_now_iso()
        usage = self.get_usage(shop, tag_name)
        if usage is None:
            usage = TagUsage(shop=shop, tag_name=tag_name, usage_count=1, last_used=now)
            self._db.add(usage)
            try:
                self._db.commit()
            except IntegrityError:
                # Another writer created the row first.
                self._db.rollback()
                usage = self.get_usage(shop, tag_name)
                if usage is None:
                    raise
                usage.usage_count += 1
                usage.last_used = now
                self._db.commit()
        else:
            usage.usage_count += 1
            usage.last_used = now
            try:
                self._db.commit()
            except SQLAlchemyError:
                self._db.rollback()
                raise
        self._db.refresh(usage)
        logger.debug("Tag usage %s/%s -> %d", shop, tag_name, usage.usage_count)
        return usage

    def top_tags(self, shop: str, limit: int = 10) -> list[TagUsage]:
        """Most-used tags for a shop, most recent first on ties."""
        return (
            self._db.query(TagUsage)
            .filter(TagUsage.shop == shop)
            .order_by(TagUsage.usage_count.desc(), TagUsage.last_used.desc())
            .limit(limit)
            .all()
        )
