"""Service for per-shop preferences.

Provides get-or-create access to UserPreferences with validated updates.
"""

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from src.db.models import UserPreferences, utc_now_iso
from src.errors import ValidationError

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 250


class PreferencesService:
    """CRUD service for UserPreferences, one row per shop."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def get(self, shop: str) -> UserPreferences | None:
        return self._db.query(UserPreferences).filter(UserPreferences.shop == shop).first()

    def get_or_create(self, shop: str) -> UserPreferences:
        """Return the shop's preferences, creating defaults if absent."""
        prefs = self.get(shop)
        if prefs is None:
            prefs = UserPreferences(shop=shop)
            self._db.add(prefs)
            self._db.commit()
            self._db.refresh(prefs)
            logger.info("Created preferences for shop %s", shop)
        return prefs

    def get_batch_size(self, shop: str, fallback: int) -> int:
        """Stored default batch size for the shop, or ``fallback`` if none."""
        prefs = self.get(shop)
        if prefs is None:
            return fallback
        return prefs.default_batch_size

    def set_batch_size(self, shop: str, batch_size: int) -> UserPreferences:
        """Store the shop's default batch size.

        Raises:
            ValidationError: If batch_size is outside 1..250.
        """
        if not MIN_BATCH_SIZE <= batch_size <= MAX_BATCH_SIZE:
            raise ValidationError(
                f"batch size must be between {MIN_BATCH_SIZE} and {MAX_BATCH_SIZE}"
            )
        return self._update(shop, default_batch_size=batch_size)

    def set_email_notifications(self, shop: str, enabled: bool) -> UserPreferences:
        return self._update(shop, email_notifications=enabled)

    def save_filter(self, shop: str, name: str, query: Any) -> UserPreferences:
        """Store a named product filter."""
        if not name.strip():
            raise ValidationError("filter name must be non-empty")
        prefs = self.get_or_create(shop)
        filters = prefs.saved_filters
        filters[name.strip()] = query
        return self._update(shop, saved_filters_json=json.dumps(filters))

    def _update(self, shop: str, **fields: Any) -> UserPreferences:
        prefs = self.get_or_create(shop)
        for key, value in fields.items():
            setattr(prefs, key, value)
        prefs.updated_at = utc_now_iso()
        self._db.commit()
        self._db.refresh(prefs)
        return prefs

    def to_dict(self, prefs: UserPreferences) -> dict[str, Any]:
        return {
            "shop": prefs.shop,
            "default_batch_size": prefs.default_batch_size,
            "email_notifications": prefs.email_notifications,
            "saved_filters": prefs.saved_filters,
            "updated_at": prefs.updated_at,
        }
