"""Tests for PreferencesService."""

import pytest
from sqlalchemy.orm import Session

from src.db.models import UserPreferences
from src.errors import ValidationError
from src.services.preferences_service import PreferencesService


@pytest.fixture
def service(db_session: Session) -> PreferencesService:
    return PreferencesService(db_session)


def test_get_or_create_is_idempotent(service: PreferencesService, db_session: Session):
    """Second call returns the same row."""
    p1 = service.get_or_create("shop")
    p2 = service.get_or_create("shop")
    assert p1.id == p2.id
    assert db_session.query(UserPreferences).count() == 1


def test_defaults(service: PreferencesService):
    prefs = service.get_or_create("shop")
    assert prefs.default_batch_size == 10
    assert prefs.email_notifications is True
    assert prefs.saved_filters == {}


def test_batch_size_fallback_without_row(service: PreferencesService):
    """No stored preferences means the caller's fallback is used."""
    assert service.get_batch_size("shop", fallback=25) == 25


def test_set_batch_size(service: PreferencesService):
    service.set_batch_size("shop", 50)
    assert service.get_batch_size("shop", fallback=10) == 50


@pytest.mark.parametrize("size", [0, 251])
def test_set_batch_size_bounds(service: PreferencesService, size: int):
    with pytest.raises(ValidationError):
        service.set_batch_size("shop", size)


def test_email_notifications(service: PreferencesService):
    assert service.set_email_notifications("shop", False).email_notifications is False


def test_save_filter(service: PreferencesService):
    service.save_filter("shop", "summer", {"tag": "summer"})
    prefs = service.save_filter("shop", "winter", "tag:winter")
    assert prefs.saved_filters == {"summer": {"tag": "summer"}, "winter": "tag:winter"}


def test_to_dict(service: PreferencesService):
    data = service.to_dict(service.get_or_create("shop"))
    assert data["shop"] == "shop"
    assert data["default_batch_size"] == 10
