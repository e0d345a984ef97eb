"""
Test configuration and fixtures.
"""
from typing import Generator
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import menu_ingest.models  # noqa: F401  registers all model classes
from menu_ingest.db.base import Base
from menu_ingest.models.menu import Menu
from menu_ingest.services.menu_upload_store import MenuUploadStore
from mocks import make_extractor, make_parser


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def store(db_session: Session) -> MenuUploadStore:
    return MenuUploadStore(db_session)


@pytest.fixture
def extractor() -> MagicMock:
    """Extractor returning 'menu text' as if read from a PDF."""
    return make_extractor()


@pytest.fixture
def parser() -> MagicMock:
    """AI parser returning one Truffle Fries item."""
    return make_parser()


@pytest.fixture
def test_menu(db_session: Session) -> Menu:
    """Live menu 55 of restaurant 44."""
    menu = Menu(id=55, restaurant_id=44, name="Dinner")
    db_session.add(menu)
    db_session.commit()
    db_session.refresh(menu)
    return menu
