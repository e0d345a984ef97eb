from sqlalchemy import Column, Integer, BigInteger, String, Text, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from menu_ingest.core.timeutil import now_ms
from menu_ingest.db.base import Base


class Menu(Base):
    """Live restaurant menu that reviewed upload items are promoted into."""
    __tablename__ = "menus"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms, onupdate=now_ms)

    items = relationship("MenuItem", back_populates="menu")


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    menu_id = Column(Integer, ForeignKey("menus.id", ondelete="CASCADE"), nullable=False)
    restaurant_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    category = Column(String(255), nullable=True)
    allergens = Column(Text, nullable=True)  # comma-separated labels
    dietary = Column(Text, nullable=True)  # comma-separated labels
    created_at = Column(BigInteger, nullable=False, default=now_ms)
    updated_at = Column(BigInteger, nullable=False, default=now_ms, onupdate=now_ms)

    menu = relationship("Menu", back_populates="items")
