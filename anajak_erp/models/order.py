from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from anajak_erp.database import Base
from anajak_erp.schemas.pricing import AddonPricingType

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, index=True, nullable=False)
    title = Column(String(300), nullable=False)

    # Денормализованные итоги (пересчитываются crud/order.py)
    subtotal_items = Column(Float, default=0.0)
    subtotal_fees = Column(Float, default=0.0)
    discount = Column(Float, default=0.0)
    total_amount = Column(Float, default=0.0)
    platform_fee = Column(Float, nullable=True)
    total_cost = Column(Float, default=0.0)
    profit_margin = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    items = relationship(
        "OrderItem", back_populates="order",
        cascade="all, delete-orphan", order_by="OrderItem.sort_order"
    )
    fees = relationship("OrderFee", back_populates="order", cascade="all, delete-orphan")
    cost_entries = relationship("CostEntry", back_populates="order", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Order {self.order_number}>"

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    sort_order = Column(Integer, default=0)
    product_type = Column(String(30), nullable=True)
    description = Column(Text, nullable=True)

    base_unit_price = Column(Float, default=0.0)
    total_quantity = Column(Integer, default=0)
    subtotal = Column(Float, default=0.0)

    order = relationship("Order", back_populates="items")
    variants = relationship("OrderItemVariant", cascade="all, delete-orphan")
    prints = relationship("OrderItemPrint", cascade="all, delete-orphan")
    addons = relationship("OrderItemAddon", cascade="all, delete-orphan")

class OrderItemVariant(Base):
    __tablename__ = "order_item_variants"

    id = Column(Integer, primary_key=True, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    size = Column(String(50), nullable=False)
    color = Column(String(100), nullable=False)
    quantity = Column(Integer, default=0)

class OrderItemPrint(Base):
    __tablename__ = "order_item_prints"

    id = Column(Integer, primary_key=True, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(String(50), nullable=True)   # FRONT, BACK, SLEEVE...
    print_type = Column(String(50), nullable=True)
    unit_price = Column(Float, default=0.0)

class OrderItemAddon(Base):
    __tablename__ = "order_item_addons"

    id = Column(Integer, primary_key=True, index=True)
    order_item_id = Column(Integer, ForeignKey("order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    pricing_type = Column(String(20), default=AddonPricingType.PER_PIECE.value)
    unit_price = Column(Float, default=0.0)
    quantity = Column(Integer, nullable=True)   # None = количество позиции

class OrderFee(Base):
    __tablename__ = "order_fees"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    fee_type = Column(String(50), nullable=True)
    name = Column(String(200), nullable=False)
    amount = Column(Float, default=0.0)

    order = relationship("Order", back_populates="fees")

class CostEntry(Base):
    __tablename__ = "cost_entries"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    amount = Column(Float, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="cost_entries")
