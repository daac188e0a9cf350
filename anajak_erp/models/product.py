from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Text, Float, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from anajak_erp.database import Base

class ProductSource(str, enum.Enum):
    STOCK = "STOCK"   # синхронизирован из Stock API
    LOCAL = "LOCAL"   # создан вручную в ERP

class ItemType(str, enum.Enum):
    FINISHED_GOOD = "FINISHED_GOOD"
    RAW_MATERIAL = "RAW_MATERIAL"
    CONSUMABLE = "CONSUMABLE"

class ProductType(str, enum.Enum):
    T_SHIRT = "T_SHIRT"
    PANTS = "PANTS"
    JACKET = "JACKET"
    OTHER = "OTHER"

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    sku = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(300), nullable=False, index=True)
    description = Column(Text, nullable=True)
    product_type = Column(String(30), default=ProductType.OTHER.value)
    category = Column(String(100), index=True, nullable=True)
    item_type = Column(String(30), default=ItemType.FINISHED_GOOD.value)

    # Цены
    base_price = Column(Float, default=0.0)
    cost_price = Column(Float, default=0.0)

    # Связь с Stock API
    source = Column(Enum(ProductSource), default=ProductSource.LOCAL, index=True)
    stock_product_id = Column(String(100), unique=True, index=True, nullable=True)
    barcode = Column(String(100), nullable=True)
    unit = Column(String(50), nullable=True)
    unit_name = Column(String(100), nullable=True)

    # Остатки
    reorder_point = Column(Integer, default=0)
    total_stock = Column(Integer, default=0)

    is_active = Column(Boolean, default=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)

    # Даты
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    variants = relationship(
        "ProductVariant",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self):
        return f"<Product {self.sku} ({self.source})>"

class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String(100), unique=True, index=True, nullable=False)
    stock_variant_id = Column(String(100), unique=True, index=True, nullable=True)

    # Производные атрибуты (см. services/variant_attributes.py)
    size = Column(String(50), nullable=False, default="FREE")
    color = Column(String(100), nullable=False, default="-")

    barcode = Column(String(100), nullable=True)
    cost_price = Column(Float, default=0.0)
    selling_price = Column(Float, default=0.0)
    stock = Column(Integer, default=0)
    total_stock = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    product = relationship("Product", back_populates="variants")

    def __repr__(self):
        return f"<ProductVariant {self.sku} {self.size}/{self.color}>"
