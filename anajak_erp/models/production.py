from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey
from sqlalchemy.sql import func
from anajak_erp.database import Base

class MaterialUsage(Base):
    """Списание сырья со склада Stock в рамках производства"""
    __tablename__ = "material_usages"

    id = Column(Integer, primary_key=True, index=True)
    production_id = Column(String(100), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    product_variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    quantity = Column(Float, nullable=False)
    unit = Column(String(50), nullable=False)
    unit_cost = Column(Float, default=0.0)
    total_cost = Column(Float, default=0.0)

    # Номер документа движения в Stock API
    stock_movement_ref = Column(String(100), nullable=True, index=True)
    deducted_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<MaterialUsage {self.production_id}: {self.quantity} {self.unit}>"
