from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.sql import func
from anajak_erp.database import Base

class Setting(Base):
    """Настройки ERP в формате ключ/значение (например, доступ к Stock API)"""
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Setting {self.key}>"
