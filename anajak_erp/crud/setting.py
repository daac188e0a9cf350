# anajak_erp/crud/setting.py
from typing import Dict, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from anajak_erp.models.setting import Setting

async def get_settings(db: AsyncSession, keys: List[str]) -> Dict[str, str]:
    """Получить значения настроек по списку ключей"""
    result = await db.execute(select(Setting).where(Setting.key.in_(keys)))
    return {s.key: s.value for s in result.scalars().all()}

async def set_setting(db: AsyncSession, key: str, value: str) -> Setting:
    """Создать или обновить настройку"""
    setting = await db.get(Setting, key)
    if setting is None:
        setting = Setting(key=key, value=value)
        db.add(setting)
    else:
        setting.value = value

    await db.commit()
    return setting
