from typing import Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine

from cms_scheduler.storages.tables import build_tables

SCHEDULES_ENABLED_KEY = "schedules_enabled"
SCHEDULES_PING_SITEMAP_KEY = "schedules_ping_sitemap"
SITE_URL_KEY = "site_url"


class SettingsStore(Protocol):
    async def get_text(self, key: str, default: str = "") -> str:
        """Return the stored value for ``key`` or ``default``."""
        ...

    async def get_boolean(self, key: str, default: bool = False) -> bool:
        """Return True only when the stored value is the string ``"true"``."""
        ...


class InMemorySettingsStore(SettingsStore):
    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(values or {})

    async def get_text(self, key: str, default: str = "") -> str:
        return self.values.get(key, default)

    async def get_boolean(self, key: str, default: bool = False) -> bool:
        if key not in self.values:
            return default
        return self.values[key] == "true"

    async def set_text(self, key: str, value: str) -> None:
        self.values[key] = value

    async def set_boolean(self, key: str, value: bool) -> None:
        self.values[key] = "true" if value else "false"


class SqlAlchemySettingsStore(SettingsStore):
    """
    Key/value settings kept in the ``<prefix>cms_settings`` table.
    """

    def __init__(self, engine: AsyncEngine, prefix: str = "tooty_"):
        self.engine = engine
        self.table = build_tables(prefix).settings

    @classmethod
    def for_store(cls, store) -> "SqlAlchemySettingsStore":
        return cls(store.engine, prefix=store.prefix)

    async def _get(self, key: str) -> Optional[str]:
        async with self.engine.connect() as conn:
            result = await conn.execute(select(self.table.c.value).where(self.table.c.key == key))
            return result.scalar_one_or_none()

    async def get_text(self, key: str, default: str = "") -> str:
        value = await self._get(key)
        return default if value is None else value

    async def get_boolean(self, key: str, default: bool = False) -> bool:
        value = await self._get(key)
        if value is None:
            return default
        return value == "true"

    async def set_text(self, key: str, value: str) -> None:
        async with self.engine.begin() as conn:
            result = await conn.execute(
                self.table.update().where(self.table.c.key == key).values(value=value)
            )
            if result.rowcount == 0:
                await conn.execute(self.table.insert().values(key=key, value=value))

    async def set_boolean(self, key: str, value: bool) -> None:
        await self.set_text(key, "true" if value else "false")
