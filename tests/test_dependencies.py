import unittest
from unittest.mock import AsyncMock, patch

from auth import dependencies
from auth.stores.redis_store import RedisKeyValueStore


class TestCloseStores(unittest.IsolatedAsyncioTestCase):
    async def test_closes_production_key_value_store(self):
        kv = AsyncMock(spec=RedisKeyValueStore)

        with patch.object(dependencies, "_production_stores", (object(), kv, None)):
            await dependencies.close_stores()
            self.assertIsNone(dependencies._production_stores)

        kv.close.assert_awaited_once()

    async def test_memory_mode_has_nothing_to_close(self):
        with patch.object(dependencies, "_production_stores", None):
            await dependencies.close_stores()
            self.assertIsNone(dependencies._production_stores)


if __name__ == "__main__":
    unittest.main()
