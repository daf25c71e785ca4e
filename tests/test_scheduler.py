import unittest

import scheduler
from cache import ParseCache
from db import SqlitePrimary
from models import ExtractionResult
from resolver import ListingResolver
from store import MemoryMirror, ResilientRecordStore


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestPrune(unittest.TestCase):
    def test_prune_caches_drops_expired_entries(self):
        clock = FakeClock()
        mirror = MemoryMirror(ttl_seconds=10, clock=clock)
        parse_cache = ParseCache(ttl_seconds=10, clock=clock)
        store = ResilientRecordStore(SqlitePrimary(":memory:"), mirror)
        resolver = ListingResolver(store=store, fetcher=None, parse_cache=parse_cache)

        mirror.create("https://avito.ru/a", "a")
        parse_cache.put("https://avito.ru/a", ExtractionResult.success("a"))
        clock.now = 11

        result = scheduler.prune_caches(resolver)
        self.assertEqual(result["mirror_pruned"], 1)
        self.assertEqual(result["parse_cache_pruned"], 1)
        self.assertEqual(len(mirror), 0)
        self.assertEqual(scheduler.get_status()["last_result"], result)

    def test_start_and_stop(self):
        resolver = ListingResolver(store=None, fetcher=None, parse_cache=ParseCache())
        scheduler.start_scheduler(resolver, interval_minutes=60)
        try:
            status = scheduler.get_status()
            self.assertTrue(status["running"])
            self.assertIn("next_run", status)
        finally:
            scheduler.stop_scheduler()
        self.assertFalse(scheduler.get_status()["running"])


if __name__ == "__main__":
    unittest.main()
