import threading
import unittest

from cache import ParseCache
from models import ExtractionResult

URL = "https://avito.ru/a"


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestParseCache(unittest.TestCase):
    def test_caches_ok_results_for_a_day(self):
        clock = FakeClock()
        cache = ParseCache(clock=clock)
        result = ExtractionResult.success("Title", "https://img.avito.st/1.jpg")
        self.assertTrue(cache.put(URL, result))
        clock.advance(24 * 3600 - 1)
        self.assertEqual(cache.get(URL).title, "Title")
        clock.advance(1)
        self.assertIsNone(cache.get(URL))
        self.assertEqual(len(cache), 0)

    def test_reads_do_not_extend_expiry(self):
        clock = FakeClock()
        cache = ParseCache(ttl_seconds=10, clock=clock)
        cache.put(URL, ExtractionResult.success("Title"))
        clock.advance(8)
        self.assertIsNotNone(cache.get(URL))
        clock.advance(3)
        self.assertIsNone(cache.get(URL))

    def test_put_replaces_and_restarts_expiry(self):
        clock = FakeClock()
        cache = ParseCache(ttl_seconds=10, clock=clock)
        cache.put(URL, ExtractionResult.success("Old"))
        clock.advance(8)
        cache.put(URL, ExtractionResult.success("New"))
        clock.advance(8)
        self.assertEqual(cache.get(URL).title, "New")

    def test_degraded_results_are_not_cached(self):
        cache = ParseCache()
        self.assertFalse(cache.put(URL, ExtractionResult.failure("parse-failed", ["x"])))
        self.assertIsNone(cache.get(URL))
        self.assertEqual(len(cache), 0)

    def test_prune_counts_expired_entries(self):
        clock = FakeClock()
        cache = ParseCache(ttl_seconds=10, clock=clock)
        cache.put("https://avito.ru/old", ExtractionResult.success("old"))
        clock.advance(5)
        cache.put("https://avito.ru/new", ExtractionResult.success("new"))
        clock.advance(6)
        self.assertEqual(cache.prune(), 1)
        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.get("https://avito.ru/new").title, "new")
        self.assertEqual(cache.prune(), 0)

    def test_size_bound(self):
        cache = ParseCache(maxsize=2)
        for i in range(5):
            cache.put(f"https://avito.ru/{i}", ExtractionResult.success(str(i)))
        self.assertEqual(len(cache), 2)
        self.assertEqual(cache.get("https://avito.ru/4").title, "4")

    def test_concurrent_puts(self):
        cache = ParseCache(ttl_seconds=60)

        def writer(offset):
            for i in range(200):
                cache.put(f"https://avito.ru/{offset + i}", ExtractionResult.success(str(i)))

        threads = [threading.Thread(target=writer, args=(n * 1000,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(len(cache), 1600)


if __name__ == "__main__":
    unittest.main()
