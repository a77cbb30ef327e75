import json
import os
import tempfile
import unittest
from pathlib import Path

from distributor.cache import StalenessCache, mtime_millis
from distributor.errors import CacheError


def _set_mtime(path: Path, millis: int) -> None:
    ns = millis * 1_000_000
    os.utime(path, ns=(ns, ns))


class StalenessCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.file = self.tmp / "a.txt"
        self.file.write_text("alpha", encoding="utf-8")
        _set_mtime(self.file, 1_700_000_000_000)
        self.cache_path = self.tmp / ".distributor" / "distributor_cache.db"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_record_is_outdated(self) -> None:
        cache = StalenessCache(path=self.cache_path)
        self.assertTrue(cache.is_outdated(self.file))

    def test_recorded_file_is_current_until_modified(self) -> None:
        cache = StalenessCache(path=self.cache_path)
        cache.record(self.file)
        self.assertFalse(cache.is_outdated(self.file))
        self.assertEqual(cache.get_record(self.file), 1_700_000_000_000)

        _set_mtime(self.file, 1_700_000_005_000)
        self.assertTrue(cache.is_outdated(self.file))

        cache.record(self.file)
        self.assertFalse(cache.is_outdated(self.file))

    def test_older_mtime_is_not_outdated(self) -> None:
        cache = StalenessCache({os.fspath(self.file): 1_800_000_000_000}, path=self.cache_path)
        self.assertFalse(cache.is_outdated(self.file))

    def test_unreadable_file_is_outdated(self) -> None:
        cache = StalenessCache(path=self.cache_path)
        cache.record(self.file)
        self.file.unlink()
        self.assertTrue(cache.is_outdated(self.file))

    def test_record_of_missing_file_is_noop(self) -> None:
        cache = StalenessCache(path=self.cache_path)
        cache.record(self.tmp / "missing.txt")
        self.assertTrue(cache.is_empty())

    def test_save_and_load_round_trip(self) -> None:
        cache = StalenessCache(path=self.cache_path)
        cache.record(self.file)
        written = cache.save()

        self.assertEqual(written, self.cache_path)
        stored = json.loads(self.cache_path.read_text(encoding="utf-8"))
        self.assertEqual(stored["files"][os.fspath(self.file)], "1700000000000")

        loaded = StalenessCache.load(self.cache_path)
        self.assertEqual(len(loaded), 1)
        self.assertIn(self.file, loaded)
        self.assertFalse(loaded.is_outdated(self.file))

    def test_undecodable_path_names_round_trip(self) -> None:
        name = os.fsdecode(b"caf\xe9-\xff.bin") if os.name != "nt" else "café.bin"
        cache = StalenessCache({name: 42}, path=self.cache_path)
        cache.save()

        loaded = StalenessCache.load(self.cache_path)
        self.assertEqual(loaded.get_record(name), 42)

    def test_load_missing_file_is_empty(self) -> None:
        cache = StalenessCache.load(self.cache_path)
        self.assertTrue(cache.is_empty())
        self.assertEqual(cache.path, self.cache_path)

    def test_load_corrupt_file_is_empty(self) -> None:
        self.cache_path.parent.mkdir(parents=True)
        self.cache_path.write_text("{not json", encoding="utf-8")
        self.assertTrue(StalenessCache.load(self.cache_path).is_empty())

        self.cache_path.write_text('["a", "b"]', encoding="utf-8")
        self.assertTrue(StalenessCache.load(self.cache_path).is_empty())

    def test_load_drops_bad_entries(self) -> None:
        self.cache_path.parent.mkdir(parents=True)
        self.cache_path.write_text(
            json.dumps({"files": {"good": "123", "bad": "12.5", "worse": None}}),
            encoding="utf-8",
        )
        cache = StalenessCache.load(self.cache_path)
        self.assertEqual(len(cache), 1)
        self.assertEqual(cache.get_record("good"), 123)

    def test_clear_removes_file_and_records(self) -> None:
        cache = StalenessCache(path=self.cache_path)
        cache.record(self.file)
        cache.save()

        cache.clear()

        self.assertTrue(cache.is_empty())
        self.assertFalse(self.cache_path.exists())
        cache.clear()  # already gone

    def test_save_failure_raises_and_keeps_records(self) -> None:
        blocker = self.tmp / "blocker"
        blocker.write_text("", encoding="utf-8")
        cache = StalenessCache(path=blocker / "cache.db")
        cache.record(self.file)

        with self.assertRaises(CacheError):
            cache.save()
        self.assertEqual(len(cache), 1)

    def test_mtime_millis(self) -> None:
        self.assertEqual(mtime_millis(self.file), 1_700_000_000_000)
        with self.assertRaises(OSError):
            mtime_millis(self.tmp / "missing.txt")


if __name__ == "__main__":
    unittest.main()
