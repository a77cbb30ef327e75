import json
import tempfile
import unittest
from pathlib import Path

from distributor.config import (
    CONFIG_FILE_NAME,
    Config,
    DistributionSpec,
    get_config_path,
)
from distributor.errors import (
    DistributionExistsError,
    DistributionNotFoundError,
    InvalidIgnorePatternError,
)


class ConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.path = self.tmp / "distributor-config.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_file_gives_defaults_without_creating_it(self) -> None:
        cfg = Config(self.path)

        self.assertEqual(len(cfg), 0)
        self.assertEqual(cfg.log_level, "INFO")
        self.assertEqual(cfg.cache_path, Path(".distributor/distributor_cache.db"))
        self.assertFalse(self.path.exists())

    def test_save_and_reload(self) -> None:
        cfg = Config(self.path)
        cfg.add_distribution("test", "resource/template.txt")
        cfg.add_target("test", "test-target/config")
        cfg.add_ignore("test", "*.tmp")
        cfg.max_log_size_mb = 0
        cfg.save()

        reloaded = Config(self.path)

        self.assertEqual(
            reloaded.distributions,
            [
                DistributionSpec(
                    name="test",
                    root=Path("resource/template.txt"),
                    ignore=["*.tmp"],
                    targets=[Path("test-target/config")],
                )
            ],
        )
        self.assertEqual(reloaded.max_log_size_mb, 1)

    def test_add_then_remove(self) -> None:
        cfg = Config(self.path)
        cfg.add_distribution("test", "resource")
        cfg.add_target("test", "test-target/tar1")
        cfg.add_target("test", "test-target/tar2")
        cfg.add_ignore("test", "template.txt")
        cfg.add_ignore("test", "template2.txt")

        cfg.remove_ignore("test", "template2.txt")
        cfg.remove_target("test", "test-target/tar2")

        spec = cfg.get("test")
        self.assertEqual(spec.ignore, ["template.txt"])
        self.assertEqual(spec.targets, [Path("test-target/tar1")])

        cfg.remove_distribution("test")
        self.assertFalse(cfg.has_distribution("test"))
        self.assertEqual(list(cfg), [])

    def test_duplicates_are_rejected(self) -> None:
        cfg = Config(self.path)
        cfg.add_distribution("test", "resource")
        cfg.add_target("test", "out")
        cfg.add_ignore("test", "*.tmp")

        with self.assertRaises(DistributionExistsError):
            cfg.add_distribution("test", "elsewhere")
        with self.assertRaises(DistributionExistsError):
            cfg.add_target("test", "out")
        with self.assertRaises(DistributionExistsError):
            cfg.add_ignore("test", "*.tmp")

    def test_unknown_entries_are_rejected(self) -> None:
        cfg = Config(self.path)
        cfg.add_distribution("test", "resource")

        with self.assertRaises(DistributionNotFoundError):
            cfg.get("nope")
        with self.assertRaises(DistributionNotFoundError):
            cfg.remove_distribution("nope")
        with self.assertRaises(DistributionNotFoundError):
            cfg.add_target("nope", "out")
        with self.assertRaises(DistributionNotFoundError):
            cfg.remove_target("test", "out")
        with self.assertRaises(DistributionNotFoundError):
            cfg.remove_ignore("test", "*.tmp")

    def test_invalid_ignore_is_rejected_early(self) -> None:
        cfg = Config(self.path)
        cfg.add_distribution("test", "resource")

        for pattern in ("broken\\", "/", "!", "a[b"):
            with self.assertRaises(InvalidIgnorePatternError):
                cfg.add_ignore("test", pattern)
        self.assertEqual(cfg.get("test").ignore, [])

    def test_corrupt_file_falls_back_to_defaults(self) -> None:
        self.path.write_text("{oops", encoding="utf-8")

        cfg = Config(self.path)

        self.assertEqual(len(cfg), 0)
        self.assertEqual(cfg.log_backup_count, 3)

    def test_malformed_and_duplicate_items_are_skipped(self) -> None:
        self.path.write_text(
            json.dumps(
                {
                    "settings": {"log_level": "DEBUG"},
                    "items": [
                        {"name": "a", "root": "src", "targets": ["out"]},
                        {"root": "no-name"},
                        {"name": "a", "root": "other"},
                        {"name": "b", "root": "src", "ignore": "not-a-list"},
                    ],
                }
            ),
            encoding="utf-8",
        )

        cfg = Config(self.path)

        self.assertEqual([s.name for s in cfg], ["a"])
        self.assertEqual(cfg.get("a").root, Path("src"))
        self.assertEqual(cfg.log_level, "DEBUG")
        self.assertEqual(cfg.log_file, ".distributor/distributor.log")

    def test_directory_path_uses_default_file_name(self) -> None:
        self.assertEqual(get_config_path(self.tmp), self.tmp / CONFIG_FILE_NAME)
        self.assertEqual(get_config_path(self.tmp / "conf"), self.tmp / "conf" / CONFIG_FILE_NAME)
        self.assertEqual(get_config_path(self.path), self.path)
        self.assertEqual(get_config_path(), Path(CONFIG_FILE_NAME))

        cfg = Config(self.tmp / "conf")
        cfg.add_distribution("test", "resource")
        cfg.save()
        self.assertTrue((self.tmp / "conf" / CONFIG_FILE_NAME).is_file())


if __name__ == "__main__":
    unittest.main()
