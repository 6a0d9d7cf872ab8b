import io
import logging
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from veil.config.settings import DEFAULT_LOG_LEVEL, LogSettings, load_log_settings
from veil.utils.logging_config import LogFormatter, get_registry, setup_logging_from_env

VEIL_VARS = ("VEIL_LOG_LEVEL", "VEIL_LOG_FILE", "VEIL_LOG_COLOR", "VEIL_LOG_TIME_FORMAT")


class TestLoadLogSettings(unittest.TestCase):
    """Test case for reading logging settings from .env files and the environment."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.env_file = os.path.join(self.temp_dir, ".env")
        # Restore os.environ after each test; load_dotenv writes into it
        env_patch = patch.dict(os.environ)
        env_patch.start()
        self.addCleanup(env_patch.stop)
        for name in VEIL_VARS:
            os.environ.pop(name, None)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write_env(self, text):
        with open(self.env_file, "w", encoding="utf-8") as handle:
            handle.write(text)

    def test_defaults_without_env_file(self):
        settings = load_log_settings(os.path.join(self.temp_dir, "missing.env"))

        self.assertEqual(settings, LogSettings())
        self.assertEqual(settings.level, DEFAULT_LOG_LEVEL)
        self.assertIsNone(settings.log_file)
        self.assertFalse(settings.color)
        self.assertIsNone(settings.time_format)

    def test_reads_env_file(self):
        self.write_env(
            "VEIL_LOG_LEVEL=debug\n"
            "VEIL_LOG_FILE=app.log\n"
            "VEIL_LOG_COLOR=yes\n"
            "VEIL_LOG_TIME_FORMAT=%H:%M:%S\n"
        )

        settings = load_log_settings(self.env_file)

        self.assertEqual(settings.level, "debug")
        self.assertEqual(settings.log_file, "app.log")
        self.assertTrue(settings.color)
        self.assertEqual(settings.time_format, "%H:%M:%S")

    def test_environment_wins_over_file(self):
        self.write_env("VEIL_LOG_LEVEL=debug\n")
        os.environ["VEIL_LOG_LEVEL"] = "error"

        self.assertEqual(load_log_settings(self.env_file).level, "error")


class TestSetupLoggingFromEnv(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        env_patch = patch.dict(os.environ)
        env_patch.start()
        self.addCleanup(env_patch.stop)
        for name in VEIL_VARS:
            os.environ.pop(name, None)

        root = logging.getLogger()
        self.addCleanup(setattr, root, "handlers", list(root.handlers))
        self.addCleanup(root.setLevel, root.level)
        registry = get_registry()
        self.addCleanup(setattr, registry, "handler", registry.handler)

    def tearDown(self):
        handler = get_registry().handler
        if handler is not None:
            handler.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_file_from_env(self):
        log_file = os.path.join(self.temp_dir, "env.log")
        os.environ["VEIL_LOG_FILE"] = log_file
        os.environ["VEIL_LOG_LEVEL"] = "warn"

        logger = setup_logging_from_env(os.path.join(self.temp_dir, "missing.env"))
        logger.info("dropped")
        logger.warning("kept")

        with open(log_file, encoding="utf-8") as handle:
            lines = handle.read().splitlines()
        self.assertEqual(len(lines), 1)
        self.assertIn(" WRN ", lines[0])
        self.assertTrue(lines[0].endswith("kept"))

    def test_console_without_file(self):
        stream = io.StringIO()
        with patch("veil.utils.logging_config.sys.stdout", stream):
            logger = setup_logging_from_env(os.path.join(self.temp_dir, "missing.env"))
        logger.info("to stdout")

        self.assertIsInstance(get_registry().handler.formatter, LogFormatter)
        self.assertTrue(stream.getvalue().endswith("to stdout\n"))


if __name__ == '__main__':
    unittest.main()
