import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from pydantic import ValidationError

from study_os.config import ConfigLoadRequest, YamlConfigLoader

MINIMAL_YAML = """
logging:
  level: INFO
  file:
    path: logs/study-os.log
    rotation:
      backup_count: 3
storage:
  path: store/local-storage.json
canvas:
  base_url: https://canvas.test/api/v1
"""


class YamlConfigLoaderTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.yaml_path = self.root / "settings.yaml"
        self.yaml_path.write_text(MINIMAL_YAML, encoding="utf-8")

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _request(self, dotenv_path=None) -> ConfigLoadRequest:
        return ConfigLoadRequest(yaml_path=str(self.yaml_path), dotenv_path=dotenv_path)

    async def test_defaults_fill_missing_sections(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            config = await YamlConfigLoader().load(self._request())

        self.assertEqual(config.canvas.download_batch_size, 10)
        self.assertEqual(config.refresh.default_interval_minutes, 5)
        self.assertEqual(config.calendar.default_course_color, "#002E5D")
        self.assertEqual(config.ai.api_key, "")

    async def test_env_overrides_nested_keys(self) -> None:
        env = {"STUDY_OS__CANVAS__PER_PAGE": "50", "STUDY_OS__REFRESH__DEFAULT_INTERVAL_MINUTES": "0"}
        with mock.patch.dict(os.environ, env, clear=True):
            config = await YamlConfigLoader().load(self._request())

        self.assertEqual(config.canvas.per_page, 50)
        self.assertEqual(config.refresh.default_interval_minutes, 0)

    async def test_unknown_override_is_rejected(self) -> None:
        with mock.patch.dict(os.environ, {"STUDY_OS__CANVAS__COLOUR": "red"}, clear=True):
            with self.assertRaises(ValidationError):
                await YamlConfigLoader().load(self._request())

    async def test_api_key_falls_back_to_dotenv_variable(self) -> None:
        dotenv_path = self.root / ".env"
        dotenv_path.write_text("GOOGLE_GENERATIVE_AI_API_KEY=AIzaFromDotenv\n", encoding="utf-8")

        with mock.patch.dict(os.environ, {}, clear=True):
            config = await YamlConfigLoader().load(self._request(str(dotenv_path)))

        self.assertEqual(config.ai.api_key, "AIzaFromDotenv")

    async def test_explicit_key_wins_over_fallback(self) -> None:
        env = {"STUDY_OS__AI__API_KEY": "AIzaExplicit", "GOOGLE_GENERATIVE_AI_API_KEY": "AIzaOther"}
        with mock.patch.dict(os.environ, env, clear=True):
            config = await YamlConfigLoader().load(self._request())

        self.assertEqual(config.ai.api_key, "AIzaExplicit")

    async def test_non_mapping_yaml_is_rejected(self) -> None:
        self.yaml_path.write_text("- just\n- a list\n", encoding="utf-8")
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValueError):
                await YamlConfigLoader().load(self._request())


if __name__ == "__main__":
    unittest.main()
