import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from ctrlpanel_installer.config import AppConfig, load_config


class ConfigTests(unittest.TestCase):
    def test_defaults_without_config_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            cwd = os.getcwd()
            os.chdir(tmp)
            try:
                with mock.patch.dict(os.environ, {}, clear=True):
                    config = load_config()
            finally:
                os.chdir(cwd)
        self.assertIsInstance(config, AppConfig)
        self.assertEqual(config.install.domain, "panel.localhost")
        self.assertEqual(config.install.db_engine, "mariadb")
        self.assertEqual(config.install.db_port, 3306)
        self.assertIsNone(config.install.db_password)
        self.assertEqual(config.certificate.max_attempts, 3)
        self.assertIsNone(config.target.host)

    def test_loads_custom_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            temp_file = Path(tmp) / "config.json"
            temp_file.write_text(
                """
{
  "install": {"_comment": "ignored", "domain": "panel.example.com", "db_engine": "mysql"},
  "certificate": {"max_attempts": 5, "retry_delay": 1},
  "logging": {"level": "DEBUG"}
}
""".strip()
            )
            with mock.patch.dict(os.environ, {}, clear=True):
                config = load_config(str(temp_file))
        self.assertEqual(config.install.domain, "panel.example.com")
        self.assertEqual(config.install.db_engine, "mysql")
        self.assertEqual(config.install.db_name, "ctrlpanel")
        self.assertEqual(config.certificate.max_attempts, 5)
        self.assertEqual(config.certificate.probe_timeout, 5.0)
        self.assertEqual(config.logging.level, "DEBUG")

    def test_missing_explicit_path_is_an_error(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_config("/nonexistent/ctrlpanel.json")

    def test_env_vars_override_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            temp_file = Path(tmp) / "config.json"
            temp_file.write_text('{"install": {"domain": "from-file.example.com"}}')
            env = {
                "CTRLPANEL_DOMAIN": "from-env.example.com",
                "CTRLPANEL_DB_PORT": "3307",
                "CTRLPANEL_MYSQL_ROOT_PASSWORD": "rootpw",
                "CTRLPANEL_SSH_HOST": "203.0.113.7",
                "CTRLPANEL_SSH_KEY_PATH": "/root/.ssh/id_ed25519",
            }
            with mock.patch.dict(os.environ, env, clear=True):
                config = load_config(str(temp_file))
        self.assertEqual(config.install.domain, "from-env.example.com")
        self.assertEqual(config.install.db_port, 3307)
        self.assertEqual(config.install.mysql_root_password, "rootpw")
        self.assertEqual(config.target.host, "203.0.113.7")
        self.assertEqual(config.target.auth_method, "key")

    def test_explicit_install_fields_are_tracked(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            temp_file = Path(tmp) / "config.json"
            temp_file.write_text('{"install": {"_comment": "x", "db_name": "panel_db"}}')
            with mock.patch.dict(os.environ, {"CTRLPANEL_DB_USER": "panel_user"}, clear=True):
                config = load_config(str(temp_file))
        self.assertEqual(config.explicit_install, {"db_name", "db_user"})
        options = config.install_options()
        self.assertEqual(options.db_name, "panel_db")
        self.assertEqual(options.db_user, "panel_user")
        self.assertIsNone(options.domain)

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            AppConfig.from_dict({"install": {"db_nmae": "typo"}})
        self.assertIn("db_nmae", str(ctx.exception))
        with self.assertRaises(ValueError):
            AppConfig.from_dict({"certifcate": {}})

    def test_non_numeric_port_env_is_rejected(self) -> None:
        with mock.patch.dict(os.environ, {"CTRLPANEL_DB_PORT": "abc"}, clear=True):
            with self.assertRaises(ValueError):
                load_config()


if __name__ == "__main__":
    unittest.main()
