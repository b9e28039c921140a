"""Tests for configuration settings."""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import yaml

from csfvendor.config.settings import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    AssessmentServiceConfig,
    ComparisonConfig,
    ConfigurationError,
    InvitationConfig,
    PortalConfig,
    RateLimit,
    RateLimitConfig,
    Settings,
    _apply_environment_overrides,
    _set_nested_attr,
    _settings_to_dict,
    _validate_config,
    get_config_path,
    load_config,
    save_config,
)


class TestSettings(unittest.TestCase):
    """Tests for the Settings dataclass."""

    def test_settings_defaults(self) -> None:
        """Test Settings default values."""
        settings = Settings()

        self.assertEqual(settings.data_dir, str(DEFAULT_CONFIG_DIR / "data"))
        self.assertEqual(settings.log_level, "INFO")
        self.assertIsInstance(settings.portal, PortalConfig)
        self.assertIsInstance(settings.invitations, InvitationConfig)
        self.assertIsInstance(settings.comparison, ComparisonConfig)
        self.assertIsInstance(settings.rate_limits, RateLimitConfig)
        self.assertIsInstance(settings.assessment_service, AssessmentServiceConfig)

    def test_portal_defaults(self) -> None:
        """Test the portal binds locally and leaves auth to an upstream layer."""
        portal = PortalConfig()

        self.assertEqual(portal.host, "127.0.0.1")
        self.assertEqual(portal.port, 8787)
        self.assertEqual(portal.org_api_key, "")
        self.assertEqual(portal.session_secret, "")
        self.assertEqual(portal.cookie_name, "vendor_session")
        self.assertFalse(portal.cookie_secure)

    def test_invitation_and_comparison_defaults(self) -> None:
        settings = Settings()

        self.assertEqual(settings.invitations.default_expiry_days, 7)
        self.assertEqual(settings.invitations.reissue_policy, "fresh")
        self.assertEqual(settings.comparison.not_applicable_policy, "exact")

    def test_rate_limit_defaults(self) -> None:
        limits = RateLimitConfig()

        self.assertTrue(limits.enabled)
        self.assertEqual(limits.token_validation, RateLimit(10, 60))
        self.assertEqual(limits.status_update, RateLimit(30, 60))

    def test_rate_limits_not_shared(self) -> None:
        """Test each Settings instance gets its own nested objects."""
        first = Settings()
        second = Settings()
        first.rate_limits.token_validation = RateLimit(1, 1)

        self.assertEqual(second.rate_limits.token_validation, RateLimit(10, 60))

    def test_local_assessment_store_by_default(self) -> None:
        self.assertEqual(AssessmentServiceConfig().url, "")


class TestGetConfigPath(unittest.TestCase):
    """Tests for get_config_path."""

    def test_default_path(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(get_config_path(), DEFAULT_CONFIG_FILE)

    def test_env_override(self) -> None:
        with patch.dict(os.environ, {"CSFVENDOR_CONFIG": "/etc/csfvendor.yaml"}, clear=True):
            self.assertEqual(get_config_path(), Path("/etc/csfvendor.yaml"))


class TestLoadConfig(unittest.TestCase):
    """Tests for load_config function."""

    def setUp(self) -> None:
        """Create temporary directory for tests."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "config.yaml"
        self.env = patch.dict(os.environ, {}, clear=True)
        self.env.start()

    def tearDown(self) -> None:
        """Clean up temporary directory."""
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_nonexistent_file_returns_defaults(self) -> None:
        settings = load_config(Path(self.temp_dir) / "nonexistent.yaml")

        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(settings.portal.port, 8787)

    def test_load_config_from_yaml(self) -> None:
        """Test loading config from YAML file."""
        self.config_path.write_text(
            """
csfvendor:
  data_dir: /custom/data
  log_level: debug

portal:
  host: 0.0.0.0
  port: 9000
  base_url: https://trust.example.com
  org_api_key: org-secret
  session_secret: session-secret
  session_ttl_hours: 8
  cookie_name: vp_session
  cookie_secure: true

invitations:
  default_expiry_days: 14
  reissue_policy: REUSE

comparison:
  not_applicable_policy: separate

rate_limits:
  enabled: false
  token_validation:
    requests: 5
  status_update:
    requests: 100
    window_seconds: 120

assessment_service:
  url: https://assessments.example.com
  api_key: service-key
  timeout_seconds: 2.5
"""
        )

        settings = load_config(self.config_path)

        self.assertEqual(settings.data_dir, "/custom/data")
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertEqual(settings.portal.host, "0.0.0.0")
        self.assertEqual(settings.portal.port, 9000)
        self.assertEqual(settings.portal.base_url, "https://trust.example.com")
        self.assertEqual(settings.portal.org_api_key, "org-secret")
        self.assertEqual(settings.portal.session_secret, "session-secret")
        self.assertEqual(settings.portal.session_ttl_hours, 8)
        self.assertEqual(settings.portal.cookie_name, "vp_session")
        self.assertTrue(settings.portal.cookie_secure)
        self.assertEqual(settings.invitations.default_expiry_days, 14)
        self.assertEqual(settings.invitations.reissue_policy, "reuse")
        self.assertEqual(settings.comparison.not_applicable_policy, "separate")
        self.assertFalse(settings.rate_limits.enabled)
        self.assertEqual(settings.rate_limits.token_validation, RateLimit(5, 60))
        self.assertEqual(settings.rate_limits.status_update, RateLimit(100, 120))
        self.assertEqual(settings.assessment_service.url, "https://assessments.example.com")
        self.assertEqual(settings.assessment_service.api_key, "service-key")
        self.assertEqual(settings.assessment_service.timeout_seconds, 2.5)

    def test_empty_file_returns_defaults(self) -> None:
        self.config_path.write_text("")

        settings = load_config(self.config_path)

        self.assertEqual(settings.log_level, "INFO")

    def test_invalid_yaml(self) -> None:
        self.config_path.write_text("portal: [unclosed")

        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.config_path)

        self.assertIn("Invalid YAML", str(ctx.exception))

    def test_non_mapping(self) -> None:
        self.config_path.write_text("- just\n- a list\n")

        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.config_path)

        self.assertIn("mapping", str(ctx.exception))

    def test_invalid_value_type(self) -> None:
        self.config_path.write_text("portal:\n  port: not-a-number\n")

        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.config_path)

        self.assertIn("Invalid value", str(ctx.exception))

    def test_validation_runs_after_loading(self) -> None:
        self.config_path.write_text("invitations:\n  reissue_policy: sometimes\n")

        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.config_path)

        self.assertIn("reissue_policy", str(ctx.exception))

    def test_env_overrides_file(self) -> None:
        self.config_path.write_text("portal:\n  port: 9000\n")
        os.environ["CSFVENDOR_PORT"] = "9100"

        settings = load_config(self.config_path)

        self.assertEqual(settings.portal.port, 9100)

    def test_invalid_env_override(self) -> None:
        os.environ["CSFVENDOR_PORT"] = "eighty"

        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.config_path)

        self.assertIn("environment override", str(ctx.exception))


class TestEnvironmentOverrides(unittest.TestCase):
    """Tests for _apply_environment_overrides."""

    def test_overrides(self) -> None:
        env = {
            "CSFVENDOR_DATA_DIR": "/srv/csfvendor",
            "CSFVENDOR_LOG_LEVEL": "warning",
            "CSFVENDOR_HOST": "0.0.0.0",
            "CSFVENDOR_BASE_URL": "https://trust.example.com",
            "CSFVENDOR_ORG_API_KEY": "org-secret",
            "CSFVENDOR_SESSION_SECRET": "session-secret",
            "CSFVENDOR_COOKIE_SECURE": "yes",
            "CSFVENDOR_REISSUE_POLICY": "Reuse",
            "CSFVENDOR_NOT_APPLICABLE_POLICY": "SEPARATE",
            "CSFVENDOR_ASSESSMENT_SERVICE_URL": "https://assessments.example.com",
            "CSFVENDOR_ASSESSMENT_SERVICE_API_KEY": "service-key",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = _apply_environment_overrides(Settings())

        self.assertEqual(settings.data_dir, "/srv/csfvendor")
        self.assertEqual(settings.log_level, "WARNING")
        self.assertEqual(settings.portal.host, "0.0.0.0")
        self.assertEqual(settings.portal.base_url, "https://trust.example.com")
        self.assertEqual(settings.portal.org_api_key, "org-secret")
        self.assertEqual(settings.portal.session_secret, "session-secret")
        self.assertTrue(settings.portal.cookie_secure)
        self.assertEqual(settings.invitations.reissue_policy, "reuse")
        self.assertEqual(settings.comparison.not_applicable_policy, "separate")
        self.assertEqual(settings.assessment_service.url, "https://assessments.example.com")
        self.assertEqual(settings.assessment_service.api_key, "service-key")

    def test_cookie_secure_false_values(self) -> None:
        for value in ("0", "false", "no", "off", ""):
            with self.subTest(value=value):
                settings = Settings()
                settings.portal.cookie_secure = True
                with patch.dict(os.environ, {"CSFVENDOR_COOKIE_SECURE": value}, clear=True):
                    _apply_environment_overrides(settings)
                self.assertFalse(settings.portal.cookie_secure)

    def test_no_overrides(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = _apply_environment_overrides(Settings())

        self.assertEqual(settings, Settings())


class TestSetNestedAttr(unittest.TestCase):
    """Tests for _set_nested_attr."""

    def test_top_level(self) -> None:
        settings = Settings()
        _set_nested_attr(settings, "log_level", "DEBUG")

        self.assertEqual(settings.log_level, "DEBUG")

    def test_nested(self) -> None:
        settings = Settings()
        _set_nested_attr(settings, "rate_limits.status_update.requests", 3)

        self.assertEqual(settings.rate_limits.status_update.requests, 3)

    def test_unknown_section(self) -> None:
        with self.assertRaises(AttributeError):
            _set_nested_attr(Settings(), "missing.value", 1)


class TestValidateConfig(unittest.TestCase):
    """Tests for _validate_config function."""

    def test_valid_config(self) -> None:
        """Test validation passes for valid config."""
        _validate_config(Settings())

    def test_invalid_log_level(self) -> None:
        settings = Settings()
        settings.log_level = "INVALID"

        with self.assertRaises(ConfigurationError) as ctx:
            _validate_config(settings)

        self.assertIn("Invalid log_level", str(ctx.exception))
        self.assertIn("INVALID", str(ctx.exception))

    def test_invalid_values(self) -> None:
        """Test each invalid setting is rejected with a message naming it."""
        cases = [
            ("portal.port", 0, "port"),
            ("portal.port", 70000, "port"),
            ("portal.base_url", "trust.example.com", "base_url"),
            ("portal.session_ttl_hours", 0, "session_ttl_hours"),
            ("invitations.default_expiry_days", 0, "default_expiry_days"),
            ("invitations.reissue_policy", "sometimes", "reissue_policy"),
            ("comparison.not_applicable_policy", "loose", "not_applicable_policy"),
            ("rate_limits.token_validation", RateLimit(0, 60), "token_validation"),
            ("rate_limits.status_update", RateLimit(10, 0), "status_update"),
            ("assessment_service.timeout_seconds", 0, "timeout_seconds"),
            ("assessment_service.url", "ftp://assessments", "assessment_service.url"),
        ]
        for path, value, expected in cases:
            with self.subTest(path=path, value=value):
                settings = Settings()
                _set_nested_attr(settings, path, value)
                with self.assertRaises(ConfigurationError) as ctx:
                    _validate_config(settings)
                self.assertIn(expected, str(ctx.exception))

    def test_valid_policies(self) -> None:
        for reissue in ("fresh", "reuse"):
            for not_applicable in ("exact", "separate"):
                settings = Settings()
                settings.invitations.reissue_policy = reissue
                settings.comparison.not_applicable_policy = not_applicable
                _validate_config(settings)


class TestSaveConfig(unittest.TestCase):
    """Tests for save_config function."""

    def setUp(self) -> None:
        """Create temporary directory for tests."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "config.yaml"

    def tearDown(self) -> None:
        """Clean up temporary directory."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_save_config_creates_parent_directory(self) -> None:
        nested_path = Path(self.temp_dir) / "nested" / "dir" / "config.yaml"

        save_config(Settings(), nested_path)

        self.assertTrue(nested_path.exists())

    def test_save_and_load_roundtrip(self) -> None:
        """Test that saved config can be loaded back."""
        settings = Settings()
        settings.data_dir = "/custom/data"
        settings.log_level = "DEBUG"
        settings.portal.port = 9443
        settings.portal.base_url = "https://trust.example.com"
        settings.invitations.reissue_policy = "reuse"
        settings.comparison.not_applicable_policy = "separate"
        settings.rate_limits.token_validation = RateLimit(3, 30)
        settings.assessment_service.url = "https://assessments.example.com"

        save_config(settings, self.config_path)
        with patch.dict(os.environ, {}, clear=True):
            loaded = load_config(self.config_path)

        self.assertEqual(loaded, settings)

    def test_saved_file_is_plain_yaml(self) -> None:
        save_config(Settings(), self.config_path)

        with open(self.config_path) as f:
            data = yaml.safe_load(f)

        self.assertEqual(
            list(data.keys()),
            [
                "csfvendor",
                "portal",
                "invitations",
                "comparison",
                "rate_limits",
                "assessment_service",
            ],
        )

    def test_settings_to_dict(self) -> None:
        data = _settings_to_dict(Settings())

        self.assertEqual(data["csfvendor"]["log_level"], "INFO")
        self.assertEqual(data["portal"]["port"], 8787)
        self.assertEqual(
            data["rate_limits"]["token_validation"], {"requests": 10, "window_seconds": 60}
        )
        self.assertEqual(data["assessment_service"]["url"], "")


if __name__ == "__main__":
    unittest.main()
