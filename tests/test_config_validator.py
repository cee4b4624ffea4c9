import unittest
from unittest.mock import patch

from companion.config import GatewayConfig
from companion.core.config_validator import (
    ConfigValidationError,
    ConfigValidator,
    get_connection_status,
    validate_gateway_url,
    validate_startup_config,
)
from tests.fakes import USABLE_CONFIG


class ConfigValidatorTests(unittest.TestCase):
    def setUp(self):
        self.validator = ConfigValidator()
        self.config = GatewayConfig(**USABLE_CONFIG)

    def test_validate_gateway_url(self):
        self.assertEqual(validate_gateway_url("http://localhost:3000"), (True, None))
        self.assertFalse(validate_gateway_url("localhost:3000")[0])
        self.assertFalse(validate_gateway_url("ws://localhost:3000")[0])
        self.assertTrue(validate_gateway_url("wss://gw.example.com/ws", ("ws", "wss"))[0])

    def test_valid_config(self):
        is_valid, errors, warnings = self.validator.validate(self.config)

        self.assertTrue(is_valid)
        self.assertEqual(errors, [])
        self.assertEqual(warnings, [])

    def test_validate_types(self):
        changes = {"gateway_url": 3000, "api_url": None, "theme": "dark", "auto_connect": 1}

        errors = self.validator.validate_types(changes)

        self.assertEqual(errors, ["gateway_url must be a string, got int", "api_url must be a string, got NoneType"])

    def test_bad_event_scheme(self):
        is_valid, errors, _ = self.validator.validate(self.config.merged({"eventUrl": "http://localhost/ws"}))

        self.assertFalse(is_valid)
        self.assertIn("event_url", errors[0])

    def test_bad_mode(self):
        is_valid, errors, _ = self.validator.validate(self.config.merged({"connectionMode": "cloud"}))

        self.assertFalse(is_valid)
        self.assertIn("cloud", errors[0])

    def test_warnings(self):
        config = self.config.merged({"connectionMode": "remote", "apiUrl": "http://gw.example.com/api",
                                     "theme": "neon"})

        is_valid, _, warnings = self.validator.validate(config)

        self.assertTrue(is_valid)
        self.assertEqual(len(warnings), 2)

    def test_connection_status(self):
        self.assertEqual(get_connection_status(self.config)["status"], "ready")
        self.assertEqual(get_connection_status(self.config.merged({"apiSecret": ""}))["status"], "incomplete")
        self.assertEqual(get_connection_status(self.config.merged({"connectionMode": "unconfigured"}))["status"],
                         "unconfigured")

    def test_startup_validation_raises_on_errors(self):
        with self.assertRaises(ConfigValidationError):
            validate_startup_config(self.config.merged({"apiUrl": "ftp://nope"}))

    def test_runtime_timing_is_checked(self):
        with patch.dict("companion.core.config_validator.CONNECTION_CONFIG", {"refresh_interval": 0}):
            is_valid, errors, _ = self.validator.validate_runtime()

        self.assertFalse(is_valid)
        self.assertIn("refresh_interval", errors[0])


if __name__ == "__main__":
    unittest.main()
