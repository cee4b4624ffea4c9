import unittest

from companion.gateway.errors import InputValidationError
from companion.security import SECRET_PREFIX, InputSanitizer, generate_api_secret, mask_secret


class SecurityTests(unittest.TestCase):
    def test_sanitize_strips_control_characters(self):
        self.assertEqual(InputSanitizer.sanitize_text("  hi\x07 there\n"), "hi there")

    def test_sanitize_rejects_empty_and_oversized(self):
        with self.assertRaises(InputValidationError):
            InputSanitizer.sanitize_text("\x00\x01  ")
        with self.assertRaises(InputValidationError):
            InputSanitizer.sanitize_text("x" * 10001)
        with self.assertRaises(InputValidationError):
            InputSanitizer.sanitize_text("t" * 201, "target")
        with self.assertRaises(InputValidationError):
            InputSanitizer.sanitize_text(None)

    def test_mask_secret(self):
        self.assertEqual(mask_secret(""), "")
        self.assertEqual(mask_secret("short"), "***")
        self.assertEqual(mask_secret("clawdbot-abcdefgh"), "claw...efgh")
        self.assertEqual(mask_secret(12345), "")

    def test_generate_api_secret(self):
        secret = generate_api_secret(16)

        self.assertTrue(secret.startswith(SECRET_PREFIX))
        self.assertEqual(len(secret), len(SECRET_PREFIX) + 16)
        self.assertNotEqual(secret, generate_api_secret(16))


if __name__ == "__main__":
    unittest.main()
