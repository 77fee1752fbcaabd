import hashlib
import hmac
import unittest

from reportsync.security import (
    InvalidSignatureError,
    MissingSignatureError,
    compute_signature,
    verify_webhook_signature,
)

SECRET = "s3cr3t"
BODY = b'{"action":"closed","issue":{"number":123,"state":"closed"}}'


class WebhookSignatureTests(unittest.TestCase):
    def test_compute_signature_matches_github_format(self):
        expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        self.assertEqual(compute_signature(BODY, SECRET), f"sha256={expected}")

    def test_valid_signature_is_accepted(self):
        verify_webhook_signature(BODY, compute_signature(BODY, SECRET), SECRET)

    def test_mutated_body_is_rejected(self):
        signature = compute_signature(BODY, SECRET)
        tampered = BODY.replace(b"123", b"124")

        with self.assertRaises(InvalidSignatureError):
            verify_webhook_signature(tampered, signature, SECRET)

    def test_wrong_secret_is_rejected(self):
        signature = compute_signature(BODY, "s3cr3u")

        with self.assertRaises(InvalidSignatureError):
            verify_webhook_signature(BODY, signature, SECRET)

    def test_signature_of_other_length_is_rejected(self):
        with self.assertRaises(InvalidSignatureError):
            verify_webhook_signature(BODY, "sha256=abc", SECRET)

    def test_signature_without_prefix_is_rejected(self):
        digest = compute_signature(BODY, SECRET)[len("sha256="):]

        with self.assertRaises(InvalidSignatureError):
            verify_webhook_signature(BODY, digest, SECRET)

    def test_missing_signature_is_rejected(self):
        for missing in (None, ""):
            with self.assertRaises(MissingSignatureError) as ctx:
                verify_webhook_signature(BODY, missing, SECRET)
            self.assertEqual(str(ctx.exception), "Missing signature")

    def test_no_secret_accepts_everything(self):
        verify_webhook_signature(BODY, None, None)
        verify_webhook_signature(BODY, "sha256=garbage", "")


if __name__ == "__main__":
    unittest.main()
