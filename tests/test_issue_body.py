import unittest
from types import SimpleNamespace

from reportsync.services.issue_body import public_file_url, render_issue_body


def _report(metadata=None, **overrides):
    fields = dict(
        id="rpt_1",
        title="Checkout broken",
        description="Pay button does nothing",
        priority="high",
        created_at="2025-03-01 10:00:00",
        report_metadata=metadata or {},
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class IssueBodyTests(unittest.TestCase):
    def test_minimal_report(self):
        body = render_issue_body(_report(description=None))

        self.assertTrue(body.startswith("## Bug Report\n\n**URL:** N/A\n"))
        self.assertIn("### Description\nNo description provided.", body)
        self.assertIn("| Browser | Unknown |", body)
        self.assertIn("| Priority | high |", body)
        self.assertNotIn("### Console Output", body)
        self.assertNotIn("View full report", body)
        self.assertTrue(body.endswith("---\n*Reported via report-sync*\n"))

    def test_full_metadata(self):
        metadata = {
            "url": "https://shop.example/cart",
            "title": "Cart",
            "referrer": "https://shop.example/",
            "browser": {"name": "Firefox", "version": "124"},
            "device": {"type": "desktop", "os": "Linux"},
            "viewport": {"width": 1280, "height": 720},
            "pageLoadTime": 850,
            "consoleErrors": [
                {"type": "error", "message": "TypeError: x is undefined", "source": "app.js", "line": 12}
            ],
            "networkErrors": [
                {"status": 0, "method": "POST", "url": "/api/pay"},
                {"status": 500, "statusText": "Internal Server Error", "method": "GET", "url": "/api/cart"},
            ],
            "userActivity": [
                {"type": "click", "text": "Pay", "timestamp": "2025-03-01T10:00:05Z"},
                {"type": "link", "text": "Help", "url": "/help"},
            ],
            "storageKeys": {"cookies": ["session"], "localStorage": ["cart", "theme"]},
        }

        body = render_issue_body(_report(metadata))

        self.assertIn("**Page Title:** Cart", body)
        self.assertIn("**Referrer:** https://shop.example/", body)
        self.assertIn("| Browser | Firefox 124 |", body)
        self.assertIn("| Device | desktop (Linux) |", body)
        self.assertIn("| Viewport | 1280x720 |", body)
        self.assertIn("| Page Load Time | 850ms |", body)
        self.assertIn("### Console Output (1)", body)
        self.assertIn("- `[ERROR]` TypeError: x is undefined _(app.js:12)_", body)
        self.assertIn("| Failed  | POST | /api/pay |", body)
        self.assertIn("| 500 Internal Server Error | GET | /api/cart |", body)
        self.assertIn("### User Activity Trail (2 events)", body)
        self.assertIn("| 10:00:05 | CLICK | \"Pay\" |", body)
        self.assertIn('"Help" → /help', body)
        self.assertIn("### Storage Keys (3)", body)
        self.assertIn("**LocalStorage:** `cart`, `theme`", body)

    def test_files_and_report_link(self):
        files = [
            SimpleNamespace(id="fil_1", type="screenshot", filename="shot.png"),
            SimpleNamespace(id="fil_2", type="attachment", filename="log.txt"),
            SimpleNamespace(id="fil_3", type="attachment", filename="no-url.txt"),
        ]
        urls = {"fil_1": "https://cdn/shot.png", "fil_2": "https://cdn/log.txt"}

        body = render_issue_body(_report(), files=files, file_urls=urls, app_url="https://bugs.example.com/")

        self.assertIn("### Screenshots\n\n![shot.png](https://cdn/shot.png)", body)
        self.assertIn("### Attachments\n- [log.txt](https://cdn/log.txt)", body)
        self.assertNotIn("no-url.txt", body)
        self.assertIn("> [View full report](https://bugs.example.com/admin/reports/rpt_1)", body)

    def test_public_file_url(self):
        self.assertIsNone(public_file_url(None, "rpt_1", "a.png"))
        self.assertEqual(
            public_file_url("https://bugs.example.com/", "rpt_1", "my shot.png"),
            "https://bugs.example.com/api/public/files/rpt_1/my%20shot.png",
        )


if __name__ == "__main__":
    unittest.main()
