import unittest

from visit_analytics.server.sanitize import (
    extract_domain,
    is_bot,
    is_ignored_path,
    is_valid_url,
    parse_comma_separated,
    sanitize_session_id,
    sanitize_url,
)


class TestSanitize(unittest.TestCase):
    def test_is_bot(self):
        self.assertTrue(is_bot("Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"))
        self.assertTrue(is_bot("curl/8.4.0"))
        self.assertTrue(is_bot("python-requests/2.31"))
        self.assertFalse(is_bot("Mozilla/5.0 (Windows NT 10.0; Win64; x64) Firefox/121.0"))

    def test_is_valid_url(self):
        self.assertTrue(is_valid_url("https://example.com/a?b=1"))
        self.assertFalse(is_valid_url("/relative/path"))
        self.assertFalse(is_valid_url("not a url"))
        self.assertFalse(is_valid_url(""))

    def test_sanitize_url_strips_sensitive_params(self):
        self.assertEqual(
            sanitize_url("https://example.com/a?page=2&token=abc&session_id=x"),
            "https://example.com/a?page=2",
        )
        self.assertEqual(sanitize_url("https://example.com/a?password=p"), "https://example.com/a")
        self.assertEqual(sanitize_url("https://example.com/a"), "https://example.com/a")

    def test_sanitize_url_gives_one_key_per_page(self):
        self.assertEqual(sanitize_url("https://a.com"), "https://a.com/")
        self.assertEqual(sanitize_url("HTTPS://A.com/"), "https://a.com/")
        self.assertEqual(sanitize_url("https://a.com?token=t"), "https://a.com/")
        self.assertEqual(sanitize_url("https://a.com/Path#frag"), "https://a.com/Path#frag")

    def test_sanitize_url_caps_length(self):
        url = "https://example.com/" + "a" * 5000
        self.assertEqual(len(sanitize_url(url)), 2048)

    def test_extract_domain(self):
        self.assertEqual(extract_domain("https://Blog.Example.com:8443/x"), "blog.example.com")
        self.assertEqual(extract_domain("garbage"), "unknown")
        self.assertEqual(extract_domain("http://[::1"), "unknown")

    def test_sanitize_session_id(self):
        self.assertEqual(sanitize_session_id("abc-123_<script>"), "abc-123script")
        self.assertEqual(len(sanitize_session_id("x" * 100)), 64)
        generated = sanitize_session_id(None)
        self.assertTrue(generated.isalnum())
        self.assertNotEqual(generated, sanitize_session_id("!!!"))

    def test_parse_comma_separated(self):
        self.assertEqual(parse_comma_separated(" a, b ,,c "), ["a", "b", "c"])
        self.assertEqual(parse_comma_separated(["x", " y "]), ["x", "y"])
        self.assertEqual(parse_comma_separated(None), [])

    def test_is_ignored_path(self):
        self.assertTrue(is_ignored_path("https://example.com/admin/users", ["/admin"]))
        self.assertFalse(is_ignored_path("https://example.com/blog", ["/admin"]))
        self.assertFalse(is_ignored_path("https://example.com/blog", []))


if __name__ == "__main__":
    unittest.main()
