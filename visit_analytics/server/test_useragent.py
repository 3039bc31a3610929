import unittest

from visit_analytics.server.useragent import parse_browser, parse_os, tally, top_counts

EDGE = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36 Edg/120.0"
OPERA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36 OPR/106.0"
CHROME_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36"
SAFARI_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15"
IPAD = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X) AppleWebKit/605.1.15 Version/17.0 Mobile/15E148 Safari/604.1"
ANDROID = "Mozilla/5.0 (Linux; Android 14; Pixel 8) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Mobile Safari/537.36"
FIREFOX_WIN = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0"


class TestParseOS(unittest.TestCase):
    def test_desktop(self):
        self.assertEqual(parse_os(FIREFOX_WIN), "Windows")
        self.assertEqual(parse_os(CHROME_MAC), "macOS")
        self.assertEqual(parse_os(OPERA), "Linux")

    def test_mobile_precedence(self):
        # iOS says "like Mac OS X", Android says "Linux".
        self.assertEqual(parse_os(IPAD), "iOS")
        self.assertEqual(parse_os(ANDROID), "Android")

    def test_unknown(self):
        self.assertEqual(parse_os(""), "Other")
        self.assertEqual(parse_os("Unknown"), "Other")


class TestParseBrowser(unittest.TestCase):
    def test_edge_wins_over_chrome(self):
        self.assertEqual(parse_browser(EDGE), "Edge")

    def test_opera_is_not_chrome(self):
        self.assertEqual(parse_browser(OPERA), "Opera")

    def test_chrome_is_not_safari(self):
        self.assertEqual(parse_browser(CHROME_MAC), "Chrome")
        self.assertEqual(parse_browser(ANDROID), "Chrome")

    def test_others(self):
        self.assertEqual(parse_browser(SAFARI_MAC), "Safari")
        self.assertEqual(parse_browser(FIREFOX_WIN), "Firefox")
        self.assertEqual(parse_browser("Unknown"), "Other")

    def test_case_insensitive(self):
        self.assertEqual(parse_browser("some firefox build"), "Firefox")


class TestTally(unittest.TestCase):
    def test_sums_rows_into_categories(self):
        rows = [
            {"user_agent": EDGE, "count": 4},
            {"user_agent": FIREFOX_WIN, "count": 3},
            {"user_agent": CHROME_MAC, "count": 2},
            {"user_agent": None, "count": 1},
        ]
        top_os, top_browsers = tally(rows)
        self.assertEqual([(s.key, s.count) for s in top_os], [("Windows", 7), ("macOS", 2), ("Other", 1)])
        self.assertEqual(
            [(s.key, s.count) for s in top_browsers],
            [("Edge", 4), ("Firefox", 3), ("Chrome", 2), ("Other", 1)],
        )

    def test_top_counts_truncates(self):
        totals = {f"k{i:02d}": i for i in range(15)}
        ranked = top_counts(totals)
        self.assertEqual(len(ranked), 10)
        self.assertEqual(ranked[0].key, "k14")
        self.assertEqual(ranked[-1].key, "k05")

    def test_empty(self):
        self.assertEqual(tally([]), ([], []))


if __name__ == "__main__":
    unittest.main()
