import unittest

from topclients.data import KeyCount, LogRecord
from topclients.errors import MalformedRecordError
from topclients.pipeline.counts import ClientIPExtractor, extract_client_ip
from topclients.utils.typeshelper import StatHints


def records(*lines):
    return [LogRecord(text=line, id=str(i)) for i, line in enumerate(lines)]


class TestExtractClientIP(unittest.TestCase):
    def test_key_is_prefix_before_first_space(self):
        self.assertEqual(extract_client_ip("1.1.1.1 GET /a"), "1.1.1.1")
        self.assertEqual(
            extract_client_ip('10.0.0.7 - - [10/Oct/2024:13:55:36 -0700] "GET /index.html HTTP/1.1" 200 2326'),
            "10.0.0.7",
        )
        self.assertEqual(extract_client_ip("::1 GET /"), "::1")

    def test_malformed_records(self):
        for line in ("", "1.1.1.1", "no-space-at-all", " 1.1.1.1 GET /"):
            with self.subTest(line=line), self.assertRaises(MalformedRecordError):
                extract_client_ip(line)

    def test_malformed_record_is_a_value_error(self):
        with self.assertRaises(ValueError):
            extract_client_ip("")

    def test_non_text_records(self):
        for value in (12345, None, {"ip": "1.1.1.1"}, ["1.1.1.1 GET /"], b"1.1.1.1 GET /"):
            with self.subTest(value=value), self.assertRaises(MalformedRecordError):
                extract_client_ip(value)


class TestClientIPExtractor(unittest.TestCase):
    def test_emits_one_per_valid_record(self):
        step = ClientIPExtractor()
        output = list(step.run(records("1.1.1.1 GET /a", "", "2.2.2.2 GET /b", "garbage", "1.1.1.1 POST /c")))
        self.assertEqual(output, [KeyCount("1.1.1.1", 1), KeyCount("2.2.2.2", 1), KeyCount("1.1.1.1", 1)])
        self.assertEqual(step.stats[StatHints.total].total, 5)
        self.assertEqual(step.stats[StatHints.dropped].total, 2)
        self.assertEqual(step.stats[StatHints.forwarded].total, 3)

    def test_all_malformed(self):
        self.assertEqual(list(ClientIPExtractor().run(records("", "x", " y"))), [])

    def test_non_text_record_is_dropped(self):
        step = ClientIPExtractor()
        output = list(step.run([LogRecord(text=12345, id="0"), LogRecord(text="1.1.1.1 GET /", id="1")]))
        self.assertEqual(output, [KeyCount("1.1.1.1", 1)])
        self.assertEqual(step.stats[StatHints.dropped].total, 1)
