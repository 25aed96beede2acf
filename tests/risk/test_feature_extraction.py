"""Tests for static feature extraction from test sources."""

import textwrap

import pytest

from flakewatch.exceptions import ErrorCode
from flakewatch.risk import extract_features, extract_file
from flakewatch.risk.extractor import detect_framework, is_test_file

SAMPLE = textwrap.dedent(
    """\
    import time
    import threading

    import pytest
    import requests

    CACHE = {}


    @pytest.fixture
    def client():
        return requests.Session()


    def test_fetch(client):
        global CACHE
        response = requests.get("https://api.example.com/items", timeout=5)
        time.sleep(2)
        if response.status_code == 200 and response.json():
            for item in response.json():
                CACHE[item["id"]] = item
        assert CACHE


    def test_parallel():
        t = threading.Thread(target=lambda: None)
        t.start()
        t.join()
    """
)


class TestExtractFeatures:
    """Pattern counts and structural metrics for a known source."""

    @pytest.fixture
    def extracted(self):
        return extract_features(SAMPLE, "tests/test_items.py", author_count=3)

    def test_structure(self, extracted):
        static = extracted.static
        assert static.lines_of_code == 20
        assert static.cyclomatic_complexity == 5
        assert static.cognitive_complexity == 4
        assert static.nesting_depth == 2
        assert extracted.issues == []

    def test_flakiness_signals(self, extracted):
        static = extracted.static
        assert static.hardcoded_delays == 1
        assert static.timeout_count == 1
        assert static.http_call_count == 1
        assert static.external_service_count == 3
        assert static.race_condition_patterns == 1
        assert static.shared_state_usage == 2
        assert static.setup_teardown_complexity == 1
        assert static.timing_sensitivity == pytest.approx(3 / 20)
        assert static.resource_leak_risk == 0.0

    def test_isolation_score(self, extracted):
        # two shared-state hits across two tests
        assert extracted.static.test_isolation_score == 0.0

    def test_metadata(self, extracted):
        metadata = extracted.metadata
        assert metadata.test_count == 2
        assert metadata.test_framework == "pytest"
        assert metadata.has_setup_teardown
        assert metadata.dependency_count == 4
        assert metadata.author_count == 3
        assert metadata.file_age is None
        assert metadata.file_size == len(SAMPLE.encode("utf-8"))

    def test_empty_source(self):
        extracted = extract_features("")
        assert extracted.static.lines_of_code == 0
        assert extracted.static.timing_sensitivity == 0.0
        assert extracted.static.test_isolation_score == 1.0
        assert extracted.metadata.test_count == 0

    def test_unparseable_source_falls_back(self):
        source = "def test_x(:\n    if ready:\n        time.sleep(1)\n"
        extracted = extract_features(source, "test_broken.py")
        assert [i.code for i in extracted.issues] == [ErrorCode.FW400]
        assert extracted.static.hardcoded_delays == 1
        assert extracted.static.cyclomatic_complexity == 2
        assert extracted.static.nesting_depth == 1


class TestFiles:
    def test_extract_file(self, tmp_path):
        path = tmp_path / "test_items.py"
        path.write_text(SAMPLE)
        extracted = extract_file(path)
        assert extracted.file_path == str(path)
        assert extracted.issues == []

    def test_non_test_name_is_reported(self, tmp_path):
        path = tmp_path / "helpers.py"
        path.write_text("def helper():\n    return 1\n")
        assert [i.code for i in extract_file(path).issues] == [ErrorCode.FW401]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(OSError):
            extract_file(tmp_path / "test_missing.py")

    @pytest.mark.parametrize(
        "name, expected",
        [("test_cart.py", True), ("cart_test.py", True), ("cart.py", False), ("test_cart.txt", False)],
    )
    def test_is_test_file(self, name, expected):
        assert is_test_file(name) is expected


class TestFramework:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("from playwright.sync_api import Page\nimport pytest\n", "playwright"),
            ("from selenium import webdriver\n", "selenium"),
            ("import unittest\nclass T(unittest.TestCase):\n    pass\n", "unittest"),
            ("x = 1\n", None),
        ],
    )
    def test_detect(self, source, expected):
        assert detect_framework(source) == expected
