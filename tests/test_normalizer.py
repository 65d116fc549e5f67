import pytest
from normalizer import normalize_code, normalize_id, normalize_input


class TestNormalizeCode:
    def test_canonical(self):
        assert normalize_code("CS101") == "CS101"

    def test_lowercase(self):
        assert normalize_code("cs101") == "CS101"

    def test_hyphen(self):
        assert normalize_code("SE-101") == "SE101"

    def test_space(self):
        assert normalize_code("MATH 1010") == "MATH1010"

    def test_spaces_around_hyphen(self):
        assert normalize_code("CS - 101") == "CS101"

    def test_letter_suffix(self):
        assert normalize_code("swe201c") == "SWE201C"

    def test_invalid_no_digits(self):
        assert normalize_code("CS") is None

    def test_invalid_garbage(self):
        assert normalize_code("asdfasdf") is None

    def test_invalid_empty(self):
        assert normalize_code("") is None

    def test_invalid_none(self):
        assert normalize_code(None) is None


class TestNormalizeId:
    @pytest.mark.parametrize("raw", [None, float("nan"), "nan", "None", "   "])
    def test_blank_values(self, raw):
        assert normalize_id(raw) == ""

    def test_strips(self):
        assert normalize_id("  STU-1 ") == "STU-1"

    def test_numbers_become_strings(self):
        assert normalize_id(42) == "42"


class TestNormalizeInput:
    CATALOG = {"CS101", "SE101", "MA101"}

    def test_splits_and_normalizes(self):
        result = normalize_input("cs101, SE-101\nMA 101", self.CATALOG)
        assert result["valid"] == ["CS101", "SE101", "MA101"]

    def test_invalid_and_unknown(self):
        result = normalize_input("CS101; junk; CS999", self.CATALOG)
        assert result == {"valid": ["CS101"], "invalid": ["junk"], "not_in_catalog": ["CS999"]}

    def test_dedupes(self):
        assert normalize_input("CS101, cs 101", self.CATALOG)["valid"] == ["CS101"]

    def test_empty(self):
        assert normalize_input("", self.CATALOG) == {"valid": [], "invalid": [], "not_in_catalog": []}
        assert normalize_input(None, self.CATALOG)["valid"] == []

    def test_list_input(self):
        result = normalize_input(["se 101", "", "junk", "junk"], self.CATALOG)
        assert result == {"valid": ["SE101"], "invalid": ["junk"], "not_in_catalog": []}
