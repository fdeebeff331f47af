"""
缺字解析测试

Run with: pytest tests/test_gaiji.py -v
"""

import pytest

from cbeta_p5a.etl.gaiji_map import (
    NO_NORM_PRIORITY, NORMAL_PRIORITY, PLAIN_PRIORITY, PUA_PRIORITY, TEXT_PRIORITY,
    GaijiResolver, is_rare, pua, resolve,
)


class TestPua:
    """由缺字码推算私用区字符"""

    def test_cb_code_is_decimal_offset(self):
        assert pua("CB00178") == chr(0xF0000 + 178)

    def test_siddham_is_hex_offset(self):
        assert pua("SD-A5A9") == chr(0xFA000 + 0xA5A9)

    def test_ranjana_is_hex_offset(self):
        assert pua("RJ-C0E0") == chr(0x101000 + 0xC0E0)

    def test_unknown_prefix(self):
        assert pua("ZZ0001") is None

    def test_malformed_code(self):
        assert pua("CBxyz") is None


class TestResolver:
    """按优先级解析"""

    def test_first_available_attribute(self, gaiji):
        assert gaiji.resolve("CB00178", TEXT_PRIORITY) == "𠮷"
        assert gaiji.resolve("CB00001", TEXT_PRIORITY) == "吉"

    def test_hash_prefix_is_ignored(self, gaiji):
        assert gaiji.resolve("#CB00178", NORMAL_PRIORITY) == "吉"
        assert "#CB00178" in gaiji

    def test_pua_priority(self, gaiji):
        assert gaiji.resolve("CB00001", PUA_PRIORITY) == chr(0xF0001)

    def test_composition(self, gaiji):
        assert gaiji.resolve("CB00002", PLAIN_PRIORITY) == "[金*本]"
        assert gaiji.resolve("CB00002", NO_NORM_PRIORITY) == "[金*本]"

    def test_nothing_found_returns_none(self, gaiji):
        assert gaiji.resolve("CB00002", ("uni_char", "norm_uni_char")) is None
        assert gaiji.resolve("CB99999", NORMAL_PRIORITY) is None

    def test_unknown_code_not_contained(self, gaiji):
        assert "CB99999" not in gaiji
        assert gaiji.get("CB99999") is None


class TestConvenience:
    def test_resolve_fallback_text(self, gaiji_map):
        assert resolve("#CB99999", gaiji_map=gaiji_map) == "[CB99999]"

    def test_resolve_from_json(self, gaiji_path):
        resolver = GaijiResolver(json_path=str(gaiji_path))
        assert resolver.resolve("CB00001", NORMAL_PRIORITY) == "吉"


@pytest.mark.parametrize("char, expected", [
    ("\U0002A700", True),
    ("\U0002CEAF", True),
    ("𠮷", False),
    ("吉", False),
    ("", False),
])
def test_is_rare(char, expected):
    assert is_rare(char) is expected
