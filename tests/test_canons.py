"""
藏经代码与编号测试
"""

import pytest

from cbeta_p5a.core.canons import (
    CBETA_EDITION, canon_from_vol, canon_of, edition_filename, edition_short, get_canons,
    output_sutra_no, parse_sutra_no, scan_editions, work_id,
)


class TestSutraNo:
    def test_parse(self):
        assert parse_sutra_no("T01n0001") == ("T", "T01", "0001")
        assert parse_sutra_no("GA001n0001") == ("GA", "GA001", "0001")
        assert parse_sutra_no("T01_0001") is None

    def test_work_id_merges_sub_letter(self):
        assert work_id("T05n0220a") == "T0220"
        assert work_id("T07n0220o") == "T0220"

    def test_work_id_keeps_upper_suffix(self):
        assert work_id("T32n1670A") == "T1670A"
        assert work_id("J15nB005") == "JB005"

    def test_output_sutra_no(self):
        assert output_sutra_no("T05n0220a") == "T05n0220"
        assert output_sutra_no("T01n0001") == "T01n0001"

    def test_canon_of_linehead(self):
        assert canon_of("T85n2838_p1291a03") == "T"
        assert canon_of("GA001n0001") == "GA"

    def test_canon_from_vol(self):
        assert canon_from_vol("T01") == "T"
        with pytest.raises(ValueError):
            canon_from_vol("T")


class TestEditions:
    def test_scan(self):
        assert scan_editions("【宋】【元】【明】") == ["【宋】", "【元】", "【明】"]
        assert scan_editions("") == []

    def test_short(self):
        assert edition_short("【大】") == "大"
        assert edition_short("CBETA") == "CBETA"

    def test_filenames(self):
        assert edition_filename(CBETA_EDITION, "【大】", ".htm") == "CBETA.htm"
        assert edition_filename("【大】", "【大】", ".htm") == "大.htm"
        assert edition_filename("【大】", "【大】", ".txt", orig_suffix="-orig") == "大-orig.txt"
        assert edition_filename("【宋】", "【大】", ".htm") == "大→宋.htm"


class TestRegistry:
    def test_symbol(self):
        canons = get_canons()
        assert canons.symbol("T") == "【大】"
        assert canons.short_name("T") == "大正藏"
        assert "T" in canons

    def test_unknown(self):
        canons = get_canons()
        assert canons.symbol("ZZ") is None
        assert canons.short_name("ZZ") == "ZZ"
