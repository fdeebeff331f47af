"""
XML 检查器测试

Run with: pytest tests/test_checker.py -v
"""

import pytest

from cbeta_p5a.core.checker import SUCCESS_MESSAGE, ValidationEngine
from cbeta_p5a.core.document import Anomalies

from tei import make_tei, write_xml


@pytest.fixture
def engine(gaiji):
    return ValidationEngine(gaiji=gaiji, anomalies=Anomalies())


FIRST_LB = '<lb n="0001a01" ed="T"/>'


def check(engine, body, sutra_no="T01n0001"):
    """正文不以 lb 开头时先补一个行号"""
    if not body.startswith("<lb"):
        body = FIRST_LB + body
    return engine.check_text(make_tei(body, sutra_no=sutra_no), f"{sutra_no}.xml")


def codes(found):
    return [d.code for d in found]


class TestCleanDocument:
    def test_no_diagnostics(self, engine):
        body = '<div type="jing"><lb n="0001a01" ed="T"/><p>如是我聞</p></div>'
        assert check(engine, body) == []
        assert engine.report() == SUCCESS_MESSAGE

    def test_header_not_checked(self, engine):
        # 版本日期里的 $ 不算罕用字元
        assert "W02" not in codes(check(engine, '<p>一</p>'))


class TestErrors:
    """E01–E16"""

    def test_duplicate_lb_reported_once(self, engine):
        body = '<lb n="0001a01" ed="T"/><p>一</p><lb n="0001a01" ed="T"/><p>二</p>'
        found = check(engine, body)
        assert codes(found) == ["E01"]
        assert str(found[0]) == "[E01] 行號重複, ed: T, T01n0001.xml, lb: T01n0001_p0001a01"
        assert found[0].line_head == "T01n0001_p0001a01"

    def test_text_directly_under_div(self, engine):
        assert codes(check(engine, '<div type="jing">文字</div>')) == ["E02"]

    def test_star_app_without_note(self, engine):
        body = ('<p><app type="star" corresp="#0001099"><lem wit="【大】">一</lem>'
                '<rdg wit="【宋】">壹</rdg></app></p>')
        assert codes(check(engine, body)) == ["E03"]

    def test_star_app_with_note(self, engine):
        body = ('<p><note n="0001099" type="orig">注</note><app type="star" corresp="#0001099">'
                '<lem wit="【大】">一</lem><rdg wit="【宋】">壹</rdg></app></p>')
        assert check(engine, body) == []

    def test_rdg_without_wit(self, engine):
        assert codes(check(engine, '<p><app><lem wit="【大】">一</lem><rdg>壹</rdg></app></p>')) == ["E04"]

    def test_cbeta_remark_exempt(self, engine):
        body = '<p><app><lem wit="【大】">一</lem><rdg type="cbetaRemark">壹</rdg></app></p>'
        assert check(engine, body) == []

    def test_missing_figure(self, gaiji, tmp_path):
        engine = ValidationEngine(gaiji=gaiji, figures_dir=tmp_path, anomalies=Anomalies())
        body = '<p><figure><graphic url="../figures/T/T01p0001_01.gif"/></figure></p>'
        assert codes(check(engine, body)) == ["E05"]
        (tmp_path / "T").mkdir()
        (tmp_path / "T" / "T01p0001_01.gif").write_bytes(b"GIF89a")
        assert check(engine, body) == []

    def test_lb_format(self, engine):
        assert codes(check(engine, '<lb n="001a01" ed="T"/><p>一</p>')) == ["E06"]

    def test_lem_without_wit(self, engine):
        assert codes(check(engine, '<p><app><lem>一</lem><rdg wit="【宋】">壹</rdg></app></p>')) == ["E07"]

    def test_item_with_two_lists(self, engine):
        body = '<list><item><list><item>a</item></list><list><item>b</item></list></item></list>'
        assert codes(check(engine, body)) == ["E08"]

    def test_table_cols(self, engine):
        body = '<table cols="3"><row><cell>a</cell><cell cols="1">b</cell></row></table>'
        found = check(engine, body)
        assert codes(found) == ["E09"]
        assert "根據 cell 計算的 cols: 2" in found[0].message

    def test_table_cols_with_span(self, engine):
        body = '<table cols="3"><row><cell cols="2">a</cell><cell>b</cell></row></table>'
        assert check(engine, body) == []

    def test_p_under_list(self, engine):
        assert codes(check(engine, '<list><p>a</p></list>')) == ["E10"]

    def test_note_under_div(self, engine):
        assert codes(check(engine, '<div type="jing"><note>a</note></div>')) == ["E11"]

    def test_note_under_lg(self, engine):
        assert codes(check(engine, '<lg><l>a</l><note>b</note></lg>')) == ["E12"]

    def test_tt_under_lg(self, engine):
        body = '<lg><cb:tt><cb:t>a</cb:t><cb:t>b</cb:t></cb:tt></lg>'
        assert codes(check(engine, body)) == ["E13"]

    def test_circle_anchor_under_div(self, engine):
        assert codes(check(engine, '<div type="jing"><anchor type="circle"/></div>')) == ["E14"]
        assert check(engine, '<p><anchor type="circle"/></p>') == []

    def test_note_corresp(self, engine):
        assert codes(check(engine, '<p><note corresp="#0001005">a</note></p>')) == ["E15"]

    def test_text_before_first_lb(self, engine):
        text = make_tei('<p>無行號文字</p><lb n="0001a01" ed="T"/><p>一</p><p>二</p>')
        found = engine.check_text(text, "T01n0001.xml")
        assert codes(found) == ["E16"]
        assert found[0].line_head == "T01n0001"

    def test_whitespace_before_first_lb(self, engine):
        text = make_tei('<milestone unit="juan" n="1"/>\n<lb n="0001a01" ed="T"/><p>一</p>')
        assert engine.check_text(text, "T01n0001.xml") == []


class TestWarnings:
    def test_nested_inline_note(self, engine):
        body = '<p><note place="inline">甲<note place="inline">乙</note></note></p>'
        found = check(engine, body)
        assert codes(found) == ["W01"]
        assert found[0].is_warning

    def test_rare_char(self, engine):
        assert codes(check(engine, '<lb n="0001a01" ed="T"/><p>{本}續</p>')) == ["W02"]

    def test_rare_char_allowed(self, gaiji):
        anomalies = Anomalies(checker_allow=[
            {"id": "T01n0001", "lb": "0001a01", "code": "W02", "char": "{"},
        ])
        engine = ValidationEngine(gaiji=gaiji, anomalies=anomalies)
        assert check(engine, '<lb n="0001a01" ed="T"/><p>{本}續</p>') == []

    def test_tab(self, engine):
        assert codes(check(engine, '<p>一\t二</p>')) == ["W03"]


class TestFileLevel:
    def test_zero_width_space(self, engine):
        assert codes(check(engine, '<p>一\u200b二</p>')) == ["U200B"]

    def test_not_well_formed(self, engine):
        found = engine.check_text("<TEI><p>", "T01n0001.xml")
        assert codes(found) == ["XML"]
        assert str(found[0]) == "T01n0001.xml not well-formed"


class TestReport:
    def test_missing_gaiji_aggregated(self, engine, xml_root):
        body = '<lb n="0001a01" ed="T"/><p><g ref="#CB99999"/></p>'
        paths = [
            write_xml(xml_root, "T01n0001", body),
            write_xml(xml_root, "T01n0002", body),
        ]
        engine.check_paths(paths)
        assert engine.missing_gaiji() == {"CB99999": ["T01n0001.xml", "T01n0002.xml"]}
        assert engine.error_lines() == ["CB99999 無缺字資料，出現於：T01n0001.xml,T01n0002.xml"]
        assert engine.report().startswith("發現 1 錯誤：")

    def test_gaiji_not_checked_without_table(self):
        engine = ValidationEngine(anomalies=Anomalies())
        assert check(engine, '<p><g ref="#CB99999"/></p>') == []

    def test_grouped_by_code(self, engine):
        check(engine, '<div type="jing">文字</div>')
        check(engine, '<lb n="001a01" ed="T"/><p>一</p>', sutra_no="T01n0002")
        check(engine, '<div type="jing">又一</div>', sutra_no="T01n0003")
        assert list(engine.by_code()) == ["E02", "E06"]
        assert len(engine.by_code()["E02"]) == 2
        assert set(engine.by_document()) == {"T01n0001.xml", "T01n0002.xml", "T01n0003.xml"}

    def test_display_to_log(self, engine, tmp_path, capsys):
        check(engine, '<div type="jing">文字</div>')
        log_path = tmp_path / "check.log"
        engine.display(log_path)
        assert "[E02]" in log_path.read_text(encoding="utf-8")
        assert str(log_path) in capsys.readouterr().out
