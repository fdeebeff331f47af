"""
写出测试：app 格式、经名、版权信息、各格式目录结构
"""

from cbeta_p5a.core.policies import HtmlPolicy, PdfHtmlPolicy, SimpleHtmlPolicy, TextPolicy
from cbeta_p5a.etl.writers import (
    HtmlWriter, PdfHtmlWriter, SimpleHtmlWriter, TextWriter, appify, clean_title,
    copyright_html, render_juan_page,
)

from tei import convert

BODY = ('<milestone unit="juan" n="1"/><lb n="0001a01" ed="T"/>'
        '<cb:mulu type="品" level="1">初品</cb:mulu><cb:mulu type="卷" level="1">卷上</cb:mulu>'
        '<p>如是<note n="0001001" resp="Taisho" type="orig">注文</note>我聞</p>')


class TestAppify:
    def test_carry_split_word(self):
        text = "\n0001a01║如是我聞，一時\n0001a02║佛在舍衛國。\t"
        assert appify(text) == "0001a01(00)║如是我聞，\n0001a02(02)║一時佛在舍衛國。\n"

    def test_tab_stops_carry(self):
        text = "\n0001a01║如是我聞\t\n0001a02║一時\t"
        assert appify(text) == "0001a01(00)║如是我聞\n0001a02(00)║一時\n"

    def test_opening_bracket_moves(self):
        text = "\n0001a01║經云「\n0001a02║如是」\t"
        assert appify(text) == "0001a01(00)║經云\n0001a02(01)║「如是」\n"


class TestTitles:
    def test_clean_title(self):
        assert clean_title("大般若波羅蜜多經(第1卷-第200卷)") == "大般若波羅蜜多經"
        assert clean_title("大寶積經（上）") == "大寶積經"
        assert clean_title("長阿含經") == "長阿含經"

    def test_copyright(self, gaiji):
        c = convert(BODY, HtmlPolicy(), gaiji)
        text = copyright_html(c)
        assert "【經文資訊】大正藏第 1 冊 No. 1 長阿含經" in text
        assert "版本日期：2023-04-01" in text
        assert "【原始資料】CBETA 人工輸入" in text


class TestHtml:
    def test_page_has_back_matter(self, gaiji):
        c = convert(BODY, HtmlPolicy(), gaiji)
        juan, pieces = c.juans[0]
        page = render_juan_page(c, juan, pieces, "【大】")
        assert "<title>長阿含經</title>" in page
        assert "class='footnote T' id='n0001001'>注文</span>" in page

    def test_one_file_per_edition(self, gaiji, tmp_path):
        c = convert(BODY, HtmlPolicy(), gaiji)
        written = HtmlWriter(tmp_path).write(c)
        assert sorted(p.name for p in written) == ["CBETA.htm", "大.htm"]
        assert all(p.parent == tmp_path / "T0001" / "001" for p in written)

    def test_folder_rebuilt(self, gaiji, tmp_path):
        stale = tmp_path / "T0001" / "001" / "大→宋.htm"
        stale.parent.mkdir(parents=True)
        stale.write_text("old", encoding="utf-8")
        HtmlWriter(tmp_path).write(convert(BODY, HtmlPolicy(), gaiji))
        assert not stale.exists()


class TestText:
    def test_simplified(self, gaiji, tmp_path):
        c = convert(BODY, TextPolicy(), gaiji)
        TextWriter(tmp_path, simplified=True).write(c)
        text = (tmp_path / "T" / "T01" / "T01n0001" / "001" / "CBETA.txt").read_text(encoding="utf-8")
        assert text == "如是我闻\n"

    def test_app_format(self, gaiji, tmp_path):
        c = convert(BODY, TextPolicy(fmt="app"), gaiji)
        TextWriter(tmp_path, fmt="app").write(c)
        text = (tmp_path / "T" / "T01" / "T01n0001" / "001" / "大-orig.txt").read_text(encoding="utf-8")
        assert text == "0001a01(00)║如是我聞\n"

    def test_simple_html(self, gaiji, tmp_path):
        c = convert(BODY, SimpleHtmlPolicy(), gaiji)
        written = SimpleHtmlWriter(tmp_path).write(c)
        assert sorted(p.name for p in written) == ["CBETA.html", "大.html"]
        page = written[0].read_text(encoding="utf-8")
        assert "<a id='lb0001a01'></a>如是我聞" in page


class TestPdfHtml:
    def test_single_file_with_toc(self, gaiji, tmp_path):
        c = convert(BODY, PdfHtmlPolicy(), gaiji)
        [path] = PdfHtmlWriter(tmp_path).write(c)
        assert path == tmp_path / "T01n0001" / "main.htm"
        page = path.read_text(encoding="utf-8")
        assert "<a href='#mulu1'>初品</a>" in page
        assert "卷上</a>" not in page
        assert "<div class='juan-break' id='juan1'>" in page
