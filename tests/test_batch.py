"""
批量转换 / 批量检查测试

Run with: pytest tests/test_batch.py -v
"""

import pytest

from cbeta_p5a.etl import batch

from tei import write_xml

GOOD = '<milestone unit="juan" n="1"/><lb n="0001a01" ed="T"/><p>如是<app><lem wit="【大】">我</lem><rdg wit="【宋】">義</rdg></app>聞</p>'
BAD_GAIJI = '<lb n="0001a01" ed="T"/><p><g ref="#CB99999"/></p>'


@pytest.fixture
def corpus(xml_root):
    for sutra_no in ("T01n0001", "T01n0002", "T02n0003", "T05n0220a", "T06n0220b"):
        write_xml(xml_root, sutra_no, GOOD)
    return xml_root


class TestParseTarget:
    @pytest.mark.parametrize("target, expected", [
        (None, ("all", None)),
        ("T", ("canon", "T")),
        ("GA", ("canon", "GA")),
        ("T01", ("vol", "T01")),
        ("T01..T05", ("vols", ("T01", "T05"))),
        ("T01n0001", ("file", "T01n0001")),
        ("T0220", ("work", "T0220")),
    ])
    def test_kinds(self, target, expected):
        assert batch.parse_target(target) == expected

    def test_range_across_canons(self):
        with pytest.raises(ValueError):
            batch.parse_target("T01..X05")

    def test_garbage(self):
        with pytest.raises(ValueError):
            batch.parse_target("t01/../x")


class TestFindFiles:
    def test_vol(self, corpus):
        assert [p.stem for p in batch.find_xml_files(corpus, "T01")] == ["T01n0001", "T01n0002"]

    def test_vol_range(self, corpus):
        assert len(batch.find_xml_files(corpus, "T01..T02")) == 3

    def test_canon_and_all(self, corpus):
        assert len(batch.find_xml_files(corpus, "T")) == 5
        assert len(batch.find_xml_files(corpus)) == 5

    def test_work_spanning_vols(self, corpus):
        assert [p.stem for p in batch.find_xml_files(corpus, "T0220")] == ["T05n0220a", "T06n0220b"]

    def test_single_file(self, corpus):
        assert len(batch.find_xml_files(corpus, "T01n0001")) == 1
        assert batch.find_xml_files(corpus, "T09n9999") == []

    def test_group_by_work(self, corpus):
        groups = batch.group_by_work(batch.find_xml_files(corpus))
        assert list(groups) == ["T0001", "T0002", "T0003", "T0220"]
        assert len(groups["T0220"]) == 2


class TestRunConvert:
    def test_text_output(self, corpus, gaiji_path, tmp_path):
        out = tmp_path / "out"
        summary = batch.run_convert("T01n0001", "text", corpus, out, gaiji_path, workers=1)
        assert summary.exit_code == 0
        folder = out / "T" / "T01" / "T01n0001" / "001"
        assert (folder / "CBETA.txt").read_text(encoding="utf-8") == "如是我聞\n"
        assert (folder / "大-orig.txt").read_text(encoding="utf-8") == "如是我聞\n"
        assert (folder / "大→宋.txt").read_text(encoding="utf-8") == "如是義聞\n"

    def test_html_output(self, corpus, gaiji_path, tmp_path):
        out = tmp_path / "out"
        summary = batch.run_convert("T01n0002", "html", corpus, out, gaiji_path, workers=1)
        assert summary.exit_code == 0
        page = (out / "T0002" / "001" / "CBETA.htm").read_text(encoding="utf-8")
        assert "<div id='body'>" in page
        assert "【經文資訊】大正藏第 1 冊 No. 2" in page

    def test_failure_is_isolated(self, corpus, gaiji_path, tmp_path):
        write_xml(corpus, "T01n0002", BAD_GAIJI)
        summary = batch.run_convert("T01", "text", corpus, tmp_path / "out", gaiji_path, workers=1)
        assert summary.succeeded == 1
        assert [r.path.endswith("T01n0002.xml") for r in summary.failed] == [True]
        assert "CB99999" in summary.failed[0].error
        assert summary.exit_code == 1

    def test_nothing_found(self, corpus, gaiji_path, tmp_path):
        summary = batch.run_convert("T09", "text", corpus, tmp_path / "out", gaiji_path)
        assert summary.exit_code == 1

    def test_unknown_format(self, corpus, gaiji_path, tmp_path):
        with pytest.raises(ValueError):
            batch.run_convert("T01", "docx", corpus, tmp_path / "out", gaiji_path)

    def test_epub_per_work(self, corpus, gaiji_path, tmp_path):
        out = tmp_path / "epub"
        summary = batch.run_convert("T0220", "epub", corpus, out, gaiji_path, workers=1)
        assert summary.exit_code == 0
        assert summary.outputs == [out / "T0220.epub"]
        assert (out / "T0220.epub").exists()


class TestRunCheck:
    def test_collects_diagnostics(self, corpus, gaiji_path):
        write_xml(corpus, "T01n0002", '<lb n="0001a01" ed="T"/><p>一</p><lb n="0001a01" ed="T"/>')
        engine = batch.run_check("T01", corpus, gaiji_path=gaiji_path, workers=1)
        assert [d.code for d in engine.diagnostics] == ["E01"]
        assert engine.diagnostics[0].document == "T01n0002.xml"

    def test_clean(self, corpus, gaiji_path, capsys):
        engine = batch.run_check("T02", corpus, gaiji_path=gaiji_path, workers=1)
        assert engine.diagnostics == []
        assert "檢查完成" in capsys.readouterr().out
