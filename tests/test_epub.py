"""
EPUB 打包测试
"""

import zipfile

import ebooklib
from ebooklib import epub

from cbeta_p5a.core.policies import EpubPolicy
from cbeta_p5a.etl.epub import EpubWriter, render_part

from tei import convert

PART_A = ('<milestone unit="juan" n="1"/><lb n="0001a01" ed="T"/>'
          '<cb:mulu type="卷" level="1">卷第一</cb:mulu>'
          '<cb:mulu type="分" level="1">初分</cb:mulu><p>一</p>'
          '<cb:mulu type="品" level="2">緣起品</cb:mulu><p>二</p>')
PART_B = ('<milestone unit="juan" n="201"/><lb n="0001a01" ed="T"/>'
          '<cb:mulu type="分" level="1">第二分</cb:mulu><p>三</p>')


def _parts(gaiji):
    a = convert(PART_A, EpubPolicy(), gaiji, sutra_no="T05n0220a", title="大般若波羅蜜多經(第1卷-第200卷)")
    b = convert(PART_B, EpubPolicy(), gaiji, sutra_no="T06n0220b", title="大般若波羅蜜多經(第201卷-第400卷)")
    return [render_part(a), render_part(b)]


class TestBuild:
    def test_chapters_numbered_across_parts(self, gaiji):
        book = EpubWriter("unused").build("T0220", _parts(gaiji))
        names = [item.file_name for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT)]
        assert "juans/001.xhtml" in names
        assert "juans/002.xhtml" in names

    def test_title_cleaned_for_multi_file_work(self, gaiji):
        book = EpubWriter("unused").build("T0220", _parts(gaiji))
        assert book.title == "大般若波羅蜜多經"

    def test_toc_sections(self, gaiji):
        book = EpubWriter("unused").build("T0220", _parts(gaiji))
        (sections, chapters), (juan_section, juans) = book.toc
        assert sections.title == "章節目次"
        assert juan_section.title == "卷目次"
        assert [link.title for link in juans] == ["卷第一"]

        first, second = chapters
        section, children = first
        assert section.title == "初分"
        assert [link.title for link in children] == ["緣起品"]
        assert second.title == "第二分"
        assert second.href == "juans/002.xhtml#mulu1"

    def test_without_juan_toc(self, gaiji):
        book = EpubWriter("unused", juan_toc=False).build("T0220", _parts(gaiji))
        assert len(book.toc) == 1


class TestWrite:
    def test_write_with_images(self, gaiji, tmp_path):
        gaiji.gaiji_map["SD-A5A9"] = {}
        body = '<lb n="0001a01" ed="T"/><p><g ref="#SD-A5A9"/></p>'
        part = render_part(convert(body, EpubPolicy(), gaiji))

        gif = tmp_path / "sd-gif" / "A5" / "SD-A5A9.gif"
        gif.parent.mkdir(parents=True)
        gif.write_bytes(b"GIF89a")

        writer = EpubWriter(tmp_path / "out", image_dirs={"sd-gif": tmp_path / "sd-gif"})
        path = writer.write("T0001", [part])
        assert path == tmp_path / "out" / "T0001.epub"
        names = zipfile.ZipFile(path).namelist()
        assert any(name.endswith("img/SD-A5A9.gif") for name in names)
        assert any(name.endswith("juans/001.xhtml") for name in names)

    def test_missing_image_skipped(self, gaiji, tmp_path):
        gaiji.gaiji_map["SD-A5A9"] = {}
        body = '<lb n="0001a01" ed="T"/><p><g ref="#SD-A5A9"/></p>'
        part = render_part(convert(body, EpubPolicy(), gaiji))
        book = EpubWriter(tmp_path, image_dirs={"sd-gif": tmp_path}).build("T0001", [part])
        assert not [i for i in book.get_items() if isinstance(i, epub.EpubImage)]


class TestStaticPages:
    def test_front_and_back_pages(self, gaiji, tmp_path):
        front = tmp_path / "readme.xhtml"
        front.write_text("<html><body><p>編輯說明</p></body></html>", encoding="utf-8")
        back = tmp_path / "donate.xhtml"
        back.write_text("<html><body><p>贊助</p></body></html>", encoding="utf-8")

        writer = EpubWriter(tmp_path, front_page=front, back_page=back)
        book = writer.build("T0220", _parts(gaiji))
        assert book.toc[0].title == "編輯說明"
        assert book.toc[-1].title == "贊助資訊"
        spine = [item.file_name if hasattr(item, "file_name") else item for item in book.spine]
        assert spine[1] == "front.xhtml"
        assert spine[-1] == "back.xhtml"
