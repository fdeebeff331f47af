"""
EPUB 打包

一部典籍（可能跨多个 XML 文件）一个 EPUB：
  - 每卷一个 juans/NNN.xhtml，卷号依各文件顺序连续编号
  - 目录：「章節目次」来自 cb:mulu 层级，「卷目次」来自 type=卷 的 mulu
  - 插图、悉昙字/兰札体图档打包到 img/
  - 可选：封面、内文前后的说明页
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from ebooklib import epub

from cbeta_p5a.core.canons import CBETA_EDITION
from cbeta_p5a.core.context import select_edition
from cbeta_p5a.etl.writers import clean_title, get_env

log = logging.getLogger(__name__)


@dataclass
class EpubPart:
    """一个 XML 文件的 EPUB 素材（可跨进程传递）"""
    sutra_no: str
    work: str
    canon: str
    title: str
    chapters: list                        # [(原卷号, XHTML 正文)]
    toc: list = field(default_factory=list)
    images: list = field(default_factory=list)


def render_part(converted) -> EpubPart:
    return EpubPart(
        sutra_no=converted.doc.sutra_no,
        work=converted.doc.work,
        canon=converted.doc.canon,
        title=converted.meta["title"],
        chapters=[(juan, select_edition(pieces, CBETA_EDITION)) for juan, pieces in converted.juans],
        toc=list(converted.toc),
        images=list(converted.images),
    )


class EpubWriter:
    """
    参数:
        out_root: EPUB 输出目录
        image_dirs: 图档种类 → 目录，如 {'figures': ..., 'sd-gif': ..., 'rj-gif': ...}
        covers_dir: 封面目录（<covers>/<藏经>/<典籍>.jpg），None 表示不加封面
        juan_toc: 目录中是否加卷目次
        front_page / back_page: 加在内文前后的 XHTML 档（如编辑说明、赞助资讯）
    """

    def __init__(self, out_root, image_dirs=None, covers_dir=None, juan_toc=True,
                 front_page=None, front_page_title="編輯說明",
                 back_page=None, back_page_title="贊助資訊"):
        self.out_root = Path(out_root)
        self.image_dirs = image_dirs or {}
        self.covers_dir = Path(covers_dir) if covers_dir else None
        self.juan_toc = juan_toc
        self.front_page = Path(front_page) if front_page else None
        self.front_page_title = front_page_title
        self.back_page = Path(back_page) if back_page else None
        self.back_page_title = back_page_title

    def build(self, work, parts) -> epub.EpubBook:
        title = parts[0].title
        if len(parts) > 1:
            title = clean_title(title)

        book = epub.EpubBook()
        book.set_identifier(f"http://www.cbeta.org/{work}")
        book.set_title(title)
        book.set_language("zh-TW")
        book.add_author("CBETA")
        book.add_metadata("DC", "contributor", "DILA")
        book.add_metadata("DC", "date", date.today().isoformat())

        css = epub.EpubItem(
            uid="style", file_name="cbeta.css", media_type="text/css",
            content=self._css(),
        )
        book.add_item(css)

        template = get_env().get_template("epub_juan.xhtml")
        chapters = []
        section_toc = []
        juan_links = []
        stack = [(-1, section_toc)]
        seq = 0
        for part in parts:
            files = {}
            for juan, body in part.chapters:
                seq += 1
                file_name = f"juans/{seq:03d}.xhtml"
                files[juan] = file_name
                chapter = epub.EpubHtml(title=f"{title} 第{seq}卷", file_name=file_name, lang="zh-TW")
                chapter.content = template.render(title=title, body=body)
                chapter.add_item(css)
                book.add_item(chapter)
                chapters.append(chapter)

            first_file = next(iter(files.values()), None)
            for entry in part.toc:
                file_name = files.get(entry.juan, first_file)
                if file_name is None:
                    continue
                link = epub.Link(f"{file_name}#{entry.anchor}", entry.label, f"{part.sutra_no}-{entry.anchor}")
                if entry.kind == "卷":
                    juan_links.append(link)
                    continue
                # 依 level 挂到上一层目录下
                while stack[-1][0] >= entry.level:
                    stack.pop()
                children = []
                stack[-1][1].append([link, children])
                stack.append((entry.level, children))

            self._add_images(book, part)

        front = self._static_page(book, css, self.front_page, "front.xhtml", self.front_page_title)
        back = self._static_page(book, css, self.back_page, "back.xhtml", self.back_page_title)

        toc = []
        if front is not None:
            toc.append(epub.Link(front.file_name, front.title, "front"))
        if section_toc:
            toc.append((epub.Section("章節目次"), _to_toc(section_toc)))
        if self.juan_toc and juan_links:
            toc.append((epub.Section("卷目次"), juan_links))
        if not (section_toc or (self.juan_toc and juan_links)):
            toc += [epub.Link(c.file_name, c.title, f"juan{i}") for i, c in enumerate(chapters, 1)]
        if back is not None:
            toc.append(epub.Link(back.file_name, back.title, "back"))
        book.toc = toc

        self._add_cover(book, parts[0].canon, work)
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())
        book.spine = ["nav", *([front] if front else []), *chapters, *([back] if back else [])]
        return book

    def write(self, work, parts) -> Path:
        book = self.build(work, parts)
        self.out_root.mkdir(parents=True, exist_ok=True)
        path = self.out_root / f"{work}.epub"
        epub.write_epub(str(path), book)
        log.info(f"output: {path}")
        return path

    def _css(self) -> bytes:
        from cbeta_p5a import config
        return Path(config.EPUB_CSS_PATH).read_bytes()

    def _add_images(self, book, part):
        added = {item.file_name for item in book.get_items()}
        for kind, rel in part.images:
            base = self.image_dirs.get(kind)
            name = Path(rel).name
            file_name = f"img/{name}"
            if base is None or file_name in added:
                continue
            src = Path(base) / rel
            if not src.exists():
                log.warning(f"{part.sutra_no}: 图档不存在 {src}")
                continue
            book.add_item(epub.EpubImage(
                uid=f"img-{name}", file_name=file_name,
                media_type=_media_type(name), content=src.read_bytes(),
            ))
            added.add(file_name)

    def _static_page(self, book, css, path, file_name, title):
        if path is None:
            return None
        page = epub.EpubHtml(title=title, file_name=file_name, lang="zh-TW")
        page.content = path.read_text(encoding="utf-8")
        page.add_item(css)
        book.add_item(page)
        return page

    def _add_cover(self, book, canon, work):
        if self.covers_dir is None:
            return
        cover = self.covers_dir / canon / f"{work}.jpg"
        if cover.exists():
            book.set_cover("cover.jpg", cover.read_bytes())


def _to_toc(nodes):
    """[[Link, children]] → ebooklib 的 toc 结构"""
    result = []
    for link, children in nodes:
        if children:
            result.append((epub.Section(link.title, href=link.href), _to_toc(children)))
        else:
            result.append(link)
    return result


def _media_type(name):
    suffix = Path(name).suffix.lower()
    return {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".svg": "image/svg+xml",
    }.get(suffix, "image/gif")
