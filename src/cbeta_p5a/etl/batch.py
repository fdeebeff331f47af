"""
批量转换 / 批量检查

目标（target）写法：
    None          全部藏经
    T、GA         某部藏经
    T01           某一册
    T01..T05      册范围
    T01n0001      单一文件
    T0220         某部典籍（可跨册，如 T05n0220a ~ T07n0220o）

每个文件独立处理，失败只记录该文件，不影响其他文件。
"""

import logging
import re
import time
from collections import OrderedDict
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

from cbeta_p5a.core.canons import SUTRA_NO_RE, VOL_RE, canon_from_vol, work_id
from cbeta_p5a.core.checker import ValidationEngine
from cbeta_p5a.core.document import load_document
from cbeta_p5a.core.errors import ConversionError
from cbeta_p5a.core.policies import make_policy
from cbeta_p5a.core.transducer import StructuralTransducer
from cbeta_p5a.etl.epub import EpubWriter, render_part
from cbeta_p5a.etl.gaiji_map import GaijiResolver
from cbeta_p5a.etl.writers import HtmlWriter, PdfHtmlWriter, SimpleHtmlWriter, TextWriter

log = logging.getLogger(__name__)

FORMATS = ("html", "text", "simple-html", "pdf-html", "epub")

# 每个工作进程各自持有的缺字表
_worker_gaiji = None


@dataclass
class FileResult:
    path: str
    ok: bool
    written: int = 0
    error: str = ""
    warnings: list = field(default_factory=list)
    part: object = None                 # EPUB 素材
    diagnostics: list = field(default_factory=list)


@dataclass
class BatchSummary:
    total: int = 0
    results: list = field(default_factory=list)
    outputs: list = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def failed(self):
        return [r for r in self.results if not r.ok]

    @property
    def succeeded(self):
        return len(self.results) - len(self.failed)

    @property
    def exit_code(self):
        return 1 if self.failed or not self.results else 0


# ============================================================
# 文件发现
# 目录结构: <root>/<藏经>/<册>/<经号>.xml，如 T/T01/T01n0001.xml
# ============================================================
def parse_target(target):
    """
    解析目标，返回 (种类, 值)：
      ('all', None) / ('canon', 'T') / ('vol', 'T01') / ('vols', ('T01', 'T05'))
      / ('file', 'T01n0001') / ('work', 'T0220')
    """
    if not target:
        return "all", None
    target = target.strip()
    if ".." in target:
        v1, v2 = (s.strip() for s in target.split("..", 1))
        if not (VOL_RE.match(v1) and VOL_RE.match(v2)):
            raise ValueError(f"无法识别的册范围: {target}")
        if canon_from_vol(v1) != canon_from_vol(v2):
            raise ValueError(f"册范围须属同一部藏经: {target}")
        return "vols", (v1, v2)
    if re.match(r"^[A-Z]{1,2}$", target):
        return "canon", target
    if VOL_RE.match(target):
        return "vol", target
    if SUTRA_NO_RE.match(target):
        return "file", target
    if re.match(r"^[A-Z]{1,2}[A-Za-z]?\d+[A-Za-z]?$", target):
        return "work", target
    raise ValueError(f"无法识别目标: {target}")


def _vol_key(vol):
    m = VOL_RE.match(vol)
    return int(m.group(2)) if m else -1


def find_xml_files(xml_root, target=None) -> list[Path]:
    """根据目标找到要处理的 XML 文件列表（排序）"""
    root = Path(xml_root)
    kind, value = parse_target(target)

    if kind == "all":
        return sorted(root.glob("*/*/*.xml"))
    if kind == "canon":
        return sorted((root / value).glob("*/*.xml"))
    if kind == "vol":
        return sorted((root / canon_from_vol(value) / value).glob("*.xml"))
    if kind == "vols":
        v1, v2 = value
        canon = canon_from_vol(v1)
        lo, hi = sorted((_vol_key(v1), _vol_key(v2)))
        return sorted(
            p for p in (root / canon).glob("*/*.xml")
            if lo <= _vol_key(p.parent.name) <= hi
        )
    if kind == "file":
        canon = re.match(r"^[A-Z]+", value).group(0)
        path = root / canon / value.split("n")[0] / f"{value}.xml"
        return [path] if path.exists() else []

    # 典籍：跨册搜索
    canon = re.match(r"^[A-Z]+", value).group(0)
    if len(canon) > 1 and not (root / canon).is_dir():
        canon = canon[:-1]
    return sorted(p for p in (root / canon).glob("*/*.xml") if work_id(p.stem) == value)


def group_by_work(paths) -> "OrderedDict[str, list[Path]]":
    """按典籍分组（保持原有顺序）"""
    groups = OrderedDict()
    for path in paths:
        groups.setdefault(work_id(Path(path).stem), []).append(Path(path))
    return groups


# ============================================================
# 单个文件（在工作进程中执行）
# ============================================================
def _init_worker(gaiji_path):
    global _worker_gaiji
    if gaiji_path and Path(gaiji_path).exists():
        _worker_gaiji = GaijiResolver(json_path=str(gaiji_path))
    else:
        _worker_gaiji = None


def make_writer(fmt, out_root, options=None):
    options = options or {}
    if fmt == "html":
        return HtmlWriter(out_root)
    if fmt == "text":
        return TextWriter(
            out_root,
            fmt=options.get("text_format"),
            simplified=options.get("simplified", False),
            encoding=options.get("encoding", "utf-8"),
        )
    if fmt == "simple-html":
        return SimpleHtmlWriter(out_root)
    if fmt == "pdf-html":
        return PdfHtmlWriter(out_root)
    raise ValueError(f"不支持的格式: {fmt}")


def convert_file(path, fmt, out_root, options=None) -> FileResult:
    """转换单个文件；致命错误只中止本文件"""
    options = options or {}
    try:
        if _worker_gaiji is None:
            raise ConversionError("缺字资料未加载", Path(path).name)
        doc = load_document(path)
        policy = make_policy(fmt, **options)
        transducer = StructuralTransducer(policy, _worker_gaiji, xml_root=options.get("xml_root"))
        converted = transducer.convert(doc)

        if fmt == "epub":
            return FileResult(str(path), True, warnings=converted.warnings, part=render_part(converted))
        written = make_writer(fmt, out_root, options).write(converted)
        return FileResult(str(path), True, written=len(written), warnings=converted.warnings)
    except (ConversionError, OSError) as e:
        log.error(f"转换失败 {path}: {e}")
        return FileResult(str(path), False, error=str(e))
    except Exception as e:
        log.exception(f"转换时发生未预期错误 {path}")
        return FileResult(str(path), False, error=f"{type(e).__name__}: {e}")


def check_file(path, figures_dir=None) -> FileResult:
    engine = ValidationEngine(gaiji=_worker_gaiji, figures_dir=figures_dir)
    try:
        diagnostics = engine.check_file(path)
    except OSError as e:
        return FileResult(str(path), False, error=str(e))
    return FileResult(str(path), True, diagnostics=diagnostics)


def _run(func, paths, args, workers, gaiji_path):
    """依序或以进程池执行；结果依 paths 顺序返回"""
    total = len(paths)
    if workers <= 1:
        _init_worker(gaiji_path)
        results = []
        for i, path in enumerate(paths, 1):
            result = func(path, *args)
            _progress(i, total, result)
            results.append(result)
        return results

    results = {}
    with ProcessPoolExecutor(max_workers=workers, initializer=_init_worker,
                             initargs=(str(gaiji_path) if gaiji_path else None,)) as pool:
        futures = {pool.submit(func, path, *args): path for path in paths}
        for i, future in enumerate(as_completed(futures), 1):
            result = future.result()
            _progress(i, total, result)
            results[futures[future]] = result
    return [results[p] for p in paths]


def _progress(i, total, result):
    name = Path(result.path).name
    if result.ok:
        print(f"  [{i}/{total}] {name} ✅")
    else:
        print(f"  [{i}/{total}] {name} ❌ {result.error}")


# ============================================================
# 批量入口
# ============================================================
def run_convert(target, fmt, xml_root, out_root, gaiji_path, workers=1, options=None,
                image_dirs=None, epub_options=None) -> BatchSummary:
    if fmt not in FORMATS:
        raise ValueError(f"不支持的格式: {fmt}")
    options = dict(options or {})
    options.setdefault("xml_root", str(xml_root))

    summary = BatchSummary()
    paths = find_xml_files(xml_root, target)
    summary.total = len(paths)
    if not paths:
        print(f"❌ 找不到目标 {target or '全部'} 的 XML 文件")
        return summary
    if not Path(gaiji_path).exists():
        print(f"❌ 缺字资料不存在: {gaiji_path}")
        return summary

    print(f"📚 找到 {len(paths)} 个 XML 文件待转换（{fmt}）")
    print(f"📂 数据源: {xml_root}")
    print(f"💾 输出目录: {out_root}")
    start = time.time()

    summary.results = _run(convert_file, paths, (fmt, str(out_root), options), workers, gaiji_path)

    if fmt == "epub":
        writer = EpubWriter(out_root, image_dirs=image_dirs, **(epub_options or {}))
        by_path = {r.path: r for r in summary.results}
        for work, work_paths in group_by_work(paths).items():
            parts = [by_path[str(p)].part for p in work_paths if by_path[str(p)].ok]
            if len(parts) != len(work_paths):
                print(f"  ❌ {work}: 有文件转换失败，不产生 EPUB")
                continue
            summary.outputs.append(writer.write(work, parts))

    summary.elapsed = time.time() - start
    _print_summary(summary)
    return summary


def run_check(target, xml_root, gaiji_path=None, figures_dir=None, workers=1,
              log_path=None) -> ValidationEngine:
    paths = find_xml_files(xml_root, target)
    engine = ValidationEngine(figures_dir=figures_dir)
    if not paths:
        print(f"❌ 找不到目标 {target or '全部'} 的 XML 文件")
        return engine

    print(f"xml: {xml_root}")
    results = _run(check_file, paths, (str(figures_dir) if figures_dir else None,), workers, gaiji_path)
    for result in results:
        engine.extend(result.diagnostics)
    engine.display(log_path)
    return engine


def _print_summary(summary):
    print()
    print("=" * 50)
    print(f"✅ 成功: {summary.succeeded}/{summary.total}")
    print(f"❌ 失败: {len(summary.failed)}/{summary.total}")
    print(f"⏱️ 耗时: {summary.elapsed:.1f} 秒")
    warnings = sum(len(r.warnings) for r in summary.results)
    if warnings:
        print(f"⚠️ 警告: {warnings} 条")
    if summary.failed:
        print()
        print(f"❌ 失败文件: {len(summary.failed)} 个")
        for r in summary.failed:
            print(f"  {Path(r.path).name}: {r.error}")
