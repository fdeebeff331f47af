"""
命令行入口

用法：
    cbeta-p5a convert html T01            # 转换大正藏第 1 册为逐版本 HTML
    cbeta-p5a convert text T01..T05 --app # 文字版（app 格式）
    cbeta-p5a convert epub T0220          # 跨册典籍合为一个 EPUB
    cbeta-p5a check T                     # 检查大正藏全部 XML
    cbeta-p5a gaiji CB00178               # 查询缺字
    cbeta-p5a serve                       # 启动预览服务
    cbeta-p5a config                      # 显示路径配置
"""

import argparse
import logging
import sys

from cbeta_p5a import config
from cbeta_p5a.etl import batch
from cbeta_p5a.etl.gaiji_map import (
    NO_NORM_PRIORITY, NORMAL_PRIORITY, PLAIN_PRIORITY, PUA_PRIORITY, TEXT_PRIORITY, resolve,
)

PRIORITIES = {
    "text": TEXT_PRIORITY,
    "pua": PUA_PRIORITY,
    "plain": PLAIN_PRIORITY,
    "no-norm": NO_NORM_PRIORITY,
    "normal": NORMAL_PRIORITY,
}


def build_parser():
    parser = argparse.ArgumentParser(
        prog="cbeta-p5a",
        description="CBETA XML P5a → HTML / 文字 / 简易 HTML / PDF 用 HTML / EPUB，以及 XML 检查",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="显示调试日志")
    sub = parser.add_subparsers(dest="command", required=True)

    # --- convert ---
    p = sub.add_parser("convert", help="转换 XML")
    p.add_argument("format", choices=batch.FORMATS)
    p.add_argument("target", nargs="?", default=None,
                   help="藏经(T)、册(T01)、册范围(T01..T05)、经号(T01n0001) 或典籍(T0220)；省略表示全部")
    p.add_argument("--xml-root", default=str(config.CBETA_XML_ROOT))
    p.add_argument("--out", default=None, help="输出目录（默认 OUTPUT_DIR/<格式>）")
    p.add_argument("--gaiji", default=str(config.GAIJI_PATH), help="缺字资料 JSON")
    p.add_argument("--workers", type=int, default=config.WORKERS)
    p.add_argument("--app", action="store_true", help="文字版使用 app 格式（每行前加行号）")
    p.add_argument("--pua", action="store_true", help="缺字一律使用 Unicode PUA")
    p.add_argument("--simplified", action="store_true", help="文字版转为简体")
    p.add_argument("--encoding", default=config.TEXT_ENCODING, help="文字版输出编码")
    p.add_argument("--no-juan-toc", action="store_true", help="EPUB 目录不加卷目次")

    # --- check ---
    p = sub.add_parser("check", help="检查 XML")
    p.add_argument("target", nargs="?", default=None)
    p.add_argument("--xml-root", default=str(config.CBETA_XML_ROOT))
    p.add_argument("--gaiji", default=str(config.GAIJI_PATH))
    p.add_argument("--figures", default=None, help="插图目录（检查 graphic/@url）")
    p.add_argument("--log", default=str(config.LOG_PATH) if config.LOG_PATH else None,
                   help="检查报告输出文件")
    p.add_argument("--workers", type=int, default=config.WORKERS)

    # --- gaiji ---
    p = sub.add_parser("gaiji", help="查询缺字")
    p.add_argument("codes", nargs="+")
    p.add_argument("--priority", choices=sorted(PRIORITIES), default="text")
    p.add_argument("--gaiji", default=str(config.GAIJI_PATH))

    # --- serve ---
    p = sub.add_parser("serve", help="启动预览服务")
    p.add_argument("--host", default=config.DEV_HOST)
    p.add_argument("--port", type=int, default=config.DEV_PORT)
    p.add_argument("--reload", action="store_true")

    sub.add_parser("config", help="显示路径配置")
    return parser


def cmd_convert(args):
    out = args.out or str(config.OUTPUT_DIR / args.format)
    options = {
        "text_format": "app" if args.app else None,
        "gaiji": "PUA" if args.pua else config.GAIJI_MODE,
        "simplified": args.simplified,
        "encoding": args.encoding,
        "xml_root": args.xml_root,
    }
    image_dirs = {
        "figures": config.FIGURES_DIR,
        "sd-gif": config.SD_GIF_DIR,
        "rj-gif": config.RJ_GIF_DIR,
    }
    epub_options = {
        "covers_dir": config.COVERS_DIR,
        "juan_toc": not args.no_juan_toc,
        "front_page": config.EPUB_FRONT_PAGE,
        "back_page": config.EPUB_BACK_PAGE,
    }
    summary = batch.run_convert(
        args.target, args.format, args.xml_root, out, args.gaiji,
        workers=args.workers, options=options, image_dirs=image_dirs,
        epub_options=epub_options,
    )
    return summary.exit_code


def cmd_check(args):
    engine = batch.run_check(
        args.target, args.xml_root,
        gaiji_path=args.gaiji, figures_dir=args.figures,
        workers=args.workers, log_path=args.log,
    )
    return 1 if engine.diagnostics else 0


def cmd_gaiji(args):
    from cbeta_p5a.etl.gaiji_map import load_gaiji_map
    gaiji_map = load_gaiji_map(args.gaiji)
    for code in args.codes:
        print(f"{code}\t{resolve(code, PRIORITIES[args.priority], gaiji_map=gaiji_map)}")
    return 0


def cmd_serve(args):
    from cbeta_p5a.main import serve
    serve(host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    try:
        if args.command == "convert":
            return cmd_convert(args)
        if args.command == "check":
            return cmd_check(args)
        if args.command == "gaiji":
            return cmd_gaiji(args)
        if args.command == "serve":
            return cmd_serve(args)
        config.print_config()
        return 0
    except ValueError as e:
        print(f"❌ {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
