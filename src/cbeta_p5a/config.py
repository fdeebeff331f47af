"""
CBETA P5a 转换工具 · 路径与运行配置

所有路径均使用 pathlib 动态拼接，零硬编码。
支持 .env 文件覆盖默认路径（相对路径以项目根目录为基准）。
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# ─── 项目根目录 ─────────────────────────────────────────────
# src/cbeta_p5a/config.py → 上两级就是项目根
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

load_dotenv(PROJECT_ROOT / ".env")

# ─── 包目录（源代码与内置数据） ─────────────────────────────
PACKAGE_DIR = Path(__file__).resolve().parent


def _env_path(name, default):
    """读取路径型环境变量，相对路径以项目根为准"""
    value = os.getenv(name)
    if not value:
        return Path(default)
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = PROJECT_ROOT / path
    return path


# ─── CBETA XML P5a 原始数据（用户需自行下载） ───────────────
# 目录结构: <root>/<藏经>/<册>/<经号>.xml，如 T/T01/T01n0001.xml
CBETA_XML_ROOT = _env_path(
    "CBETA_XML_ROOT",
    PROJECT_ROOT / "data" / "raw" / "cbeta-xml-p5a",
)

# ─── 缺字数据（gaiji） ──────────────────────────────────────
GAIJI_PATH = _env_path(
    "GAIJI_PATH",
    PROJECT_ROOT / "data" / "raw" / "cbeta_gaiji.json",
)

# ─── 插图目录（检查 graphic/@url 是否存在） ────────────────
FIGURES_DIR = _env_path(
    "FIGURES_DIR",
    PROJECT_ROOT / "data" / "raw" / "figures",
)

# ─── 悉昙字、兰札体图档（EPUB 打包用） ──────────────────
SD_GIF_DIR = _env_path("SD_GIF_DIR", PROJECT_ROOT / "data" / "raw" / "sd-gif")
RJ_GIF_DIR = _env_path("RJ_GIF_DIR", PROJECT_ROOT / "data" / "raw" / "rj-gif")

# ─── EPUB：封面（<dir>/<藏经>/<典籍>.jpg）与前后说明页（可不设） ──
COVERS_DIR = _env_path("COVERS_DIR", PROJECT_ROOT / "data" / "raw" / "covers")
EPUB_FRONT_PAGE = _env_path("EPUB_FRONT_PAGE", "") if os.getenv("EPUB_FRONT_PAGE") else None
EPUB_BACK_PAGE = _env_path("EPUB_BACK_PAGE", "") if os.getenv("EPUB_BACK_PAGE") else None

# ─── 输出目录 ────────────────────────────────────────────────
OUTPUT_DIR = _env_path(
    "OUTPUT_DIR",
    PROJECT_ROOT / "data" / "output",
)

# ─── 检查报告（为空则直接打印） ─────────────────────────────
_log_path = os.getenv("CHECK_LOG_PATH", "")
LOG_PATH = _env_path("CHECK_LOG_PATH", "") if _log_path else None

# ─── 内置数据与模板 ──────────────────────────────────────────
DATA_DIR = PACKAGE_DIR / "data"
TEMPLATES_DIR = PACKAGE_DIR / "templates"
CANONS_PATH = DATA_DIR / "canons.json"
ANOMALIES_PATH = DATA_DIR / "anomalies.yaml"
EPUB_CSS_PATH = DATA_DIR / "epub.css"

# ─── 批量转换 ────────────────────────────────────────────────
WORKERS = int(os.getenv("WORKERS", str(os.cpu_count() or 1)))

# 缺字处理方式: default 优先通用字；PUA 一律使用 Unicode 私用区
GAIJI_MODE = os.getenv("GAIJI_MODE", "default")
TEXT_ENCODING = os.getenv("TEXT_ENCODING", "utf-8")

# ─── 运行时检测 ──────────────────────────────────────────────
cbeta_available = CBETA_XML_ROOT.exists()

# ─── 开发服务器 ──────────────────────────────────────────────
DEV_HOST = os.getenv("DEV_HOST", "0.0.0.0")
DEV_PORT = int(os.getenv("DEV_PORT", "8500"))


# ─── 路径摘要（调试用） ──────────────────────────────────────
def print_config():
    """打印当前路径配置，用于调试"""
    print("=" * 50)
    print("CBETA P5a 转换工具 · 路径配置")
    print("=" * 50)
    print(f"  项目根目录:    {PROJECT_ROOT}")
    print(f"  XML 数据:      {CBETA_XML_ROOT}  {'✓' if cbeta_available else '✗'}")
    print(f"  组字数据:      {GAIJI_PATH}  {'✓' if GAIJI_PATH.exists() else '✗'}")
    print(f"  插图目录:      {FIGURES_DIR}  {'✓' if FIGURES_DIR.exists() else '✗'}")
    print(f"  封面目录:      {COVERS_DIR}  {'✓' if COVERS_DIR.exists() else '✗'}")
    print(f"  输出目录:      {OUTPUT_DIR}")
    print(f"  检查报告:      {LOG_PATH or '（终端输出）'}")
    print(f"  并行进程:      {WORKERS}")
    print(f"  缺字模式:      {GAIJI_MODE}")
    print(f"  服务地址:      http://{DEV_HOST}:{DEV_PORT}")
    print("=" * 50)


if __name__ == "__main__":
    print_config()
