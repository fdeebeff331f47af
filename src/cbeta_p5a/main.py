"""
CBETA P5a 转换工具 · 预览服务

即时转换 XML 并以逐版本 HTML 呈现，供校对时对照各版本异读。
"""

import logging

from fastapi import FastAPI
import uvicorn

from cbeta_p5a import __version__, config
from cbeta_p5a.etl.gaiji_map import GaijiResolver
from cbeta_p5a.routers import reader

# ─── 日志 ─────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
log = logging.getLogger(__name__)

# ─── 应用 ─────────────────────────────────────────────────────
app = FastAPI(title="CBETA P5a 转换预览", version=__version__)

app.state.xml_root = config.CBETA_XML_ROOT
app.state.gaiji = None

# ─── 注册路由 ─────────────────────────────────────────────────
app.include_router(reader.router)


# ─── 初始化（在 startup 事件中执行，确保数据就绪） ───────────
@app.on_event("startup")
async def init_gaiji():
    """启动时加载缺字资料"""
    if app.state.gaiji is not None:
        return
    if config.GAIJI_PATH.exists():
        app.state.gaiji = GaijiResolver(json_path=str(config.GAIJI_PATH))
        log.info(f"缺字资料已加载: {len(app.state.gaiji.gaiji_map)} 个缺字")
    else:
        log.warning(f"缺字资料未找到 ({config.GAIJI_PATH})，转换功能不可用")
    if not config.cbeta_available:
        log.warning(f"CBETA XML 未找到 ({config.CBETA_XML_ROOT})")


def serve(host=None, port=None, reload=False):
    uvicorn.run(
        "cbeta_p5a.main:app",
        host=host or config.DEV_HOST,
        port=port or config.DEV_PORT,
        reload=reload,
    )


# ─── 入口 ─────────────────────────────────────────────────────

if __name__ == "__main__":
    serve(reload=True)
