"""
阅读路由：即时转换预览
  /api/editions/{work_id}          典籍的版本与卷目
  /read/{work_id}/{juan}?ed=CBETA  某卷某版本的 HTML
  /api/check/{work_id}             检查结果
"""

import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from cbeta_p5a.core.canons import CBETA_EDITION
from cbeta_p5a.core.checker import ValidationEngine
from cbeta_p5a.core.document import load_document
from cbeta_p5a.core.errors import ConversionError
from cbeta_p5a.core.policies import HtmlPolicy
from cbeta_p5a.core.transducer import StructuralTransducer
from cbeta_p5a.etl.batch import find_xml_files
from cbeta_p5a.etl.gaiji_map import GaijiResolver
from cbeta_p5a.etl.writers import render_juan_page

log = logging.getLogger(__name__)

router = APIRouter(tags=["reader"])


# ─── 响应模型 ─────────────────────────────────────────────────
class JuanInfo(BaseModel):
    juan: int
    sutra_no: str


class EditionsResponse(BaseModel):
    work: str
    title: str
    base: str
    editions: list[str]
    juans: list[JuanInfo]


class DiagnosticOut(BaseModel):
    code: str
    message: str
    document: str
    lb: str
    line_head: str


class CheckResponse(BaseModel):
    work: str
    ok: bool
    diagnostics: list[DiagnosticOut]
    missing_gaiji: dict[str, list[str]]


# ─── 共用 ─────────────────────────────────────────────────────
def _gaiji(request: Request):
    state = request.app.state
    if getattr(state, "gaiji", None) is None:
        from cbeta_p5a import config
        if not config.GAIJI_PATH.exists():
            raise HTTPException(503, "缺字资料未配置")
        state.gaiji = GaijiResolver(json_path=str(config.GAIJI_PATH))
    return state.gaiji


def _work_files(request: Request, work_id: str):
    xml_root = request.app.state.xml_root
    try:
        paths = find_xml_files(xml_root, work_id)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not paths:
        raise HTTPException(404, f"找不到典籍 {work_id}")
    return paths


def _convert_all(request: Request, work_id: str):
    gaiji = _gaiji(request)
    results = []
    for path in _work_files(request, work_id):
        transducer = StructuralTransducer(HtmlPolicy(), gaiji, xml_root=request.app.state.xml_root)
        try:
            results.append(transducer.convert(load_document(path)))
        except ConversionError as e:
            raise HTTPException(422, str(e))
    return results


# ─── 路由 ─────────────────────────────────────────────────────
@router.get("/api/editions/{work_id}", response_model=EditionsResponse)
async def list_editions(request: Request, work_id: str):
    """典籍涉及的版本与卷目"""
    converted = _convert_all(request, work_id)
    editions = []
    juans = []
    for c in converted:
        for ed in c.sorted_editions:
            if ed not in editions:
                editions.append(ed)
        juans += [JuanInfo(juan=n, sutra_no=c.doc.sutra_no) for n, _pieces in c.juans]

    return EditionsResponse(
        work=work_id,
        title=converted[0].meta["title"],
        base=converted[0].base,
        editions=editions,
        juans=juans,
    )


@router.get("/read/{work_id}/{juan}", response_class=HTMLResponse)
async def read_juan(request: Request, work_id: str, juan: int, ed: str = Query(CBETA_EDITION)):
    """某卷某版本的 HTML（ed 可写 CBETA 或 【CBETA】）"""
    edition = ed if ed.startswith("【") else f"【{ed}】"
    for c in _convert_all(request, work_id):
        for n, pieces in c.juans:
            if n != juan:
                continue
            if edition not in c.editions:
                raise HTTPException(404, f"本卷没有版本 {edition}")
            return HTMLResponse(render_juan_page(c, n, pieces, edition))
    raise HTTPException(404, f"找不到第 {juan} 卷")


@router.get("/api/check/{work_id}", response_model=CheckResponse)
async def check_work(request: Request, work_id: str):
    """检查典籍的 XML"""
    engine = ValidationEngine(gaiji=getattr(request.app.state, "gaiji", None))
    engine.check_paths(_work_files(request, work_id))
    diagnostics = [
        DiagnosticOut(code=d.code, message=d.message, document=d.document, lb=d.lb,
                      line_head=d.line_head)
        for items in engine.by_code().values() for d in items
    ]
    return CheckResponse(
        work=work_id,
        ok=not engine.diagnostics,
        diagnostics=diagnostics,
        missing_gaiji=engine.missing_gaiji(),
    )
