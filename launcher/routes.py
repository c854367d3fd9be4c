import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import replace
from functools import partial
from typing import List

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from .config import MAX_RESULT_LIMIT, clamp_max_results, load_config
from .context import AppContext
from .execute import execute_action
from .hotkey import normalize_hotkey, start_capture, stop_capture
from .index_ops import load_app_index
from .search import QueryMode
from .utils import colorize_url, log_info, log_notice, log_success, log_warn

SYSTEM_VERSION = "0.3.0"

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


# --- リクエストモデル ---
class SearchRequest(BaseModel):
    query: str = Field("", max_length=512, description="検索キーワード（空白区切り）")
    mode: str | None = Field(None)

    @field_validator("mode")
    def validate_mode(cls, v: str | None) -> str | None:
        # 未知のモードは QueryMode.parse で all 扱い
        if v is None or not str(v).strip():
            return None
        return str(v).strip().lower()


class ExecuteRequest(BaseModel):
    result_id: str = Field(..., min_length=1, max_length=2048)
    run_as_admin: bool = False


class ExcludeRequest(BaseModel):
    result_id: str = Field(..., min_length=1, max_length=2048)


class ConfigUpdate(BaseModel):
    enable_app_results: bool | None = None
    enable_bookmark_results: bool | None = None
    max_results: int | None = Field(None, ge=0, le=MAX_RESULT_LIMIT * 10)
    system_tool_exclusions: List[str] | None = None
    global_hotkey: str | None = None
    launch_on_startup: bool | None = None

    @field_validator("system_tool_exclusions")
    def validate_exclusions(cls, v: List[str] | None) -> List[str] | None:
        if v is None:
            return None
        return [item.strip() for item in v if item and item.strip()]

    @field_validator("global_hotkey")
    def validate_hotkey(cls, v: str | None) -> str | None:
        if v is None:
            return None
        normalized = normalize_hotkey(v)
        if normalized is None:
            raise ValueError("ホットキーの形式が不正です（例: Alt+Space）")
        return normalized


class HotkeyKeyRequest(BaseModel):
    key: str = Field(..., min_length=1, max_length=64)


# --- バックグラウンド再構築 ---
def get_ctx(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise HTTPException(status_code=503, detail="検索システムの初期化中です")
    return ctx


async def refresh_indexes(ctx: AppContext, reason: str) -> None:
    if ctx.refresh_in_progress:
        log_notice(f"インデックス再構築は実行中のためスキップします: {reason}")
        return
    ctx.refresh_in_progress = True
    log_info(f"インデックス再構築開始: {reason}")
    try:
        loop = asyncio.get_running_loop()
        # 走査はI/O負荷が高いのでスレッドで実施
        changed = await loop.run_in_executor(
            None,
            ctx.state.refresh_indexes,
            ctx.app_sources,
            ctx.bookmark_sources,
        )
    except Exception as exc:
        log_warn(f"インデックス再構築失敗: {reason} ({exc})")
        return
    finally:
        ctx.refresh_in_progress = False
    if changed:
        log_success(f"インデックス再構築完了: {reason}")
    else:
        log_info(f"インデックス再構築完了（変更なし）: {reason}")


def trigger_refresh(app: FastAPI, reason: str) -> None:
    ctx: AppContext = app.state.ctx
    task = asyncio.create_task(refresh_indexes(ctx, reason))
    app.state.background_tasks.add(task)
    task.add_done_callback(app.state.background_tasks.discard)


async def delayed_refresh(ctx: AppContext) -> None:
    await asyncio.sleep(max(0, ctx.config.refresh_delay_sec))
    await refresh_indexes(ctx, "startup")


async def schedule_index_rebuild(ctx: AppContext) -> None:
    interval = ctx.config.refresh_interval_sec
    if interval <= 0:
        return
    log_info(f"インデックス再構築スケジュール有効: {interval}秒ごと")
    while True:
        await asyncio.sleep(interval)
        await refresh_indexes(ctx, "schedule")


def prewarm_from_cache(ctx: AppContext) -> None:
    cached = load_app_index(ctx.state.cache_dir)
    if not cached:
        return
    # already persisted
    ctx.state.replace_app_index(cached, persist=False)
    ctx.state.ready = True
    log_info(f"アプリキャッシュから起動: apps={len(cached)}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx: AppContext | None = getattr(app.state, "ctx", None)
    if ctx is None:
        ctx = AppContext.from_config(load_config())
        app.state.ctx = ctx
    app.state.background_tasks = set()
    log_info(f"システムバージョン: {SYSTEM_VERSION}")
    prewarm_from_cache(ctx)
    startup_task = asyncio.create_task(delayed_refresh(ctx))
    schedule_task = asyncio.create_task(schedule_index_rebuild(ctx))
    port = os.getenv("PORT", "8765")
    log_info(f"アクセスURL: {colorize_url(f'http://127.0.0.1:{port}')}")
    try:
        yield
    finally:
        tasks = [startup_task, schedule_task, *app.state.background_tasks]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for session in list(ctx.capture_sessions.values()):
            stop_capture(session)
        ctx.capture_sessions.clear()


router = APIRouter(prefix="/api")


@router.post("/search")
async def search(req: SearchRequest, request: Request):
    ctx = get_ctx(request)
    loop = asyncio.get_running_loop()
    results, cached = await loop.run_in_executor(
        None, partial(ctx.state.run_search, req.query, req.mode)
    )
    return JSONResponse(
        {
            "results": [r.to_dict() for r in results],
            "count": len(results),
            "mode": QueryMode.parse(req.mode).value,
            "cached": cached,
        }
    )


@router.post("/execute")
async def execute(req: ExecuteRequest, request: Request):
    ctx = get_ctx(request)
    result, action = ctx.state.pending_action(req.result_id)
    if result is None or action is None:
        raise HTTPException(status_code=404, detail="結果が見つかりません")
    loop = asyncio.get_running_loop()
    error = await loop.run_in_executor(None, partial(execute_action, action, req.run_as_admin))
    if error:
        raise HTTPException(status_code=400, detail=error)
    ctx.state.record_execution(result, action)
    return JSONResponse({"status": "ok", "result": result.to_dict(), "kind": action.kind})


@router.get("/recent")
async def recent(request: Request):
    ctx = get_ctx(request)
    items = ctx.state.recent_items()
    return JSONResponse({"results": [item.result.to_dict() for item in items], "count": len(items)})


@router.post("/exclude")
async def exclude(req: ExcludeRequest, request: Request):
    ctx = get_ctx(request)
    try:
        pattern = ctx.state.exclude_entry(req.result_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except OSError as exc:
        log_warn(f"設定の保存に失敗しました: {exc}")
        raise HTTPException(status_code=500, detail="設定の保存に失敗しました") from exc
    trigger_refresh(request.app, "exclude")
    return JSONResponse({"status": "ok", "excluded": pattern})


@router.post("/reindex")
async def reindex(request: Request):
    get_ctx(request)
    trigger_refresh(request.app, "manual")
    return JSONResponse({"status": "scheduled"})


@router.get("/config")
async def get_config(request: Request):
    ctx = get_ctx(request)
    return JSONResponse(ctx.state.get_config().to_dict())


@router.put("/config")
async def update_config(req: ConfigUpdate, request: Request):
    ctx = get_ctx(request)
    current = ctx.state.get_config()
    changes = req.model_dump(exclude_none=True)
    if "max_results" in changes:
        changes["max_results"] = clamp_max_results(changes["max_results"])
    updated = replace(current, **changes)
    try:
        ctx.state.update_config(updated)
    except OSError as exc:
        log_warn(f"設定の保存に失敗しました: {exc}")
        raise HTTPException(status_code=500, detail="設定の保存に失敗しました") from exc
    if updated.global_hotkey != current.global_hotkey and not ctx.hotkeys.suspended:
        ctx.hotkeys.register(updated.global_hotkey)
    if updated.system_tool_exclusions != current.system_tool_exclusions:
        trigger_refresh(request.app, "config")
    return JSONResponse(updated.to_dict())


@router.post("/hotkey/capture")
async def hotkey_capture_start(request: Request):
    ctx = get_ctx(request)
    try:
        session = start_capture(ctx.hotkeys)
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    ctx.capture_sessions[session.id] = session
    return JSONResponse({"session_id": session.id, "previous_hotkey": session.previous_hotkey})


@router.post("/hotkey/capture/{session_id}/key")
async def hotkey_capture_key(session_id: str, req: HotkeyKeyRequest, request: Request):
    ctx = get_ctx(request)
    session = ctx.capture_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="キャプチャセッションが見つかりません")
    event = session.feed(req.key)
    if not session.active:
        ctx.capture_sessions.pop(session_id, None)
    return JSONResponse({"event": event.value, "shortcut": session.result, "active": session.active})


@router.delete("/hotkey/capture/{session_id}")
async def hotkey_capture_stop(session_id: str, request: Request):
    ctx = get_ctx(request)
    session = ctx.capture_sessions.pop(session_id, None)
    if session is None:
        raise HTTPException(status_code=404, detail="キャプチャセッションが見つかりません")
    stop_capture(session)
    return JSONResponse({"status": "stopped", "hotkey": ctx.hotkeys.hotkey})


@router.get("/health")
async def health(request: Request):
    ctx = get_ctx(request)
    return JSONResponse({"status": "ok", **ctx.state.describe()}, headers=NO_CACHE_HEADERS)


def create_app(ctx: AppContext | None = None) -> FastAPI:
    app = FastAPI(title="Launcher Search", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    if ctx is not None:
        app.state.ctx = ctx
    return app
