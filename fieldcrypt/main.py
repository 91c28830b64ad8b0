#!/usr/bin/env python3
"""
fieldcrypt - control API
Configuration, manual encrypt/decrypt and intercept queue for the mitmproxy addon
"""

import asyncio
import hashlib
import json
import logging
import os
import shlex
import shutil
import subprocess
import sys
import threading
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from pydantic import BaseModel, ValidationError

from fieldcrypt import cipher_engine
from fieldcrypt.config import MODES, ConfigStore, action_file
from fieldcrypt.encoding import OPERATION_MAP, run_operation
from fieldcrypt.errors import ConfigInvalid, CryptoFailure, FieldCryptError, NotApplicable
from fieldcrypt.settings import load_settings

settings = load_settings()
connections: List[WebSocket] = []
proxy_process: Optional[subprocess.Popen] = None
intercepted_messages: Dict[str, dict] = {}
store = ConfigStore(path=settings.config_path)

# --- Logging ---
logger = logging.getLogger('fieldcrypt')

def setup_logging():
    """Configure logging once."""
    if logger.handlers:
        return
    level = getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(level=level, format=settings.log_format)
    logger.setLevel(level)
    logger.info('Logging initialized (level=%s)', settings.log_level)


class TextPayload(BaseModel):
    text: str

class ConvertRequest(BaseModel):
    operation: str
    input: str

class ForwardBody(BaseModel):
    body: Optional[str] = None


def config_view() -> dict:
    cfg = store.snapshot()
    return {
        **cfg.model_dump(),
        "algorithm": cfg.algorithm,
        "valid": cfg.is_valid(),
        "errors": cfg.validation_errors(),
    }


def _http_error(e: FieldCryptError) -> HTTPException:
    status = 422 if isinstance(e, CryptoFailure) else 400
    return HTTPException(status_code=status, detail={"code": e.code, "message": e.message})


def _action_dir() -> Path:
    return (store.path or settings.config_path).parent


def _release(message_id: str, action: dict):
    action_file(message_id, _action_dir()).write_text(json.dumps(action))


# --- Proxy process ---

def _log_lines(stream, emit, label: str):
    """Forward each non-empty line of a child process stream to the log."""
    if stream is None:
        return
    try:
        for line in stream:
            if line.strip():
                emit('[%s] %s', label, line.rstrip())
    except (OSError, ValueError) as e:
        logger.debug('Stopped reading %s: %s', label, e)


def _mitmdump_binary() -> Optional[Path]:
    """mitmdump from the running environment first, then PATH."""
    local = Path(sys.executable).with_name("mitmdump")
    if local.exists():
        return local
    found = shutil.which("mitmdump")
    return Path(found) if found else None


def mitmdump_command(binary: Path, port: int, mode: str, extra_args: str = "") -> List[str]:
    addon_path = Path(__file__).parent / "mitm_addon.py"
    return [str(binary), "--mode", mode, "-p", str(port), "-s", str(addon_path),
            "--set", "connection_strategy=lazy", "--ssl-insecure", *shlex.split(extra_args)]


def _proxy_running() -> bool:
    return proxy_process is not None and proxy_process.poll() is None


async def start_proxy(port: Optional[int] = None, mode: str = "regular", extra_args: str = ""):
    global proxy_process
    port = port or settings.proxy_port
    if _proxy_running():
        return {"status": "already_running", "port": port}

    binary = _mitmdump_binary()
    if binary is None:
        logger.error("mitmdump not found next to %s or on PATH", sys.executable)
        return {"status": "failed", "error": "mitmdump not found in venv or PATH"}

    store.flush()
    cmd = mitmdump_command(binary, port, mode, extra_args)
    handoff = str(store.path or settings.config_path)
    logger.info("Launching proxy on port %s (handoff %s): %s", port, handoff, " ".join(cmd))
    proxy_process = subprocess.Popen(
        cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True,
        env={**os.environ, "FIELDCRYPT_CONFIG_PATH": handoff},
    )
    await asyncio.sleep(settings.proxy_startup_wait)

    if not _proxy_running():
        try:
            stdout, stderr = proxy_process.communicate(timeout=1.0)
        except subprocess.TimeoutExpired:
            stdout, stderr = "", ""
        logger.error("Proxy exited with %s: %s", proxy_process.returncode, (stderr or stdout).strip())
        return {"status": "failed", "error": stderr or stdout or "Proxy exited immediately"}

    for stream, emit, label in ((proxy_process.stdout, logger.info, "mitm:stdout"),
                                (proxy_process.stderr, logger.error, "mitm:stderr")):
        threading.Thread(target=_log_lines, args=(stream, emit, label), daemon=True).start()
    return {"status": "started", "port": port, "pid": proxy_process.pid}

async def stop_proxy():
    global proxy_process
    if proxy_process is None:
        return {"status": "not_running"}
    process, proxy_process = proxy_process, None
    logger.info('Stopping mitmproxy (pid=%s)', process.pid)
    process.terminate()
    try:
        process.wait(timeout=settings.proxy_stop_timeout)
    except subprocess.TimeoutExpired:
        logger.warning('mitmproxy ignored SIGTERM; killing pid %s', process.pid)
        process.kill()
    return {"status": "stopped"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    store.flush()
    logger.info('Runtime config handoff at %s', store.path)
    yield
    await stop_proxy()

app = FastAPI(title="fieldcrypt API", lifespan=lifespan)
app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True, allow_methods=["*"], allow_headers=["*"])


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    connections.append(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        # broadcast() may already have dropped it after a failed send
        if websocket in connections:
            connections.remove(websocket)

async def broadcast(data: dict):
    for conn in list(connections):
        try:
            await conn.send_json(data)
        except (RuntimeError, WebSocketDisconnect):
            if conn in connections:
                connections.remove(conn)


# --- Configuration ---

@app.get("/api/config")
async def get_config():
    return config_view()

@app.put("/api/config")
async def update_config(changes: dict = Body(...)):
    try:
        cfg = store.update(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    logger.info('Config updated (%s): %s', ", ".join(sorted(changes)), cfg.summary())
    await broadcast({"type": "config_updated"})
    return config_view()

@app.post("/api/config/reset")
async def reset_config():
    store.reset()
    logger.info('Config reset to defaults')
    await broadcast({"type": "config_updated"})
    return config_view()

@app.get("/api/config/valid")
async def config_valid():
    cfg = store.snapshot()
    return {"valid": cfg.is_valid(), "errors": cfg.validation_errors()}

@app.post("/api/config/test")
async def test_config():
    cfg = store.snapshot()
    try:
        cipher_engine.check_configuration(cfg)
    except (ConfigInvalid, CryptoFailure) as e:
        logger.info('Configuration test failed: %s', e.message)
        return {"success": False, "algorithm": cfg.algorithm, "error": e.message}
    return {"success": True, "algorithm": cfg.algorithm}

@app.post("/api/keys/generate")
async def generate_key(bits: Optional[int] = None, apply: bool = False):
    bits = bits or store.get("key_size")
    try:
        key = cipher_engine.generate_key(bits)
    except ConfigInvalid as e:
        raise _http_error(e)
    if apply:
        store.update(key_b64=key, key_size=bits)
        await broadcast({"type": "config_updated"})
    return {"key": key, "bits": bits}

@app.post("/api/iv/generate")
async def generate_iv(mode: Optional[str] = None, apply: bool = False):
    mode = mode or store.get("mode")
    if mode not in MODES:
        raise HTTPException(status_code=400, detail=f"Unsupported mode: {mode}")
    iv = cipher_engine.generate_iv(mode)
    if apply:
        store.update(iv_b64=iv or "")
        await broadcast({"type": "config_updated"})
    return {"iv": iv, "mode": mode}


# --- Manual operations ---

@app.post("/api/crypto/decrypt")
async def manual_decrypt(payload: TextPayload):
    try:
        result = cipher_engine.manual_decrypt(payload.text, store.snapshot())
    except (ConfigInvalid, CryptoFailure, NotApplicable) as e:
        logger.error('Error decrypting: %s', e.message)
        raise _http_error(e)
    return {"result": result}

@app.post("/api/crypto/encrypt")
async def manual_encrypt(payload: TextPayload):
    try:
        result = cipher_engine.manual_encrypt(payload.text, store.snapshot())
    except (ConfigInvalid, CryptoFailure, NotApplicable) as e:
        logger.error('Error encrypting: %s', e.message)
        raise _http_error(e)
    return {"result": result}

@app.get("/api/convert/operations")
async def get_convert_operations():
    return {"operations": sorted(OPERATION_MAP)}

@app.post("/api/convert")
async def convert(req: ConvertRequest):
    if req.operation not in OPERATION_MAP:
        raise HTTPException(status_code=400, detail=f"Unknown operation: {req.operation}")
    try:
        return {"output": run_operation(req.operation, req.input)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"{req.operation} failed: {e}")


# --- Intercept queue ---

@app.get("/api/intercept/status")
async def get_intercept_status():
    return {"enabled": store.get("intercept_enabled"), "pending_count": len(intercepted_messages)}

@app.post("/api/intercept/toggle")
async def toggle_intercept():
    enabled = not store.get("intercept_enabled")
    store.update(intercept_enabled=enabled)
    logger.info('Intercept toggled -> %s', enabled)
    await broadcast({"type": "intercept_status", "enabled": enabled})
    return {"enabled": enabled}

@app.get("/api/intercept/pending")
async def get_pending():
    return list(intercepted_messages.values())

@app.post("/api/intercept/{message_id}/forward")
async def forward_message(message_id: str, modified: Optional[ForwardBody] = Body(None)):
    if message_id not in intercepted_messages:
        raise HTTPException(status_code=404)
    intercepted_messages.pop(message_id)
    _release(message_id, {"action": "forward", "modified": modified.model_dump() if modified else None})
    await broadcast({"type": "intercept_forwarded", "request_id": message_id})
    return {"status": "forwarded"}

@app.post("/api/intercept/{message_id}/drop")
async def drop_message(message_id: str):
    if message_id not in intercepted_messages:
        raise HTTPException(status_code=404)
    intercepted_messages.pop(message_id)
    _release(message_id, {"action": "drop"})
    await broadcast({"type": "intercept_dropped", "request_id": message_id})
    return {"status": "dropped"}

@app.post("/api/intercept/forward-all")
async def forward_all():
    for mid in list(intercepted_messages.keys()):
        _release(mid, {"action": "forward"})
    count = len(intercepted_messages)
    intercepted_messages.clear()
    await broadcast({"type": "intercept_all_forwarded"})
    return {"status": "forwarded", "count": count}

@app.post("/api/intercept/drop-all")
async def drop_all():
    for mid in list(intercepted_messages.keys()):
        _release(mid, {"action": "drop"})
    count = len(intercepted_messages)
    intercepted_messages.clear()
    return {"status": "dropped", "count": count}

@app.post("/api/internal/intercept")
async def receive_intercept(data: dict = Body(...)):
    mid = data.get("request_id") or hashlib.md5(str(datetime.now()).encode()).hexdigest()[:12]
    logger.debug('Intercept incoming: %s %s %s', data.get('direction'), data.get('method'), data.get('url'))
    intercepted_messages[mid] = {"id": mid, "direction": data.get("direction", "request"),
        "method": data.get("method"), "url": data.get("url"), "status_code": data.get("status_code"),
        "headers": data.get("headers", {}), "body": data.get("body"), "timestamp": datetime.now().isoformat()}
    await broadcast({"type": "intercept_new", "data": intercepted_messages[mid]})
    return {"status": "intercepted", "request_id": mid}

@app.post("/api/internal/release")
async def release_intercept(data: dict = Body(...)):
    """The addon gave up waiting and forwarded the message itself."""
    mid = data.get("request_id")
    if intercepted_messages.pop(mid, None) is None:
        return {"status": "unknown", "request_id": mid}
    logger.info('Intercept %s released by proxy (%s)', mid, data.get("reason", "timeout"))
    await broadcast({"type": "intercept_expired", "request_id": mid})
    return {"status": "released", "request_id": mid}


# --- Proxy endpoints ---

@app.post("/api/proxy/start")
async def api_start_proxy(port: Optional[int] = None, mode: str = "regular", extra: str = ""):
    return await start_proxy(port, mode, extra)

@app.post("/api/proxy/stop")
async def api_stop_proxy():
    return await stop_proxy()

@app.get("/api/proxy/status")
async def proxy_status():
    cfg = store.snapshot()
    return {"running": _proxy_running(), "enabled": cfg.enabled, "intercept_enabled": cfg.intercept_enabled}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
