"""
mitmproxy addon for fieldcrypt
Decrypts the configured JSON field while a message is inspected and
re-encrypts it before the message leaves the proxy.

Run with: mitmdump -s fieldcrypt/mitm_addon.py

The hooks are coroutines: a held message awaits its release file while
mitmproxy keeps serving every other flow.
"""

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import Optional

import httpx
from mitmproxy import http

from fieldcrypt.config import RuntimeConfig, action_file, load_runtime_config
from fieldcrypt.pipeline import run_hook
from fieldcrypt.settings import Settings, load_settings

logger = logging.getLogger("fieldcrypt.addon")

FORWARD = {"action": "forward"}
PREVIEW_MARKER = "\n[...TRUNCATED at {limit} bytes...]"


def preview_body(content: Optional[bytes], limit: int) -> Optional[str]:
    """Text shown in the intercept queue; binary bodies are shown as latin-1."""
    if not content:
        return None
    shown = content[:limit]
    try:
        text = shown.decode("utf-8")
    except UnicodeDecodeError:
        text = shown.decode("latin-1")
    if len(content) > limit:
        text += PREVIEW_MARKER.format(limit=limit)
    return text


async def notify_api(settings: Settings, endpoint: str, data: dict):
    """POST to the control API; the flow continues whether or not it answers."""
    url = f"{settings.backend_url}{endpoint}"
    try:
        async with httpx.AsyncClient(timeout=settings.backend_timeout) as client:
            r = await client.post(url, json=data)
        if settings.verbose:
            logger.info("[fieldcrypt][verbose] POST %s -> %s", endpoint, r.status_code)
    except httpx.HTTPError as e:
        logger.warning("[fieldcrypt][backend] POST %s failed: %s", endpoint, e)


async def wait_for_action(
    message_id: str, action_dir: Path, timeout: float, poll_interval: float = 0.1
) -> Optional[dict]:
    """Await the release file for message_id; None when nobody answered in time."""
    path = action_file(message_id, action_dir)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if path.exists():
            try:
                action = json.loads(path.read_text())
            except ValueError:
                # partially written; read again on the next tick
                action = None
            if action is not None:
                path.unlink(missing_ok=True)
                return action
        await asyncio.sleep(poll_interval)
    return None


class FieldCryptAddon:
    def __init__(self, config_path: Optional[Path] = None, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        self.config_path = Path(config_path) if config_path else self.settings.config_path

    def vlog(self, msg: str):
        if self.settings.verbose:
            logger.info(f"[fieldcrypt][verbose] {msg}")

    def load_config(self) -> RuntimeConfig:
        # fresh snapshot per hook; the control API may change it at any time
        return load_runtime_config(self.config_path)

    def _run(self, hook: str, message: http.Message) -> RuntimeConfig:
        cfg = self.load_config()
        result = run_hook(hook, message.content, cfg)
        if result.modified:
            message.content = result.content
        self.vlog(f"{hook}: {result.reason}")
        return cfg

    async def _hold(self, flow: http.HTTPFlow, direction: str, message: http.Message) -> dict:
        message_id = hashlib.md5(f"{flow.id}:{direction}".encode()).hexdigest()[:12]
        flow.metadata["fieldcrypt_message_id"] = message_id
        url = flow.request.pretty_url

        await notify_api(self.settings, "/api/internal/intercept", {
            "request_id": message_id,
            "direction": direction,
            "method": flow.request.method,
            "url": url,
            "status_code": flow.response.status_code if direction == "response" else None,
            "headers": dict(message.headers),
            "body": preview_body(message.content, self.settings.max_body_size),
        })
        logger.info(f"Holding {direction} {message_id}: {flow.request.method} {url}")

        action = await wait_for_action(
            message_id,
            self.config_path.parent,
            timeout=self.settings.intercept_timeout,
            poll_interval=self.settings.poll_interval,
        )
        if action is None:
            logger.warning(f"[fieldcrypt][intercept] no decision for {message_id} after "
                           f"{self.settings.intercept_timeout:g}s; forwarding")
            await notify_api(self.settings, "/api/internal/release",
                             {"request_id": message_id, "reason": "timeout"})
            return FORWARD
        return action

    def _apply_action(self, flow: http.HTTPFlow, action: dict, message: http.Message) -> bool:
        """Apply the user's decision; returns False when the flow was dropped."""
        if action.get("action") == "drop":
            logger.warning(f"[fieldcrypt][intercept] user dropped {flow.request.pretty_url}")
            flow.kill()
            return False
        edited = (action.get("modified") or {}).get("body")
        if edited:
            message.content = edited.encode("utf-8")
            self.vlog(f"edited body applied for {flow.metadata.get('fieldcrypt_message_id')}")
        return True

    async def _process(self, flow: http.HTTPFlow, direction: str, message: http.Message):
        cfg = self._run(f"{direction}_seen", message)
        if cfg.enabled and cfg.intercept_enabled:
            action = await self._hold(flow, direction, message)
            if not self._apply_action(flow, action, message):
                return
        self._run(f"{direction}_leaving", message)

    async def request(self, flow: http.HTTPFlow):
        """Decrypt for viewing, optionally hold, then encrypt for the server"""
        self.vlog(f"Request: {flow.request.method} {flow.request.pretty_url}")
        await self._process(flow, "request", flow.request)

    async def response(self, flow: http.HTTPFlow):
        """Decrypt what the server sent, optionally hold, then encrypt for the client"""
        if not flow.response:
            return
        self.vlog(f"Response: {flow.request.pretty_url} status={flow.response.status_code}")
        await self._process(flow, "response", flow.response)


addons = [FieldCryptAddon()]
