import hmac
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .agent import get_service
from .errors import ToolSyncError
from .settings import get_settings


def setup_server_logging() -> logging.Logger:
    """Configure and return the server logger."""
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("toolsync.server")
    if logger.handlers:
        return logger

    logger.setLevel(get_settings().log_level)
    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    return logger


LOGGER = setup_server_logging()
settings = get_settings()

app = FastAPI(
    title="toolsync webhook",
    version="0.1.0",
    debug=settings.debug,
)


def _signature_ok(request: Request) -> bool:
    expected = get_settings().webhook_signature
    if not expected:
        return True
    received = request.headers.get(get_settings().signature_header) or ""
    return hmac.compare_digest(expected.encode(), received.encode())


async def _handle_tool_sync(payload: Dict[str, Any]) -> None:
    """Run the tool sync for an MCP_SYNC webhook; failures are logged, never raised."""
    bot = payload.get("bot") or {}
    server = bot.get("mcp") or {}
    endpoint = server.get("endpoint")
    token = server.get("token") or ""
    if not endpoint:
        LOGGER.warning("MCP_SYNC without a tool-server endpoint; nothing to do")
        return

    try:
        prompt = get_settings().sync_prompt_template.format(serial_no=bot.get("serial_no", ""))
        result = await get_service().sync(endpoint, token, prompt)
        LOGGER.info(
            "Tool sync finished in %d turn(s): %s",
            result.turns,
            (result.final_text or "")[:200],
        )
    except ToolSyncError as e:
        LOGGER.exception("Tool sync failed: %s", e)
    except Exception as e:
        LOGGER.exception("Unexpected error during tool sync: %s", e)


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check for load balancers and monitoring."""
    return {"status": "ok"}


@app.post("/")
async def webhook(request: Request) -> Response:
    """Webhook entry point: dispatches on the payload's ``action``.

    Response Format:
        - {"text": str} when the bot answers in chat
        - empty 200 when the bot stays silent (including MCP_SYNC)
        - 401 when the signature header does not match
    """
    if not _signature_ok(request):
        return Response(status_code=401)

    try:
        payload = await request.json()
    except ValueError as e:
        LOGGER.error("Invalid webhook payload (not JSON): %s", e)
        return Response(status_code=400)

    if not isinstance(payload, dict):
        LOGGER.error("Invalid webhook payload (not an object)")
        return Response(status_code=400)

    action = payload.get("action")
    LOGGER.info("Webhook action=%s", action)

    if action == "MCP_SYNC":
        await _handle_tool_sync(payload)
        return Response(status_code=200)

    if action == "REACT_BOT_MESSAGE":
        reaction = payload.get("reaction") or {}
        return JSONResponse({"text": f"Reaction ({reaction.get('emoji', '')}) received."})

    if action == "GUEST_USER_CHAT":
        bot_name = (payload.get("bot") or {}).get("name", "")
        return JSONResponse({"text": f"To ask the bot a question, mention [{bot_name}]."})

    if action in ("MENTION", "THREAD", "NOTIFICATION"):
        current = payload.get("current") or {}
        text = await get_service().chat(payload.get("history") or [], str(current.get("text") or ""))
        if text:
            return JSONResponse({"text": text})
        return Response(status_code=200)

    return Response(status_code=200)


def run() -> None:
    """Run the webhook server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "toolsync.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
