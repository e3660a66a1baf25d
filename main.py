"""
Keychain Editor - Main Entry Point

A local FastAPI application that exposes the keychain of an encrypted iOS
backup for inspection and editing, and returns the modified keychain
container. Runs on 127.0.0.1 on a free port unless configured otherwise.
"""

import json
import logging
import socket
from typing import Any

from fastapi import FastAPI, Request, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware

from config import config, VERSION
from errors import CapabilityError, FormatInconsistencyError, PreconditionError
from backup import KeychainSession, check_backup_request
from keychain import DeleteDescriptor, EditDescriptor

__version__ = VERSION

logger = logging.getLogger(__name__)

CONTAINER_FILENAME = "keychain-backup.plist"


# Create FastAPI app
app = FastAPI(
    title="Keychain Editor",
    description="Local editor for the keychain of encrypted iOS backups",
    version=__version__,
)

# CORS middleware (the browser client is served from another port)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when allow_origins is "*"
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# ============================================================================
# Helpers
# ============================================================================

async def read_body(request: Request) -> dict[str, Any]:
    """Parse the JSON body and check path and password."""
    try:
        data = await request.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Missing path or password")

    try:
        check_backup_request(data.get("path"), data.get("password"))
    except PreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return data


def parse_items(raw: Any) -> list[dict[str, Any]]:
    """
    Item list from a request body.

    The browser client sends the list JSON-encoded as a string; a plain JSON
    list is accepted as well.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise PreconditionError("Items must be a JSON list")
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise PreconditionError("Items must be a JSON list of objects")
    return raw


def session_for(data: dict[str, Any]) -> KeychainSession:
    """Create the session for a request."""
    return KeychainSession(data["path"], data["password"], config)


def container_response(content: bytes) -> Response:
    return Response(
        content=content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename={CONTAINER_FILENAME}"},
    )


async def run_operation(operation):
    """Await a session operation, translating failures to HTTP errors."""
    try:
        return await operation
    except PreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CapabilityError as e:
        logger.error(f"irestore error: {e}")
        raise HTTPException(status_code=500, detail=f"irestore error: {e}")
    except FormatInconsistencyError as e:
        logger.error(f"Keychain format error: {e}")
        raise HTTPException(status_code=500, detail=f"Keychain format error: {e}")


# ============================================================================
# Keychain API
# ============================================================================

@app.post("/decrypt")
async def decrypt(request: Request):
    """Editable view of every keychain class."""
    data = await read_body(request)
    session = session_for(data)
    return await run_operation(session.inspect())


@app.post("/update")
async def update(request: Request):
    """Apply edits and return the updated keychain container."""
    data = await read_body(request)
    try:
        items = parse_items(data.get("items", []))
    except PreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))

    edits = [EditDescriptor.from_item(item) for item in items]
    session = session_for(data)
    content = await run_operation(session.update(edits))
    return container_response(content)


@app.post("/delete")
async def delete(request: Request):
    """Delete keychain items and return the updated keychain container."""
    data = await read_body(request)
    if not data.get("items"):
        raise HTTPException(status_code=400, detail="Missing items to delete")
    try:
        items = parse_items(data["items"])
    except PreconditionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not items:
        raise HTTPException(status_code=400, detail="No items specified for deletion")

    deletes = [DeleteDescriptor.from_item(item) for item in items]
    session = session_for(data)
    content = await run_operation(session.delete(deletes))
    return container_response(content)


# ============================================================================
# Version API
# ============================================================================

@app.get("/api/version")
async def get_version():
    """Get current application version."""
    return {
        "version": __version__,
        "app_name": "Keychain Editor",
    }


# ============================================================================
# Main Entry Point
# ============================================================================

def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket up front so a port of 0 resolves before startup."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind((host, port))
    return sock


def write_port_file(port: int) -> None:
    """Tell the browser client which port the server is listening on."""
    if config.PORT_FILE is None:
        return
    config.PORT_FILE.write_text(config.port_file_content(port))
    logger.info(f"Port {port} written to {config.PORT_FILE}")


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    sock = bind_socket(config.HOST, config.PORT)
    port = sock.getsockname()[1]
    write_port_file(port)

    server = uvicorn.Server(uvicorn.Config(
        app,
        host=config.HOST,
        port=port,
        log_level=config.LOG_LEVEL,
    ))
    logger.info(f"Keychain Editor running on http://{config.HOST}:{port}")
    server.run(sockets=[sock])
