"""HTTP JSON API for beadwork.

Single-project local server. A module-level ``_db`` is set at startup and
injected via ``Depends(_get_db)``; tests set it directly.

Usage:
    beadwork dashboard                    # Serves localhost:8377
    beadwork dashboard --port 9000        # Custom port
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from beadwork.core import DB_FILENAME, FORMULAS_DIR_NAME, BeadDB, find_beadwork_root, read_config
from beadwork.deps import BLOCKING_DEP_TYPES, BLOCKS
from beadwork.errors import BeadworkError, error_code, error_message
from beadwork.formulas import cook, find_formula
from beadwork.validation import sanitize_actor, validate_item_id, validate_policy

DEFAULT_PORT = 8377

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: BeadDB | None = None
_beadwork_dir: Path | None = None

_STATUS_BY_CODE = {
    "not_found": 404,
    "validation_error": 400,
    "invalid_policy": 400,
    "unclassified_dep_type": 400,
    "no_actionable_steps": 422,
    "integrity_error": 409,
    "storage_error": 500,
}


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _exception_response(exc: BaseException, details: dict[str, Any] | None = None) -> JSONResponse:
    code = error_code(exc)
    return _error_response(error_message(exc), code.upper(), _STATUS_BY_CODE.get(code, 500), details)


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body


def _safe_int(value: str, name: str, *, min_value: int | None = None) -> int | JSONResponse:
    """Parse a query-param string to int, returning a 400 error response on failure."""
    try:
        result = int(value)
    except (ValueError, TypeError):
        return _error_response(
            f'Invalid value for {name}: "{value}". Must be an integer.',
            "VALIDATION_ERROR",
            400,
        )
    if min_value is not None and result < min_value:
        return _error_response(
            f"Invalid value for {name}: {result}. Must be >= {min_value}.",
            "VALIDATION_ERROR",
            400,
        )
    return result


def _get_db() -> BeadDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def _bond_request(body: dict[str, Any]) -> tuple[str, dict[str, Any], Any] | JSONResponse:
    """Validate a bond body; returns (head_id, options, formula) or an error response."""
    head_id, err = validate_item_id(body.get("head_id"))
    if err:
        return _error_response(f"head_id: {err}", "VALIDATION_ERROR", 400)
    name = body.get("formula")
    if not isinstance(name, str) or not name:
        return _error_response("formula must be a non-empty string", "VALIDATION_ERROR", 400)
    if _beadwork_dir is None:
        return _error_response("Project directory not configured", "NOT_INITIALIZED", 500)
    formula = find_formula(_beadwork_dir / FORMULAS_DIR_NAME, name)
    if formula is None:
        return _error_response(f"Formula not found: {name}", "NOT_FOUND", 404, {"formula": name})

    raw_policy = body.get("policy", read_config(_beadwork_dir).get("default_policy", "default"))
    policy, err = validate_policy(raw_policy)
    if err:
        return _error_response(err, "VALIDATION_ERROR", 400, {"policy": raw_policy})
    attach_type = body.get("type")
    if attach_type is not None and attach_type not in BLOCKING_DEP_TYPES:
        return _error_response(
            f"type must be one of: {', '.join(sorted(BLOCKING_DEP_TYPES))}",
            "VALIDATION_ERROR",
            400,
            {"type": attach_type},
        )
    options = {
        "policy": policy,
        "explicit_type_set": attach_type is not None,
        "attach_type": attach_type or BLOCKS,
    }
    return head_id, options, formula


# ---------------------------------------------------------------------------
# Project router
# ---------------------------------------------------------------------------


def _create_project_router() -> Any:
    """Build the APIRouter containing all project-scoped endpoints."""
    from fastapi import APIRouter, Depends, Request
    from fastapi.responses import JSONResponse

    # Expose Request in module globals so PEP 563 deferred annotations resolve
    globals()["Request"] = Request

    router = APIRouter()

    # Handlers are async on purpose: synchronous SQLite I/O on the event loop
    # thread keeps the single shared connection out of the threadpool.

    @router.get("/items")
    async def api_items(request: Request, db: BeadDB = Depends(_get_db)) -> JSONResponse:
        params = request.query_params
        limit = _safe_int(params.get("limit", "100"), "limit", min_value=0)
        if isinstance(limit, JSONResponse):
            return limit
        offset = _safe_int(params.get("offset", "0"), "offset", min_value=0)
        if isinstance(offset, JSONResponse):
            return offset
        items = db.list_items(
            status=params.get("status"),
            kind=params.get("kind"),
            formula=params.get("formula"),
            limit=limit,
            offset=offset,
        )
        return JSONResponse([i.to_dict() for i in items])

    @router.get("/item/{item_id}")
    async def api_item(item_id: str, db: BeadDB = Depends(_get_db)) -> JSONResponse:
        try:
            item = db.get_item(item_id)
        except KeyError as e:
            return _exception_response(e, {"item_id": item_id})
        data: dict[str, Any] = dict(item.to_dict())
        data["events"] = db.get_item_events(item_id)
        data["blocked_reasons"] = db.readiness.blocked_reasons(item_id).to_dict()
        return JSONResponse(data)

    @router.get("/ready")
    async def api_ready(db: BeadDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse([i.to_dict() for i in db.get_ready()])

    @router.get("/blocked")
    async def api_blocked(db: BeadDB = Depends(_get_db)) -> JSONResponse:
        result = []
        for item in db.get_blocked():
            data: dict[str, Any] = dict(item.to_dict())
            data["blocked_containers"] = db.readiness.blocked_reasons(item.id).blocked_containers
            result.append(data)
        return JSONResponse(result)

    @router.get("/dependencies")
    async def api_dependencies(db: BeadDB = Depends(_get_db)) -> JSONResponse:
        return JSONResponse(db.get_all_dependencies())

    @router.post("/bond")
    async def api_bond(request: Request, db: BeadDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        parsed = _bond_request(body)
        if isinstance(parsed, JSONResponse):
            return parsed
        head_id, options, formula = parsed
        actor, err = sanitize_actor(body.get("actor", "dashboard"))
        if err:
            return _error_response(err, "VALIDATION_ERROR", 400)
        try:
            result = db.bond_formula(head_id, cook(formula), actor=actor, **options)
        except (BeadworkError, KeyError, ValueError) as e:
            return _exception_response(e, {"head_id": head_id, "formula": formula.name})
        return JSONResponse(result.to_dict(), status_code=201)

    @router.post("/bond/dry-run")
    async def api_bond_dry_run(request: Request, db: BeadDB = Depends(_get_db)) -> JSONResponse:
        body = await _parse_json_body(request)
        if isinstance(body, JSONResponse):
            return body
        parsed = _bond_request(body)
        if isinstance(parsed, JSONResponse):
            return parsed
        head_id, options, formula = parsed
        try:
            projection = db.bond_dry_run(head_id, cook(formula), **options)
        except (BeadworkError, KeyError, ValueError) as e:
            return _exception_response(e, {"head_id": head_id, "formula": formula.name})
        return JSONResponse(projection.to_dict())

    return router


def create_app() -> Any:
    """Create the FastAPI application with all API endpoints."""
    from fastapi import FastAPI

    app = FastAPI(title="Beadwork", docs_url=None, redoc_url=None)
    app.include_router(_create_project_router(), prefix="/api")
    return app


def main(port: int = DEFAULT_PORT) -> None:
    """Start the API server for the project discovered from cwd."""
    import uvicorn

    global _db, _beadwork_dir

    beadwork_dir = find_beadwork_root()
    config = read_config(beadwork_dir)
    _beadwork_dir = beadwork_dir
    _db = BeadDB(
        beadwork_dir / DB_FILENAME,
        prefix=config.get("prefix", "beadwork"),
        check_same_thread=False,
    )
    _db.initialize()

    from beadwork.logging import setup_logging

    setup_logging(beadwork_dir)
    app = create_app()
    print(f"Beadwork API: http://localhost:{port}/api")
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
