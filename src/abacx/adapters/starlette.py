from __future__ import annotations

import inspect
import json
import logging
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Union

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..authorizer import Authorizer
from ..core.errors import Unauthenticated
from ..core.model import Check, Subject

logger = logging.getLogger("abacx.adapters.starlette")

SubjectGetter = Callable[[Request], Union[Optional[Subject], Awaitable[Optional[Subject]]]]
ResourceGetter = Callable[[Request], Union[Optional[Mapping[str, Any]], Awaitable[Optional[Mapping[str, Any]]]]]

MAX_BATCH_CHECKS = 100


async def _call(fn: Callable[[Request], Any], request: Request) -> Any:
    out = fn(request)
    if hasattr(out, "__await__"):
        out = await out
    return out


def _deny_headers(reason: Optional[str], add_headers: bool) -> dict[str, str]:
    if not add_headers or not reason:
        return {}
    return {"X-ABACX-Reason": str(reason)}


def require_permission(
    authorizer: Authorizer,
    permission: Any,
    get_subject: SubjectGetter,
    get_resource: Optional[ResourceGetter] = None,
    *,
    add_headers: bool = False,
) -> Callable[..., Any]:
    """
    Route guard for a single permission.

    Works both:
      - as a decorator on an async or sync endpoint;
      - as a dependency-like callable: ``deny = await guard(request)`` returns
        ``None`` when allowed, otherwise a 401/403 JSON response.
    """

    async def _dependency(request: Request) -> Optional[JSONResponse]:
        try:
            subject = await _call(get_subject, request)
            resource = await _call(get_resource, request) if get_resource is not None else None
            decision = await authorizer.evaluate(subject, permission, resource)
        except Unauthenticated:
            return JSONResponse({"error": "Unauthorized"}, status_code=401)
        if decision.allowed:
            return None
        logger.debug("abacx: %s %s denied (%s)", request.method, request.url.path, decision.reason)
        return JSONResponse(
            {"error": "Forbidden"},
            status_code=403,
            headers=_deny_headers(decision.reason, add_headers),
        )

    def _decorator_or_dependency(arg: Any) -> Any:
        if not callable(arg):
            return _dependency(arg)
        handler = arg

        async def _endpoint(request: Request) -> Any:
            deny = await _dependency(request)
            if deny is not None:
                return deny
            if inspect.iscoroutinefunction(handler):
                return await handler(request)
            return await run_in_threadpool(handler, request)

        _endpoint.__name__ = getattr(handler, "__name__", "endpoint")
        _endpoint.__doc__ = getattr(handler, "__doc__", None)
        return _endpoint

    return _decorator_or_dependency


def authorize_endpoint(authorizer: Authorizer, get_subject: SubjectGetter) -> Callable[[Request], Awaitable[JSONResponse]]:
    """
    ``POST /authorize`` endpoint used by the dashboard to gate navigation.

    Body: ``{"checks": [{"permission": ..., "resource": {...}}, ...]}`` or a
    single ``{"permission": ..., "resource": {...}}``.
    Reply: ``{"success": true, "results": [bool, ...]}`` in input order.
    """

    async def endpoint(request: Request) -> JSONResponse:
        try:
            subject = await _call(get_subject, request)
        except Unauthenticated:
            subject = None
        if subject is None:
            return JSONResponse({"success": False, "error": "Unauthorized"}, status_code=401)
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse({"success": False, "error": "Invalid JSON body"}, status_code=400)

        raw_checks: Any = body.get("checks") if isinstance(body, dict) and "checks" in body else [body]
        if not isinstance(raw_checks, list) or not all(isinstance(c, dict) for c in raw_checks):
            return JSONResponse({"success": False, "error": "checks must be a list of objects"}, status_code=400)
        if any(c.get("resource") is not None and not isinstance(c["resource"], dict) for c in raw_checks):
            return JSONResponse({"success": False, "error": "resource must be an object"}, status_code=400)
        if len(raw_checks) > MAX_BATCH_CHECKS:
            return JSONResponse(
                {"success": False, "error": f"at most {MAX_BATCH_CHECKS} checks per request"}, status_code=400
            )

        checks: List[Check] = [Check.from_mapping(c) for c in raw_checks]
        results = await authorizer.authorize_batch(subject, checks)
        return JSONResponse({"success": True, "results": results})

    return endpoint


__all__ = ["require_permission", "authorize_endpoint", "MAX_BATCH_CHECKS"]
