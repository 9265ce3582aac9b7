"""
Provider gateway proxy.

Forwards any method/path under the proxy prefix to the provider API with the
server-held credential. Upstream status and JSON body are returned unchanged;
local configuration or communication failures become 500 {"error": ...}.
"""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from api.dependencies import get_credentialed_gateway
from core.logging_config import get_logger
from domain.payment.exceptions import TerminalPaymentError
from infrastructure.external.api_clients.credentialed_gateway import CredentialedGateway


logger = get_logger(__name__)

router = APIRouter(tags=["Gateway Proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


async def _read_json_body(request: Request):
    raw = await request.body()
    if not raw:
        return None
    return json.loads(raw)


@router.api_route("/{path:path}", methods=PROXY_METHODS, summary="Forward a request to the payment provider")
async def forward(
    path: str,
    request: Request,
    gateway: CredentialedGateway = Depends(get_credentialed_gateway),
):
    try:
        body = await _read_json_body(request)
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Request body must be JSON"})

    try:
        upstream = await gateway.forward(
            request.method,
            path,
            headers=request.headers,
            body=body,
            params=dict(request.query_params),
        )
    except TerminalPaymentError as exc:
        logger.error("proxy_forward_failed", path=path, error=exc.message, error_type=exc.error_type)
        return JSONResponse(status_code=500, content={"error": exc.message})

    if upstream.data is None:
        return Response(status_code=upstream.status_code)
    return JSONResponse(status_code=upstream.status_code, content=upstream.data)
