from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from rewards_ledger.core.exceptions import AppError
from rewards_ledger.core.logging import bind_partner, get_logger
from rewards_ledger.partners import get_adapter
from rewards_ledger.services import postbacks as postbacks_service

router = APIRouter()
log = get_logger(__name__)

FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _merge(params: dict, items) -> None:
    for key, value in items:
        if key in params:
            existing = params[key]
            params[key] = (existing if isinstance(existing, list) else [existing]) + [value]
        else:
            params[key] = value


async def collect_params(request: Request) -> dict:
    """Query string merged with the body; body values win on POST."""
    params: dict = {}
    _merge(params, request.query_params.multi_items())
    if request.method != "POST":
        return params
    content_type = request.headers.get("content-type", "").lower()
    body: dict = {}
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            body = data
    elif content_type.startswith(FORM_TYPES):
        form = await request.form()
        _merge(body, ((k, v) for k, v in form.multi_items() if isinstance(v, str)))
    params.update(body)
    return params


@router.api_route("/{partner}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"], response_class=PlainTextResponse)
async def partner_postback(partner: str, request: Request):
    """Partner postback: plain-text reply, status code is what partners act on."""
    adapter = get_adapter(partner)
    if adapter is None:
        return PlainTextResponse("Unknown partner", status_code=404)
    bind_partner(adapter.name)
    params = await collect_params(request)
    try:
        reply = await postbacks_service.handle_postback(adapter, request.method, params)
    except AppError as exc:
        if exc.status_code >= 500:
            log.error("postback_failed", code=exc.code)
        elif exc.status_code != 200:
            log.warning("postback_rejected", code=exc.code, message=exc.message)
        return PlainTextResponse(exc.message, status_code=exc.status_code)
    return PlainTextResponse(reply.body)
