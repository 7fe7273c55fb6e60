from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from wa_rest.api import pages
from wa_rest.api.models import (
    DisconnectRequest,
    DisconnectResponse,
    GroupOut,
    GroupsResponse,
    IdentityOut,
    SendMessageForm,
    SendMessageResponse,
    StatusResponse,
)
from wa_rest.core.exceptions import AlreadyConnectedError, InvalidArgumentError
from wa_rest.core.logging import log
from wa_rest.services import qr, uploads
from wa_rest.services.whatsapp import service

router = APIRouter()


@router.get("/api")
async def api_info():
    return {
        "status": "OK",
        "message": "WhatsApp REST API is running",
        "whatsappReady": service.is_ready(),
    }


@router.get("/status", response_model=StatusResponse)
async def get_status():
    snapshot = service.get_snapshot()
    identity = None
    if snapshot.identity is not None:
        identity = IdentityOut(id=snapshot.identity.id, display_name=snapshot.identity.display_name)
    return StatusResponse(
        status="ready" if snapshot.is_ready else "not_ready",
        phase=snapshot.phase.value,
        is_ready=snapshot.is_ready,
        has_qr_code=snapshot.has_qr,
        has_socket=snapshot.has_session,
        identity=identity,
    )


@router.get("/qr")
async def get_qr():
    if service.is_ready():
        raise AlreadyConnectedError()

    token = service.current_qr()
    if not token:
        return {"status": "waiting", "message": "QR code is being generated. Please wait..."}

    return {
        "status": "success",
        "qr": token,
        "message": "Scan this QR code with WhatsApp to connect",
    }


@router.get("/qr/display", response_class=HTMLResponse)
async def display_qr():
    if service.is_ready():
        return HTMLResponse(content=pages.ready_page())

    token = service.current_qr()
    if not token:
        return HTMLResponse(content=pages.waiting_page())

    try:
        data_url = qr.to_data_url(token)
    except Exception as e:
        log.error(f"Error generating QR code image: {e}")
        return HTMLResponse(content="Error generating QR code", status_code=500)

    return HTMLResponse(content=pages.qr_page(data_url))


@router.post("/connect")
async def connect():
    snapshot = await service.request_connect()
    if snapshot.is_ready:
        message = "WhatsApp is already connected"
    else:
        message = "Connection initiated. Poll /status or open /qr/display to scan the QR code."
    return {"status": "success", "message": message, "phase": snapshot.phase.value}


@router.post("/disconnect", response_model=DisconnectResponse)
async def disconnect(payload: Optional[DisconnectRequest] = None):
    payload = payload or DisconnectRequest()
    result = await service.request_disconnect(
        wipe_credentials=payload.delete_auth,
        reconnect=payload.reconnect,
    )
    if result.deleted_auth:
        message = "Disconnected and authentication data deleted"
    else:
        message = "Disconnected"
    return DisconnectResponse(message=message, deleted_auth=result.deleted_auth)


@router.post("/clear-auth")
async def clear_auth():
    await service.clear_auth()
    return {
        "status": "success",
        "message": "Authentication cleared. Scan the new QR code to link a device.",
    }


def _as_text(value):
    # JSON callers often send the phone number as a number
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


async def _read_json_form(request: Request):
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidArgumentError(f"Malformed JSON body: {e}") from e
    if not isinstance(body, dict):
        raise InvalidArgumentError("Request body must be a JSON object")

    try:
        return SendMessageForm(number=_as_text(body.get("number")), message=_as_text(body.get("message")))
    except ValidationError as e:
        fields = [".".join(str(part) for part in err["loc"]) for err in e.errors()]
        raise InvalidArgumentError("Number and message must be strings", details={"fields": fields}) from e


def _read_multipart_form(form):
    image = form.get("image")
    if not isinstance(image, UploadFile) or not image.filename:
        image = None
    number = form.get("number")
    message = form.get("message")
    return SendMessageForm(
        number=number if isinstance(number, str) else None,
        message=message if isinstance(message, str) else None,
    ), image


async def _deliver(form: SendMessageForm, image):
    if not form.number:
        raise InvalidArgumentError("Number is required")
    if image is None and not form.message:
        raise InvalidArgumentError("Message is required when no image is provided")

    media = None
    try:
        if image is not None:
            media = await uploads.save_upload(image)
        result = await service.send_message(form.number, text=form.message or None, media=media)
    finally:
        if media is not None:
            uploads.discard(media.path)

    return SendMessageResponse(
        message="Message with image sent successfully" if media else "Message sent successfully",
        message_id=result.message_id,
    )


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message(request: Request):
    # Checked before anything is written to the uploads directory
    service.ensure_ready()

    if request.headers.get("content-type", "").startswith("application/json"):
        return await _deliver(await _read_json_form(request), None)

    async with request.form() as form:
        send_form, image = _read_multipart_form(form)
        return await _deliver(send_form, image)


@router.get("/groups", response_model=GroupsResponse)
async def list_groups():
    groups = await service.list_groups()
    return GroupsResponse(
        groups=[GroupOut(**asdict(g)) for g in groups],
        total=len(groups),
    )
