# signaturepro/realtime/router.py

"""
WebSocket endpoint of the realtime channel.

Clients connect with ?token= (an owner access token or a signer's
signature token), then send {"event": "join:contract", "contractId": ...}
or {"event": "leave:contract", ...}. A signer connection may also send
{"event": "signature:start", "contractId": ...} when it opens the document,
which is recorded as a view. Server events arrive as
{"event": name, "channel": "contract:<id>", "data": ...}.
"""

import asyncio
import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool

from signaturepro.audit_trail.schemas import OriginMetadata
from signaturepro.core.exceptions import InvalidTokenError, SigningBaseException
from signaturepro.pipeline import SigningPipeline
from signaturepro.realtime.registry import QueuedConnection, channel_name
from signaturepro.utils.logger import get_logger
from signaturepro.utils.request import get_client_ip, get_origin_metadata

logger = get_logger(__name__)

router = APIRouter(tags=["Realtime"])

JOIN_CONTRACT = "join:contract"
LEAVE_CONTRACT = "leave:contract"
SIGNATURE_START = "signature:start"


def authenticate(pipeline: SigningPipeline, token: str) -> QueuedConnection:
    """
    Connection for a token. Owners get an unrestricted connection; signers
    may only join the contract their signature token names.
    """
    loop = asyncio.get_running_loop()
    try:
        claims = pipeline.tokens.verify_access_token(token)
        return QueuedConnection(claims.user_id, loop)
    except InvalidTokenError:
        signer_claims = pipeline.tokens.verify_signature_token(token)
        return QueuedConnection(
            f"signer:{signer_claims.signer_id}",
            loop,
            allowed_contract_id=signer_claims.contract_id,
            signer_id=signer_claims.signer_id,
            signature_token=token,
        )


async def start_signing(
    pipeline: SigningPipeline,
    connection: QueuedConnection,
    contract_id: str,
    origin: Optional[OriginMetadata] = None,
) -> Dict[str, Any]:
    """Record that the signer opened the document; the coordinator broadcasts it"""
    channel = channel_name(contract_id)
    if connection.signature_token is None or not connection.can_join(contract_id):
        return {"event": "error", "data": {"message": "Only a signer of this contract can start signing", "contractId": contract_id}}
    try:
        await run_in_threadpool(
            pipeline.coordinator.record_view,
            contract_id,
            connection.signer_id,
            connection.signature_token,
            origin,
        )
    except SigningBaseException as e:
        logger.warning("Signing start refused", connection_id=connection.id, channel=channel, error_message=e.message)
        return {"event": "error", "data": {"message": e.message, "contractId": contract_id}}
    return {"event": "started", "channel": channel, "data": {"contractId": contract_id}}


async def handle_client_message(
    pipeline: SigningPipeline,
    connection: QueuedConnection,
    raw: str,
    origin: Optional[OriginMetadata] = None,
) -> Dict[str, Any]:
    """Apply a client request and build its acknowledgement"""
    try:
        message = json.loads(raw)
    except ValueError:
        return {"event": "error", "data": {"message": "Messages must be JSON"}}
    if not isinstance(message, dict):
        return {"event": "error", "data": {"message": "Messages must be JSON objects"}}

    event_name = message.get("event")
    contract_id: Optional[str] = message.get("contractId")
    if event_name not in (JOIN_CONTRACT, LEAVE_CONTRACT, SIGNATURE_START):
        return {"event": "error", "data": {"message": f"Unknown event: {event_name}"}}
    if not contract_id:
        return {"event": "error", "data": {"message": "contractId is required"}}

    if event_name == SIGNATURE_START:
        return await start_signing(pipeline, connection, contract_id, origin)

    channel = channel_name(contract_id)
    if event_name == JOIN_CONTRACT:
        if not pipeline.registry.join(connection.id, contract_id):
            logger.warning("Channel join refused", connection_id=connection.id, channel=channel)
            return {"event": "error", "data": {"message": "Not allowed to join this contract", "contractId": contract_id}}
        return {"event": "joined", "channel": channel, "data": {"contractId": contract_id}}

    pipeline.registry.leave(connection.id, contract_id)
    return {"event": "left", "channel": channel, "data": {"contractId": contract_id}}


async def pump(websocket: WebSocket, connection: QueuedConnection) -> None:
    """Drain the connection queue into the socket until closed"""
    while True:
        message = await connection.queue.get()
        if message is None:
            return
        await websocket.send_json(message)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: Optional[str] = Query(None)):
    """Realtime contract updates"""
    pipeline: SigningPipeline = websocket.app.state.pipeline

    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        connection = authenticate(pipeline, token)
    except InvalidTokenError as e:
        logger.warning("Socket authentication failed", ip_address=get_client_ip(websocket), error_message=e.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    origin = get_origin_metadata(websocket)
    pipeline.registry.register(connection)
    connection.deliver({"event": "connected", "data": {"connectionId": connection.id, "userId": connection.user_id}})
    sender = asyncio.create_task(pump(websocket, connection))

    try:
        while True:
            raw = await websocket.receive_text()
            connection.deliver(await handle_client_message(pipeline, connection, raw, origin))
    except WebSocketDisconnect:
        pass
    finally:
        pipeline.registry.unregister(connection.id)
        connection.close()
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            pass
