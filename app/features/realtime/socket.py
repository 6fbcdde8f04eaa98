# Realtime Feature - Socket.IO Server

import socketio
from typing import Any, Dict, List
from fastapi.encoders import jsonable_encoder
from app.core.logging import logger
from app.database import get_store
from app.features.patients.service import PatientService
from app.features.wards.service import WardService
from app.store.subscriptions import Subscription


# Create Socket.IO server with ASGI support
sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)

# Store which collections each socket follows: {sid: set of collection names}
socket_collections: Dict[str, set] = {}

# Live store subscriptions feeding the rooms, started with the application
subscriptions: List[Subscription] = []


async def load_patients() -> List[Dict[str, Any]]:
    patients = await PatientService.list_patients()
    return jsonable_encoder([PatientService.patient_to_response(p) for p in patients])


async def load_wards() -> List[Dict[str, Any]]:
    wards = await WardService.list_wards()
    return jsonable_encoder([WardService.ward_to_response(w) for w in wards])


# Snapshot loaders by collection; each collection is also the room and event name
SNAPSHOT_LOADERS = {
    "patients": load_patients,
    "wards": load_wards,
}


@sio.event
async def connect(sid, environ, auth=None):
    """Handle client connection."""
    socket_collections[sid] = set()
    logger.info(f"Socket connected: {sid}")

    await sio.emit("connected", {"message": "Connected successfully"}, room=sid)
    return True


@sio.event
async def disconnect(sid):
    """Handle client disconnection."""
    for collection in socket_collections.pop(sid, set()):
        await sio.leave_room(sid, collection)
    logger.info(f"Socket disconnected: {sid}")


@sio.event
async def subscribe(sid, data):
    """
    Follow live snapshots of a collection.

    Args:
        data: {"collection": "patients" | "wards"}
    """
    collection = (data or {}).get("collection")
    loader = SNAPSHOT_LOADERS.get(collection)
    if loader is None:
        await sio.emit("error", {"message": "collection must be 'patients' or 'wards'"}, room=sid)
        return

    await sio.enter_room(sid, collection)
    socket_collections.setdefault(sid, set()).add(collection)
    logger.info(f"Socket {sid} subscribed to {collection}")

    # Current snapshot for the new subscriber; later ones arrive through the room
    try:
        snapshot = await loader()
    except Exception as e:
        logger.error(f"Error loading {collection} snapshot for {sid}: {e}")
        await sio.emit("error", {"message": f"Could not load {collection}"}, room=sid)
        return

    await sio.emit(collection, snapshot, room=sid)


@sio.event
async def unsubscribe(sid, data):
    """
    Stop following a collection.

    Args:
        data: {"collection": "patients" | "wards"}
    """
    collection = (data or {}).get("collection")
    if collection not in SNAPSHOT_LOADERS:
        return

    await sio.leave_room(sid, collection)
    socket_collections.get(sid, set()).discard(collection)
    logger.info(f"Socket {sid} unsubscribed from {collection}")


def _broadcaster(collection: str):
    async def broadcast(snapshot: List[Dict[str, Any]]) -> None:
        await sio.emit(collection, snapshot, room=collection)
    return broadcast


async def start_broadcasts() -> None:
    """Push a fresh snapshot to every room after each change to its collection."""
    store = get_store()
    for collection, loader in SNAPSHOT_LOADERS.items():
        subscription = Subscription(store, collection, loader, _broadcaster(collection))
        subscriptions.append(await subscription.start())

    logger.info(f"Realtime broadcasts started for {', '.join(SNAPSHOT_LOADERS)}")


def stop_broadcasts() -> None:
    while subscriptions:
        subscriptions.pop().close()


# Create ASGI app for Socket.IO
socket_app = socketio.ASGIApp(sio)
