"""
Fleet Gateway - API Server

Provides endpoints for:
- Device registration and authentication
- Device records, status changes, telemetry and health history
- Mission management (create, assign, cancel) and status history
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse

from fleet_gateway.core.config import settings
from fleet_gateway.core.database import async_session_maker, timeseries_session_maker
from fleet_gateway.core.errors import GatewayError
from fleet_gateway.models.mission import MissionState
from fleet_gateway.mqtt.main import Gateway, build_gateway
from fleet_gateway.mqtt.session import SessionManager
from fleet_gateway.schemas import (
    AssignMissionRequest,
    AuthenticateDeviceRequest,
    CreateMissionRequest,
    DeviceStatusUpdate,
    RegisterDeviceRequest,
)

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The API holds its own broker session for tokens and mission commands
    session = SessionManager(client_id=f"{settings.mqtt_client_id}-api", subscribe=False)
    gateway = build_gateway(async_session_maker, timeseries_session_maker, session=session)
    gateway.session.start()
    app.state.gateway = gateway
    try:
        yield
    finally:
        await asyncio.to_thread(gateway.session.stop)


# ==================== APP ====================

app = FastAPI(
    title="Fleet Gateway API",
    description="Management API for fleet devices and missions",
    version=API_VERSION,
    lifespan=lifespan,
)


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


@app.get("/health")
async def health(gateway: Gateway = Depends(get_gateway)):
    """Liveness plus broker connection state."""
    return {
        "status": "ok",
        "version": API_VERSION,
        "mqtt": gateway.session.state.value,
        "topicPrefix": settings.mqtt_topic_prefix,
    }


# ==================== DEVICES ====================

@app.post("/api/devices/register", status_code=status.HTTP_201_CREATED)
async def register_device(body: RegisterDeviceRequest, gateway: Gateway = Depends(get_gateway)):
    """Register a device; its first token is returned and pushed to its token topic."""
    profile = body.model_dump(exclude={"vehicle_id", "password"}, exclude_none=True)
    issued = await gateway.devices.register_device(body.vehicle_id, body.password, profile)
    return issued.to_public()


@app.post("/api/devices/authenticate")
async def authenticate_device(
    body: AuthenticateDeviceRequest, gateway: Gateway = Depends(get_gateway)
):
    """Exchange device credentials for a new token (the previous one stops working)."""
    issued = await gateway.devices.authenticate_device(body.vehicle_id, body.password)
    return issued.to_public()


@app.get("/api/devices")
async def list_devices(gateway: Gateway = Depends(get_gateway)):
    return [device.to_public() for device in await gateway.directory.list_devices()]


@app.get("/api/devices/{device_uid}")
async def get_device(device_uid: str, gateway: Gateway = Depends(get_gateway)):
    device = await gateway.directory.get(device_uid)
    return device.to_public()


@app.patch("/api/devices/{device_uid}/status")
async def update_device_status(
    device_uid: str, body: DeviceStatusUpdate, gateway: Gateway = Depends(get_gateway)
):
    await gateway.directory.set_status(device_uid, body.status)
    device = await gateway.directory.get(device_uid)
    return device.to_public()


@app.get("/api/devices/{device_uid}/telemetry")
async def get_device_telemetry(
    device_uid: str,
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    gateway: Gateway = Depends(get_gateway),
):
    """Telemetry history, newest first (max 1000 rows)."""
    await gateway.directory.get(device_uid)
    records = await gateway.store.find_telemetry(device_uid, start, end)
    return [record.to_public() for record in records]


@app.get("/api/devices/{device_uid}/health")
async def get_device_health(
    device_uid: str,
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    gateway: Gateway = Depends(get_gateway),
):
    """Health history, newest first (max 1000 rows)."""
    await gateway.directory.get(device_uid)
    records = await gateway.store.find_health(device_uid, start, end)
    return [record.to_public() for record in records]


# ==================== MISSIONS ====================

@app.post("/api/missions", status_code=status.HTTP_201_CREATED)
async def create_mission(body: CreateMissionRequest, gateway: Gateway = Depends(get_gateway)):
    mission = await gateway.missions.create_mission(
        name=body.name,
        description=body.description,
        type=body.type,
        priority=body.priority,
        assigned_device_uid=body.assigned_vehicle_id,
        waypoints=[w.model_dump(exclude_none=True) for w in body.waypoints],
        parameters=body.parameters,
        scheduled_start_time=body.scheduled_start_time,
    )
    return mission.to_public()


@app.get("/api/missions")
async def list_missions(
    state: MissionState | None = Query(None),
    vehicle_id: str | None = Query(None, alias="vehicleId"),
    gateway: Gateway = Depends(get_gateway),
):
    missions = await gateway.missions.list_missions(state=state, device_uid=vehicle_id)
    return [mission.to_public() for mission in missions]


@app.get("/api/missions/{mission_id}")
async def get_mission(mission_id: str, gateway: Gateway = Depends(get_gateway)):
    mission = await gateway.missions.get_mission(mission_id)
    return mission.to_public()


@app.post("/api/missions/{mission_id}/assign")
async def assign_mission(
    mission_id: str, body: AssignMissionRequest, gateway: Gateway = Depends(get_gateway)
):
    mission = await gateway.missions.assign_mission(mission_id, body.vehicle_id)
    return mission.to_public()


@app.post("/api/missions/{mission_id}/cancel")
async def cancel_mission(mission_id: str, gateway: Gateway = Depends(get_gateway)):
    mission = await gateway.missions.cancel_mission(mission_id)
    return mission.to_public()


@app.get("/api/missions/{mission_id}/status")
async def get_mission_status(
    mission_id: str,
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    gateway: Gateway = Depends(get_gateway),
):
    """Status reports received from the device, newest first."""
    await gateway.missions.get_mission(mission_id)
    records = await gateway.store.find_mission_status(mission_id, start, end)
    return [record.to_public() for record in records]
