from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from sortyx.alerts.evaluator import acknowledge_alert
from sortyx.analytics.overview import build_overview
from sortyx.api.auth import get_current_user
from sortyx.errors import DuplicateIdentifierError, EntityNotFoundError
from sortyx.models.repository import ALERTS, BinRepository, EntityRepository
from sortyx.models.schemas import (
    CompartmentCreate,
    DeviceCreate,
    EntityUpdate,
    EvaluationReport,
    SingleBinCreate,
    SmartBinCreate,
)
from sortyx.sensors.devices import (
    list_available_devices,
    register_device,
    resolve_application_id,
    suggest_bin_attributes,
)
from sortyx.sensors.readings import IOT_DEVICES, get_latest_sensor_data, record_sensor_sample

router = APIRouter(prefix="/api")

User = dict[str, Any]


def _bins(request: Request) -> BinRepository:
    return BinRepository(request.app.state.db, request.app.state.config.alerts.thresholds)


def _owned(repo: EntityRepository, entity_id: str, user: User) -> dict[str, Any]:
    document = repo.get(entity_id)
    if document is None or document.get("created_by") != user["email"]:
        raise HTTPException(status_code=404, detail=f"{repo.collection} `{entity_id}` not found")
    return document


def _changes(payload: EntityUpdate) -> dict[str, Any]:
    return payload.model_dump(exclude_unset=True)


@router.get("/smartbins")
async def list_smart_bins(request: Request, user: User = Depends(get_current_user)) -> list[dict[str, Any]]:
    return _bins(request).smart_bins.list(order_by="created_date", descending=True, created_by=user["email"])


@router.post("/smartbins", status_code=201)
async def create_smart_bin(
    payload: SmartBinCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return _bins(request).create_smart_bin(payload.model_dump(), owner=user["email"])


@router.get("/smartbins/{smart_bin_id}")
async def get_smart_bin(smart_bin_id: str, request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    bins = _bins(request)
    smart_bin = _owned(bins.smart_bins, smart_bin_id, user)
    return {**smart_bin, "compartments": bins.compartments_for(smart_bin_id)}


@router.put("/smartbins/{smart_bin_id}")
async def update_smart_bin(
    smart_bin_id: str,
    payload: EntityUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    bins = _bins(request)
    _owned(bins.smart_bins, smart_bin_id, user)
    return bins.smart_bins.update(smart_bin_id, _changes(payload))


@router.delete("/smartbins/{smart_bin_id}")
async def delete_smart_bin(smart_bin_id: str, request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    bins = _bins(request)
    _owned(bins.smart_bins, smart_bin_id, user)
    removed = bins.delete_smart_bin(smart_bin_id)
    return {"ok": True, "id": smart_bin_id, "compartments_deleted": removed}


@router.get("/compartments")
async def list_compartments(
    request: Request,
    smartbin_id: str | None = Query(default=None),
    user: User = Depends(get_current_user),
) -> list[dict[str, Any]]:
    return _bins(request).compartments.list(smartbin_id=smartbin_id, created_by=user["email"])


@router.post("/compartments", status_code=201)
async def create_compartment(
    payload: CompartmentCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    bins = _bins(request)
    _owned(bins.smart_bins, payload.smartbin_id, user)
    try:
        return bins.create_compartment(payload.model_dump())
    except DuplicateIdentifierError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.put("/compartments/{compartment_id}")
async def update_compartment(
    compartment_id: str,
    payload: EntityUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    bins = _bins(request)
    _owned(bins.compartments, compartment_id, user)
    return bins.compartments.update(compartment_id, _changes(payload))


@router.delete("/compartments/{compartment_id}")
async def delete_compartment(
    compartment_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    bins = _bins(request)
    _owned(bins.compartments, compartment_id, user)
    bins.compartments.delete(compartment_id)
    return {"ok": True, "id": compartment_id}


@router.get("/singlebins")
async def list_single_bins(request: Request, user: User = Depends(get_current_user)) -> list[dict[str, Any]]:
    return _bins(request).single_bins.list(order_by="created_date", descending=True, created_by=user["email"])


@router.post("/singlebins", status_code=201)
async def create_single_bin(
    payload: SingleBinCreate,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    return _bins(request).create_single_bin(payload.model_dump(), owner=user["email"])


@router.get("/singlebins/{single_bin_id}")
async def get_single_bin(single_bin_id: str, request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    return _owned(_bins(request).single_bins, single_bin_id, user)


@router.put("/singlebins/{single_bin_id}")
async def update_single_bin(
    single_bin_id: str,
    payload: EntityUpdate,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    bins = _bins(request)
    _owned(bins.single_bins, single_bin_id, user)
    return bins.single_bins.update(single_bin_id, _changes(payload))


@router.delete("/singlebins/{single_bin_id}")
async def delete_single_bin(
    single_bin_id: str,
    request: Request,
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    bins = _bins(request)
    _owned(bins.single_bins, single_bin_id, user)
    bins.delete_single_bin(single_bin_id)
    return {"ok": True, "id": single_bin_id}


@router.get("/alerts")
async def list_alerts(
    request: Request,
    acknowledged: bool | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    user: User = Depends(get_current_user),
) -> list[dict[str, Any]]:
    filters: dict[str, Any] = {"created_by": user["email"]}
    if acknowledged is not None:
        filters["acknowledged"] = acknowledged
    return request.app.state.db.query(ALERTS, filters, order_by="created_at", descending=True, limit=limit)


@router.post("/alerts/check", response_model=EvaluationReport)
async def check_alerts(request: Request, user: User = Depends(get_current_user)) -> EvaluationReport:
    result = await request.app.state.monitor.trigger_now()
    return EvaluationReport(
        created=len(result.created),
        updated=len(result.updated),
        failed=result.failed,
        alerts=[item for item in result.alerts if item.get("created_by") == user["email"]],
    )


@router.post("/alerts/{alert_id}/acknowledge")
async def acknowledge(alert_id: str, request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    db = request.app.state.db
    alert = db.get(ALERTS, alert_id)
    if alert is None or alert.get("created_by") != user["email"]:
        raise HTTPException(status_code=404, detail="Alert not found")
    try:
        return acknowledge_alert(db, alert_id, acknowledged_by=user["email"])
    except EntityNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Alert not found") from exc


@router.get("/devices")
async def list_devices(request: Request, user: User = Depends(get_current_user)) -> list[dict[str, Any]]:
    application_id = resolve_application_id(user, request.app.state.config.default_application_id)
    return list_available_devices(request.app.state.db, application_id)


@router.post("/devices", status_code=201)
async def create_device(payload: DeviceCreate, request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    application_id = payload.application_id or resolve_application_id(
        user, request.app.state.config.default_application_id
    )
    return register_device(request.app.state.db, payload.device_id, application_id=application_id, name=payload.name)


@router.post("/devices/{device_id}/samples", status_code=201)
async def ingest_sample(device_id: str, payload: dict[str, Any], request: Request) -> dict[str, Any]:
    sample = record_sensor_sample(request.app.state.db, device_id, payload)
    return sample.model_dump(mode="json", by_alias=True)


@router.get("/devices/{device_id}/latest")
async def latest_sample(device_id: str, request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    sample = get_latest_sensor_data(request.app.state.db, device_id)
    if sample is None:
        raise HTTPException(status_code=404, detail="No sensor data available")
    return sample.model_dump(mode="json", by_alias=True)


@router.get("/devices/{device_id}/suggestion")
async def device_suggestion(
    device_id: str,
    request: Request,
    bin_height: float | None = Query(default=None, gt=0),
    user: User = Depends(get_current_user),
) -> dict[str, Any]:
    config = request.app.state.config
    db = request.app.state.db
    if db.get(IOT_DEVICES, device_id) is None and device_id not in config.catalog.profiles:
        raise HTTPException(status_code=404, detail="Device not found")

    return suggest_bin_attributes(
        device_id,
        get_latest_sensor_data(db, device_id),
        config.catalog,
        bin_height=bin_height or config.alerts.default_bin_height_cm,
    )


@router.get("/subscription-plans")
async def subscription_plans(request: Request) -> list[dict[str, Any]]:
    return request.app.state.config.subscription_plans


@router.get("/stats/overview")
async def stats_overview(request: Request, user: User = Depends(get_current_user)) -> dict[str, Any]:
    bins = _bins(request)
    owner = user["email"]
    return build_overview(
        smart_bins=bins.smart_bins.list(created_by=owner),
        single_bins=bins.single_bins.list(created_by=owner),
        compartments=bins.compartments.list(created_by=owner),
        alerts=request.app.state.db.query(ALERTS, {"created_by": owner}),
        default_fill_threshold=request.app.state.config.alerts.thresholds.fill_threshold,
    )
