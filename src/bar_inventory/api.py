"""FastAPI router configuration."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Sequence
from urllib.parse import quote

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import InterfaceError, NoResultFound, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import crud, schemas
from .config import Settings, configure_logging, get_settings
from .database import get_session, get_session_factory
from .delivery_notes import (
    DeliveryNoteError,
    DeliveryNoteParser,
    GeminiDeliveryNoteParser,
    MissingCredentialsError,
)
from .export import ExportLayout, export_filename, render_record_csv
from .management import init_database

logger = logging.getLogger(__name__)

router = APIRouter()


def provide_settings() -> Settings:
    """Dependency returning the active :class:`Settings` instance."""

    return get_settings()


def provide_export_layout(settings: Settings = Depends(provide_settings)) -> ExportLayout:
    return ExportLayout.from_settings(settings)


def provide_delivery_note_parser(settings: Settings = Depends(provide_settings)) -> DeliveryNoteParser:
    return GeminiDeliveryNoteParser.from_settings(settings)


def _not_found(exc: NoResultFound) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.get("/health", response_model=schemas.HealthStatus, tags=["system"])
async def health_check(settings: Settings = Depends(provide_settings)) -> schemas.HealthStatus:
    return schemas.HealthStatus(environment=settings.environment)


# --- Inventory -------------------------------------------------------------


@router.get("/inventory", response_model=list[schemas.InventoryItemOut], tags=["inventory"])
async def list_items(session: AsyncSession = Depends(get_session)) -> Sequence[schemas.InventoryItemOut]:
    items = await crud.list_items(session)
    return [schemas.InventoryItemOut.from_model(item) for item in items]


@router.post(
    "/inventory",
    response_model=schemas.InventoryItemOut,
    status_code=status.HTTP_201_CREATED,
    tags=["inventory"],
)
async def upsert_item(
    payload: schemas.InventoryItemIn, session: AsyncSession = Depends(get_session)
) -> schemas.InventoryItemOut:
    logger.info("Inventory item received: %s", payload.model_dump(by_alias=True, exclude_unset=True))
    item = await crud.upsert_item(session, payload)
    await session.commit()
    return schemas.InventoryItemOut.from_model(item)


@router.put("/inventory", response_model=schemas.BulkUpdateResult, tags=["inventory"])
async def bulk_update_stock(
    payload: list[schemas.BulkStockUpdate],
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    settings: Settings = Depends(provide_settings),
) -> schemas.BulkUpdateResult:
    processed = await crud.reconcile_stock(
        session_factory, payload, location=settings.warehouse_location
    )
    return schemas.BulkUpdateResult(
        message=f"Bulk update processed for {processed} items.", processed=processed
    )


@router.delete("/inventory/{item_id}", response_model=schemas.DeleteResult, tags=["inventory"])
async def delete_item(item_id: str, session: AsyncSession = Depends(get_session)) -> schemas.DeleteResult:
    try:
        item = await crud.get_item(session, item_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await crud.delete_item(session, item)
    await session.commit()
    return schemas.DeleteResult(message="Deleted")


# --- Purchase orders -------------------------------------------------------


@router.get("/orders", response_model=list[schemas.PurchaseOrderOut], tags=["orders"])
async def list_orders(session: AsyncSession = Depends(get_session)) -> Sequence[schemas.PurchaseOrderOut]:
    orders = await crud.list_orders(session)
    return [schemas.PurchaseOrderOut.from_model(order) for order in orders]


@router.post(
    "/orders",
    response_model=schemas.PurchaseOrderOut,
    status_code=status.HTTP_201_CREATED,
    tags=["orders"],
)
async def upsert_order(
    payload: schemas.PurchaseOrderIn, session: AsyncSession = Depends(get_session)
) -> schemas.PurchaseOrderOut:
    order = await crud.upsert_order(session, payload)
    await session.commit()
    return schemas.PurchaseOrderOut.from_model(order)


@router.delete("/orders/{order_id}", response_model=schemas.DeleteResult, tags=["orders"])
async def delete_order(order_id: str, session: AsyncSession = Depends(get_session)) -> schemas.DeleteResult:
    try:
        order = await crud.get_order(session, order_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await crud.delete_order(session, order)
    await session.commit()
    return schemas.DeleteResult(message="Deleted")


# --- History ---------------------------------------------------------------


@router.get("/history", response_model=list[schemas.InventoryRecordOut], tags=["history"])
async def list_records(session: AsyncSession = Depends(get_session)) -> Sequence[schemas.InventoryRecordOut]:
    records = await crud.list_records(session)
    return [schemas.InventoryRecordOut.from_model(record) for record in records]


@router.get("/history/{record_id}", response_model=schemas.InventoryRecordOut, tags=["history"])
async def get_record(record_id: str, session: AsyncSession = Depends(get_session)) -> schemas.InventoryRecordOut:
    try:
        record = await crud.get_record(session, record_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    return schemas.InventoryRecordOut.from_model(record)


@router.get("/history/{record_id}/csv", tags=["history"], response_class=Response)
async def export_record(
    record_id: str,
    session: AsyncSession = Depends(get_session),
    layout: ExportLayout = Depends(provide_export_layout),
) -> Response:
    try:
        record = await crud.get_record(session, record_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    out = schemas.InventoryRecordOut.from_model(record)
    filename = quote(export_filename(out), safe="!'()*")
    return Response(
        content=render_record_csv(out, layout),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _save_record(session: AsyncSession, payload: schemas.InventoryRecordIn) -> schemas.InventoryRecordOut:
    try:
        record = await crud.upsert_record(session, payload)
    except crud.RecordTypeChangeError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    await session.commit()
    return schemas.InventoryRecordOut.from_model(record)


@router.post(
    "/history",
    response_model=schemas.InventoryRecordOut,
    status_code=status.HTTP_201_CREATED,
    tags=["history"],
)
async def create_record(
    payload: schemas.InventoryRecordIn, session: AsyncSession = Depends(get_session)
) -> schemas.InventoryRecordOut:
    return await _save_record(session, payload)


@router.put("/history", response_model=schemas.InventoryRecordOut, tags=["history"])
async def update_record(
    payload: schemas.InventoryRecordIn, session: AsyncSession = Depends(get_session)
) -> schemas.InventoryRecordOut:
    return await _save_record(session, payload)


@router.delete("/history/{record_id}", response_model=schemas.DeleteResult, tags=["history"])
async def delete_record(record_id: str, session: AsyncSession = Depends(get_session)) -> schemas.DeleteResult:
    try:
        record = await crud.get_record(session, record_id)
    except NoResultFound as exc:
        raise _not_found(exc) from exc
    await crud.delete_record(session, record)
    await session.commit()
    return schemas.DeleteResult(message=f"Deleted single record with ID {record_id}")


@router.delete("/history", response_model=schemas.DeleteResult, tags=["history"])
async def delete_all_records(session: AsyncSession = Depends(get_session)) -> schemas.DeleteResult:
    deleted = await crud.delete_all_records(session)
    await session.commit()
    return schemas.DeleteResult(message="All history records deleted", deleted=deleted)


# --- Delivery notes --------------------------------------------------------


@router.post("/delivery-notes/parse", response_model=schemas.DeliveryNoteResult, tags=["orders"])
async def parse_delivery_note(
    payload: schemas.DeliveryNoteRequest,
    parser: DeliveryNoteParser = Depends(provide_delivery_note_parser),
) -> schemas.DeliveryNoteResult:
    try:
        lines = await parser.parse(payload.image_base64, payload.inventory_names)
    except MissingCredentialsError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except DeliveryNoteError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return schemas.DeliveryNoteResult(items=lines)


async def _store_unavailable(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Database unavailable while handling %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Failed to connect to database."},
    )


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_database()
    yield


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)
    app = FastAPI(title=settings.app_name, lifespan=_lifespan)
    app.dependency_overrides[provide_settings] = lambda: settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Content-Disposition"],
        expose_headers=["Content-Disposition"],
    )
    app.add_exception_handler(OperationalError, _store_unavailable)
    app.add_exception_handler(InterfaceError, _store_unavailable)
    app.include_router(router)
    return app


app = create_app()


__all__ = ["app", "create_app"]
