"""Движения склада Stock, порождаемые производством: списание сырья и приёмка готовой продукции."""
import logging
import math
from datetime import datetime, timezone

from anajak_erp.crud import catalog as catalog_crud
from anajak_erp.database import SessionLocal
from anajak_erp.models.production import MaterialUsage
from anajak_erp.schemas.stock import CreateMovementInput, MovementType, StockMovementLine
from anajak_erp.schemas.sync import (
    IssueMaterialsRequest, IssueMaterialsResult,
    ReceiveFinishedRequest, ReceiveFinishedResult
)
from anajak_erp.services.stock_client import StockApiClient

logger = logging.getLogger(__name__)

async def issue_materials(
    client: StockApiClient,
    request: IssueMaterialsRequest,
    session_factory=SessionLocal
) -> IssueMaterialsResult:
    """
    Списать сырьё в Stock (ISSUE) и записать расход локально.

    Если Stock отклонил движение, локальные данные не меняются.
    """
    movement = CreateMovementInput(
        type=MovementType.ISSUE,
        ref_no=request.order_number,
        note=f"เบิกวัตถุดิบสำหรับออเดอร์ {request.order_number}",
        lines=[
            StockMovementLine(
                sku=m.sku,
                from_location=request.from_location,
                qty=m.quantity,
                unit_cost=m.unit_cost,
                note=f"Production: {request.production_id}",
            )
            for m in request.materials
        ],
    )
    confirmation = await client.create_movement(movement)

    deducted_at = datetime.now(timezone.utc)
    async with session_factory() as db:
        for m in request.materials:
            db.add(MaterialUsage(
                production_id=request.production_id,
                product_id=m.product_id,
                product_variant_id=m.product_variant_id,
                quantity=m.quantity,
                unit=m.unit,
                unit_cost=m.unit_cost,
                total_cost=m.quantity * m.unit_cost,
                stock_movement_ref=confirmation.doc_number,
                deducted_at=deducted_at,
            ))

        for m in request.materials:
            await catalog_crud.decrement_stock(db, m.product_id, m.product_variant_id, math.ceil(m.quantity))

        await db.commit()

    logger.info(
        f"Issued {len(request.materials)} materials for production {request.production_id} "
        f"(movement {confirmation.doc_number})"
    )
    return IssueMaterialsResult(
        movement_doc_number=confirmation.doc_number,
        materials_issued=len(request.materials),
    )

async def receive_finished_goods(
    client: StockApiClient,
    request: ReceiveFinishedRequest
) -> ReceiveFinishedResult:
    """Оприходовать готовую продукцию заказа в Stock (RECEIVE)"""
    movement = CreateMovementInput(
        type=MovementType.RECEIVE,
        ref_no=request.order_number,
        note=request.note or f"สินค้าสำเร็จรูปจากออเดอร์ {request.order_number}",
        lines=[
            StockMovementLine(
                sku=item.sku,
                to_location=request.to_location,
                qty=item.quantity,
                unit_cost=item.unit_cost,
            )
            for item in request.items
        ],
    )
    confirmation = await client.create_movement(movement)

    logger.info(f"Received {len(request.items)} finished items for order {request.order_number}")
    return ReceiveFinishedResult(
        movement_doc_number=confirmation.doc_number,
        items_received=len(request.items),
    )
