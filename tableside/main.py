"""
FastAPI Application Entry Point

Tableside Ordering - diner carts, checkout and the live staff order board.
In-process collaborators in development, Redis-backed ones in production.

Endpoints:
    - /api/merchants/{merchant_id}/cart: Diner cart (X-Session-Id scoped)
    - POST /api/merchants/{merchant_id}/checkout: Submit the cart as an order
    - GET /api/merchants/{merchant_id}/orders: Staff board snapshot
    - PATCH/POST .../orders/{order_id}/status|advance: Kitchen progress
    - WS /ws/merchants/{merchant_id}/orders: Live board feed
    - GET /health: System health check
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from tableside.core.config import get_settings, setup_logging
from tableside.database import dispose_engine, init_db
from tableside.exceptions import OrderNotFoundError, TablesideError, TransientIOError
from tableside.schemas import (
    BoardOrder,
    BoardSnapshot,
    CartItemIn,
    CartResponse,
    CheckoutRequest,
    ErrorResponse,
    HealthResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
    TableResponse,
)
from tableside.services import get_board_registry
from tableside.services.backend import BaseOrderBackend, get_order_backend
from tableside.services.board import BoardRegistry
from tableside.services.cart import CartStore
from tableside.services.checkout import CheckoutService
from tableside.services.realtime import BaseChangeFeed, get_change_feed
from tableside.services.storage import BaseKeyValueStore, get_cart_storage

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Order backend: {settings.order_backend}")
    logger.info("=" * 60)

    if settings.order_backend == "sql":
        await init_db()
        logger.info("Database initialized")

    feed = get_change_feed()
    logger.info(f"Change feed: {feed.provider_name}")
    logger.info(f"Cart storage: {get_cart_storage().provider_name}")

    yield

    logger.info("Shutting down...")
    await get_board_registry().close_all()
    await feed.close()
    if settings.order_backend == "sql":
        await dispose_engine()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Table-side ordering: per-merchant carts, checkout and a live staff "
        "order board kept in sync through change notifications."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_cart(
    merchant_id: str,
    x_session_id: Optional[str] = Header(None, alias="X-Session-Id"),
    storage: BaseKeyValueStore = Depends(get_cart_storage),
) -> CartStore:
    """Cart of the calling session for the merchant in the path."""
    return CartStore(storage, merchant_id=merchant_id, session_id=x_session_id)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    backend: BaseOrderBackend = Depends(get_order_backend),
    feed: BaseChangeFeed = Depends(get_change_feed),
    storage: BaseKeyValueStore = Depends(get_cart_storage),
) -> HealthResponse:
    """Verify all system components are operational."""
    db_status = "healthy" if await backend.health_check() else "unhealthy"
    feed_status = "healthy" if await feed.health_check() else "unhealthy"
    storage_status = "healthy" if await run_in_threadpool(storage.health_check) else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, feed_status, storage_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        change_feed=feed_status,
        cart_storage=storage_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# CART ENDPOINTS
# =============================================================================

@app.get(
    "/api/merchants/{merchant_id}/cart",
    response_model=CartResponse,
    tags=["Cart"],
)
def read_cart(cart: CartStore = Depends(get_cart)) -> CartResponse:
    return cart.to_response()


@app.post(
    "/api/merchants/{merchant_id}/cart/items",
    response_model=CartResponse,
    tags=["Cart"],
    summary="Add one unit of a menu item",
)
def add_cart_item(item: CartItemIn, cart: CartStore = Depends(get_cart)) -> CartResponse:
    cart.add(item)
    return cart.to_response()


@app.delete(
    "/api/merchants/{merchant_id}/cart/items/{item_id}",
    response_model=CartResponse,
    tags=["Cart"],
    summary="Remove one unit of a menu item",
)
def remove_cart_item(item_id: str, cart: CartStore = Depends(get_cart)) -> CartResponse:
    cart.remove(item_id)
    return cart.to_response()


@app.delete(
    "/api/merchants/{merchant_id}/cart",
    response_model=CartResponse,
    tags=["Cart"],
)
def clear_cart(cart: CartStore = Depends(get_cart)) -> CartResponse:
    cart.clear()
    return cart.to_response()


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/api/merchants/{merchant_id}/checkout",
    response_model=BoardOrder,
    status_code=201,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Submit the cart as an order",
)
async def checkout(
    merchant_id: str,
    request: CheckoutRequest,
    cart: CartStore = Depends(get_cart),
    backend: BaseOrderBackend = Depends(get_order_backend),
) -> BoardOrder:
    """
    Place the session's cart for a table.

    The cart is cleared only when the order was stored; on any error it is
    kept so the diner can retry.
    """
    logger.info(f"Checkout for merchant {merchant_id}, table {request.table_label!r}")
    return await CheckoutService(backend).checkout(cart, merchant_id, request.table_label)


@app.get(
    "/api/merchants/{merchant_id}/tables",
    response_model=list[TableResponse],
    tags=["Orders"],
)
async def list_tables(
    merchant_id: str,
    backend: BaseOrderBackend = Depends(get_order_backend),
) -> list[TableResponse]:
    return await backend.list_tables(merchant_id)


@app.get(
    "/api/merchants/{merchant_id}/orders",
    response_model=BoardSnapshot,
    tags=["Board"],
    summary="Staff board snapshot",
)
async def board_snapshot(
    merchant_id: str,
    registry: BoardRegistry = Depends(get_board_registry),
) -> BoardSnapshot:
    async with registry.borrow(merchant_id) as board:
        return board.snapshot()


@app.get(
    "/api/orders/{order_id}",
    response_model=BoardOrder,
    responses={404: {"model": ErrorResponse}},
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    backend: BaseOrderBackend = Depends(get_order_backend),
) -> BoardOrder:
    """Get a specific order by ID."""
    order = await backend.get_order(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


@app.patch(
    "/api/merchants/{merchant_id}/orders/{order_id}/status",
    response_model=StatusUpdateResponse,
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Board"],
)
async def update_order_status(
    merchant_id: str,
    order_id: str,
    request: StatusUpdateRequest,
    registry: BoardRegistry = Depends(get_board_registry),
) -> StatusUpdateResponse:
    """Move an order to the next status of the pipeline."""
    async with registry.borrow(merchant_id) as board:
        changed = await board.update_status(order_id, request.status)
        order = board.find(order_id)

    return StatusUpdateResponse(
        success=True,
        order_id=order_id,
        changed=changed,
        status=order.status if order else request.status,
    )


@app.post(
    "/api/merchants/{merchant_id}/orders/{order_id}/advance",
    response_model=StatusUpdateResponse,
    responses={503: {"model": ErrorResponse}},
    tags=["Board"],
)
async def advance_order(
    merchant_id: str,
    order_id: str,
    registry: BoardRegistry = Depends(get_board_registry),
) -> StatusUpdateResponse:
    """Advance an order one step; a paid order is left alone."""
    async with registry.borrow(merchant_id) as board:
        new_status = await board.advance(order_id)
        order = board.find(order_id)

    return StatusUpdateResponse(
        success=True,
        order_id=order_id,
        changed=new_status is not None,
        status=new_status or (order.status if order else None),
    )


# =============================================================================
# LIVE BOARD
# =============================================================================

@app.websocket("/ws/merchants/{merchant_id}/orders")
async def board_feed(
    websocket: WebSocket,
    merchant_id: str,
    registry: BoardRegistry = Depends(get_board_registry),
) -> None:
    """
    Push a board snapshot on connect and after every board change.

    The connection keeps the merchant's board open until it disconnects.
    """
    await websocket.accept()
    try:
        board = await registry.acquire(merchant_id)
    except TransientIOError as e:
        logger.warning(f"Board for merchant {merchant_id} unavailable: {e}")
        await websocket.close(code=1011, reason="Order board unavailable")
        return

    changed = asyncio.Event()
    changed.set()
    remove_observer = board.add_observer(lambda _board: changed.set())

    async def push() -> None:
        while True:
            await changed.wait()
            changed.clear()
            await websocket.send_json(board.snapshot().model_dump(mode="json"))

    async def drain() -> None:
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(push()), asyncio.create_task(drain())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"Board feed for merchant {merchant_id} closed: {exc}")
    finally:
        remove_observer()
        await registry.release(merchant_id)
        logger.debug(f"Board viewer for merchant {merchant_id} disconnected")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(TablesideError)
async def tableside_exception_handler(request: Request, exc: TablesideError) -> JSONResponse:
    """Convert application errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "tableside.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
