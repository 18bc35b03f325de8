"""
BFF (Backend for Frontend)

表示層 (レジ画面) 専用の API。
OrderSession の操作を JSON エンドポイントとして公開するだけで、
独自のビジネスロジックは持たない。

  ┌──────────┐     ┌─────┐     ┌────────────────┐     ┌──────────────┐
  │  レジ画面 │────▶│ BFF │────▶│ OrderSession   │────▶│ TableCRM API │
  └──────────┘     └─────┘     └────────────────┘     └──────────────┘

1 プロセス = 1 台のレジ。同時に開くセッションは 1 つだけ。
"""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .client import TableCRMClient
from .commands import OrderSession
from .config import settings
from .customers import origin_label
from .errors import (
    AuthenticationError,
    DraftIncompleteError,
    NotLoadedError,
    OrderError,
    RemoteValidationError,
)
from .orchestrator import PendingAction, SubmissionResult
from .session import ClientFactory, RedisTokenStorage, SessionManager, TokenStorage, TokenStore

logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Request Models ───────────────────────────────


class LoginRequest(BaseModel):
    token: str


class PhoneRequest(BaseModel):
    phone: str


class SelectRequest(BaseModel):
    id: int | None


class AddItemRequest(BaseModel):
    product_id: int


class QuantityRequest(BaseModel):
    quantity: int | None = None
    delta: int | None = None


class SubmitRequest(BaseModel):
    conduct: bool = False


class ConfirmRequest(BaseModel):
    action: PendingAction


# ── エラー変換 ───────────────────────────────────


def error_status(exc: OrderError) -> int:
    if isinstance(exc, DraftIncompleteError):
        return 400
    if isinstance(exc, AuthenticationError):
        return 401
    if isinstance(exc, RemoteValidationError):
        return 422
    if isinstance(exc, NotLoadedError):
        return 404
    return 502


def error_body(exc: OrderError) -> dict:
    body = {"error": type(exc).__name__, "message": exc.message}
    if isinstance(exc, DraftIncompleteError):
        body["missing"] = exc.missing
    if isinstance(exc, RemoteValidationError):
        body["problems"] = [p.model_dump() for p in exc.problems]
    return body


def submission_body(result: SubmissionResult | None) -> dict:
    if result is None:
        return {"ignored": True}
    body = {"ignored": False, "success": result.success, "message": result.message}
    if result.confirmation:
        body["documents"] = result.confirmation.document_ids
        body["paid_rubles"] = result.confirmation.paid_rubles
    if result.error:
        body["error"] = error_body(result.error)
    return body


# ── アプリケーション ─────────────────────────────


def create_app(
    token_storage: TokenStorage | None = None,
    client_factory: ClientFactory = TableCRMClient,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        redis_pool = None
        storage = token_storage
        if storage is None:
            redis_pool = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
            storage = RedisTokenStorage(redis_pool)
        logger.info("Starting POS order BFF (environment=%s, debug=%s)", settings.ENVIRONMENT, settings.DEBUG)
        app.state.sessions = SessionManager(TokenStore(storage), client_factory)
        await app.state.sessions.restore()
        yield
        await app.state.sessions.close()
        if redis_pool is not None:
            await redis_pool.aclose()

    app = FastAPI(title="POS Order BFF", debug=settings.DEBUG, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(OrderError)
    async def order_error_handler(request: Request, exc: OrderError):
        return JSONResponse(status_code=error_status(exc), content=error_body(exc))

    def current(request: Request) -> OrderSession:
        session = request.app.state.sessions.current
        if session is None:
            raise HTTPException(401, "Not logged in")
        return session

    # ── セッション ───────────────────────────────

    @app.post("/api/session")
    async def login(req: LoginRequest, request: Request):
        """トークンでログインし、参照データを読み込む"""
        try:
            session = await request.app.state.sessions.login(req.token)
        except ValueError as e:
            raise HTTPException(400, str(e))
        return session.summary()

    @app.delete("/api/session")
    async def logout(request: Request):
        await request.app.state.sessions.logout()
        return {"status": "logged_out"}

    @app.get("/api/order")
    async def get_order(request: Request):
        return current(request).summary()

    # ── 顧客 ─────────────────────────────────────

    @app.get("/api/customers")
    async def list_customers(request: Request, search: str = "", expanded: bool = False):
        """読み込み済み顧客の絞り込みビュー"""
        catalog = current(request).customers
        catalog.filter(search)
        return {
            "items": [c.model_dump() for c in catalog.visible],
            "quick_pick": [c.model_dump() for c in catalog.quick_pick(expanded)],
            "more_count": catalog.more_count(),
            "loaded": len(catalog.items),
            "total": catalog.total,
            "has_more": catalog.has_more,
        }

    @app.post("/api/customers/more")
    async def load_more_customers(request: Request):
        session = current(request)
        added = await session.load_more_customers()
        return {"added": len(added), "loaded": len(session.customers.items), "has_more": session.customers.has_more}

    @app.get("/api/customers/search")
    async def search_customers(phone: str, request: Request):
        """バックエンドで電話番号検索"""
        return [c.model_dump() for c in await current(request).search_customers(phone)]

    @app.put("/api/order/phone")
    async def type_phone(req: PhoneRequest, request: Request):
        session = current(request)
        customer = session.type_phone(req.phone)
        return {
            "customer": customer.model_dump() if customer else None,
            "origin": origin_label(customer) if customer else None,
            "phone_error": session.resolver.phone_error,
        }

    @app.put("/api/order/customer")
    async def select_customer(req: SelectRequest, request: Request):
        session = current(request)
        if req.id is None:
            session.clear_customer()
        else:
            session.select_customer(req.id)
        return session.summary()

    @app.delete("/api/order/customer")
    async def clear_customer(request: Request):
        session = current(request)
        session.clear_customer()
        return session.summary()

    # ── 参照データ ───────────────────────────────

    @app.get("/api/references")
    async def get_references(request: Request, search: str = ""):
        refs = current(request).references
        return {
            field: [e.model_dump() for e in catalog.filter(search)]
            for field, catalog in refs.lists.items()
        }

    @app.post("/api/references/reload")
    async def reload_references(request: Request):
        session = current(request)
        await session.reload_references()
        return session.summary()

    @app.put("/api/order/{field}")
    async def select_reference(field: str, req: SelectRequest, request: Request):
        session = current(request)
        session.select_reference(field, req.id)
        return session.summary()

    # ── 商品・カート ─────────────────────────────

    @app.get("/api/products")
    async def list_products(request: Request, search: str = ""):
        session = current(request)
        return [
            {
                **p.model_dump(),
                "in_cart": session.draft.cart.quantity_of(p.id),
                "can_increment": session.draft.cart.can_increment(p),
            }
            for p in session.products.filter(search)
        ]

    @app.post("/api/order/items")
    async def add_item(req: AddItemRequest, request: Request):
        session = current(request)
        session.add_product(req.product_id)
        return session.summary()

    @app.patch("/api/order/items/{product_id}")
    async def update_item(product_id: int, req: QuantityRequest, request: Request):
        session = current(request)
        if req.quantity is not None:
            session.set_quantity(product_id, req.quantity)
        elif req.delta is not None:
            session.change_quantity(product_id, req.delta)
        else:
            raise HTTPException(400, "quantity or delta is required")
        return session.summary()

    @app.delete("/api/order/items/{product_id}")
    async def remove_item(product_id: int, request: Request):
        session = current(request)
        session.remove_item(product_id)
        return session.summary()

    # ── ステップ遷移 ─────────────────────────────

    @app.post("/api/order/next")
    async def next_step(request: Request):
        session = current(request)
        session.next_step()
        return session.summary()

    @app.post("/api/order/back")
    async def back_step(request: Request):
        session = current(request)
        session.back_step()
        return session.summary()

    # ── 送信 ─────────────────────────────────────

    @app.post("/api/order/confirmation")
    async def request_submit(req: ConfirmRequest, request: Request):
        """確認ダイアログを開く (どちらの送信かを保持)"""
        session = current(request)
        session.request_submit(req.action)
        return session.summary()

    @app.delete("/api/order/confirmation")
    async def dismiss_submit(request: Request):
        session = current(request)
        session.dismiss_submit()
        return session.summary()

    @app.post("/api/order/confirmation/confirm")
    async def confirm_submit(request: Request):
        return submission_body(await current(request).confirm_submit())

    @app.post("/api/order/submit")
    async def submit(req: SubmitRequest, request: Request):
        return submission_body(await current(request).submit(req.conduct))

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "pos-order-bff"}

    return app


app = create_app()
