import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import get_current_user, require_role
from config import Settings
from database import Database
from errors import InternalError, InvalidCredentials, NotFound, ShopError, ValidationError
from schemas import (
    CheckoutRequest,
    CheckoutResponse,
    CustomerSnapshot,
    LegacyOrderRequest,
    LoginRequest,
    LoginResponse,
    OrderOut,
    ProductOut,
    RegisterRequest,
    SeedResponse,
    UserOut,
)
from security import TokenClaims, TokenService
from stores import CatalogStore, CredentialStore, OrderStore

logger = logging.getLogger(__name__)


def error_body(message: str) -> dict:
    return {"success": False, "message": message}


# --------------------- Dependencies ---------------------

def get_credentials(request: Request) -> CredentialStore:
    return request.app.state.credentials


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_orders(request: Request) -> OrderStore:
    return request.app.state.orders


# --------------------- Error handlers ---------------------

def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))


def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = "Missing or invalid fields: " + ", ".join(fields) if fields else None
    return shop_error_handler(request, ValidationError(message))


def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail)),
                        headers=getattr(exc, "headers", None))


def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return shop_error_handler(request, InternalError("Database error"))


def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return shop_error_handler(request, InternalError())


# --------------------- App ---------------------

def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    database = database or Database(settings.mongo_url, settings.database_name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.open()
        credentials = CredentialStore(database)
        app.state.database = database
        app.state.credentials = credentials
        app.state.catalog = CatalogStore(database)
        app.state.orders = OrderStore(database)
        app.state.tokens = TokenService(settings.jwt_secret, settings.jwt_algorithm)
        if settings.admin_email and settings.admin_password:
            credentials.ensure_admin(settings.admin_email, settings.admin_password, settings.admin_name)
        elif settings.admin_email:
            logger.warning("ADMIN_EMAIL is set without ADMIN_PASSWORD, skipping admin bootstrap")
        try:
            yield
        finally:
            database.close()

    app = FastAPI(title="Dragon Mart Online API", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ShopError, shop_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(PyMongoError, database_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Dragon Mart Online Backend Running"}

    # Orders (public)
    @app.get("/orders", response_model=List[OrderOut])
    def list_orders(orders: OrderStore = Depends(get_orders)):
        return orders.list_all()

    @app.post("/orders", status_code=201, response_model=OrderOut)
    def place_order(body: LegacyOrderRequest, orders: OrderStore = Depends(get_orders)):
        customer = CustomerSnapshot(name=body.customer_name, phone=body.phone, address=body.address)
        return orders.create(None, body.items, customer)

    # Auth
    @app.post("/api/auth/register", status_code=201)
    def register(req: RegisterRequest, credentials: CredentialStore = Depends(get_credentials)):
        credentials.register(req.name, req.email, req.phone, req.password)
        return {"success": True, "message": "User registered successfully"}

    @app.post("/api/auth/login", response_model=LoginResponse)
    def login(
        req: LoginRequest,
        request: Request,
        credentials: CredentialStore = Depends(get_credentials),
    ):
        try:
            user = credentials.authenticate(req.email, req.password)
        except (NotFound, InvalidCredentials):
            # same answer for unknown email and wrong password
            logger.warning("Failed login for %s", req.email)
            raise InvalidCredentials()
        token = request.app.state.tokens.issue(user.id, user.email, user.role)
        return LoginResponse(token=token, user=user)

    @app.get("/api/auth/me", response_model=UserOut)
    def me(
        user: TokenClaims = Depends(get_current_user),
        credentials: CredentialStore = Depends(get_credentials),
    ):
        return credentials.get_by_id(user.sub)

    # Products
    @app.post("/api/products/seed", response_model=SeedResponse)
    def seed_products(catalog: CatalogStore = Depends(get_catalog)):
        return SeedResponse(data=catalog.seed())

    @app.get("/api/products", response_model=List[ProductOut])
    def list_products(catalog: CatalogStore = Depends(get_catalog)):
        return catalog.list_all()

    # Checkout
    @app.post("/api/checkout", status_code=201, response_model=CheckoutResponse)
    def checkout(
        body: CheckoutRequest,
        user: TokenClaims = Depends(get_current_user),
        orders: OrderStore = Depends(get_orders),
    ):
        order = orders.create(user.sub, body.items, body.customer)
        return CheckoutResponse(order_id=order.id, message="Order placed successfully")

    # Admin
    @app.get("/api/orders", response_model=List[OrderOut])
    def admin_orders(
        user: TokenClaims = Depends(require_role("admin")),
        orders: OrderStore = Depends(get_orders),
        credentials: CredentialStore = Depends(get_credentials),
    ):
        return orders.list_all_with_owner(credentials)


_app: Optional[FastAPI] = None


def __getattr__(name: str):
    # `uvicorn main:app` builds the app from the environment on first access
    global _app
    if name == "app":
        if _app is None:
            _app = create_app()
        return _app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env()
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=settings.port)
