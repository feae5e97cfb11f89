"""FastAPI REST API for inventory, cycle counts, prep sheets, vendors and orders."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request, Response, status
from fastapi import Path as PathParam
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

# Load environment variables from .env file (find it relative to this file)
_env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(_env_path)

from .auth import (
    DUMMY_HASH,
    AccessTokenResponse,
    RefreshTokenRequest,
    Token,
    TokenData,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    hash_password,
    validate_password,
    verify_password,
)
from .config import settings
from .database.crud import (
    add_order_item,
    batch_update_prep_levels,
    complete_cycle_count,
    create_inventory_item,
    create_order,
    create_organization,
    create_prep_item,
    create_user,
    create_vendor,
    delete_cycle_count,
    delete_inventory_item,
    delete_order,
    delete_prep_item,
    delete_vendor,
    get_cycle_count,
    get_cycle_count_stats,
    get_inventory_item,
    get_inventory_stats,
    get_order,
    get_prep_item,
    get_user_by_email,
    get_user_default_organization,
    get_vendor,
    is_organization_member,
    link_vendor_product,
    list_below_par_products,
    list_cycle_count_items,
    list_cycle_counts,
    list_inventory_items,
    list_orders,
    list_organizations,
    list_prep_items,
    list_prep_logs,
    list_vendor_products,
    list_vendors,
    log_prep,
    receive_order,
    record_count,
    remove_order_item,
    search_inventory_items,
    start_cycle_count,
    submit_order,
    unlink_vendor_product,
    update_cycle_count,
    update_inventory_item,
    update_order,
    update_order_item,
    update_prep_item,
    update_vendor,
)
from .database.engine import AsyncSessionLocal, close_db, init_db
from .database.models import (
    INT32_MAX,
    MONEY_LIMIT,
    CycleCountStatus,
    InventoryStatus,
    OrderStatus,
    PrepItemType,
    PrepUnit,
)
from .exceptions import NotFoundError, ShelfwiseError, StateConflictError, ValidationError
from .formatting import (
    format_below_par,
    format_cycle_count,
    format_cycle_count_item,
    format_inventory_item,
    format_order,
    format_order_item,
    format_organization,
    format_prep_item,
    format_prep_log,
    format_vendor,
    format_vendor_product,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# Pydantic models for API
class CamelModel(BaseModel):
    """Request body accepting the client's camelCase keys (snake_case also works)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _not_null(value: Any) -> Any:
    """Explicit nulls are only accepted for nullable columns."""
    if value is None:
        raise ValueError("must not be null")
    return value


# Whole numbers bound for Integer columns. Strict, so JSON true and "7" are rejected.
Quantity = Annotated[int, Field(ge=0, le=INT32_MAX, strict=True)]
OrderQuantity = Annotated[int, Field(ge=1, le=INT32_MAX, strict=True)]
RecordId = Annotated[int, Field(ge=1, le=INT32_MAX, strict=True)]
SortOrder = Annotated[int, Field(ge=-INT32_MAX - 1, le=INT32_MAX, strict=True)]
Money = Annotated[float, Field(ge=0, lt=MONEY_LIMIT, strict=True)]


class UserRegister(BaseModel):
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=8, description="User's password (min 8 characters)")


class OrganizationCreate(CamelModel):
    name: str = Field(..., min_length=1)


class InventoryItemCreate(CamelModel):
    name: str = Field(..., min_length=1, description="Name of the item")
    description: Optional[str] = None
    image_url: str = ""
    bin_number: str = ""
    rack_number: str = ""
    platform: str = ""
    quantity: Quantity = 1
    par_level: Optional[Quantity] = None
    cost: Optional[Money] = None
    status: InventoryStatus = InventoryStatus.PENDING


class InventoryItemUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    image_url: Optional[str] = None
    bin_number: Optional[str] = None
    rack_number: Optional[str] = None
    platform: Optional[str] = None
    quantity: Optional[Quantity] = None
    par_level: Optional[Quantity] = None
    cost: Optional[Money] = None
    status: Optional[InventoryStatus] = None
    sold_price: Optional[Money] = None

    @field_validator("name", "image_url", "bin_number", "rack_number", "platform", "quantity", "status")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class InventorySearch(CamelModel):
    query: Optional[str] = None
    status: Optional[InventoryStatus] = None


class CycleCountCreate(CamelModel):
    name: str = Field(..., min_length=1, description="Display name, e.g. 'Weekly count'")
    notes: Optional[str] = None


class CycleCountUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    status: Optional[CycleCountStatus] = None
    notes: Optional[str] = None

    @field_validator("name", "status")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class RecordCountRequest(CamelModel):
    counted_qty: Quantity = Field(..., description="Quantity physically observed")
    notes: Optional[str] = None


class CompleteCycleCountRequest(CamelModel):
    apply_changes: bool = Field(True, description="Write counted quantities back to inventory")


class PrepItemCreate(CamelModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    item_type: PrepItemType = PrepItemType.INGREDIENT
    par_level: float = Field(..., ge=0)
    current_level: float = Field(0, ge=0)
    unit: PrepUnit
    notes: Optional[str] = None
    sort_order: SortOrder = 0


class PrepItemUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    item_type: Optional[PrepItemType] = None
    par_level: Optional[float] = Field(None, ge=0)
    current_level: Optional[float] = Field(None, ge=0)
    unit: Optional[PrepUnit] = None
    notes: Optional[str] = None
    sort_order: Optional[SortOrder] = None
    is_active: Optional[bool] = None

    @field_validator(
        "name", "category", "item_type", "par_level", "current_level", "unit", "sort_order", "is_active"
    )
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class PrepLogCreate(CamelModel):
    quantity_prepped: float = Field(..., ge=0)
    prepped_by: Optional[str] = None
    notes: Optional[str] = None


class PrepLevelUpdate(CamelModel):
    id: RecordId
    current_level: float = Field(..., ge=0)


class BatchLevelUpdate(CamelModel):
    updates: list[PrepLevelUpdate]


class VendorCreate(CamelModel):
    name: str = Field(..., min_length=1)
    contact_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class VendorUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    contact_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("name")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class VendorProductLink(CamelModel):
    inventory_item_id: RecordId
    vendor_sku: Optional[str] = None
    unit_cost: Optional[Money] = None
    min_order_qty: Optional[OrderQuantity] = None


class OrderLine(CamelModel):
    inventory_item_id: RecordId
    quantity: OrderQuantity
    unit_cost: Optional[Money] = None
    notes: Optional[str] = None


class OrderCreate(CamelModel):
    vendor_id: RecordId
    notes: Optional[str] = None
    items: list[OrderLine] = Field(default_factory=list)


class OrderUpdate(CamelModel):
    notes: Optional[str] = None
    status: Optional[OrderStatus] = None

    @field_validator("status")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class OrderLineUpdate(CamelModel):
    quantity: Optional[OrderQuantity] = None
    unit_cost: Optional[Money] = None
    notes: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class ReceiveOrderRequest(CamelModel):
    update_inventory: bool = Field(True, description="Add received quantities to inventory")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage database lifecycle."""
    logger.info("Starting Shelfwise API...")
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down...")
    await close_db()


# Create FastAPI app
app = FastAPI(
    title="Shelfwise API",
    description="REST API for inventory, cycle counts, restaurant prep sheets and purchasing",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration from environment
_cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:8081,http://127.0.0.1:8081")
ALLOWED_ORIGINS = [origin.strip() for origin in _cors_origins.split(",") if origin.strip()]

# Don't allow wildcard with credentials in production
_is_production = os.getenv("ENV", "development").lower() in ("production", "prod")
if _is_production and "*" in ALLOWED_ORIGINS:
    raise ValueError("CORS_ORIGINS cannot be '*' in production when credentials are enabled")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting. Auth routes carry their own limits; every other /api route
# goes through default_rate_limit.
DEFAULT_RATE_LIMIT = "60/minute"
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter


@limiter.limit(DEFAULT_RATE_LIMIT)
async def default_rate_limit(request: Request) -> None:
    """Per-client, per-path limit for routes without one of their own."""


_ERROR_STATUS_CODES: dict[type[ShelfwiseError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StateConflictError: status.HTTP_400_BAD_REQUEST,
    ValidationError: status.HTTP_400_BAD_REQUEST,
}


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return JSON 429 with Retry-After header."""
    retry_after = exc.detail.split(" ")[-1] if exc.detail else "60"
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded"},
        headers={"Retry-After": retry_after},
    )


@app.exception_handler(ShelfwiseError)
async def domain_error_handler(request: Request, exc: ShelfwiseError) -> JSONResponse:
    """Translate store-layer errors into 404/400 responses."""
    status_code = _ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Log store failures with the request that hit them and hide the details."""
    logger.error(f"Store failure during {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal store error"})


@app.get("/health")
async def health_check():
    """Health check endpoint - verifies DB connectivity."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "dependencies": {"database": "healthy"},
        }
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "dependencies": {"database": "unhealthy"},
            },
        )


# ===== Authentication =====

# Both routers are mounted at /api and /api/v1
auth_router = APIRouter()
api_router = APIRouter(dependencies=[Depends(default_rate_limit)])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(token: Annotated[str | None, Depends(oauth2_scheme)]) -> TokenData:
    """Dependency requiring a valid access token."""
    if token is None:
        raise _unauthorized("Not authenticated")
    token_data = decode_access_token(token)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")
    return token_data


async def get_organization_id(
    token: Annotated[str | None, Depends(oauth2_scheme)],
    x_organization_id: Annotated[int | None, Header(ge=1, le=INT32_MAX)] = None,
) -> Optional[int]:
    """Resolve the organization every store call in this request is scoped to.

    Anonymous callers get the unscoped view (None). Authenticated callers get
    the organization named by X-Organization-Id if they belong to it, else
    their default organization.
    """
    if token is None:
        if x_organization_id is not None:
            raise _unauthorized("Not authenticated")
        return None

    token_data = decode_access_token(token)
    if token_data is None:
        raise _unauthorized("Invalid or expired token")

    async with AsyncSessionLocal() as session:
        if x_organization_id is not None:
            if not await is_organization_member(session, x_organization_id, token_data.user_id):
                raise HTTPException(status_code=403, detail="Not a member of this organization")
            return x_organization_id

        organization = await get_user_default_organization(
            session, token_data.user_id, settings.default_organization_name
        )
        if not organization:
            raise _unauthorized("User no longer exists")
        return organization.id


OrganizationId = Annotated[Optional[int], Depends(get_organization_id)]

# Row IDs in the path; larger values cannot exist in an Integer column
RowId = Annotated[int, PathParam(ge=1, le=INT32_MAX)]


# ===== Auth Endpoints =====


@auth_router.post("/auth/register", response_model=Token, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def register(request: Request, user_data: UserRegister):
    """Register a new user account with its own organization.

    Returns access and refresh tokens on successful registration.
    """
    is_valid, error_msg = validate_password(user_data.password)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error_msg)

    async with AsyncSessionLocal() as session:
        try:
            user = await create_user(session, user_data.email, hash_password(user_data.password))
        except IntegrityError:
            await session.rollback()
            raise HTTPException(status_code=400, detail="Email already registered")

        await create_organization(
            session, settings.default_organization_name.format(email=user.email), user.id
        )

        return Token(
            access_token=create_access_token(user.id, user.email),
            refresh_token=create_refresh_token(user.id, user.email),
        )


@auth_router.post("/auth/login", response_model=Token)
@limiter.limit("10/minute")
async def login(request: Request, form_data: Annotated[OAuth2PasswordRequestForm, Depends()]):
    """Login and get access/refresh tokens."""
    async with AsyncSessionLocal() as session:
        user = await get_user_by_email(session, form_data.username)

    password_hash = user.hashed_password if user else DUMMY_HASH
    password_valid = verify_password(form_data.password, password_hash)
    if not user or not password_valid:
        raise _unauthorized("Invalid email or password")

    return Token(
        access_token=create_access_token(user.id, user.email),
        refresh_token=create_refresh_token(user.id, user.email),
    )


@auth_router.post("/auth/refresh", response_model=AccessTokenResponse)
async def refresh_token(body: RefreshTokenRequest):
    """Get a new access token using a refresh token."""
    token_data = decode_refresh_token(body.refresh_token)
    if token_data is None:
        raise _unauthorized("Invalid or expired refresh token")
    return AccessTokenResponse(access_token=create_access_token(token_data.user_id, token_data.email))


@auth_router.get("/auth/me")
async def get_current_user_info(current_user: Annotated[TokenData, Depends(get_current_user)]):
    """Get current authenticated user info."""
    return {"userId": current_user.user_id, "email": current_user.email}


# ===== Organization Endpoints =====


@api_router.get("/organizations")
async def get_organizations(current_user: Annotated[TokenData, Depends(get_current_user)]):
    """List the organizations the current user belongs to."""
    async with AsyncSessionLocal() as session:
        organizations = await list_organizations(session, current_user.user_id)
        return {
            "organizations": [
                {**format_organization(org), "memberCount": len(org.members)}
                for org in organizations
            ],
        }


@api_router.post("/organizations", status_code=status.HTTP_201_CREATED)
async def create_new_organization(
    current_user: Annotated[TokenData, Depends(get_current_user)],
    body: OrganizationCreate,
):
    """Create an organization owned by the current user."""
    async with AsyncSessionLocal() as session:
        organization = await create_organization(session, body.name, current_user.user_id)
        return format_organization(organization)


# ===== Inventory Endpoints =====


@api_router.get("/inventory")
async def get_inventory(organization_id: OrganizationId):
    """List all inventory items with per-status stats."""
    async with AsyncSessionLocal() as session:
        items = await list_inventory_items(session, organization_id)
        stats = await get_inventory_stats(session, organization_id)
        return {"items": [format_inventory_item(item) for item in items], "stats": stats}


@api_router.post("/inventory", status_code=status.HTTP_201_CREATED)
async def create_new_inventory_item(organization_id: OrganizationId, body: InventoryItemCreate):
    """Add a new item to inventory."""
    async with AsyncSessionLocal() as session:
        item = await create_inventory_item(session, organization_id, **body.model_dump())
        return format_inventory_item(item)


@api_router.post("/inventory/search")
async def search_inventory(organization_id: OrganizationId, body: InventorySearch):
    """Search inventory by text and/or status."""
    async with AsyncSessionLocal() as session:
        items = await search_inventory_items(session, organization_id, body.query, body.status)
        return {"items": [format_inventory_item(item) for item in items]}


@api_router.get("/inventory/{item_id}")
async def get_single_inventory_item(organization_id: OrganizationId, item_id: RowId):
    """Get a single inventory item by ID."""
    async with AsyncSessionLocal() as session:
        item = await get_inventory_item(session, organization_id, item_id)
        if not item:
            raise NotFoundError("Item not found")
        return format_inventory_item(item)


@api_router.patch("/inventory/{item_id}")
async def update_existing_inventory_item(
    organization_id: OrganizationId, item_id: RowId, body: InventoryItemUpdate
):
    """Update fields of an inventory item."""
    async with AsyncSessionLocal() as session:
        item = await update_inventory_item(
            session, organization_id, item_id, **body.model_dump(exclude_unset=True)
        )
        if not item:
            raise NotFoundError("Item not found")
        return format_inventory_item(item)


@api_router.delete("/inventory/{item_id}")
async def delete_existing_inventory_item(organization_id: OrganizationId, item_id: RowId):
    """Delete an inventory item."""
    async with AsyncSessionLocal() as session:
        if not await delete_inventory_item(session, organization_id, item_id):
            raise NotFoundError("Item not found")
        return {"success": True, "message": "Item deleted successfully"}


# ===== Cycle Count Endpoints =====


@api_router.get("/cycle-counts")
async def get_cycle_counts(organization_id: OrganizationId):
    """List cycle counts, newest first, with progress stats."""
    async with AsyncSessionLocal() as session:
        cycle_counts = await list_cycle_counts(session, organization_id)
        return {
            "cycleCounts": [format_cycle_count(cc, stats) for cc, stats in cycle_counts],
        }


@api_router.get("/cycle-counts/{cycle_count_id}")
async def get_single_cycle_count(organization_id: OrganizationId, cycle_count_id: RowId):
    """Get one cycle count with its items (uncounted first)."""
    async with AsyncSessionLocal() as session:
        cycle_count = await get_cycle_count(session, organization_id, cycle_count_id)
        if not cycle_count:
            raise NotFoundError("Cycle count not found")
        stats = await get_cycle_count_stats(session, [cycle_count.id])
        items = await list_cycle_count_items(session, cycle_count.id)
        return format_cycle_count(cycle_count, stats[cycle_count.id], items)


@api_router.post("/cycle-counts", status_code=status.HTTP_201_CREATED)
async def create_new_cycle_count(organization_id: OrganizationId, body: CycleCountCreate):
    """Start a cycle count over every pending inventory item."""
    async with AsyncSessionLocal() as session:
        cycle_count, stats = await start_cycle_count(session, organization_id, body.name, body.notes)
        return format_cycle_count(cycle_count, stats)


@api_router.patch("/cycle-counts/{cycle_count_id}")
async def update_existing_cycle_count(
    organization_id: OrganizationId, cycle_count_id: RowId, body: CycleCountUpdate
):
    """Rename, annotate or cancel an in-progress cycle count."""
    async with AsyncSessionLocal() as session:
        cycle_count, stats = await update_cycle_count(
            session, organization_id, cycle_count_id, **body.model_dump(exclude_unset=True)
        )
        return format_cycle_count(cycle_count, stats)


@api_router.post("/cycle-counts/{cycle_count_id}/items/{item_id}/count")
async def record_item_count(
    organization_id: OrganizationId,
    cycle_count_id: RowId,
    item_id: RowId,
    body: RecordCountRequest,
):
    """Record the physical count of one inventory item."""
    async with AsyncSessionLocal() as session:
        row = await record_count(
            session, organization_id, cycle_count_id, item_id, body.counted_qty, body.notes
        )
        return format_cycle_count_item(row)


@api_router.post("/cycle-counts/{cycle_count_id}/complete")
async def complete_existing_cycle_count(
    organization_id: OrganizationId,
    cycle_count_id: RowId,
    body: Optional[CompleteCycleCountRequest] = None,
):
    """Complete a cycle count, applying counted quantities unless applyChanges is false."""
    apply_changes = body.apply_changes if body is not None else True
    async with AsyncSessionLocal() as session:
        cycle_count, stats = await complete_cycle_count(
            session, organization_id, cycle_count_id, apply_changes
        )
        return format_cycle_count(cycle_count, stats)


@api_router.delete("/cycle-counts/{cycle_count_id}")
async def delete_existing_cycle_count(organization_id: OrganizationId, cycle_count_id: RowId):
    """Delete a cycle count and all of its items."""
    async with AsyncSessionLocal() as session:
        if not await delete_cycle_count(session, organization_id, cycle_count_id):
            raise NotFoundError("Cycle count not found")
        return {"success": True, "message": "Cycle count deleted successfully"}


# ===== Prep Sheet Endpoints =====


@api_router.get("/prep-items")
async def get_prep_items(organization_id: OrganizationId):
    """List active prep items grouped by category."""
    async with AsyncSessionLocal() as session:
        items = await list_prep_items(session, organization_id)
        return {"items": [format_prep_item(item) for item in items]}


@api_router.post("/prep-items", status_code=status.HTTP_201_CREATED)
async def create_new_prep_item(organization_id: OrganizationId, body: PrepItemCreate):
    """Add an item to the prep sheet."""
    async with AsyncSessionLocal() as session:
        item = await create_prep_item(session, organization_id, **body.model_dump())
        return format_prep_item(item)


@api_router.post("/prep-items/update-levels")
async def update_prep_levels(organization_id: OrganizationId, body: BatchLevelUpdate):
    """Set the current level of several prep items in one transaction."""
    async with AsyncSessionLocal() as session:
        updated_count = await batch_update_prep_levels(
            session,
            organization_id,
            {update.id: update.current_level for update in body.updates},
        )
        return {"success": True, "updatedCount": updated_count}


@api_router.get("/prep-items/{prep_item_id}")
async def get_single_prep_item(organization_id: OrganizationId, prep_item_id: RowId):
    """Get one prep item, including inactive ones."""
    async with AsyncSessionLocal() as session:
        item = await get_prep_item(session, organization_id, prep_item_id)
        if not item:
            raise NotFoundError("Prep item not found")
        return format_prep_item(item)


@api_router.patch("/prep-items/{prep_item_id}")
async def update_existing_prep_item(
    organization_id: OrganizationId, prep_item_id: RowId, body: PrepItemUpdate
):
    """Update fields of a prep item; isActive=false hides it from the sheet."""
    async with AsyncSessionLocal() as session:
        item = await update_prep_item(
            session, organization_id, prep_item_id, **body.model_dump(exclude_unset=True)
        )
        if not item:
            raise NotFoundError("Prep item not found")
        return format_prep_item(item)


@api_router.delete("/prep-items/{prep_item_id}")
async def delete_existing_prep_item(organization_id: OrganizationId, prep_item_id: RowId):
    """Delete a prep item and its prep history."""
    async with AsyncSessionLocal() as session:
        if not await delete_prep_item(session, organization_id, prep_item_id):
            raise NotFoundError("Prep item not found")
        return {"success": True, "message": "Prep item deleted successfully"}


@api_router.post("/prep-items/{prep_item_id}/log", status_code=status.HTTP_201_CREATED)
async def log_prep_item(organization_id: OrganizationId, prep_item_id: RowId, body: PrepLogCreate):
    """Log completed prep; the item's current level rises by the amount prepped."""
    async with AsyncSessionLocal() as session:
        log = await log_prep(
            session,
            organization_id,
            prep_item_id,
            body.quantity_prepped,
            prepped_by=body.prepped_by,
            notes=body.notes,
        )
        return format_prep_log(log)


@api_router.get("/prep-items/{prep_item_id}/logs")
async def get_prep_item_logs(organization_id: OrganizationId, prep_item_id: RowId):
    """Recent prep history for one item, newest first."""
    async with AsyncSessionLocal() as session:
        item = await get_prep_item(session, organization_id, prep_item_id)
        if not item:
            raise NotFoundError("Prep item not found")
        logs = await list_prep_logs(session, item.id, limit=settings.prep_log_limit)
        return {"logs": [format_prep_log(log) for log in logs]}


# ===== Vendor Endpoints =====


@api_router.get("/vendors")
async def get_vendors(organization_id: OrganizationId):
    """List vendors by name."""
    async with AsyncSessionLocal() as session:
        vendors = await list_vendors(session, organization_id)
        return {"vendors": [format_vendor(vendor) for vendor in vendors]}


@api_router.post("/vendors", status_code=status.HTTP_201_CREATED)
async def create_new_vendor(organization_id: OrganizationId, body: VendorCreate):
    """Add a vendor."""
    async with AsyncSessionLocal() as session:
        vendor = await create_vendor(session, organization_id, **body.model_dump())
        return format_vendor(vendor)


@api_router.get("/vendors/{vendor_id}")
async def get_single_vendor(organization_id: OrganizationId, vendor_id: RowId):
    async with AsyncSessionLocal() as session:
        vendor = await get_vendor(session, organization_id, vendor_id)
        if not vendor:
            raise NotFoundError("Vendor not found")
        return format_vendor(vendor)


@api_router.patch("/vendors/{vendor_id}")
async def update_existing_vendor(organization_id: OrganizationId, vendor_id: RowId, body: VendorUpdate):
    """Update a vendor's name or contact details."""
    async with AsyncSessionLocal() as session:
        vendor = await update_vendor(session, organization_id, vendor_id, **body.model_dump(exclude_unset=True))
        if not vendor:
            raise NotFoundError("Vendor not found")
        return format_vendor(vendor)


@api_router.delete("/vendors/{vendor_id}")
async def delete_existing_vendor(organization_id: OrganizationId, vendor_id: RowId):
    """Delete a vendor along with its product links and orders."""
    async with AsyncSessionLocal() as session:
        if not await delete_vendor(session, organization_id, vendor_id):
            raise NotFoundError("Vendor not found")
        return {"success": True, "message": "Vendor deleted"}


@api_router.get("/vendors/{vendor_id}/products")
async def get_vendor_products(organization_id: OrganizationId, vendor_id: RowId):
    """List the inventory items a vendor supplies."""
    async with AsyncSessionLocal() as session:
        products = await list_vendor_products(session, organization_id, vendor_id)
        return {"products": [format_vendor_product(product) for product in products]}


@api_router.post("/vendors/{vendor_id}/products", status_code=status.HTTP_201_CREATED)
async def link_product_to_vendor(
    organization_id: OrganizationId,
    vendor_id: RowId,
    body: VendorProductLink,
    response: Response,
):
    """Link an inventory item to a vendor (201), or update the existing link (200)."""
    async with AsyncSessionLocal() as session:
        product, created = await link_vendor_product(session, organization_id, vendor_id, **body.model_dump())
        if not created:
            response.status_code = status.HTTP_200_OK
        return format_vendor_product(product)


@api_router.delete("/vendors/{vendor_id}/products/{product_id}")
async def unlink_product_from_vendor(organization_id: OrganizationId, vendor_id: RowId, product_id: RowId):
    async with AsyncSessionLocal() as session:
        if not await unlink_vendor_product(session, organization_id, vendor_id, product_id):
            raise NotFoundError("Product link not found")
        return {"success": True}


# ===== Purchase Order Endpoints =====


@api_router.get("/orders")
async def get_orders(organization_id: OrganizationId):
    """List purchase orders, newest first."""
    async with AsyncSessionLocal() as session:
        orders = await list_orders(session, organization_id)
        return {"orders": [format_order(order) for order in orders]}


@api_router.get("/orders/below-par/{vendor_id}")
async def get_below_par_items(organization_id: OrganizationId, vendor_id: RowId):
    """Items this vendor supplies that are below par, with the quantity needed to reach it."""
    async with AsyncSessionLocal() as session:
        products = await list_below_par_products(session, organization_id, vendor_id)
        return {"items": [format_below_par(product) for product in products]}


@api_router.post("/orders", status_code=status.HTTP_201_CREATED)
async def create_new_order(organization_id: OrganizationId, body: OrderCreate):
    """Create a draft order, optionally with its first lines."""
    async with AsyncSessionLocal() as session:
        order = await create_order(
            session,
            organization_id,
            body.vendor_id,
            notes=body.notes,
            items=[line.model_dump() for line in body.items],
        )
        return format_order(order)


@api_router.get("/orders/{order_id}")
async def get_single_order(organization_id: OrganizationId, order_id: RowId):
    async with AsyncSessionLocal() as session:
        order = await get_order(session, organization_id, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return format_order(order)


@api_router.patch("/orders/{order_id}")
async def update_existing_order(organization_id: OrganizationId, order_id: RowId, body: OrderUpdate):
    """Edit an order's notes or cancel it."""
    async with AsyncSessionLocal() as session:
        order = await update_order(session, organization_id, order_id, **body.model_dump(exclude_unset=True))
        return format_order(order)


@api_router.delete("/orders/{order_id}")
async def delete_existing_order(organization_id: OrganizationId, order_id: RowId):
    """Delete an order that has not been received."""
    async with AsyncSessionLocal() as session:
        if not await delete_order(session, organization_id, order_id):
            raise NotFoundError("Order not found")
        return {"success": True, "message": "Order deleted"}


@api_router.post("/orders/{order_id}/items", status_code=status.HTTP_201_CREATED)
async def add_line_to_order(organization_id: OrganizationId, order_id: RowId, body: OrderLine):
    """Add a line to a draft order."""
    async with AsyncSessionLocal() as session:
        line = await add_order_item(session, organization_id, order_id, **body.model_dump())
        return format_order_item(line)


@api_router.patch("/orders/{order_id}/items/{line_id}")
async def update_order_line(
    organization_id: OrganizationId, order_id: RowId, line_id: RowId, body: OrderLineUpdate
):
    async with AsyncSessionLocal() as session:
        line = await update_order_item(
            session, organization_id, order_id, line_id, **body.model_dump(exclude_unset=True)
        )
        return format_order_item(line)


@api_router.delete("/orders/{order_id}/items/{line_id}")
async def remove_order_line(organization_id: OrganizationId, order_id: RowId, line_id: RowId):
    """Remove a line from a draft order."""
    async with AsyncSessionLocal() as session:
        await remove_order_item(session, organization_id, order_id, line_id)
        return {"success": True}


@api_router.post("/orders/{order_id}/submit")
async def submit_existing_order(organization_id: OrganizationId, order_id: RowId):
    """Submit a draft order to its vendor."""
    async with AsyncSessionLocal() as session:
        order = await submit_order(session, organization_id, order_id)
        return format_order(order)


@api_router.post("/orders/{order_id}/receive")
async def receive_existing_order(
    organization_id: OrganizationId,
    order_id: RowId,
    body: Optional[ReceiveOrderRequest] = None,
):
    """Mark a submitted order received, adding its quantities to stock unless updateInventory is false."""
    update_inventory = body.update_inventory if body is not None else True
    async with AsyncSessionLocal() as session:
        order = await receive_order(session, organization_id, order_id, update_inventory)
        return format_order(order)


# Mount both routers at /api/v1 (versioned) and /api (backward compat)
for _prefix in ("/api/v1", "/api"):
    app.include_router(auth_router, prefix=_prefix)
    app.include_router(api_router, prefix=_prefix)


def run_api():
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),  # nosec B104
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run_api()
