"""FastAPI application: a thin HTTP surface over the entity and data engines.

Routes:
    GET    /api/v1/entities                 list entity definitions
    POST   /api/v1/entities                 create an entity (and its table)
    GET    /api/v1/entities/{name}          one entity definition
    DELETE /api/v1/entities/{name}          delete an entity (and drop its table)
    GET    /api/v1/relationships            list declared relationships
    POST   /api/v1/relationships            declare a relationship
    GET    /api/v1/data/{entity}            list records (filters, orderBy, paging)
    POST   /api/v1/data/{entity}            create a record
    GET    /api/v1/data/{entity}/{id}       one record
    PATCH  /api/v1/data/{entity}/{id}       partial update
    DELETE /api/v1/data/{entity}/{id}       delete a record

The caller's tenant comes from a resolver; the default reads the external
identity from the ``X-Tenant-ID`` header and creates the tenant on first use.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from entityforge.core.errors import (
    DuplicateEntityError,
    EntityForgeError,
    InvalidIdentifier,
    NotFoundError,
    SchemaGenerationError,
    StorageError,
    StorageTimeoutError,
    ValidationError,
)
from entityforge.engine.data import DataEngine
from entityforge.engine.entities import EntityEngine
from entityforge.metadata.models import DefinitionModel, EntityDefinition
from entityforge.metadata.store import EntityMetadataStore, TenantStore
from entityforge.persistence.config import DatabaseConfig, create_database
from entityforge.persistence.database import Database

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"

TenantResolver = Callable[[Request], Awaitable[str]]

# Most specific first; handlers are looked up along the exception's MRO
ERROR_STATUS: dict[type[Exception], int] = {
    InvalidIdentifier: 400,
    ValidationError: 422,
    NotFoundError: 404,
    DuplicateEntityError: 409,
    SchemaGenerationError: 500,
    StorageTimeoutError: 504,
    StorageError: 503,
    EntityForgeError: 500,
}

_LIST_PARAMS = {"limit", "offset", "orderBy"}


def _dump(model: DefinitionModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


async def header_tenant_resolver(request: Request) -> str:
    """Resolve the tenant from the X-Tenant-ID header, creating it if new."""
    external_id = request.headers.get(TENANT_HEADER)
    if not external_id:
        raise HTTPException(401, f"Missing {TENANT_HEADER} header")
    tenant = await request.app.state.tenants.get_or_create(external_id)
    return tenant.id


async def current_tenant(request: Request) -> str:
    return await request.app.state.tenant_resolver(request)


def _entities(request: Request) -> EntityEngine:
    return request.app.state.entity_engine


def _data(request: Request) -> DataEngine:
    return request.app.state.data_engine


async def _require_entity(request: Request, tenant_id: str, name: str) -> EntityDefinition:
    entity = await _entities(request).get_entity(tenant_id, name)
    if entity is None:
        raise HTTPException(404, f"Entity '{name}' not found")
    return entity


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter(prefix="/api/v1")


@router.get("/entities")
async def list_entities(request: Request, tenant_id: str = Depends(current_tenant)):
    entities = await _entities(request).list_entities(tenant_id)
    return {"data": [_dump(e) for e in entities]}


@router.post("/entities", status_code=201)
async def create_entity(
    request: Request,
    body: dict[str, Any] = Body(...),
    tenant_id: str = Depends(current_tenant),
):
    entity = await _entities(request).create_entity(tenant_id, body)
    return {"data": _dump(entity)}


@router.get("/entities/{name}")
async def get_entity(name: str, request: Request, tenant_id: str = Depends(current_tenant)):
    entity = await _require_entity(request, tenant_id, name)
    return {"data": _dump(entity)}


@router.delete("/entities/{name}")
async def delete_entity(name: str, request: Request, tenant_id: str = Depends(current_tenant)):
    await _entities(request).delete_entity(tenant_id, name)
    return {"success": True}


@router.get("/relationships")
async def list_relationships(request: Request, tenant_id: str = Depends(current_tenant)):
    relationships = await _entities(request).list_relationships(tenant_id)
    return {"data": [_dump(r) for r in relationships]}


@router.post("/relationships", status_code=201)
async def define_relationship(
    request: Request,
    body: dict[str, Any] = Body(...),
    tenant_id: str = Depends(current_tenant),
):
    relationship = await _entities(request).define_relationship(tenant_id, body)
    return {"data": _dump(relationship)}


@router.get("/data/{entity}")
async def list_records(
    entity: str,
    request: Request,
    limit: int = 100,
    offset: int = 0,
    order_by: str | None = Query(default=None, alias="orderBy"),
    tenant_id: str = Depends(current_tenant),
):
    """List records. Query parameters other than limit/offset/orderBy are equality filters."""
    definition = await _require_entity(request, tenant_id, entity)
    where = {k: v for k, v in request.query_params.items() if k not in _LIST_PARAMS}

    data_engine = _data(request)
    records = await data_engine.find_many(
        tenant_id, definition, where=where, order_by=order_by, limit=limit, offset=offset
    )
    total = await data_engine.count(tenant_id, definition, where)
    return {"data": records, "meta": {"total": total, "limit": limit, "offset": offset}}


@router.post("/data/{entity}", status_code=201)
async def create_record(
    entity: str,
    request: Request,
    body: dict[str, Any] = Body(...),
    tenant_id: str = Depends(current_tenant),
):
    definition = await _require_entity(request, tenant_id, entity)
    record = await _data(request).create(tenant_id, definition, body)
    return {"data": record}


@router.get("/data/{entity}/{record_id}")
async def get_record(
    entity: str, record_id: str, request: Request, tenant_id: str = Depends(current_tenant)
):
    definition = await _require_entity(request, tenant_id, entity)
    record = await _data(request).find_one(tenant_id, definition, record_id)
    if record is None:
        raise HTTPException(404, "Record not found")
    return {"data": record}


@router.patch("/data/{entity}/{record_id}")
async def update_record(
    entity: str,
    record_id: str,
    request: Request,
    body: dict[str, Any] = Body(...),
    tenant_id: str = Depends(current_tenant),
):
    definition = await _require_entity(request, tenant_id, entity)
    record = await _data(request).update(tenant_id, definition, record_id, body)
    return {"data": record}


@router.delete("/data/{entity}/{record_id}")
async def delete_record(
    entity: str, record_id: str, request: Request, tenant_id: str = Depends(current_tenant)
):
    definition = await _require_entity(request, tenant_id, entity)
    await _data(request).delete(tenant_id, definition, record_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def _install_engines(app: FastAPI, db: Database) -> None:
    app.state.db = db
    app.state.tenants = TenantStore(db)
    app.state.entity_engine = EntityEngine(db)
    app.state.data_engine = DataEngine(db)


async def _handle_error(request: Request, exc: Exception) -> JSONResponse:
    status = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500
    )
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body: dict[str, Any] = {"error": str(exc)}
    if isinstance(exc, ValidationError) and exc.errors:
        body["errors"] = exc.errors
    return JSONResponse(status_code=status, content=body)


async def _handle_not_implemented(request: Request, exc: NotImplementedError) -> JSONResponse:
    return JSONResponse(status_code=501, content={"error": str(exc)})


def create_app(
    db: Database | None = None,
    tenant_resolver: TenantResolver | None = None,
) -> FastAPI:
    """Build the API application.

    Args:
        db: Connected storage handle with metadata tables in place. When
            omitted, one is built from the environment at startup and closed
            at shutdown.
        tenant_resolver: Async callable mapping a request to a tenant id.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned: Database | None = None
        if db is None:
            cwd = Path.cwd()
            base_path = cwd.parent if cwd.name == "backend" else cwd
            config = DatabaseConfig.from_env(base_path)
            if config.sqlite_path:
                Path(config.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

            owned = create_database(config)
            await owned.connect()
            await EntityMetadataStore(owned).create_all()
            _install_engines(app, owned)
            logger.info("EntityForge API started on %s", owned.dialect_name)

        yield

        if owned is not None:
            await owned.close()

    app = FastAPI(title="EntityForge API", lifespan=lifespan)
    app.state.tenant_resolver = tenant_resolver or header_tenant_resolver
    if db is not None:
        _install_engines(app, db)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_class in ERROR_STATUS:
        app.add_exception_handler(exc_class, _handle_error)
    app.add_exception_handler(NotImplementedError, _handle_not_implemented)

    app.include_router(router)
    return app


app = create_app()
