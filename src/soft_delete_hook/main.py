"""
Soft Delete API Endpoints

Blueprint routes over every registered model. Models wrapped by the
soft-delete hook additionally expose trashed listings, restore and force
delete.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .config import HOST, MODEL_DEFINITIONS_PATH, ORM_ENABLED, PORT, SOFT_DELETE_RESERVED_IDENTITIES
from .hook import SoftDeleteHook
from .lifecycle import Lifecycle
from .models import Model, Orm, UsageError
from .soft_delete import SoftDeleteModel

logger = logging.getLogger(__name__)

LIST_PARAMS = frozenset(["limit", "skip", "sort"])


# ============================================================================
# Helpers
# ============================================================================


def build_lifecycle() -> Lifecycle:
    """Lifecycle wired from environment configuration"""
    orm = Orm(definitions_path=MODEL_DEFINITIONS_PATH) if ORM_ENABLED else None
    return Lifecycle(orm=orm, hooks=[SoftDeleteHook(reserved_identities=SOFT_DELETE_RESERVED_IDENTITIES)])


def _coerce(model: Model, name: str, raw: str) -> Any:
    """Convert a path or query string to the attribute's declared type"""
    definition = model.attributes.get(name, {})
    attr_type = "number" if definition.get("auto_increment") else definition.get("type", "string")
    if raw == "null":
        return None
    if attr_type in ("number", "integer"):
        try:
            return int(raw)
        except ValueError:
            try:
                return float(raw)
            except ValueError:
                raise UsageError(f"`{name}` must be a number, got `{raw}`")
    if attr_type == "boolean":
        return raw.lower() in ("true", "1", "yes")
    return raw


def _list_response(records) -> Dict[str, Any]:
    return {"records": records, "count": len(records)}


# ============================================================================
# Application
# ============================================================================


def create_app(lifecycle: Optional[Lifecycle] = None) -> FastAPI:
    lifecycle = lifecycle or build_lifecycle()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await lifecycle.lift()
        yield

    app = FastAPI(
        title="Soft Delete API",
        description="Model blueprint routes with transparent soft delete",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.lifecycle = lifecycle

    def get_model(identity: str) -> Model:
        models = lifecycle.orm.models if lifecycle.orm is not None else {}
        if identity not in models:
            raise HTTPException(status_code=404, detail=f"Model `{identity}` not found")
        return models[identity]

    def get_soft_delete_model(identity: str) -> SoftDeleteModel:
        model = get_model(identity)
        if not isinstance(model, SoftDeleteModel):
            raise HTTPException(status_code=404, detail=f"Model `{identity}` does not support soft delete")
        return model

    def list_criteria(model: Model, request: Request, limit: Optional[int], skip: int, sort: Optional[str]):
        where = {
            name: _coerce(model, name, value)
            for name, value in request.query_params.items()
            if name not in LIST_PARAMS
        }
        criteria: Dict[str, Any] = {"where": where, "skip": skip}
        if limit is not None:
            criteria["limit"] = limit
        if sort:
            criteria["sort"] = sort
        return criteria

    # ========================================================================
    # Health Check
    # ========================================================================

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "soft-delete"}

    # ========================================================================
    # Listing Endpoints
    # ========================================================================

    @app.get("/{identity}/trashed", tags=["Soft Delete"])
    def list_trashed(
        identity: str,
        request: Request,
        limit: Optional[int] = Query(None, ge=1),
        skip: int = Query(0, ge=0),
        sort: Optional[str] = None,
    ):
        """List soft-deleted records only"""
        model = get_soft_delete_model(identity)
        try:
            return _list_response(model.find_trashed(list_criteria(model, request, limit, skip, sort)))
        except UsageError as e:
            logger.error(f"Error listing trashed {identity}: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/{identity}/with-trashed", tags=["Soft Delete"])
    def list_with_trashed(
        identity: str,
        request: Request,
        limit: Optional[int] = Query(None, ge=1),
        skip: int = Query(0, ge=0),
        sort: Optional[str] = None,
    ):
        """List active and soft-deleted records"""
        model = get_soft_delete_model(identity)
        try:
            return _list_response(model.find_with_trashed(list_criteria(model, request, limit, skip, sort)))
        except UsageError as e:
            logger.error(f"Error listing {identity} with trashed: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/{identity}", tags=["Records"])
    def list_records(
        identity: str,
        request: Request,
        limit: Optional[int] = Query(None, ge=1),
        skip: int = Query(0, ge=0),
        sort: Optional[str] = None,
    ):
        """
        List records

        Query parameters other than **limit**, **skip** and **sort** are
        equality conditions on attributes.
        """
        model = get_model(identity)
        try:
            return _list_response(model.find(list_criteria(model, request, limit, skip, sort)))
        except UsageError as e:
            logger.error(f"Error listing {identity}: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))

    # ========================================================================
    # Record Endpoints
    # ========================================================================

    @app.post("/{identity}", tags=["Records"], status_code=201)
    def create_record(identity: str, values: Dict[str, Any] = Body(...)):
        """Create a record"""
        model = get_model(identity)
        try:
            return model.create(values)
        except UsageError as e:
            logger.error(f"Error creating {identity}: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/{identity}/{record_id}", tags=["Records"])
    def get_record(identity: str, record_id: str):
        """Get a single record"""
        model = get_model(identity)
        try:
            record = model.find_one(_coerce(model, model.primary_key, record_id))
        except UsageError as e:
            logger.error(f"Error getting {identity}: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return record

    @app.patch("/{identity}/{record_id}", tags=["Records"])
    def update_record(identity: str, record_id: str, values: Dict[str, Any] = Body(...)):
        """Update a single record"""
        model = get_model(identity)
        try:
            record = model.update_one(_coerce(model, model.primary_key, record_id), values)
        except UsageError as e:
            logger.error(f"Error updating {identity}: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return record

    @app.delete("/{identity}/{record_id}", tags=["Records"])
    def delete_record(identity: str, record_id: str, force: bool = False):
        """
        Delete a single record

        Soft-delete models only mark the record unless **force** is set.
        """
        model = get_model(identity)
        if force and isinstance(model, SoftDeleteModel):
            destroy_one = model.force_destroy_one
        else:
            destroy_one = model.destroy_one
        try:
            record = destroy_one(_coerce(model, model.primary_key, record_id))
        except UsageError as e:
            logger.error(f"Error deleting {identity}: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return record

    @app.post("/{identity}/{record_id}/restore", tags=["Soft Delete"])
    def restore_record(identity: str, record_id: str):
        """Restore a soft-deleted record"""
        model = get_soft_delete_model(identity)
        try:
            record = model.restore_one(_coerce(model, model.primary_key, record_id))
        except UsageError as e:
            logger.error(f"Error restoring {identity}: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))
        if record is None:
            raise HTTPException(status_code=404, detail="Record not found")
        return record

    # ========================================================================
    # Error Handlers
    # ========================================================================

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        """Custom HTTP exception handler"""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(create_app(), host=HOST, port=PORT)
