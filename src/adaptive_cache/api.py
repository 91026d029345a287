"""
HTTP endpoints for the adaptive cache.

Read-only introspection of predictions, patterns, rules and dependencies plus
the behavior and dependency write paths. Every response uses the
``{"success", "data", "message"}`` envelope.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .system import AdaptiveCacheSystem

logger = logging.getLogger(__name__)

router = APIRouter(tags=["adaptive-cache"])


class BehaviorRequest(BaseModel):
    """A behavior event for one session."""
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, alias="sessionId")
    patterns: Dict[str, Any] = Field(default_factory=dict)


class DependencyRequest(BaseModel):
    key: str = Field(..., min_length=1)
    dependencies: List[str]


class CascadeRequest(BaseModel):
    key: str = Field(..., min_length=1)
    depth: Optional[int] = Field(None, ge=0)


def get_system(request: Request) -> AdaptiveCacheSystem:
    return request.app.state.system


def _error(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "data": None, "message": message}
    )


@router.get("/predictions")
async def get_predictions(system: AdaptiveCacheSystem = Depends(get_system)):
    """Current cache predictions."""
    try:
        predictions = [p.to_dict() for p in system.get_predictions()]
        return {
            "success": True,
            "data": {"predictions": predictions, "count": len(predictions)},
            "message": "Predictions retrieved"
        }
    except Exception as e:
        logger.error(f"Failed to get predictions: {e}")
        return _error(f"Failed to get predictions: {str(e)}")


@router.get("/behavior/stats")
async def get_behavior_stats(system: AdaptiveCacheSystem = Depends(get_system)):
    try:
        return {
            "success": True,
            "data": system.tracker.get_behavior_stats(),
            "message": "Behavior stats retrieved"
        }
    except Exception as e:
        logger.error(f"Failed to get behavior stats: {e}")
        return _error(f"Failed to get behavior stats: {str(e)}")


@router.post("/behavior")
async def record_behavior(body: BehaviorRequest, system: AdaptiveCacheSystem = Depends(get_system)):
    """Record a behavior event."""
    recorded = system.record_behavior(body.session_id, body.patterns)
    if not recorded:
        return _error("Behavior event was not recorded")
    return {
        "success": True,
        "data": {"session_id": body.session_id},
        "message": "Behavior recorded"
    }


@router.get("/invalidation/stats")
async def get_invalidation_stats(system: AdaptiveCacheSystem = Depends(get_system)):
    try:
        return {
            "success": True,
            "data": system.invalidation_engine.get_stats(),
            "message": "Invalidation stats retrieved"
        }
    except Exception as e:
        logger.error(f"Failed to get invalidation stats: {e}")
        return _error(f"Failed to get invalidation stats: {str(e)}")


@router.get("/invalidation/patterns")
async def get_patterns(system: AdaptiveCacheSystem = Depends(get_system)):
    patterns = [p.to_dict() for p in system.get_patterns()]
    return {
        "success": True,
        "data": {"patterns": patterns, "count": len(patterns)},
        "message": "Patterns retrieved"
    }


@router.get("/invalidation/rules")
async def get_rules(system: AdaptiveCacheSystem = Depends(get_system)):
    rules = [r.to_dict() for r in system.get_rules()]
    return {
        "success": True,
        "data": {"rules": rules, "count": len(rules)},
        "message": "Rules retrieved"
    }


@router.get("/invalidation/dependencies")
async def get_dependencies(system: AdaptiveCacheSystem = Depends(get_system)):
    dependencies = list(system.get_dependencies().values())
    return {
        "success": True,
        "data": {"dependencies": dependencies, "count": len(dependencies)},
        "message": "Dependencies retrieved"
    }


@router.post("/invalidation/dependency")
async def add_dependency(body: DependencyRequest, system: AdaptiveCacheSystem = Depends(get_system)):
    """Register the dependencies of a key."""
    if not system.register_dependency(body.key, body.dependencies):
        return _error("Dependency could not be registered")
    return {
        "success": True,
        "data": {"key": body.key, "dependencies": body.dependencies},
        "message": "Dependency registered"
    }


@router.post("/invalidation/invalidate-cascade")
async def invalidate_cascade(body: CascadeRequest, system: AdaptiveCacheSystem = Depends(get_system)):
    """Invalidate a key and its dependents."""
    result = await system.cascade_invalidate(body.key, body.depth)
    return {
        "success": True,
        "data": result.to_dict(),
        "message": f"{result.keys_invalidated} keys invalidated"
    }


@router.get("/stats")
async def get_stats(system: AdaptiveCacheSystem = Depends(get_system)):
    try:
        return {
            "success": True,
            "data": system.get_stats(),
            "message": "Adaptive cache stats retrieved"
        }
    except Exception as e:
        logger.error(f"Failed to get adaptive cache stats: {e}")
        return _error(f"Failed to get adaptive cache stats: {str(e)}")


@router.get("/health")
async def health(system: AdaptiveCacheSystem = Depends(get_system)):
    status = await system.health_check()
    if not status["healthy"]:
        return JSONResponse(
            status_code=503,
            content={"success": False, "data": status, "message": "Adaptive cache is unhealthy"}
        )
    return {"success": True, "data": status, "message": "Adaptive cache is healthy"}


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Rejected request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "data": {"errors": jsonable_encoder(exc.errors())}, "message": "Invalid request"}
    )


def create_app(system: AdaptiveCacheSystem, prefix: str = "/cache", run_scheduler: bool = True) -> FastAPI:
    """Create the FastAPI application serving ``system``.

    The scheduler is started and stopped with the application lifespan
    unless ``run_scheduler`` is False.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if run_scheduler:
            await system.start()
        try:
            yield
        finally:
            if run_scheduler:
                await system.stop()

    app = FastAPI(
        title="Adaptive Cache API",
        description="Predictive preloading and smart invalidation",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.system = system
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(router, prefix=prefix)
    return app
