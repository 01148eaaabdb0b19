# mealstock API Main Entry Point
import logging
import sys
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError

from .errors import MealstockError
from .settings import settings
from .routers.ready import router as ready_router
from .routers.workspaces import router as workspaces_router
from .routers.recipes import router as recipes_router
from .routers.planner import router as planner_router
from .routers.inventory import router as inventory_router
from .routers.shopping import router as shopping_router

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("mealstock")

# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

app = FastAPI(title="mealstock API", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(MealstockError)
async def mealstock_error_handler(request: Request, exc: MealstockError):
    if exc.status_code >= 409:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"{request.method} {request.url.path} -> integrity error: {exc.orig}")
    return JSONResponse(
        status_code=409,
        content={"detail": "Conflicts with existing data", "code": "conflict"},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(workspaces_router, prefix="/api", tags=["workspaces"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(planner_router, prefix="/api", tags=["plan"])
app.include_router(inventory_router, prefix="/api/inventory", tags=["inventory"])
app.include_router(shopping_router, prefix="/api/shopping", tags=["shopping"])
