import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from budget_service.config import get_settings
from budget_service.db.database import Base, engine, check_db_connection
from budget_service.exceptions import ServiceError
from budget_service.api.v1.routes.groups import router as groups_router
from budget_service.api.v1.routes.expenses import router as expenses_router
from budget_service.api.v1.routes.payments import router as payments_router
from budget_service.api.v1.routes.settlements import router as settlements_router
from budget_service.rabbitmq.producer import close_rabbitmq_producer

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Budget service starting")
    yield
    close_rabbitmq_producer()
    logger.info("Budget service stopped")


app = FastAPI(
    title="Budget Service - Shared Expenses",
    description="Tracks group expenses, balances and settlements",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    content = {"error": exc.message}
    if exc.details is not None:
        content["details"] = jsonable_encoder(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid input", "details": jsonable_encoder(exc.errors())}
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


app.include_router(groups_router)
app.include_router(expenses_router)
app.include_router(payments_router)
app.include_router(settlements_router)


@app.get("/")
def read_root():
    return {"message": "Budget Service API", "version": "1.0.0"}


@app.get("/health")
def health_check():
    if not check_db_connection():
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})
    return {"status": "healthy", "database": "ok"}
