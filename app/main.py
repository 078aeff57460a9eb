from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import logging

# Import database components
from app.database.database import create_tables

# Import middleware
from app.common.middleware import BusinessUnitMiddleware, SecurityHeadersMiddleware
from app.common.exceptions import SalesError, PersistenceError

# Import routers
from app.modules.business_units.router import business_units_router
from app.modules.sales_categories.router import sales_categories_router
from app.modules.articles.router import articles_router
from app.modules.inventory.router import stock_router
from app.modules.subjects.router import subjects_router
from app.modules.sales.router import router as sales_router, formats_router
from app.modules.localization.router import localization_router
from app.modules.access.router import access_router

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Sales Invoicing API",
    description="Multi business-unit sales invoicing API built with FastAPI and SQLAlchemy",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(BusinessUnitMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SalesError)
async def sales_error_handler(request: Request, exc: SalesError):
    if isinstance(exc, PersistenceError):
        # Real cause already logged by the service
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": "The operation could not be saved. Please try again.", "code": exc.code}
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({"detail": exc.message, "code": exc.code, "data": exc.data})
    )


# Include routers
app.include_router(business_units_router)
app.include_router(sales_categories_router)
app.include_router(articles_router)
app.include_router(stock_router)
app.include_router(subjects_router)
app.include_router(sales_router)
app.include_router(formats_router)
app.include_router(localization_router)
app.include_router(access_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    create_tables()


@app.get("/")
async def read_root():
    return {
        "message": "Sales Invoicing API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Sales Invoicing API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Sales Invoicing API shutting down...")
