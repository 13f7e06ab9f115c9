from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coupon_engine.middleware.logging import RequestLoggingMiddleware
from coupon_engine.core.config import settings
from coupon_engine.core.database import ensure_indexes, close_mongo_connection
from coupon_engine.api.routers import coupons

prefix = settings.API_V1_PREFIX


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create MongoDB indexes on startup and close the client on shutdown."""
    await ensure_indexes()

    yield  # <--- app runs while this yields

    await close_mongo_connection()


app = FastAPI(
    title=settings.PROJECT_NAME,
    servers=[{"url": "http://localhost:8000"}],
    lifespan=lifespan,
)

""" Added CORS Middle ware to allow cross origin resouce sharing
    Currently in development so allowed all origins, methods, headers, with credentials
"""
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

"""Custom middle to log meta data of request and computation time for each request"""
app.add_middleware(RequestLoggingMiddleware)

"""Adding all the routes to FastAPI instance"""
app.include_router(coupons.router, prefix=f"{prefix}/coupons", tags=["Coupons"])


@app.get("/", tags=["Root"])
async def root():
    return {"message": f"{settings.PROJECT_NAME} is running"}
