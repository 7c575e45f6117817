import os
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import requests
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from commerce import CommerceClient, DiscordClient, UpstreamError
from config import Settings, get_settings
from schemas import BasketCreate, TokenExchange
from security import MAX_BODY_BYTES, BodySizeLimit, apply_security_headers, global_limiter, strict_limiter
from validators import validate_basket_ident, validate_package, validate_product_name, validate_return_url

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("storefront")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Backend configuration:")
    for name, loaded in settings.secret_status().items():
        logger.info("%s: %s", name, "Loaded" if loaded else "Missing")
    database.init_database(settings)
    yield
    database.close_database()


app = FastAPI(
    title="Storefront API",
    version="2.0.0",
    lifespan=lifespan,
    dependencies=[Depends(global_limiter)],
)

app.add_middleware(BodySizeLimit)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def harden(request: Request, call_next):
    length = request.headers.get("content-length")
    if length and length.isdigit() and int(length) > MAX_BODY_BYTES:
        response = JSONResponse(status_code=413, content={"error": "Request entity too large"})
    else:
        response = await call_next(request)
    return apply_security_headers(response)


# Error bodies

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    details = errors[0].get("msg", "Invalid input") if errors else "Invalid input"
    return JSONResponse(status_code=400, content={"error": "Invalid input", "details": details})


@app.exception_handler(UpstreamError)
async def upstream_error(request: Request, exc: UpstreamError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "details": jsonable_encoder(exc.details)},
    )


# Dependencies

def get_commerce(settings: Settings = Depends(get_settings)) -> CommerceClient:
    return CommerceClient(settings)


def get_discord(settings: Settings = Depends(get_settings)) -> DiscordClient:
    return DiscordClient(settings)


def require_public_token(settings: Settings) -> None:
    if not settings.tebex_public_token:
        raise HTTPException(status_code=500, detail="Tebex token not configured")


def require_ident(ident: str) -> None:
    if validate_basket_ident(ident):
        raise HTTPException(status_code=400, detail="Invalid basket identifier")


def internal_error(e: Exception) -> HTTPException:
    logger.error("Upstream call failed: %s", e)
    return HTTPException(status_code=500, detail="Internal server error")


# Health

@app.get("/api/health")
def health():
    return {
        "status": "ok",
        "message": "Storefront Backend V2",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "reviews_database": "connected" if database.engine is not None else "unavailable",
    }


# Catalog

@app.get("/api/tebex/categories")
def list_categories(settings: Settings = Depends(get_settings),
                    commerce: CommerceClient = Depends(get_commerce)):
    require_public_token(settings)
    try:
        return commerce.get_categories()
    except requests.RequestException as e:
        raise internal_error(e)


@app.get("/api/tebex/packages")
def list_packages(settings: Settings = Depends(get_settings),
                  commerce: CommerceClient = Depends(get_commerce)):
    require_public_token(settings)
    try:
        return commerce.get_packages()
    except requests.RequestException as e:
        raise internal_error(e)


@app.get("/api/tebex/packages/{package_id}")
def get_package(package_id: int, settings: Settings = Depends(get_settings),
                commerce: CommerceClient = Depends(get_commerce)):
    require_public_token(settings)
    try:
        return commerce.get_package(package_id)
    except requests.RequestException as e:
        raise internal_error(e)


@app.get("/api/tebex/payments/recent")
def recent_payments(limit: int = Query(10, ge=1, le=100),
                    settings: Settings = Depends(get_settings),
                    commerce: CommerceClient = Depends(get_commerce)):
    if not settings.tebex_server_secret:
        raise HTTPException(status_code=500, detail="Tebex server secret not configured")
    try:
        data = commerce.get_recent_payments(limit)
    except requests.RequestException as e:
        raise internal_error(e)
    return data if isinstance(data, list) else []


# Baskets

@app.post("/api/tebex/baskets", dependencies=[Depends(strict_limiter)])
def create_basket(body: Optional[BasketCreate] = None,
                  settings: Settings = Depends(get_settings),
                  commerce: CommerceClient = Depends(get_commerce)):
    require_public_token(settings)
    body = body or BasketCreate()
    payload = {
        "complete_url": body.complete_url or f"{settings.frontend_url}/checkout/complete",
        "cancel_url": body.cancel_url or f"{settings.frontend_url}/products",
        "complete_auto_redirect": False,
        "custom": body.custom or {},
    }
    try:
        return commerce.create_basket(payload)
    except requests.RequestException as e:
        raise internal_error(e)


@app.post("/api/tebex/baskets/{ident}/packages", dependencies=[Depends(strict_limiter)])
def add_package(ident: str, body: Any = Body(None),
                commerce: CommerceClient = Depends(get_commerce)):
    require_ident(ident)
    error, value = validate_package(body)
    if error:
        raise HTTPException(status_code=400, detail={"error": "Invalid input", "details": error})
    try:
        return commerce.add_package(ident, value)
    except requests.RequestException as e:
        raise internal_error(e)


@app.get("/api/tebex/baskets/{ident}/auth")
def basket_auth(ident: str, return_url: str = Query(None, alias="returnUrl"),
                settings: Settings = Depends(get_settings),
                commerce: CommerceClient = Depends(get_commerce)):
    require_public_token(settings)
    require_ident(ident)
    if validate_return_url(return_url):
        raise HTTPException(status_code=400, detail="Invalid return URL")
    try:
        return commerce.get_basket_auth(ident, return_url)
    except requests.RequestException as e:
        raise internal_error(e)


@app.get("/api/tebex/baskets/{ident}")
def get_basket(ident: str, settings: Settings = Depends(get_settings),
               commerce: CommerceClient = Depends(get_commerce)):
    require_public_token(settings)
    require_ident(ident)
    try:
        return commerce.get_basket(ident)
    except requests.RequestException as e:
        raise internal_error(e)


# Discord OAuth

@app.post("/api/discord/token", dependencies=[Depends(strict_limiter)])
def discord_token(body: TokenExchange,
                  settings: Settings = Depends(get_settings),
                  discord: DiscordClient = Depends(get_discord)):
    if not body.code:
        raise HTTPException(status_code=400, detail="Authorization code required")
    if not settings.discord_client_id or not settings.discord_client_secret:
        raise HTTPException(status_code=500, detail="Discord OAuth not configured")
    try:
        token_data = discord.exchange_code(body.code)
    except requests.RequestException as e:
        raise internal_error(e)
    if isinstance(token_data, dict):
        discord.join_guild(token_data.get("access_token"))
    return token_data


# Reviews

@app.get("/api/reviews/product/{product_name:path}")
def product_reviews(product_name: str):
    if validate_product_name(product_name):
        raise HTTPException(status_code=400, detail="Invalid product name")
    try:
        reviews = database.get_reviews_by_product_name(product_name)
        stats = database.get_product_review_stats(product_name)
        return {"success": True, "product": product_name, "stats": stats, "reviews": jsonable_encoder(reviews)}
    except Exception as e:
        logger.exception("Review endpoint failed: %s", e)
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": "Failed to fetch reviews",
            "reviews": [],
            "stats": dict(database.EMPTY_STATS),
        })


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 3001))
    uvicorn.run(app, host="0.0.0.0", port=port)
