from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from topup_pricing import __version__
from topup_pricing.api.rules_api import router as rules_router
from topup_pricing.api.state import get_service, reload_service
from topup_pricing.logging_config import get_logger, setup_logging
from topup_pricing.services.storefront_service import (
    OrganizationNotFound,
    ProductNotFound,
    StorefrontService,
    StorefrontUnavailable,
)

setup_logging()
log = get_logger(__name__)

app = FastAPI(
    title="Top-up Pricing API",
    description="Pricing and eligibility resolution for top-up storefronts",
    version=__version__,
)

# Enable CORS for storefront frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include rules inspection API
app.include_router(rules_router)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LookupRequest(CamelModel):
    country_code: str = Field(alias="countryCode")
    items: list[dict] = []


class EstimateRequest(CamelModel):
    amount: float = Field(allow_inf_nan=False)
    country_code: Optional[str] = Field(default=None, alias="countryCode")


class DiscountCodeRequest(CamelModel):
    code: str = ""
    amount: Optional[float] = Field(default=None, allow_inf_nan=False)
    country_code: Optional[str] = Field(default=None, alias="countryCode")
    sku_code: Optional[str] = Field(default=None, alias="skuCode")


class QuantityRequest(CamelModel):
    sku_code: str = Field(alias="skuCode")
    quantity: int


@app.get("/")
async def root():
    return {"status": "online", "message": "Top-up Pricing API Active"}


@app.get("/system/status")
async def get_status(service: StorefrontService = Depends(get_service)):
    orgs = list(service.store)
    return {
        "engine_active": True,
        "organizations": len(orgs),
        "rules_count": sum(len(o.rules) for o in orgs),
        "discounts_count": sum(len(o.discounts) for o in orgs),
        "load_errors": service.store.errors,
        "data_dir": str(service.settings.data_dir),
        "max_products_per_request": service.settings.max_products_per_request,
    }


@app.post("/system/reload")
async def reload_data():
    """Re-read organization configuration from the data directory."""
    service = reload_service()
    log.info("store_reloaded", organizations=len(list(service.store)), errors=len(service.store.errors))
    return {
        "success": not service.store.errors,
        "organizations": len(list(service.store)),
        "errors": service.store.errors,
    }


@app.post("/api/v1/orgs/{org_id}/lookup")
async def lookup(org_id: str, req: LookupRequest, service: StorefrontService = Depends(get_service)):
    try:
        result = service.lookup(org_id, req.country_code, req.items)
    except OrganizationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorefrontUnavailable as e:
        log.warning("storefront_unavailable", org_id=org_id, reason=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@app.post("/api/v1/orgs/{org_id}/estimate")
async def estimate(org_id: str, req: EstimateRequest, service: StorefrontService = Depends(get_service)):
    try:
        result = service.estimate(org_id, req.amount, req.country_code)
    except OrganizationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@app.post("/api/v1/orgs/{org_id}/discounts/validate")
async def validate_discount(org_id: str, req: DiscountCodeRequest,
                            service: StorefrontService = Depends(get_service)):
    try:
        result = service.validate_code(org_id, req.code, req.amount, req.country_code, req.sku_code)
    except OrganizationNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not result.valid:
        return {"valid": False, "error": result.error}
    discount = result.discount
    return {
        "valid": True,
        "discount": {
            "id": discount.discount_id,
            "name": discount.name,
            "description": discount.description,
            "code": discount.code,
        },
        "discountAmount": float(result.discount_amount),
        "finalAmount": float(result.final_amount),
    }


@app.post("/api/v1/orgs/{org_id}/quantity/validate")
async def validate_quantity(org_id: str, req: QuantityRequest, service: StorefrontService = Depends(get_service)):
    try:
        result = service.check_quantity(org_id, req.sku_code, req.quantity)
    except (OrganizationNotFound, ProductNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return result.to_dict()


@app.get("/api/v1/orgs/{org_id}/products/{sku_code}/price")
async def product_price(org_id: str, sku_code: str, country_code: Optional[str] = None,
                        service: StorefrontService = Depends(get_service)):
    try:
        breakdown = service.effective_price(org_id, sku_code, country_code)
    except (OrganizationNotFound, ProductNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"skuCode": sku_code, "countryCode": country_code, "pricing": breakdown.to_dict()}
