from __future__ import annotations

from fastapi import APIRouter, HTTPException

from app.core.normalize import normalize_email, normalize_site_domain
from app.core.settings import DEFAULTS
from app.models import CartDistributionOut, CartDistributionReq, ValidateAddressesOut, ValidateAddressesReq
from app.services.distribution import add_distribution_to_cart, merge_distribution_lines, validate_distribution
from app.services.upstream import PresseroClient

router = APIRouter(tags=["distribution"])


@router.post("/validate-addresses", response_model=ValidateAddressesOut)
def validate_addresses(body: ValidateAddressesReq):
    email = normalize_email(body.user_email)
    site = normalize_site_domain(body.site_domain)
    lines = merge_distribution_lines(body.distribution_list, DEFAULTS.country)
    if not lines:
        raise HTTPException(400, "distributionList is empty")

    with PresseroClient.connect() as client:
        user_id = client.get_user_id(site, email)
        validated = validate_distribution(client, site, user_id, lines, DEFAULTS)
    return {"ok": True, "userId": user_id, "validated": validated}


@router.post("/add-to-cart-distribution", response_model=CartDistributionOut, response_model_exclude_none=True)
def add_to_cart_distribution(body: CartDistributionReq):
    if not body.user_email or not body.site_domain or not body.url_name or not body.shipping_method:
        raise HTTPException(400, "userEmail, siteDomain, urlName and shippingMethod are required")
    if not body.pricing_options:
        raise HTTPException(400, "pricingOptions is required")
    if not body.lines:
        raise HTTPException(400, "lines is required")
    for i, line in enumerate(body.lines):
        if not (line.address_id or "").strip():
            raise HTTPException(400, f"lines[{i}].addressId is required")
    email = normalize_email(body.user_email)
    site = normalize_site_domain(body.site_domain)

    with PresseroClient.connect() as client:
        user_id = client.get_user_id(site, email)
        return add_distribution_to_cart(
            client,
            site,
            user_id,
            url_name=body.url_name,
            shipping_method=body.shipping_method,
            pricing_options=body.pricing_options,
            other_quantities=body.other_quantities or [],
            lines=[{"addressId": line.address_id, "qty": line.qty, "label": line.label} for line in body.lines],
        )
