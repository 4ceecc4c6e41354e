from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserSiteReq(_Body):
    user_email: Optional[str] = Field(default=None, validation_alias=AliasChoices("userEmail", "user_email"))
    site_domain: Optional[str] = Field(default=None, validation_alias=AliasChoices("siteDomain", "site_domain"))


class AddressBookListReq(UserSiteReq):
    pass


class AddressListImportReq(UserSiteReq):
    # Rows go through the same header aliasing as uploaded files.
    addresses: List[Dict[str, Any]] = Field(default_factory=list)


class ValidateAddressesReq(UserSiteReq):
    distribution_list: List[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("distributionList", "distribution_list"),
    )


class CartLineIn(_Body):
    address_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("addressId", "address_id"))
    qty: Any = Field(default=None, validation_alias=AliasChoices("qty", "quantity"))
    label: Optional[str] = None


class CartDistributionReq(UserSiteReq):
    url_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("urlName", "url_name"))
    shipping_method: Optional[str] = Field(default=None, validation_alias=AliasChoices("shippingMethod", "shipping_method"))
    pricing_options: Optional[List[Any]] = Field(default=None, validation_alias=AliasChoices("pricingOptions", "pricing_options"))
    other_quantities: Optional[List[Any]] = Field(default=None, validation_alias=AliasChoices("otherQuantities", "other_quantities"))
    lines: Optional[List[CartLineIn]] = None


class ImportRowDiagnostic(BaseModel):
    index: int
    address: str
    reason: Optional[str] = None
    addressId: Optional[str] = None
    message: Optional[str] = None
    status: Optional[int] = None


class ImportSummaryOut(BaseModel):
    ok: bool
    totalParsed: int
    totalImported: int
    createdCount: int
    updatedCount: int
    skippedCount: int
    errorCount: int
    skipped: List[ImportRowDiagnostic] = Field(default_factory=list)
    errors: List[ImportRowDiagnostic] = Field(default_factory=list)


class ValidatedLineOut(BaseModel):
    address: str
    zip: str
    city: str
    country: str
    qty: int
    addressId: str


class ValidateAddressesOut(BaseModel):
    ok: bool
    userId: str
    validated: List[ValidatedLineOut]


class CartLineResult(BaseModel):
    addressId: Optional[str] = None
    qty: int
    ok: bool
    status: Optional[int] = None
    warning: Optional[str] = None
    error: Optional[str] = None


class CartDistributionOut(BaseModel):
    ok: bool
    cartId: str
    added: int
    warnings: int
    failed: int
    results: List[CartLineResult]
