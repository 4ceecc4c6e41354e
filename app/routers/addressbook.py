from __future__ import annotations

import io
import logging
from typing import Optional, Tuple

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import Response, StreamingResponse

from app.core.normalize import normalize_email, normalize_site_domain
from app.core.settings import DEFAULTS, S
from app.models import AddressBookListReq, AddressListImportReq, ImportSummaryOut
from app.services.address_rows import extract_addresses, parse_address_file
from app.services.addressbook import export_csv, export_xlsx, import_address_records, list_address_book
from app.services.upstream import PresseroClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/addressbook", tags=["addressbook"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _user_site(user_email: Optional[str], site_domain: Optional[str]) -> Tuple[str, str]:
    return normalize_email(user_email), normalize_site_domain(site_domain)


def _user_book(user_email: Optional[str], site_domain: Optional[str]):
    email, site = _user_site(user_email, site_domain)
    with PresseroClient.connect() as client:
        user_id = client.get_user_id(site, email)
        return client.get_address_book(site, user_id)


@router.post("/list")
def addressbook_list(body: AddressBookListReq):
    email, site = _user_site(body.user_email, body.site_domain)
    with PresseroClient.connect() as client:
        user_id = client.get_user_id(site, email)
        return list_address_book(client, site, user_id)


@router.post("/import-file", response_model=ImportSummaryOut, response_model_exclude_none=True)
def addressbook_import_file(
    file: Optional[UploadFile] = File(None),
    userEmail: str = Form(""),
    siteDomain: str = Form(""),
):
    email, site = _user_site(userEmail, siteDomain)
    if file is None:
        raise HTTPException(400, "Missing file (field 'file')")

    data = file.file.read(S.max_upload_bytes + 1)
    if len(data) > S.max_upload_bytes:
        raise HTTPException(413, f"File too large (max {S.max_upload_bytes} bytes)")

    records = parse_address_file(file.filename, data, DEFAULTS)
    logger.info("address upload %s (%d bytes) for %s on %s: %d rows", file.filename, len(data), email, site, len(records))
    if not records:
        raise HTTPException(400, "No valid address rows found in file")

    with PresseroClient.connect() as client:
        user_id = client.get_user_id(site, email)
        return import_address_records(client, site, user_id, records, DEFAULTS)


@router.post("/import", response_model=ImportSummaryOut, response_model_exclude_none=True)
def addressbook_import(body: AddressListImportReq):
    email, site = _user_site(body.user_email, body.site_domain)
    records = extract_addresses(body.addresses, DEFAULTS)
    if not records:
        raise HTTPException(400, "No valid addresses in request")

    with PresseroClient.connect() as client:
        user_id = client.get_user_id(site, email)
        return import_address_records(client, site, user_id, records, DEFAULTS)


@router.get("/export.csv")
def addressbook_export_csv(
    userEmail: Optional[str] = Query(None),
    siteDomain: Optional[str] = Query(None),
):
    book = _user_book(userEmail, siteDomain)
    return Response(
        content=export_csv(book),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="addressbook.csv"'},
    )


@router.get("/export.xlsx")
def addressbook_export_xlsx(
    userEmail: Optional[str] = Query(None),
    siteDomain: Optional[str] = Query(None),
):
    book = _user_book(userEmail, siteDomain)
    return StreamingResponse(
        io.BytesIO(export_xlsx(book)),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": 'attachment; filename="addressbook.xlsx"'},
    )
