"""Statement import endpoints."""
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from app.api.deps import get_catalog, get_user_store
from app.schemas.card import CardDefinition
from app.schemas.transaction import ImportConfirmResponse, ImportResponse, ImportStatus
from app.services import user_store
from app.services.card_config_loader import BenefitCatalog
from app.services.statement_import import confirm_statement_import, preview_statement_import

router = APIRouter(prefix="/imports", tags=["imports"])

STATUS_CODES: dict[ImportStatus, int] = {
    "ok": status.HTTP_200_OK,
    "no_credits": status.HTTP_200_OK,
    "malformed_file": status.HTTP_400_BAD_REQUEST,
    "unsupported_issuer": status.HTTP_501_NOT_IMPLEMENTED,
}


def _get_card_or_404(catalog: BenefitCatalog, card_id: str) -> CardDefinition:
    card = catalog.get_card(card_id)
    if card is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Card not found: {card_id}",
        )
    return card


async def _read_upload(file: UploadFile) -> str:
    content = await file.read()
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Statement file must be UTF-8 encoded text",
        )


def _respond(response: ImportResponse | ImportConfirmResponse) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_CODES[response.status],
        content=response.model_dump(mode="json"),
    )


@router.post("/preview", response_model=ImportResponse)
async def preview_import(
    card_id: str = Form(...),
    file: UploadFile = File(...),
    catalog: BenefitCatalog = Depends(get_catalog),
):
    """Parse a statement export and show which credits match which benefits."""
    card = _get_card_or_404(catalog, card_id)
    raw_text = await _read_upload(file)
    return _respond(preview_statement_import(raw_text, card, catalog.definitions_for_card(card_id)))


@router.post("/confirm", response_model=ImportConfirmResponse)
async def confirm_import(
    card_id: str = Form(...),
    file: UploadFile = File(...),
    catalog: BenefitCatalog = Depends(get_catalog),
    store: user_store.UserStateStore = Depends(get_user_store),
):
    """Record the matched credits of a statement export."""
    card = _get_card_or_404(catalog, card_id)
    raw_text = await _read_upload(file)
    response = confirm_statement_import(raw_text, card, catalog.definitions_for_card(card_id), store)
    return _respond(response)
