# cardmaker/delivery/api/cards.py
import asyncio
import logging
import secrets
import time
import traceback
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Request, status
from fastapi.responses import Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import ValidationError

from cardmaker.config.settings import settings
from cardmaker.delivery.schemas.body import (
    ActiveToggle,
    DraftRenderRequest,
    PreviewRequest,
    RenderRequest,
    SettingsUpdate,
    ShareResponse,
)
from cardmaker.domain.catalog import CardCatalog
from cardmaker.domain.editor import CardEditor
from cardmaker.domain.errors import (
    CatalogError,
    DrawingSurfaceError,
    NoVisibleContentError,
    PublishError,
    StaleExportError,
    StoreError,
)
from cardmaker.domain.models import RESERVED_SLUGS, TemplateConfig, migrate_template, to_slug
from cardmaker.domain.render_service import JPEG_MIME, RenderService
from cardmaker.infrastructure.cloudinary.upload_file import upload_jpeg_bytes
from cardmaker.infrastructure.database.store import CardStore

router = APIRouter()
security = HTTPBasic()
logger = logging.getLogger("uvicorn.error")

ENDPOINT_TIMEOUT_SECONDS = 55


def verify_basic_auth(creds: HTTPBasicCredentials = Depends(security)) -> None:
    ok_user = secrets.compare_digest(creds.username, settings.BASIC_AUTH_USERNAME)
    ok_pass = secrets.compare_digest(creds.password, settings.BASIC_AUTH_PASSWORD)
    if not (ok_user and ok_pass):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )


def get_card_store(request: Request) -> CardStore:
    store = getattr(request.app.state, "card_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Store is not ready. Please try again in a moment.",
        )
    return store


def get_render_service(request: Request) -> RenderService:
    service = getattr(request.app.state, "render_service", None)
    if service is None:
        logger.error("Render service not initialized")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is not ready. Please try again in a moment.",
        )
    return service


def _parse_template(raw: Dict[str, Any]) -> TemplateConfig:
    try:
        return migrate_template(raw)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors(include_url=False, include_context=False))


async def _load_card(store: CardStore, slug: str) -> TemplateConfig:
    try:
        card = await store.get(slug)
    except StoreError as e:
        logger.error(f"Failed to read card '{slug}': {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Card store unavailable.")
    if card is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Card '{slug}' not found.")
    return card


async def _export(
    request: Request,
    service: RenderService,
    template: TemplateConfig,
    body: RenderRequest,
    session_key: Optional[str] = None,
) -> bytes:
    run_id = template.slug
    logger.info(f"=== EXPORT START for '{run_id}' ===")

    if await request.is_disconnected():
        logger.warning(f"[{run_id}] Client already disconnected")
        raise HTTPException(status_code=499, detail="Client closed request")

    try:
        content = await asyncio.wait_for(
            service.export(
                template,
                body.inputs,
                pixel_ratio=body.pixel_ratio,
                quality=body.quality,
                language=body.language,
                session_key=session_key,
            ),
            timeout=ENDPOINT_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.error(f"=== EXPORT TIMEOUT for '{run_id}' after {ENDPOINT_TIMEOUT_SECONDS}s ===")
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="Rendering timed out")
    except NoVisibleContentError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except StaleExportError as e:
        logger.info(f"[{run_id}] {e}")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except DrawingSurfaceError as e:
        logger.error(f"[{run_id}] {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Failed to generate image: {e}")
    except Exception as e:
        logger.error(f"=== EXPORT ERROR for '{run_id}': {e} ===\n{traceback.format_exc()}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate image.")

    logger.info(f"=== EXPORT SUCCESS for '{run_id}' ({len(content)} bytes) ===")
    return content


def _jpeg_response(content: bytes, slug: str) -> Response:
    return Response(
        content=content,
        media_type=JPEG_MIME,
        headers={"Content-Disposition": f'attachment; filename="{slug}.jpg"'},
    )


# --- Viewer ---

@router.get("/cards")
async def list_cards(store: CardStore = Depends(get_card_store)):
    try:
        cards = await CardCatalog(store).list_active()
    except StoreError as e:
        logger.error(f"Failed to list cards: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Card store unavailable.")
    return [c.to_json() for c in cards]


@router.get("/cards/all", dependencies=[Depends(verify_basic_auth)])
async def list_all_cards(store: CardStore = Depends(get_card_store)):
    try:
        cards = await CardCatalog(store).list_all()
    except StoreError as e:
        logger.error(f"Failed to list cards: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Card store unavailable.")
    return [c.to_json() for c in cards]


@router.get("/cards/{slug}")
async def get_card(slug: str, store: CardStore = Depends(get_card_store)):
    return (await _load_card(store, slug)).to_json()


@router.post("/cards/{slug}/render")
async def render_card(
    slug: str,
    request: Request,
    body: RenderRequest,
    x_export_session: Optional[str] = Header(default=None),
    store: CardStore = Depends(get_card_store),
    service: RenderService = Depends(get_render_service),
):
    card = await _load_card(store, slug)
    session_key = f"{slug}:{x_export_session}" if x_export_session else None
    content = await _export(request, service, card, body, session_key=session_key)
    return _jpeg_response(content, card.slug)


@router.post("/cards/{slug}/share", response_model=ShareResponse)
async def share_card(
    slug: str,
    request: Request,
    body: RenderRequest,
    store: CardStore = Depends(get_card_store),
    service: RenderService = Depends(get_render_service),
):
    card = await _load_card(store, slug)
    content = await _export(request, service, card, body)
    public_id = f"{card.slug}-{int(time.time() * 1000)}"
    try:
        loop = asyncio.get_running_loop()
        url = await loop.run_in_executor(service.executor, upload_jpeg_bytes, content, public_id)
    except Exception as e:
        logger.error(f"Upload of '{public_id}' failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to upload image.")
    return ShareResponse(url=url).to_json()


# --- Editor ---

@router.post("/render")
async def render_draft(
    request: Request,
    body: DraftRenderRequest,
    service: RenderService = Depends(get_render_service),
):
    template = _parse_template(body.template)
    content = await _export(request, service, template, body)
    return _jpeg_response(content, template.slug)


@router.post("/preview")
async def preview(
    body: PreviewRequest,
    store: CardStore = Depends(get_card_store),
    service: RenderService = Depends(get_render_service),
):
    if body.template is not None:
        template = _parse_template(body.template)
    elif body.slug:
        template = await _load_card(store, body.slug)
    else:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Either template or slug is required.")

    layout = await service.preview(
        template,
        body.inputs,
        container_width=body.container_width,
        container_height=body.container_height,
        language=body.language,
        selected_layer_id=body.selected_layer_id,
        interactive=body.interactive,
    )
    return layout.to_json()


@router.put("/cards/{slug}", dependencies=[Depends(verify_basic_auth)])
async def publish_card(
    slug: str,
    template_data: Dict[str, Any] = Body(...),
    store: CardStore = Depends(get_card_store),
):
    if to_slug(slug) in RESERVED_SLUGS:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Slug '{slug}' is reserved.")
    editor = CardEditor(store, draft=_parse_template(template_data))
    editor.set_slug(slug)
    try:
        result = await editor.publish()
    except PublishError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return {"template": result.template.to_json(), "sharePath": result.share_path}


# --- Dashboard ---

@router.patch("/cards/{slug}/active", dependencies=[Depends(verify_basic_auth)])
async def set_card_active(slug: str, body: ActiveToggle, store: CardStore = Depends(get_card_store)):
    try:
        await CardCatalog(store).set_active(slug, body.is_active)
    except CatalogError as e:
        code = status.HTTP_502_BAD_GATEWAY if isinstance(e.__cause__, StoreError) else status.HTTP_404_NOT_FOUND
        raise HTTPException(status_code=code, detail=str(e))
    return {"slug": slug, "isActive": body.is_active}


@router.delete("/cards/{slug}", dependencies=[Depends(verify_basic_auth)])
async def delete_card(slug: str, store: CardStore = Depends(get_card_store)):
    try:
        deleted = await CardCatalog(store).delete(slug)
    except CatalogError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Card '{slug}' not found.")
    return {"slug": slug, "deleted": True}


@router.get("/settings")
async def get_settings(store: CardStore = Depends(get_card_store)):
    return (await CardCatalog(store).load_settings()).to_json()


@router.put("/settings", dependencies=[Depends(verify_basic_auth)])
async def update_settings(body: SettingsUpdate, store: CardStore = Depends(get_card_store)):
    catalog = CardCatalog(store)
    current = await catalog.load_settings()
    try:
        updated = await catalog.update_settings(current, **body.model_dump(exclude_none=True))
    except CatalogError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return updated.to_json()
