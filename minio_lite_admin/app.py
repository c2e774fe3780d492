import logging
import os
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import FileResponse, JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from . import __version__, execs
from .access_keys import AccessKeyConsole, AccessKeyService
from .config import Settings, get_settings
from .dependencies import get_access_keys, get_server_info_reader, mc_available
from .errors import UpstreamError, ValidationError
from .gateway import MinioClientGateway
from .logging_utils import configure_logging, make_correlation_middleware
from .models import (
    CreateServiceAccountRequest,
    DeleteServiceAccountResponse,
    DirectoryFilter,
    DiskUsage,
    HealthResponse,
    ListAccessKeysResponse,
    ServerInfo,
    ServiceAccountCredentials,
    UpdateDirective,
    UpdateServiceAccountResponse,
)
from .server_info import ServerInfoReader
from .timeutil import utcnow_iso

SERVICE_NAME = "minio-lite-admin"


def create_app(
    settings: Optional[Settings] = None,
    *,
    access_keys: Optional[AccessKeyService] = None,
    server_info: Optional[ServerInfoReader] = None,
) -> FastAPI:
    """Wire the HTTP surface onto the access-key and server-info services.

    Services not passed in are built on a ``MinioClientGateway`` from ``settings``.
    """
    settings = settings or get_settings()
    logger = logging.getLogger("minio_lite_admin")

    if access_keys is None or server_info is None:
        gateway = MinioClientGateway.from_settings(settings, logger=logger.getChild("gateway"))
        if access_keys is None:
            access_keys = AccessKeyConsole.for_gateway(
                gateway, enrich=settings.enrich_service_accounts, logger=logger.getChild("access_keys")
            )
        if server_info is None:
            server_info = ServerInfoReader(gateway, logger=logger.getChild("server_info"))
    execs.configure_concurrency(settings.max_subproc_concurrency)

    app = FastAPI(title="MinIO Lite Admin", version=__version__)
    app.state.settings = settings
    app.state.access_keys = access_keys
    app.state.server_info = server_info
    # Correlation/JSON access logs
    app.middleware("http")(make_correlation_middleware(logger.getChild("access")))

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning(str(exc), extra={"event": "invalid_request", "path": request.url.path})
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @app.exception_handler(UpstreamError)
    async def _upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
        logger.error(exc.summary, extra={"event": "upstream_error", "path": request.url.path})
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": {"error": exc.summary, "detail": exc.detail[-4000:]}},
        )

    @app.get("/healthz")
    async def healthz():
        return {"ok": True, "time": utcnow_iso()}

    @app.get("/readyz")
    async def readyz():
        if not mc_available(settings.mc_bin):
            raise HTTPException(status_code=503, detail=f"{settings.mc_bin} not found on PATH")
        return {"ok": True}

    @app.get("/api/health", response_model=HealthResponse)
    async def api_health():
        return HealthResponse(status="ok", service=SERVICE_NAME)

    @app.get("/api/server-info", response_model=ServerInfo)
    async def get_server_info(reader: ServerInfoReader = Depends(get_server_info_reader)):
        combined = await reader.read()
        return combined.server_info

    @app.get("/api/data-usage", response_model=DiskUsage)
    async def get_data_usage(reader: ServerInfoReader = Depends(get_server_info_reader)):
        combined = await reader.read()
        return combined.disk_usage

    @app.get("/api/access-keys", response_model=ListAccessKeysResponse, response_model_exclude_none=True)
    async def list_access_keys(
        type: str = Query("all"),
        user: Optional[str] = Query(None),
        service: AccessKeyService = Depends(get_access_keys),
    ):
        return await service.list(DirectoryFilter(type=type or "all", user=user or None))

    @app.post(
        "/api/access-keys",
        response_model=ServiceAccountCredentials,
        response_model_exclude_none=True,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_access_key(
        req: CreateServiceAccountRequest,
        service: AccessKeyService = Depends(get_access_keys),
    ):
        return await service.create(req)

    @app.put(
        "/api/access-keys/{access_key}",
        response_model=UpdateServiceAccountResponse,
        response_model_exclude_none=True,
    )
    async def update_access_key(
        access_key: str,
        directive: UpdateDirective = Body(...),
        service: AccessKeyService = Depends(get_access_keys),
    ):
        return await service.update(access_key, directive)

    @app.delete("/api/access-keys/{access_key}", response_model=DeleteServiceAccountResponse)
    async def delete_access_key(access_key: str, service: AccessKeyService = Depends(get_access_keys)):
        return await service.delete(access_key)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics exposition."""
        if not settings.metrics_enabled:
            raise HTTPException(status_code=404, detail="metrics disabled")
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    if settings.dist_dir and os.path.isdir(settings.dist_dir):
        _mount_ui(app, settings.dist_dir)

    return app


def _mount_ui(app: FastAPI, dist_dir: str) -> None:
    """Serve the built single-page UI; unknown paths fall back to index.html."""
    root = os.path.realpath(dist_dir)
    index = os.path.join(root, "index.html")

    @app.get("/{full_path:path}", include_in_schema=False)
    async def ui(full_path: str):
        if full_path.startswith("api/"):
            raise HTTPException(status_code=404, detail="Not Found")
        candidate = os.path.realpath(os.path.join(root, full_path))
        if full_path and candidate.startswith(root + os.sep) and os.path.isfile(candidate):
            return FileResponse(candidate)
        if os.path.isfile(index):
            return FileResponse(index)
        raise HTTPException(status_code=404, detail="Not Found")


def build_default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_pretty)
    return create_app(settings)


app = build_default_app()
