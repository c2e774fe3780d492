"""Access-key capability consumed by the HTTP layer."""
import logging
from typing import Optional, Protocol

from .directory import DirectoryAggregator
from .gateway import AdminGateway
from .models import (
    CreateServiceAccountRequest,
    DeleteServiceAccountResponse,
    DirectoryFilter,
    ListAccessKeysResponse,
    ServiceAccountCredentials,
    UpdateDirective,
    UpdateServiceAccountResponse,
)
from .service_accounts import ServiceAccountOrchestrator


class AccessKeyService(Protocol):
    """List, create, update and delete access keys.

    Operations raise ``ValidationError`` for bad input and ``UpstreamError``
    when the cluster fails the request.
    """

    async def list(self, flt: DirectoryFilter) -> ListAccessKeysResponse:
        ...

    async def create(self, req: CreateServiceAccountRequest) -> ServiceAccountCredentials:
        ...

    async def update(self, access_key: str, directive: UpdateDirective) -> UpdateServiceAccountResponse:
        ...

    async def delete(self, access_key: str) -> DeleteServiceAccountResponse:
        ...


class AccessKeyConsole:
    """``AccessKeyService`` composed from the directory aggregator and the lifecycle orchestrator."""

    def __init__(self, directory: DirectoryAggregator, accounts: ServiceAccountOrchestrator) -> None:
        self.directory = directory
        self.accounts = accounts

    @classmethod
    def for_gateway(
        cls, gateway: AdminGateway, *, enrich: bool = False, logger: Optional[logging.Logger] = None
    ) -> "AccessKeyConsole":
        logger = logger or logging.getLogger("minio_lite_admin.access_keys")
        return cls(
            DirectoryAggregator(gateway, enrich=enrich, logger=logger.getChild("directory")),
            ServiceAccountOrchestrator(gateway, logger=logger.getChild("service_accounts")),
        )

    async def list(self, flt: DirectoryFilter) -> ListAccessKeysResponse:
        return await self.directory.list(flt)

    async def create(self, req: CreateServiceAccountRequest) -> ServiceAccountCredentials:
        return await self.accounts.create(req)

    async def update(self, access_key: str, directive: UpdateDirective) -> UpdateServiceAccountResponse:
        return await self.accounts.update(access_key, directive)

    async def delete(self, access_key: str) -> DeleteServiceAccountResponse:
        return await self.accounts.delete(access_key)
