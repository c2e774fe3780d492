"""Service-account lifecycle: create, partial update, delete."""
import json
import logging
from typing import Any, Dict, Optional, Union

from .errors import ValidationError
from .gateway import AddServiceAccountRequest, AdminGateway, UpdateServiceAccountRequest
from .models import (
    AccountStatus,
    CreateServiceAccountRequest,
    DeleteServiceAccountResponse,
    ServiceAccountCredentials,
    UpdateDirective,
    UpdateServiceAccountResponse,
)
from .timeutil import normalize_expiration, parse_rfc3339, parse_timestamp

VALID_STATUSES = tuple(s.value for s in AccountStatus)


def _clean(value: Optional[str]) -> Optional[str]:
    """Trim a directive field; blank means absent."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def _secret(value: Optional[str]) -> Optional[str]:
    # Secrets are forwarded verbatim; only an all-blank value counts as absent
    if value is None or not value.strip():
        return None
    return value


def _policy_text(policy: Optional[Union[str, Dict[str, Any]]]) -> Optional[str]:
    # Policy documents are forwarded as-is; an object body is re-serialized
    if policy is None:
        return None
    if isinstance(policy, dict):
        return json.dumps(policy) if policy else None
    return _clean(policy)


def require_access_key(access_key: Optional[str]) -> str:
    key = (access_key or "").strip()
    if not key:
        raise ValidationError("Access key is required")
    return key


class ServiceAccountOrchestrator:
    def __init__(self, gateway: AdminGateway, *, logger: Optional[logging.Logger] = None) -> None:
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)

    async def create(self, req: CreateServiceAccountRequest) -> ServiceAccountCredentials:
        name = req.name.strip()
        if not name:
            raise ValidationError("Service account name is required")
        description = req.description.strip()

        expiration = None
        if req.expiration is not None and req.expiration.strip():
            try:
                expiration = parse_rfc3339(req.expiration)
            except ValueError as e:
                raise ValidationError(f"invalid expiration format, expected RFC3339: {e}") from e

        add_req = AddServiceAccountRequest(
            name=name,
            description=description,
            access_key=req.access_key.strip(),
            secret_key=_secret(req.secret_key) or "",
            policy=_policy_text(req.policy),
            target_user=req.target_user.strip(),
            expiration=expiration,
        )
        self.logger.debug(
            "creating service account",
            extra={
                "event": "create_service_account",
                "target_user": add_req.target_user or None,
                "fields": [k for k in ("access_key", "secret_key", "policy") if getattr(add_req, k)],
            },
        )
        creds = await self.gateway.add_service_account(add_req)
        self.logger.info(
            "created service account",
            extra={"event": "service_account_created", "access_key": creds.access_key},
        )
        return ServiceAccountCredentials(
            access_key=creds.access_key,
            secret_key=creds.secret_key,
            session_token=creds.session_token or None,
            expiration=normalize_expiration(creds.expiration),
            name=name,
            description=description or None,
        )

    async def update(self, access_key: str, directive: UpdateDirective) -> UpdateServiceAccountResponse:
        key = require_access_key(access_key)

        status = _clean(directive.new_status)
        if status is not None and status not in VALID_STATUSES:
            raise ValidationError(f"invalid account status: {status}. Must be 'enabled' or 'disabled'")

        expiration = None
        raw_exp = directive.new_expiration
        if raw_exp is not None and not (isinstance(raw_exp, str) and not raw_exp.strip()):
            try:
                expiration = parse_timestamp(raw_exp)
            except (ValueError, OverflowError, OSError) as e:
                raise ValidationError(f"invalid expiration: {e}") from e

        update_req = UpdateServiceAccountRequest(
            new_policy=_policy_text(directive.new_policy),
            new_secret_key=_secret(directive.new_secret_key),
            new_status=status,
            new_name=_clean(directive.new_name),
            new_description=_clean(directive.new_description),
            new_expiration=expiration,
        )
        self.logger.debug(
            "updating service account",
            extra={"event": "update_service_account", "access_key": key, "fields": update_req.present_fields()},
        )
        await self.gateway.update_service_account(key, update_req)
        self.logger.info("updated service account", extra={"event": "service_account_updated", "access_key": key})

        # A rotated secret is echoed once; it cannot be read back later
        return UpdateServiceAccountResponse(
            access_key=key,
            message="Service account updated successfully",
            secret_key=update_req.new_secret_key,
        )

    async def delete(self, access_key: str) -> DeleteServiceAccountResponse:
        key = require_access_key(access_key)
        self.logger.debug("deleting service account", extra={"event": "delete_service_account", "access_key": key})
        await self.gateway.delete_service_account(key)
        self.logger.info("deleted service account", extra={"event": "service_account_deleted", "access_key": key})
        return DeleteServiceAccountResponse(access_key=key, message="Service account deleted successfully")
