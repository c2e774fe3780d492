"""Access-key directory aggregation.

Merges the user directory, the bulk access-key listing and (optionally)
per-service-account detail records into one list of ``AccessKeyRecord``.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import UpstreamError, ValidationError
from .gateway import AccessKeySummary, AdminGateway, ListScope, ServiceAccountDetail, UserAccessKeys, UserInfo
from .models import AccessKeyRecord, AccessKeyType, DirectoryFilter, FilterType, ListAccessKeysResponse
from .timeutil import normalize_expiration

VALID_FILTER_TYPES = tuple(t.value for t in FilterType)

_SCOPE_BY_FILTER = {
    FilterType.all: ListScope.all,
    FilterType.users: ListScope.users_only,
    FilterType.service_accounts: ListScope.svcacc_only,
    FilterType.sts: ListScope.sts_only,
}


@dataclass(frozen=True)
class DetailLookup:
    """Outcome of a best-effort detail lookup: either ``detail`` or a ``miss`` reason."""

    detail: Optional[ServiceAccountDetail] = None
    miss: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.detail is not None

    def apply(self, record: AccessKeyRecord) -> AccessKeyRecord:
        if self.detail is None:
            return record
        return record.model_copy(
            update={
                "name": self.detail.name or None,
                "description": self.detail.description or None,
                "implied_policy": self.detail.implied_policy,
                "expiration": normalize_expiration(self.detail.expiration),
            }
        )


def validate_filter(flt: DirectoryFilter) -> FilterType:
    if flt.type not in VALID_FILTER_TYPES:
        raise ValidationError(
            "Invalid type parameter. Valid values: " + ", ".join(VALID_FILTER_TYPES)
        )
    return FilterType(flt.type)


def _key_record(summary: AccessKeySummary, key_type: AccessKeyType, owner: str) -> AccessKeyRecord:
    return AccessKeyRecord(
        access_key=summary.access_key,
        parent_user=summary.parent_user or owner,
        account_status=summary.account_status,
        type=key_type,
        name=summary.name or None,
        description=summary.description or None,
        expiration=normalize_expiration(summary.expiration),
        implied_policy=summary.implied_policy,
    )


def build_records(
    users: Dict[str, UserInfo],
    bulk: Dict[str, UserAccessKeys],
    filter_type: FilterType,
) -> List[AccessKeyRecord]:
    """Flatten the upstream listings into records, first occurrence of a key wins."""
    want_users = filter_type in (FilterType.all, FilterType.users)
    want_svcaccs = filter_type in (FilterType.all, FilterType.service_accounts)
    want_sts = filter_type in (FilterType.all, FilterType.sts)

    records: List[AccessKeyRecord] = []
    seen = set()

    def emit(record: AccessKeyRecord) -> None:
        if record.access_key and record.access_key not in seen:
            seen.add(record.access_key)
            records.append(record)

    for username, keys in bulk.items():
        user_info = users.get(username)
        # The user directory is authoritative for existence
        if want_users and user_info is not None:
            emit(
                AccessKeyRecord(
                    access_key=username,
                    parent_user=username,
                    account_status=user_info.status,
                    type=AccessKeyType.user,
                    implied_policy=False,
                )
            )
        if want_svcaccs:
            for sa in keys.service_accounts:
                emit(_key_record(sa, AccessKeyType.service_account, username))
        if want_sts:
            for sts in keys.sts_keys:
                emit(_key_record(sts, AccessKeyType.sts, username))
    return records


class DirectoryAggregator:
    def __init__(self, gateway: AdminGateway, *, enrich: bool = False, logger: Optional[logging.Logger] = None) -> None:
        self.gateway = gateway
        self.enrich = enrich
        self.logger = logger or logging.getLogger(__name__)

    async def list(self, flt: DirectoryFilter) -> ListAccessKeysResponse:
        filter_type = validate_filter(flt)
        user = (flt.user or "").strip() or None
        self.logger.debug(
            "listing access keys",
            extra={"event": "list_access_keys", "filter_type": filter_type.value, "filter_user": user},
        )

        try:
            users = await self.gateway.list_users()
        except UpstreamError:
            self.logger.error("failed to list users", extra={"event": "list_users_failed"})
            raise

        try:
            bulk = await self.gateway.list_access_keys_bulk(
                [user] if user else None, _SCOPE_BY_FILTER[filter_type]
            )
        except UpstreamError:
            self.logger.error("failed to list access keys", extra={"event": "list_access_keys_failed"})
            raise

        records = build_records(users, bulk, filter_type)
        if self.enrich:
            records = await self._enrich_all(records)

        self.logger.debug("listed access keys", extra={"event": "list_access_keys_ok", "count": len(records)})
        return ListAccessKeysResponse(access_keys=records, total=len(records))

    async def lookup_detail(self, access_key: str) -> DetailLookup:
        try:
            detail = await self.gateway.get_service_account(access_key)
        except UpstreamError as e:
            return DetailLookup(miss=str(e))
        return DetailLookup(detail=detail)

    async def _enrich_all(self, records: Iterable[AccessKeyRecord]) -> List[AccessKeyRecord]:
        out: List[AccessKeyRecord] = []
        for record in records:
            if record.type != AccessKeyType.service_account:
                out.append(record)
                continue
            lookup = await self.lookup_detail(record.access_key)
            if not lookup.found:
                self.logger.debug(
                    "detail lookup missed, keeping bulk values",
                    extra={"event": "enrichment_miss", "access_key": record.access_key, "reason": lookup.miss},
                )
            out.append(lookup.apply(record))
        return out

