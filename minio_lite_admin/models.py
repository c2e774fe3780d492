from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccountStatus(str, Enum):
    enabled = "enabled"
    disabled = "disabled"


class AccessKeyType(str, Enum):
    user = "user"
    service_account = "serviceAccount"
    sts = "sts"


class FilterType(str, Enum):
    all = "all"
    users = "users"
    service_accounts = "serviceAccounts"
    sts = "sts"


class DirectoryFilter(CamelModel):
    # Left as a plain string so unknown values reach the aggregator's own check
    type: str = FilterType.all.value
    user: Optional[str] = None


class AccessKeyRecord(CamelModel):
    access_key: str
    parent_user: str
    account_status: str
    type: AccessKeyType
    name: Optional[str] = None
    description: Optional[str] = None
    expiration: Optional[str] = None  # ISO 8601, UTC
    created_at: Optional[str] = None
    implied_policy: bool = False


class ListAccessKeysResponse(CamelModel):
    access_keys: List[AccessKeyRecord] = Field(default_factory=list)
    total: int = 0


class CreateServiceAccountRequest(CamelModel):
    name: str = ""
    description: str = ""
    access_key: str = ""  # generated upstream when empty
    secret_key: str = ""  # generated upstream when empty
    policy: Optional[Union[str, Dict[str, Any]]] = None
    target_user: str = ""
    expiration: Optional[str] = None  # RFC 3339


class ServiceAccountCredentials(CamelModel):
    access_key: str
    secret_key: str
    session_token: Optional[str] = None
    expiration: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class UpdateDirective(CamelModel):
    """Partial update; fields left unset are not changed upstream."""

    new_policy: Optional[Union[str, Dict[str, Any]]] = None
    new_secret_key: Optional[str] = None
    new_status: Optional[str] = None
    new_name: Optional[str] = None
    new_description: Optional[str] = None
    # Absolute instant: Unix seconds or RFC 3339 text
    new_expiration: Optional[Union[int, str]] = None


class UpdateServiceAccountResponse(CamelModel):
    access_key: str
    message: str
    secret_key: Optional[str] = None


class DeleteServiceAccountResponse(CamelModel):
    access_key: str
    message: str


class ServerInfo(CamelModel):
    mode: str = ""
    region: str = ""
    deployment_id: str = ""


class DiskInfo(CamelModel):
    endpoint: str = ""
    state: str = ""
    total_space: int = 0
    used_space: int = 0
    available_space: int = 0
    utilization: float = 0.0
    healing: bool = False


class DiskUsage(CamelModel):
    total_capacity: int = 0
    total_used_capacity: int = 0
    total_free_capacity: int = 0
    usage_percentage: float = 0.0
    online_disks: int = 0
    offline_disks: int = 0
    healing_disks: int = 0
    pools_count: int = 0
    objects_count: int = 0
    buckets_count: int = 0
    disk_details: List[DiskInfo] = Field(default_factory=list)


class CombinedServerInfo(CamelModel):
    server_info: ServerInfo
    disk_usage: DiskUsage


class HealthResponse(BaseModel):
    status: str
    service: str
