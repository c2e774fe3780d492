import logging
from typing import Any, Dict, List, Optional

from .gateway import AdminGateway
from .models import CombinedServerInfo, DiskInfo, DiskUsage, ServerInfo


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _float(value: Any) -> float:
    try:
        return float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _count(section: Any) -> int:
    return _int(section.get("count")) if isinstance(section, dict) else 0


def extract_disk_usage(info: Dict[str, Any]) -> DiskUsage:
    """Aggregate per-drive figures of every server into cluster totals."""
    details: List[DiskInfo] = []
    online = offline = healing = 0

    for server in info.get("servers") or []:
        for disk in server.get("drives") or server.get("disks") or []:
            d = DiskInfo(
                endpoint=str(disk.get("endpoint") or ""),
                state=str(disk.get("state") or ""),
                total_space=_int(disk.get("totalspace")),
                used_space=_int(disk.get("usedspace")),
                available_space=_int(disk.get("availspace")),
                utilization=_float(disk.get("utilization")),
                healing=bool(disk.get("healing", False)),
            )
            details.append(d)
            if d.state == "ok":
                online += 1
            elif d.state == "offline":
                offline += 1
            elif d.healing:
                healing += 1
            else:
                # Any other state is treated as unavailable
                offline += 1

    total = sum(d.total_space for d in details)
    used = sum(d.used_space for d in details)
    free = sum(d.available_space for d in details)
    backend = info.get("backend") or {}

    return DiskUsage(
        total_capacity=total,
        total_used_capacity=used,
        total_free_capacity=free,
        usage_percentage=(used / total * 100) if total > 0 else 0.0,
        online_disks=online,
        offline_disks=offline,
        healing_disks=healing,
        pools_count=len(backend.get("totalSets") or []),
        objects_count=_count(info.get("objects")),
        buckets_count=_count(info.get("buckets")),
        disk_details=details,
    )


class ServerInfoReader:
    def __init__(self, gateway: AdminGateway, *, logger: Optional[logging.Logger] = None) -> None:
        self.gateway = gateway
        self.logger = logger or logging.getLogger(__name__)

    async def read(self) -> CombinedServerInfo:
        self.logger.debug("fetching server info", extra={"event": "server_info"})
        info = await self.gateway.server_info()
        return CombinedServerInfo(
            server_info=ServerInfo(
                mode=str(info.get("mode") or ""),
                region=str(info.get("region") or ""),
                deployment_id=str(info.get("deploymentID") or info.get("deploymentId") or ""),
            ),
            disk_usage=extract_disk_usage(info),
        )
