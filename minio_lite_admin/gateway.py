"""Upstream admin gateway.

``AdminGateway`` is the capability the access-key services consume.
``MinioClientGateway`` implements it by driving the MinIO client CLI
(``mc``) with ``--json`` output; request signing, payload encryption and
transport are the CLI's concern.
"""
import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Protocol, Sequence
from urllib.parse import quote, urlsplit

from . import execs
from .errors import UpstreamError
from .parsers import error_message, parse_json_stream
from .timeutil import format_timestamp


class ListScope(str, Enum):
    all = "all"
    users_only = "users-only"
    svcacc_only = "svcacc-only"
    sts_only = "sts-only"


@dataclass(frozen=True)
class UserInfo:
    status: str


@dataclass(frozen=True)
class AccessKeySummary:
    access_key: str
    parent_user: str = ""
    account_status: str = ""
    name: str = ""
    description: str = ""
    expiration: Optional[str] = None
    implied_policy: bool = False


@dataclass
class UserAccessKeys:
    service_accounts: List[AccessKeySummary] = field(default_factory=list)
    sts_keys: List[AccessKeySummary] = field(default_factory=list)


@dataclass(frozen=True)
class ServiceAccountDetail:
    access_key: str
    parent_user: str = ""
    account_status: str = ""
    implied_policy: bool = False
    name: str = ""
    description: str = ""
    expiration: Optional[str] = None


@dataclass
class AddServiceAccountRequest:
    name: str = ""
    description: str = ""
    access_key: str = ""
    secret_key: str = ""
    policy: Optional[str] = None
    target_user: str = ""
    expiration: Optional[datetime] = None


@dataclass(frozen=True)
class Credentials:
    access_key: str
    secret_key: str
    session_token: str = ""
    expiration: Optional[str] = None


@dataclass
class UpdateServiceAccountRequest:
    """Sparse update; ``None`` means leave the upstream attribute untouched."""

    new_policy: Optional[str] = None
    new_secret_key: Optional[str] = None
    new_status: Optional[str] = None
    new_name: Optional[str] = None
    new_description: Optional[str] = None
    new_expiration: Optional[datetime] = None

    def present_fields(self) -> List[str]:
        return [f.name for f in fields(self) if getattr(self, f.name) is not None]


class AdminGateway(Protocol):
    """Admin operations against the managed cluster.

    Every method raises ``UpstreamError`` when the cluster rejects or fails
    the request.
    """

    async def list_users(self) -> Dict[str, UserInfo]:
        ...

    async def list_access_keys_bulk(
        self, users: Optional[Sequence[str]], scope: ListScope
    ) -> Dict[str, UserAccessKeys]:
        """List access keys for ``users``, or for every user when ``users`` is None."""
        ...

    async def get_service_account(self, access_key: str) -> ServiceAccountDetail:
        ...

    async def add_service_account(self, req: AddServiceAccountRequest) -> Credentials:
        ...

    async def update_service_account(self, access_key: str, req: UpdateServiceAccountRequest) -> None:
        ...

    async def delete_service_account(self, access_key: str) -> None:
        ...

    async def server_info(self) -> Dict[str, Any]:
        ...


Runner = Callable[..., Awaitable[Dict[str, Any]]]

_SCOPE_FLAGS = {
    ListScope.all: [],
    ListScope.users_only: ["--users-only"],
    ListScope.svcacc_only: ["--svcacc-only"],
    ListScope.sts_only: ["--temp-only"],
}


_STATUS_ALIASES = {"on": "enabled", "off": "disabled"}


def _account_status(value: Any) -> str:
    # madmin reports on/off; the console speaks enabled/disabled
    status = str(value or "")
    return _STATUS_ALIASES.get(status, status)


def _summary_from_json(doc: Dict[str, Any], default_parent: str = "") -> AccessKeySummary:
    return AccessKeySummary(
        access_key=str(doc.get("accessKey") or ""),
        parent_user=str(doc.get("parentUser") or default_parent),
        account_status=_account_status(doc.get("accountStatus")),
        name=str(doc.get("name") or ""),
        description=str(doc.get("description") or ""),
        expiration=doc.get("expiration") or None,
        implied_policy=bool(doc.get("impliedPolicy", False)),
    )


@contextmanager
def _policy_file(policy: Optional[str]) -> Iterator[Optional[str]]:
    """Write a policy document to a temp file for ``--policy``; always removed."""
    if policy is None:
        yield None
        return
    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(prefix="policy_", suffix=".json", delete=False) as tf:
            tf.write(policy.encode())
            temp_path = tf.name
        yield temp_path
    finally:
        if temp_path and os.path.exists(temp_path):
            os.unlink(temp_path)


class MinioClientGateway:
    """``AdminGateway`` backed by the ``mc`` CLI."""

    def __init__(
        self,
        *,
        url: str,
        root_user: str,
        root_password: str,
        mc_bin: str = "mc",
        alias: str = "liteadmin",
        timeout: int = 30,
        retries: int = 1,
        logger: Optional[logging.Logger] = None,
        runner: Optional[Runner] = None,
    ) -> None:
        self.url = url
        self.root_user = root_user
        self._root_password = root_password
        self.mc_bin = mc_bin
        self.alias = alias
        self.timeout = timeout
        self.retries = retries
        self.logger = logger or logging.getLogger(__name__)
        self._runner = runner

    @classmethod
    def from_settings(cls, settings, logger: Optional[logging.Logger] = None) -> "MinioClientGateway":
        return cls(
            url=settings.minio_url,
            root_user=settings.minio_root_user,
            root_password=settings.minio_root_password,
            mc_bin=settings.mc_bin,
            alias=settings.mc_alias,
            timeout=settings.cli_timeout_sec,
            retries=settings.cli_retries,
            logger=logger,
        )

    def host_env(self) -> Dict[str, str]:
        """Point ``mc`` at the cluster without touching its config file."""
        parts = urlsplit(self.url)
        scheme = parts.scheme or "http"
        netloc = parts.netloc or parts.path
        user = quote(self.root_user, safe="")
        password = quote(self._root_password, safe="")
        env_name = "MC_HOST_" + self.alias
        return {env_name: f"{scheme}://{user}:{password}@{netloc}"}

    async def _run(self, args: Sequence[str], *, action: str, mutate: bool = False) -> List[Dict[str, Any]]:
        runner = self._runner or execs.run_cli
        cmd = [self.mc_bin, *args, "--json"]
        res = await runner(
            cmd,
            timeout=self.timeout,
            env=self.host_env(),
            retries=0 if mutate else self.retries,
        )
        exit_code = res.get("exit_code")
        if exit_code != 0:
            detail = error_message(res.get("stdout", ""), res.get("stderr", ""))
            self.logger.error(
                "upstream call failed",
                extra={"event": "upstream_failed", "command": res.get("command"), "exit_code": exit_code, "stderr": detail},
            )
            raise UpstreamError(f"failed to {action}", detail)
        try:
            docs = parse_json_stream(res.get("stdout", ""))
        except ValueError as e:
            self.logger.error(
                "upstream output unparsable",
                extra={"event": "upstream_unparsable", "command": res.get("command")},
            )
            raise UpstreamError(f"failed to {action}", str(e)) from e
        if any(doc.get("status") == "error" for doc in docs):
            raise UpstreamError(f"failed to {action}", error_message(res.get("stdout", ""), ""))
        self.logger.debug(
            "upstream call ok",
            extra={"event": "upstream_ok", "command": res.get("command"), "count": len(docs)},
        )
        return docs

    async def list_users(self) -> Dict[str, UserInfo]:
        docs = await self._run(["admin", "user", "list", self.alias], action="list users")
        users: Dict[str, UserInfo] = {}
        for doc in docs:
            name = doc.get("accessKey")
            if name:
                users[str(name)] = UserInfo(status=str(doc.get("userStatus") or ""))
        return users

    async def list_access_keys_bulk(
        self, users: Optional[Sequence[str]], scope: ListScope
    ) -> Dict[str, UserAccessKeys]:
        args = ["admin", "accesskey", "ls", self.alias]
        if users is None:
            args.append("--all")
        else:
            args.extend(users)
        args.extend(_SCOPE_FLAGS[ListScope(scope)])
        docs = await self._run(args, action="list access keys")

        result: Dict[str, UserAccessKeys] = {}
        for doc in docs:
            user = doc.get("user")
            if not user:
                continue
            entry = result.setdefault(str(user), UserAccessKeys())
            svcaccs = doc.get("svcaccs") or doc.get("serviceAccounts") or []
            sts = doc.get("stsKeys") or doc.get("sts") or []
            entry.service_accounts.extend(_summary_from_json(d, str(user)) for d in svcaccs)
            entry.sts_keys.extend(_summary_from_json(d, str(user)) for d in sts)
        return result

    async def get_service_account(self, access_key: str) -> ServiceAccountDetail:
        docs = await self._run(
            ["admin", "user", "svcacct", "info", self.alias, access_key],
            action="get service account",
        )
        if not docs:
            raise UpstreamError("failed to get service account", "empty response")
        doc = docs[0]
        return ServiceAccountDetail(
            access_key=str(doc.get("accessKey") or access_key),
            parent_user=str(doc.get("parentUser") or ""),
            account_status=_account_status(doc.get("accountStatus")),
            implied_policy=bool(doc.get("impliedPolicy", False)),
            name=str(doc.get("name") or ""),
            description=str(doc.get("description") or ""),
            expiration=doc.get("expiration") or None,
        )

    async def add_service_account(self, req: AddServiceAccountRequest) -> Credentials:
        target = req.target_user or self.root_user
        args = ["admin", "user", "svcacct", "add", self.alias, target]
        if req.access_key:
            args.extend(["--access-key", req.access_key])
        if req.secret_key:
            args.extend(["--secret-key", req.secret_key])
        if req.name:
            args.extend(["--name", req.name])
        if req.description:
            args.extend(["--description", req.description])
        if req.expiration is not None:
            args.extend(["--expiry", format_timestamp(req.expiration)])
        with _policy_file(req.policy) as policy_path:
            if policy_path:
                args.extend(["--policy", policy_path])
            docs = await self._run(args, action="create service account", mutate=True)
        if not docs:
            raise UpstreamError("failed to create service account", "empty response")
        doc = docs[0]
        return Credentials(
            access_key=str(doc.get("accessKey") or ""),
            secret_key=str(doc.get("secretKey") or ""),
            session_token=str(doc.get("sessionToken") or ""),
            expiration=doc.get("expiration") or None,
        )

    async def _set_status(self, access_key: str, status: str) -> None:
        verb = "enable" if status == "enabled" else "disable"
        await self._run(
            ["admin", "user", "svcacct", verb, self.alias, access_key],
            action="update service account status",
            mutate=True,
        )

    async def update_service_account(self, access_key: str, req: UpdateServiceAccountRequest) -> None:
        """Apply a sparse update.

        ``mc`` changes status with its own subcommand, so an update carrying
        both a status and field edits is two calls. The status goes first and
        is put back to its previous value if the field edits fail; the edit
        call itself is a single upstream request.
        """
        args = ["admin", "user", "svcacct", "edit", self.alias, access_key]
        if req.new_secret_key is not None:
            args.extend(["--secret-key", req.new_secret_key])
        if req.new_name is not None:
            args.extend(["--name", req.new_name])
        if req.new_description is not None:
            args.extend(["--description", req.new_description])
        if req.new_expiration is not None:
            args.extend(["--expiry", format_timestamp(req.new_expiration)])
        has_edits = len(args) > 6 or req.new_policy is not None

        if req.new_status is None:
            if not has_edits:
                # Nothing to change; still confirm the key exists upstream
                await self.get_service_account(access_key)
                return
            await self._edit(args, req.new_policy)
            return

        if not has_edits:
            await self._set_status(access_key, req.new_status)
            return

        previous = (await self.get_service_account(access_key)).account_status
        if previous == req.new_status:
            await self._edit(args, req.new_policy)
            return
        await self._set_status(access_key, req.new_status)
        try:
            await self._edit(args, req.new_policy)
        except UpstreamError:
            if previous:
                try:
                    await self._set_status(access_key, previous)
                except UpstreamError:
                    self.logger.error(
                        "failed to restore service account status",
                        extra={"event": "status_rollback_failed", "access_key": access_key, "reason": previous},
                    )
                    raise
            raise

    async def _edit(self, args: List[str], policy: Optional[str]) -> None:
        with _policy_file(policy) as policy_path:
            if policy_path:
                args = [*args, "--policy", policy_path]
            await self._run(args, action="update service account", mutate=True)

    async def delete_service_account(self, access_key: str) -> None:
        await self._run(
            ["admin", "user", "svcacct", "rm", self.alias, access_key],
            action="delete service account",
            mutate=True,
        )

    async def server_info(self) -> Dict[str, Any]:
        docs = await self._run(["admin", "info", self.alias], action="get server info")
        if not docs:
            raise UpstreamError("failed to get server info", "empty response")
        doc = docs[0]
        info = doc.get("info")
        return info if isinstance(info, dict) else doc
