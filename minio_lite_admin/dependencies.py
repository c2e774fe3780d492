import shutil

from fastapi import Request

from .access_keys import AccessKeyService
from .server_info import ServerInfoReader


def mc_available(mc_bin: str) -> bool:
    return shutil.which(mc_bin) is not None


def get_access_keys(request: Request) -> AccessKeyService:
    return request.app.state.access_keys


def get_server_info_reader(request: Request) -> ServerInfoReader:
    return request.app.state.server_info
