"""
서비스 정의 저장 모듈
systemd 유닛 파일 쓰기 및 실행 파일 배치
"""

import os
import shutil
import stat
import sys
from dataclasses import dataclass
from typing import Optional

from .errors import AgentIOError
from .logger import get_logger


@dataclass(frozen=True)
class ServiceDescriptor:
    """OS 서비스 정의 (생성 후 변경 불가)"""
    service_name: str
    unit_definition_text: str
    destination_path: str


def current_executable() -> str:
    """현재 실행 중인 에이전트 실행 파일 경로"""
    found = shutil.which("mesh-node-agent")
    if found:
        return found
    return os.path.abspath(sys.argv[0])


class ServiceStore:
    """서비스 파일 및 바이너리 저장소"""

    def __init__(self):
        self.logger = get_logger(__name__)

    def write_descriptor(self, descriptor: ServiceDescriptor):
        """유닛 파일 작성 (상위 디렉토리 자동 생성)"""
        path = descriptor.destination_path
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(descriptor.unit_definition_text)
        except OSError as e:
            raise AgentIOError(f"failed to write service file {path}: {e}") from e
        self.logger.debug(f"Wrote service file {path}")

    def remove_descriptor(self, descriptor: ServiceDescriptor) -> bool:
        """유닛 파일 삭제. 파일이 있었으면 True"""
        path = descriptor.destination_path
        if not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            raise AgentIOError(f"failed to remove service file {path}: {e}") from e
        self.logger.debug(f"Removed service file {path}")
        return True

    def copy_binary(self, target_path: str, source_path: Optional[str] = None):
        """서비스의 ExecStart 가 가리키는 위치에 실행 파일 복사"""
        source = source_path or current_executable()
        try:
            if os.path.exists(target_path) and os.path.samefile(source, target_path):
                self.logger.debug(f"{target_path} is already the current binary")
                return
            directory = os.path.dirname(target_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            shutil.copyfile(source, target_path)
            mode = os.stat(target_path).st_mode
            os.chmod(target_path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as e:
            raise AgentIOError(f"failed to copy {source} to {target_path}: {e}") from e
        self.logger.debug(f"Copied {source} to {target_path}")
