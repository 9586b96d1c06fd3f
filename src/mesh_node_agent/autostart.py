"""
자동 시작 서비스 설치 모듈
systemd 유닛 등록 (enable) 및 즉시 시작 (start)
재설치 시 기존 설치를 먼저 제거 (best-effort)
"""

import os
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from rich.console import Console

from .config import ServiceConfig
from .errors import MeshAgentError, ServiceManagerError
from .logger import get_logger
from .service import ServiceDescriptor, ServiceStore

console = Console()

UNIT_TEMPLATE = """
[Install]
WantedBy=multi-user.target

[Unit]
Description=Mesh Node Agent VPN Daemon
After=systemd-user-sessions.service

[Service]
Type=simple
ExecStart={exec_path} meshd
Restart=always
"""


@dataclass
class UninstallResult:
    """best-effort 제거 결과. 실패는 경고로만 남고 예외를 던지지 않음"""
    ok: bool = True
    warnings: List[str] = field(default_factory=list)

    def warn(self, message: str):
        self.ok = False
        self.warnings.append(message)


def new_vpn_autostart(service_config: Optional[ServiceConfig] = None,
                      store: Optional[ServiceStore] = None) -> "AutostartInstaller":
    """내장 유닛 템플릿으로 VPN 데몬 자동 시작 설치기 생성"""
    service_config = service_config or ServiceConfig()
    descriptor = ServiceDescriptor(
        service_name=service_config.name,
        unit_definition_text=UNIT_TEMPLATE.format(exec_path=service_config.binary_path),
        destination_path=service_config.unit_path,
    )
    return AutostartInstaller(descriptor, store=store, binary_path=service_config.binary_path)


class AutostartInstaller:
    """systemd 자동 시작 설치 클래스"""

    def __init__(self, descriptor: ServiceDescriptor,
                 store: Optional[ServiceStore] = None,
                 binary_path: str = "/usr/local/bin/mesh-node-agent",
                 source_binary: Optional[str] = None,
                 service_manager: str = "systemctl"):
        self.descriptor = descriptor
        self.store = store or ServiceStore()
        self.binary_path = binary_path
        self.source_binary = source_binary
        self.service_manager = service_manager
        self.logger = get_logger(__name__)

    def _run(self, *args: str) -> str:
        """서비스 매니저 명령 실행. 실패 시 합쳐진 stdout/stderr 를 담은 ServiceManagerError"""
        cmd = [self.service_manager, *args]
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True
            )
        except OSError as e:
            raise ServiceManagerError(cmd, -1, str(e)) from e

        if result.returncode != 0:
            raise ServiceManagerError(cmd, result.returncode, result.stdout or "")
        return result.stdout or ""

    def is_installed(self) -> bool:
        """유닛 파일 존재 여부"""
        return os.path.exists(self.descriptor.destination_path)

    def uninstall(self) -> UninstallResult:
        """기존 설치 제거 (best-effort, 예외를 던지지 않음)"""
        result = UninstallResult()
        name = self.descriptor.service_name

        for action in ("stop", "disable"):
            try:
                self._run(action, name)
            except ServiceManagerError as e:
                result.warn(str(e))

        try:
            self.store.remove_descriptor(self.descriptor)
        except MeshAgentError as e:
            result.warn(str(e))

        for warning in result.warnings:
            self.logger.warning(f"Uninstall of {name} (best-effort): {warning}")
        if result.ok:
            self.logger.info(f"Service {name} uninstalled")
        return result

    def install(self):
        """자동 시작 서비스 설치 후 즉시 시작"""
        name = self.descriptor.service_name
        console.print(f"[cyan]{name} 자동 시작 서비스 설치 중...[/cyan]")
        self.logger.info(f"Installing autostart service {name}...")

        self.uninstall()

        self.store.copy_binary(self.binary_path, self.source_binary)
        self.store.write_descriptor(self.descriptor)

        self._run("daemon-reload")
        self._run("enable", name)
        self._run("start", name)

        console.print(f"[green]✓ {name} 서비스 등록 및 시작 완료[/green]")
        self.logger.info(f"Service {name} enabled and started")
