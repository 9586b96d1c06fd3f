"""
설정 관리 모듈
YAML/JSON 기반 설정 파일 관리 및 기본값 제공
"""

import os
import yaml
import json
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, fields

from .errors import ConfigError


DEFAULT_STATE_DIR = "~/.mesh-node-agent"
TAILSCALE_DNS_IP = "100.100.100.100"


@dataclass(frozen=True)
class VPNDaemonConfig:
    """tailscaled 실행 및 tailscale up 에 쓰이는 값 (한 번의 start/apply_config 주기에 사용)"""
    host_name: str = ""
    login_server_url: str = ""
    userspace_networking: bool = False
    socks_proxy_port: Optional[int] = None


@dataclass
class VPNConfig:
    """VPN 설정"""
    host_name: str = ""
    login_server_url: str = ""
    userspace_networking: bool = False
    socks_proxy_port: int = 0
    tailscaled_path: str = "tailscaled"
    tailscale_path: str = "tailscale"
    capture_file: str = f"{DEFAULT_STATE_DIR}/tailscale-out.log"
    up_timeout: Optional[float] = None

    def to_daemon_config(self) -> VPNDaemonConfig:
        return VPNDaemonConfig(
            host_name=self.host_name,
            login_server_url=self.login_server_url,
            userspace_networking=bool(self.userspace_networking),
            socks_proxy_port=self.socks_proxy_port or None,
        )


@dataclass
class DNSConfig:
    """DNS 오버라이드 설정 (macOS 전용)"""
    enabled: bool = True
    interface: str = "Wi-Fi"
    resolver_ip: str = TAILSCALE_DNS_IP
    search_domain: str = ""


@dataclass
class ServiceConfig:
    """자동 시작 서비스 설정"""
    name: str = "meshnoded"
    unit_path: str = "/etc/systemd/system/meshnoded.service"
    binary_path: str = "/usr/local/bin/mesh-node-agent"


@dataclass
class RegistrationConfig:
    """노드 등록 설정"""
    api_url: str = ""
    token: str = ""
    node_key_file: str = f"{DEFAULT_STATE_DIR}/node-key"
    timeout: int = 10


@dataclass
class AgentConfig:
    """에이전트 설정"""
    log_dir: str = f"{DEFAULT_STATE_DIR}/logs"
    log_level: str = "INFO"


class Config:
    """전체 설정 관리 클래스"""

    DEFAULT_CONFIG_PATHS = [
        "/etc/mesh-node-agent/config.yaml",
        "~/.mesh-node-agent/config.yaml",
        "./config.yaml",
    ]

    SECTIONS = ("vpn", "dns", "service", "registration", "agent")

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path
        self.vpn = VPNConfig()
        self.dns = DNSConfig()
        self.service = ServiceConfig()
        self.registration = RegistrationConfig()
        self.agent = AgentConfig()

        if config_path:
            self.load(config_path)
        else:
            self._load_from_default_paths()

    def _load_from_default_paths(self):
        """기본 경로에서 설정 파일 로드"""
        for path in self.DEFAULT_CONFIG_PATHS:
            expanded_path = os.path.expanduser(path)
            if os.path.exists(expanded_path):
                self.load(expanded_path)
                return

    def load(self, path: str):
        """설정 파일 로드"""
        path = os.path.expanduser(path)
        if not os.path.exists(path):
            raise ConfigError(f"config file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.endswith('.json'):
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"failed to parse config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"config file {path} must contain a mapping")

        self._update_from_dict(data)
        self.config_path = path

    def _update_from_dict(self, data: Dict[str, Any]):
        """딕셔너리에서 설정 업데이트 (알 수 없는 키는 무시)"""
        for section in self.SECTIONS:
            values = data.get(section)
            if not values:
                continue
            target = getattr(self, section)
            known = {f.name for f in fields(target)}
            for key, value in values.items():
                if key in known:
                    setattr(target, key, value)

    def save(self, path: Optional[str] = None):
        """설정 파일 저장"""
        save_path = path or self.config_path or self.DEFAULT_CONFIG_PATHS[0]
        save_path = os.path.expanduser(save_path)

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        data = self.to_dict()

        with open(save_path, 'w', encoding='utf-8') as f:
            if save_path.endswith('.json'):
                json.dump(data, f, indent=2)
            else:
                yaml.dump(data, f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> Dict[str, Any]:
        """딕셔너리로 변환"""
        return {section: asdict(getattr(self, section)) for section in self.SECTIONS}

    @staticmethod
    def create_sample(output_path: str):
        """샘플 설정 파일 생성"""
        template = """# Mesh Node Agent Configuration File
# 이 파일을 복사하여 config.yaml로 사용하세요

# VPN 설정
vpn:
  host_name: "my-workstation"
  login_server_url: "https://headscale.example.com"
  userspace_networking: false
  socks_proxy_port: 0  # 0 이면 SOCKS5 프록시 사용 안 함
  tailscaled_path: "tailscaled"
  tailscale_path: "tailscale"
  capture_file: "~/.mesh-node-agent/tailscale-out.log"
  up_timeout: null  # tailscale up 제한 시간 (초), null 이면 무제한

# DNS 오버라이드 (macOS 전용)
dns:
  enabled: true
  interface: "Wi-Fi"
  resolver_ip: "100.100.100.100"
  search_domain: ""

# 자동 시작 서비스 (systemd)
service:
  name: "meshnoded"
  unit_path: "/etc/systemd/system/meshnoded.service"
  binary_path: "/usr/local/bin/mesh-node-agent"

# 노드 등록
registration:
  api_url: ""  # 비워두면 node_key_file 에만 기록
  token: ""
  node_key_file: "~/.mesh-node-agent/node-key"
  timeout: 10

# 에이전트 설정
agent:
  log_dir: "~/.mesh-node-agent/logs"
  log_level: "INFO"  # DEBUG, INFO, WARNING, ERROR
"""

        output_path = os.path.expanduser(output_path)
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            f.write(template)
