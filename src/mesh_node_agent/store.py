"""
VPN 노드 저장소 모듈
진단 로그 캡처 파일 생성과 노드 공개키 등록
"""

import os
from typing import IO, Optional

import requests

from .errors import RegistrationError
from .logger import get_logger


class VPNStore:
    """VPN 컨트롤러가 사용하는 저장소 인터페이스"""

    def register_node(self, public_key: str):
        raise NotImplementedError

    def get_or_create_file(self, path: str) -> IO[str]:
        raise NotImplementedError


class FileVPNStore(VPNStore):
    """로컬 파일 기반 저장소. 등록된 공개키를 node_key_file 에 기록"""

    def __init__(self, node_key_file: str = "~/.mesh-node-agent/node-key"):
        self.node_key_file = os.path.expanduser(node_key_file)
        self.logger = get_logger(__name__)

    def get_or_create_file(self, path: str) -> IO[str]:
        """파일 열기 (없으면 상위 디렉토리까지 생성, append 모드)"""
        path = os.path.expanduser(path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        return open(path, "a", encoding="utf-8")

    def register_node(self, public_key: str):
        """공개키 로컬 저장"""
        try:
            directory = os.path.dirname(self.node_key_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.node_key_file, "w", encoding="utf-8") as f:
                f.write(public_key + "\n")
        except OSError as e:
            raise RegistrationError(f"failed to save node key to {self.node_key_file}: {e}") from e
        self.logger.info(f"Node key saved to {self.node_key_file}")


class HTTPRegistrationStore(FileVPNStore):
    """컨트롤 API 에 공개키를 등록하는 저장소 (로컬 파일에도 기록)"""

    def __init__(self, api_url: str, token: str = "",
                 node_key_file: str = "~/.mesh-node-agent/node-key",
                 timeout: int = 10,
                 session: Optional[requests.Session] = None):
        super().__init__(node_key_file)
        self.api_url = api_url
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def register_node(self, public_key: str):
        """컨트롤 API 로 노드 등록 요청"""
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        self.logger.info(f"Registering node with {self.api_url}...")
        try:
            response = self.session.post(
                self.api_url,
                json={"publicKey": public_key},
                headers=headers,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise RegistrationError(f"node registration request to {self.api_url} failed: {e}") from e

        if response.status_code >= 400:
            raise RegistrationError(
                f"node registration rejected by {self.api_url} "
                f"(status: {response.status_code}): {response.text.strip()}"
            )

        self.logger.info("Node registered successfully")
        super().register_node(public_key)


def new_store(registration_config) -> VPNStore:
    """설정에 따라 저장소 선택 (api_url 이 없으면 로컬 파일 저장소)"""
    if registration_config.api_url:
        return HTTPRegistrationStore(
            registration_config.api_url,
            token=registration_config.token,
            node_key_file=registration_config.node_key_file,
            timeout=registration_config.timeout,
        )
    return FileVPNStore(registration_config.node_key_file)
