"""
에러 정의 모듈
각 하위 시스템(서비스 파일, 서비스 매니저, DNS, 데몬, 노드 등록)별 예외
"""

from typing import Callable, Optional, Sequence


class MeshAgentError(Exception):
    """모든 에이전트 에러의 기본 클래스"""


class ConfigError(MeshAgentError):
    """설정 파일 오류"""


class AgentIOError(MeshAgentError):
    """서비스 파일, 바이너리, 캡처 파일 등 파일 입출력 실패"""


class ServiceManagerError(MeshAgentError):
    """systemctl 등 서비스 매니저 명령 실패 (명령 출력 포함)"""

    def __init__(self, command: Sequence[str], returncode: int, output: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        super().__init__(
            f"error running {' '.join(self.command)} (exit {returncode}): {output.strip()}"
        )


class NetworkOverrideError(MeshAgentError):
    """DNS 오버라이드 실패"""


class OSQueryError(NetworkOverrideError):
    """현재 네트워크 설정 조회 실패. 아무것도 변경되지 않음"""


class OSMutateError(NetworkOverrideError):
    """네트워크 설정 변경 실패

    restore 는 실패 직전까지 캡처된 상태로 되돌리는 콜백이다.
    """

    def __init__(self, message: str, restore: Optional[Callable[[], None]] = None):
        super().__init__(message)
        self.restore = restore


class DaemonExitError(MeshAgentError):
    """VPN 데몬이 실행에 실패했거나 비정상 종료됨"""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class MalformedRegistrationLineError(MeshAgentError):
    """register?key= 마커는 있으나 키를 추출할 수 없는 로그 라인"""

    def __init__(self, line: str):
        self.line = line
        super().__init__(f"invalid registration line: {line!r}")


class RegistrationError(MeshAgentError):
    """노드 등록 저장소가 공개키를 거부함"""


class UpCommandError(MeshAgentError):
    """tailscale up 실패"""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        self.returncode = returncode
        self.output = output
        if output:
            message = f"{message}: {output.strip()}"
        super().__init__(message)


class UpTimeoutError(UpCommandError):
    """tailscale up 이 제한 시간 내에 끝나지 않음"""
