"""
플랫폼 DNS 오버라이드 모듈
macOS 에서는 networksetup 으로 VPN 리졸버를 DNS 목록 맨 앞에 추가하고,
원래 설정으로 되돌리는 복원 콜백을 반환한다. 그 외 플랫폼은 no-op.
"""

import subprocess
import sys
from dataclasses import dataclass
from typing import Callable, List, Sequence, Tuple

from rich.console import Console

from .errors import MeshAgentError, OSMutateError, OSQueryError
from .logger import get_logger

console = Console()

RestoreFn = Callable[[], None]

# networksetup 이 빈 목록을 나타낼 때 쓰는 키워드
EMPTY_KEYWORD = "Empty"


@dataclass(frozen=True)
class NetworkOverrideState:
    """오버라이드 직전의 인터페이스 DNS 상태"""
    interface_name: str
    previous_dns_servers: Tuple[str, ...] = ()
    previous_search_domains: Tuple[str, ...] = ()


def parse_networksetup_list(output: str) -> List[str]:
    """networksetup -get* 출력 파싱

    "There aren't any DNS Servers set on Wi-Fi." 같은 안내문은 빈 목록으로 취급한다.
    """
    text = output.strip()
    if not text or text.startswith("There aren't any"):
        return []
    return [line.strip() for line in text.splitlines() if line.strip()]


def prepend_unique(first: str, rest: Sequence[str]) -> List[str]:
    """first 를 맨 앞에 두고 나머지를 유지. 이미 맨 앞에 있으면 중복 추가하지 않음"""
    if not first:
        return list(rest)
    if rest and rest[0] == first:
        return list(rest)
    return [first, *rest]


class NetworkOverride:
    """DNS 오버라이드 전략 인터페이스"""

    name = "base"

    def apply(self, override_dns_ip: str, override_search_domain: str = "") -> RestoreFn:
        raise NotImplementedError


class NoopNetworkOverride(NetworkOverride):
    """DNS 를 건드리지 않는 전략 (macOS 외 플랫폼)"""

    name = "noop"

    def apply(self, override_dns_ip: str, override_search_domain: str = "") -> RestoreFn:
        def restore():
            return None
        return restore


class DarwinDNSOverride(NetworkOverride):
    """macOS networksetup 기반 DNS 오버라이드"""

    name = "darwin"

    def __init__(self, interface_name: str = "Wi-Fi", runner=subprocess.run):
        self.interface_name = interface_name
        self.runner = runner
        self.logger = get_logger(__name__)

    def _networksetup(self, *args: str) -> str:
        cmd = ["networksetup", *args]
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = self.runner(cmd, capture_output=True, text=True)
        except OSError as e:
            raise MeshAgentError(f"{' '.join(cmd)}: {e}") from e
        if result.returncode != 0:
            output = (result.stderr or "") + (result.stdout or "")
            raise MeshAgentError(
                f"{' '.join(cmd)} exited with {result.returncode}: {output.strip()}"
            )
        return result.stdout or ""

    def _query(self, flag: str) -> List[str]:
        try:
            return parse_networksetup_list(self._networksetup(flag, self.interface_name))
        except MeshAgentError as e:
            raise OSQueryError(f"failed to query {flag} for {self.interface_name}: {e}") from e

    def _set(self, flag: str, values: Sequence[str]):
        self._networksetup(flag, self.interface_name, *(list(values) or [EMPTY_KEYWORD]))

    def get_dns_servers(self) -> List[str]:
        return self._query("-getdnsservers")

    def get_search_domains(self) -> List[str]:
        return self._query("-getsearchdomains")

    def _restore_fn(self, state: NetworkOverrideState, search_domains_changed: bool = True) -> RestoreFn:
        def restore():
            self.logger.info(f"Restoring DNS settings on {state.interface_name}")
            try:
                self._set("-setdnsservers", state.previous_dns_servers)
                if search_domains_changed:
                    self._set("-setsearchdomains", state.previous_search_domains)
            except MeshAgentError as e:
                raise OSMutateError(
                    f"failed to restore DNS settings on {state.interface_name}: {e}"
                ) from e
        return restore

    def apply(self, override_dns_ip: str, override_search_domain: str = "") -> RestoreFn:
        """VPN DNS 오버라이드 적용 후 복원 콜백 반환

        조회 실패 시 OSQueryError (변경 없음), 변경 실패 시 OSMutateError
        (예외의 restore 로 캡처된 상태 복원 가능).
        """
        iface = self.interface_name
        previous_dns = self.get_dns_servers()
        state = NetworkOverrideState(iface, tuple(previous_dns))

        try:
            self._set("-setdnsservers", prepend_unique(override_dns_ip, previous_dns))
        except MeshAgentError as e:
            raise OSMutateError(
                f"failed to set DNS servers on {iface}: {e}",
                restore=self._restore_fn(state, search_domains_changed=False),
            ) from e
        self.logger.info(f"DNS servers on {iface} now start with {override_dns_ip}")

        try:
            previous_search = self.get_search_domains()
        except OSQueryError:
            # DNS 서버만 바뀐 상태이므로 되돌린 뒤 조회 실패를 그대로 전달
            try:
                self._restore_fn(state, search_domains_changed=False)()
            except OSMutateError as restore_error:
                self.logger.error(f"Failed to revert DNS servers on {iface}: {restore_error}")
            raise
        state = NetworkOverrideState(iface, tuple(previous_dns), tuple(previous_search))

        try:
            self._set("-setsearchdomains", prepend_unique(override_search_domain, previous_search))
        except MeshAgentError as e:
            raise OSMutateError(
                f"failed to set search domains on {iface}: {e}",
                restore=self._restore_fn(state),
            ) from e

        console.print(f"[green]✓ {iface} DNS 오버라이드 적용 ({override_dns_ip})[/green]")
        return self._restore_fn(state)


def get_network_override(platform: str = sys.platform, interface_name: str = "Wi-Fi",
                         enabled: bool = True) -> NetworkOverride:
    """플랫폼에 맞는 DNS 오버라이드 전략 선택"""
    if enabled and platform == "darwin":
        return DarwinDNSOverride(interface_name)
    return NoopNetworkOverride()
