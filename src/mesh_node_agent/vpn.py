"""
VPN 노드 컨트롤러 모듈 (Tailscale/Headscale)
tailscaled 데몬 실행, tailscale up 설정 적용, 진단 로그 감시를 통한 노드 등록
"""

import os
import signal
import subprocess
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from rich.console import Console

from .config import TAILSCALE_DNS_IP, VPNDaemonConfig
from .dns import NetworkOverride, get_network_override
from .errors import (
    AgentIOError,
    DaemonExitError,
    MalformedRegistrationLineError,
    MeshAgentError,
    OSMutateError,
    RegistrationError,
    UpCommandError,
    UpTimeoutError,
)
from .logger import get_logger
from .store import VPNStore

console = Console()

REGISTER_MARKER = "register?key="
DEFAULT_CAPTURE_FILE = "~/.mesh-node-agent/tailscale-out.log"

# 데몬 실행 중 데몬으로 전달할 종료 시그널
STOP_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


@dataclass(frozen=True)
class RegistrationEvent:
    """진단 로그 한 줄에서 추출한 노드 등록 이벤트"""
    public_key: str


def get_public_key_from_auth_string(auth_string: str) -> str:
    """등록 URL 에서 공개키 추출

    예: http://127.0.0.1:8080/register?key=4d217e80...  ->  4d217e80...
    """
    parts = auth_string.split(REGISTER_MARKER)
    if len(parts) != 2:
        raise MalformedRegistrationLineError(auth_string)
    tokens = parts[1].split()
    if not tokens:
        raise MalformedRegistrationLineError(auth_string)
    return tokens[0]


def parse_registration_line(line: str) -> Optional[RegistrationEvent]:
    """마커가 없으면 None, 있으면 RegistrationEvent (키가 없으면 MalformedRegistrationLineError)"""
    if REGISTER_MARKER not in line:
        return None
    return RegistrationEvent(get_public_key_from_auth_string(line))


def install_signal_handlers(handler) -> Dict[int, object]:
    """STOP_SIGNALS 핸들러 교체. 메인 스레드가 아니면 아무것도 하지 않음"""
    if threading.current_thread() is not threading.main_thread():
        return {}
    return {signo: signal.signal(signo, handler) for signo in STOP_SIGNALS}


def restore_signal_handlers(previous: Dict[int, object]):
    for signo, handler in previous.items():
        signal.signal(signo, handler if handler is not None else signal.SIG_DFL)


class LogTailer(threading.Thread):
    """파일에 추가되는 라인을 순서대로 따라 읽는 백그라운드 리더 (tail -f)

    stop_event 가 설정되면 남은 라인을 모두 처리한 뒤 종료한다.
    라인 핸들러의 MeshAgentError 는 해당 라인만 건너뛰고 계속 읽는다.
    """

    def __init__(self, path: str, on_line: Callable[[str], object],
                 stop_event: Optional[threading.Event] = None,
                 start_offset: int = 0,
                 poll_interval: float = 0.1,
                 keep_lines: int = 20):
        super().__init__(name="log-tailer", daemon=True)
        self.path = path
        self.on_line = on_line
        self.stop_event = stop_event or threading.Event()
        self.start_offset = start_offset
        self.poll_interval = poll_interval
        self.recent_lines = deque(maxlen=keep_lines)
        self.errors: List[MeshAgentError] = []
        self.logger = get_logger(__name__)

    def stop(self, timeout: Optional[float] = None):
        self.stop_event.set()
        self.join(timeout)

    def _handle(self, line: str):
        line = line.rstrip("\r\n")
        self.recent_lines.append(line)
        try:
            self.on_line(line)
        except MeshAgentError as e:
            self.errors.append(e)
            self.logger.error(f"Failed to handle log line: {e}")

    def run(self):
        with open(self.path, "r", encoding="utf-8", errors="replace") as f:
            f.seek(self.start_offset)
            pending = ""
            while True:
                chunk = f.readline()
                if chunk:
                    pending += chunk
                    if pending.endswith("\n"):
                        self._handle(pending)
                        pending = ""
                    continue
                if self.stop_event.is_set():
                    break
                self.stop_event.wait(self.poll_interval)
            if pending:
                self._handle(pending)


class NodeState(Enum):
    """VPN 노드 컨트롤러 상태"""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    CONFIG_APPLYING = "config_applying"
    CONFIGURED = "configured"
    FAILED = "failed"


class TailscaleNode:
    """Tailscale 노드 컨트롤러"""

    def __init__(self, store: VPNStore,
                 network_override: Optional[NetworkOverride] = None,
                 tailscaled_path: str = "tailscaled",
                 tailscale_path: str = "tailscale",
                 capture_path: str = DEFAULT_CAPTURE_FILE,
                 dns_ip: str = TAILSCALE_DNS_IP,
                 search_domain: str = ""):
        self.store = store
        self.network_override = network_override or get_network_override()
        self.tailscaled_path = tailscaled_path
        self.tailscale_path = tailscale_path
        self.capture_path = os.path.expanduser(capture_path)
        self.dns_ip = dns_ip
        self.search_domain = search_domain
        self.userspace_networking = False
        self.socks_proxy_port = 0
        self.state = NodeState.IDLE
        self.dns_overridden = False
        self.registered_keys: List[str] = []
        self.logger = get_logger(__name__)

    def with_userspace_networking(self, enabled: bool) -> "TailscaleNode":
        self.userspace_networking = enabled
        return self

    def with_socks_proxy_port(self, port: int) -> "TailscaleNode":
        self.socks_proxy_port = port
        return self

    def daemon_args(self, config: Optional[VPNDaemonConfig] = None) -> List[str]:
        """tailscaled 실행 인자 구성"""
        userspace = self.userspace_networking
        socks_port = self.socks_proxy_port
        if config is not None:
            userspace = config.userspace_networking
            socks_port = config.socks_proxy_port

        args = [self.tailscaled_path]
        if userspace:
            args.append("--tun=userspace-networking")
        if socks_port:
            args.append(f"--socks5-server=localhost:{socks_port}")
        return args

    def start(self, config: Optional[VPNDaemonConfig] = None):
        """tailscaled 실행 (데몬이 종료될 때까지 블록)

        실행 중 SIGTERM/SIGHUP 은 데몬으로 전달되고, 데몬이 끝나면 정상 종료로 처리한다.
        DNS 오버라이드는 데몬 종료 시 어떤 경로로 끝나든 복원된다.
        """
        args = self.daemon_args(config)
        self.state = NodeState.STARTING
        self.logger.info(f"Starting VPN daemon: {' '.join(args)}")

        try:
            restore = self.network_override.apply(self.dns_ip, self.search_domain)
        except OSMutateError as e:
            self.state = NodeState.FAILED
            if e.restore is not None:
                self._restore_dns(e.restore)
            raise
        except MeshAgentError:
            self.state = NodeState.FAILED
            raise
        self.dns_overridden = self.network_override.name != "noop"

        try:
            self.state = NodeState.RUNNING
            try:
                proc = subprocess.Popen(args)
            except OSError as e:
                raise DaemonExitError(f"failed to start {args[0]}: {e}") from e

            received = []

            def forward_signal(signo, _frame):
                self.logger.info(f"Received signal {signo}, stopping VPN daemon")
                received.append(signo)
                if proc.poll() is None:
                    proc.send_signal(signo)

            previous_handlers = install_signal_handlers(forward_signal)
            try:
                returncode = proc.wait()
            except BaseException:
                if proc.poll() is None:
                    proc.terminate()
                    proc.wait()
                raise
            finally:
                restore_signal_handlers(previous_handlers)

            if received:
                self.logger.info(f"VPN daemon stopped by signal {received[0]}")
            elif returncode != 0:
                raise DaemonExitError(
                    f"{args[0]} exited with status {returncode}",
                    returncode=returncode,
                )
            else:
                self.logger.info("VPN daemon exited")
        except BaseException:
            self.state = NodeState.FAILED
            raise
        else:
            self.state = NodeState.IDLE
        finally:
            self._restore_dns(restore)
            self.dns_overridden = False

    def _restore_dns(self, restore: Callable[[], None]):
        try:
            restore()
        except MeshAgentError as e:
            self.logger.error(f"Failed to restore DNS settings: {e}")

    def handle_tailscale_output(self, line: str) -> Optional[RegistrationEvent]:
        """진단 로그 한 줄 처리. 등록 URL 이 있으면 공개키를 저장소에 등록"""
        self.logger.debug(f"tailscale: {line}")
        event = parse_registration_line(line)
        if event is None:
            return None

        console.print("[cyan]노드 등록 URL 감지, 공개키 등록 중...[/cyan]")
        try:
            self.store.register_node(event.public_key)
        except RegistrationError:
            raise
        except Exception as e:
            raise RegistrationError(f"failed to register node key: {e}") from e

        self.registered_keys.append(event.public_key)
        console.print("[green]✓ 노드 공개키 등록 완료[/green]")
        return event

    def apply_config(self, host_name: str, login_server_url: str,
                     timeout: Optional[float] = None):
        """tailscale up 실행 (hostname, login-server 적용)

        실행 중 진단 출력(stderr)은 캡처 파일로 보내고 LogTailer 가 이를 따라 읽는다.
        """
        self.state = NodeState.CONFIG_APPLYING
        console.print(f"[cyan]VPN 설정 적용 중: {host_name} → {login_server_url}[/cyan]")
        self.logger.info(f"Applying VPN config (hostname={host_name}, login-server={login_server_url})")

        try:
            outfile = self.store.get_or_create_file(self.capture_path)
            start_offset = os.path.getsize(self.capture_path)
        except OSError as e:
            self.state = NodeState.FAILED
            raise AgentIOError(f"failed to open capture file {self.capture_path}: {e}") from e

        stop_event = threading.Event()
        tailer = LogTailer(self.capture_path, self.handle_tailscale_output,
                           stop_event=stop_event, start_offset=start_offset)
        tailer.start()

        cmd = [
            self.tailscale_path, "up",
            f"--hostname={host_name}",
            f"--login-server={login_server_url}",
        ]

        returncode = None
        try:
            result = subprocess.run(cmd, stderr=outfile, timeout=timeout)
            returncode = result.returncode
        except subprocess.TimeoutExpired as e:
            self.state = NodeState.FAILED
            raise UpTimeoutError(f"{' '.join(cmd)} timed out after {timeout}s") from e
        except OSError as e:
            self.state = NodeState.FAILED
            raise UpCommandError(f"failed to run {' '.join(cmd)}: {e}") from e
        finally:
            outfile.close()
            tailer.stop()

        if returncode != 0:
            self.state = NodeState.FAILED
            raise UpCommandError(
                f"{' '.join(cmd)} exited with status {returncode}",
                returncode=returncode,
                output="\n".join(tailer.recent_lines),
            )

        registration_errors = [e for e in tailer.errors if isinstance(e, RegistrationError)]
        if registration_errors:
            self.state = NodeState.FAILED
            error = registration_errors[-1]
            raise RegistrationError(
                f"{' '.join(cmd)} succeeded but node registration failed: {error}"
            ) from error

        self.state = NodeState.CONFIGURED
        console.print("[green]✓ VPN 설정 적용 완료[/green]")
        self.logger.info("VPN config applied")
