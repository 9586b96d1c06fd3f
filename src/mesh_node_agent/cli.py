"""
CLI 메인 인터페이스
Click 및 Rich 기반 사용자 친화적 CLI
"""

import sys
import click
from rich.console import Console
from rich.panel import Panel
from .config import Config
from .logger import init_logger, get_logger
from .dns import get_network_override
from .vpn import TailscaleNode
from .store import new_store
from .autostart import new_vpn_autostart
from .errors import MeshAgentError, OSMutateError

console = Console()


def build_node(config: Config) -> TailscaleNode:
    """설정으로부터 VPN 노드 컨트롤러 생성"""
    override = get_network_override(interface_name=config.dns.interface,
                                     enabled=config.dns.enabled)
    node = TailscaleNode(
        new_store(config.registration),
        network_override=override,
        tailscaled_path=config.vpn.tailscaled_path,
        tailscale_path=config.vpn.tailscale_path,
        capture_path=config.vpn.capture_file,
        dns_ip=config.dns.resolver_ip,
        search_domain=config.dns.search_domain,
    )
    return (node
            .with_userspace_networking(bool(config.vpn.userspace_networking))
            .with_socks_proxy_port(config.vpn.socks_proxy_port or 0))


def fail(message: str):
    get_logger(__name__).debug(f"Command failed: {message}")
    console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


@click.group()
@click.option("-c", "--config", "config_path", type=click.Path(),
              default=None, help="설정 파일 경로")
@click.option("--debug", is_flag=True, help="디버그 모드")
@click.pass_context
def cli(ctx, config_path, debug):
    """Mesh Node Agent - 메시 VPN 노드 관리"""
    try:
        config = Config(config_path)
    except MeshAgentError as e:
        fail(str(e))
    init_logger(config.agent.log_dir, config.agent.log_level, debug)
    ctx.obj = config


@cli.command()
@click.option("--userspace-networking", is_flag=True, default=None,
              help="TUN 대신 userspace networking 사용")
@click.option("--socks-proxy-port", type=int, default=None,
              help="SOCKS5 프록시 포트")
@click.pass_obj
def meshd(config, userspace_networking, socks_proxy_port):
    """VPN 데몬 실행 (종료될 때까지 대기)"""
    if userspace_networking is not None:
        config.vpn.userspace_networking = userspace_networking
    if socks_proxy_port is not None:
        config.vpn.socks_proxy_port = socks_proxy_port

    node = build_node(config)
    try:
        node.start(config.vpn.to_daemon_config())
    except KeyboardInterrupt:
        console.print("\n[yellow]VPN 데몬 중지[/yellow]")
    except MeshAgentError as e:
        fail(f"VPN 데몬 오류: {e}")


@cli.command()
@click.option("--hostname", "host_name", default=None, help="노드 호스트명")
@click.option("--login-server", "login_server_url", default=None,
              help="컨트롤 서버 URL")
@click.option("--timeout", type=float, default=None, help="tailscale up 제한 시간 (초)")
@click.pass_obj
def up(config, host_name, login_server_url, timeout):
    """VPN 설정 적용 및 노드 등록"""
    host_name = host_name or config.vpn.host_name
    login_server_url = login_server_url or config.vpn.login_server_url
    if not host_name or not login_server_url:
        fail("--hostname 과 --login-server 가 필요합니다 (또는 설정 파일의 vpn 섹션)")

    node = build_node(config)
    try:
        node.apply_config(host_name, login_server_url,
                          timeout=timeout if timeout is not None else config.vpn.up_timeout)
    except MeshAgentError as e:
        fail(f"VPN 설정 실패: {e}")

    if node.registered_keys:
        console.print(f"[bold]등록된 노드 키:[/bold] {node.registered_keys[-1]}")


@cli.command("install-autostart")
@click.pass_obj
def install_autostart(config):
    """VPN 데몬을 부팅 시 자동 시작하도록 설치"""
    installer = new_vpn_autostart(config.service)
    try:
        installer.install()
    except MeshAgentError as e:
        fail(f"자동 시작 설치 실패: {e}")


@cli.command("uninstall-autostart")
@click.pass_obj
def uninstall_autostart(config):
    """자동 시작 서비스 제거"""
    result = new_vpn_autostart(config.service).uninstall()
    if result.ok:
        console.print("[green]✓ 자동 시작 서비스 제거 완료[/green]")
    else:
        console.print("[yellow]⚠ 일부 단계가 실패했습니다:[/yellow]")
        for warning in result.warnings:
            console.print(f"  • {warning}")


@cli.command("dns-override")
@click.pass_obj
def dns_override(config):
    """DNS 오버라이드 적용 후 Enter 입력 시 복원"""
    override = get_network_override(interface_name=config.dns.interface,
                                    enabled=config.dns.enabled)
    if override.name == "noop":
        console.print("[cyan]이 플랫폼에서는 DNS 오버라이드가 필요하지 않습니다.[/cyan]")
        return

    try:
        restore = override.apply(config.dns.resolver_ip, config.dns.search_domain)
    except OSMutateError as e:
        if e.restore is not None:
            try:
                e.restore()
            except MeshAgentError as restore_error:
                fail(f"DNS 오버라이드 실패: {e} (복원 실패: {restore_error})")
        fail(f"DNS 오버라이드 실패: {e}")
    except MeshAgentError as e:
        fail(f"DNS 오버라이드 실패: {e}")

    console.print(Panel.fit(
        f"[bold]{config.dns.interface}[/bold] DNS → {config.dns.resolver_ip}\n"
        "Enter 를 누르면 원래 설정으로 복원합니다.",
        border_style="cyan"
    ))
    try:
        click.prompt("", default="", show_default=False, prompt_suffix="")
    finally:
        try:
            restore()
        except MeshAgentError as e:
            fail(f"DNS 복원 실패: {e}")
        console.print("[green]✓ DNS 설정 복원 완료[/green]")


@cli.command("init-config")
@click.argument("output_path", type=click.Path())
def init_config(output_path):
    """샘플 설정 파일 생성"""
    Config.create_sample(output_path)
    console.print(f"[green]✓ 샘플 설정 파일 생성: {output_path}[/green]")


def main():
    """메인 엔트리 포인트"""
    cli()


if __name__ == '__main__':
    main()
