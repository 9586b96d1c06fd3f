"""
자동 시작 설치 모듈 테스트
"""

import pytest
from mesh_node_agent.autostart import AutostartInstaller, new_vpn_autostart, UNIT_TEMPLATE
from mesh_node_agent.config import ServiceConfig
from mesh_node_agent.errors import ServiceManagerError
from mesh_node_agent.service import ServiceDescriptor


@pytest.fixture
def installer(tmp_path, fake_run, monkeypatch):
    monkeypatch.setattr("mesh_node_agent.autostart.subprocess.run", fake_run)
    source = tmp_path / "build" / "mesh-node-agent"
    source.parent.mkdir()
    source.write_text("#!/bin/sh\n")
    descriptor = ServiceDescriptor(
        service_name="meshnoded",
        unit_definition_text=UNIT_TEMPLATE.format(exec_path=str(tmp_path / "bin" / "mesh-node-agent")),
        destination_path=str(tmp_path / "systemd" / "meshnoded.service"),
    )
    return AutostartInstaller(
        descriptor,
        binary_path=str(tmp_path / "bin" / "mesh-node-agent"),
        source_binary=str(source),
    )


def test_install_runs_enable_then_start(installer, fake_run, tmp_path):
    """설치 시 유닛 작성 후 enable, start 순서로 실행"""
    installer.install()

    commands = fake_run.commands()
    assert commands.index("systemctl enable meshnoded") < commands.index("systemctl start meshnoded")
    assert commands.index("systemctl daemon-reload") < commands.index("systemctl enable meshnoded")
    assert installer.is_installed()
    assert (tmp_path / "bin" / "mesh-node-agent").exists()


def test_install_twice_is_idempotent(installer, fake_run, tmp_path):
    """이미 설치된 상태에서 재설치해도 실패하지 않음"""
    installer.install()
    installer.install()

    unit = tmp_path / "systemd" / "meshnoded.service"
    assert unit.read_text() == installer.descriptor.unit_definition_text
    assert fake_run.commands().count("systemctl start meshnoded") == 2


def test_install_ignores_uninstall_failures(installer, fake_run):
    """기존 설치가 없어 stop/disable 이 실패해도 설치는 계속됨"""
    fake_run.results["stop meshnoded"] = (5, "Unit meshnoded.service not loaded.")
    fake_run.results["disable meshnoded"] = (1, "Failed to disable unit")

    installer.install()
    assert "systemctl start meshnoded" in fake_run.commands()


def test_enable_failure_skips_start(installer, fake_run):
    """enable 실패 시 start 를 실행하지 않고 명령 출력을 에러에 포함"""
    fake_run.results["enable meshnoded"] = (1, "Failed to enable unit: Access denied")

    with pytest.raises(ServiceManagerError) as exc_info:
        installer.install()

    assert "Access denied" in str(exc_info.value)
    assert exc_info.value.output == "Failed to enable unit: Access denied"
    assert exc_info.value.returncode == 1
    assert exc_info.value.command == ["systemctl", "enable", "meshnoded"]
    assert "systemctl start meshnoded" not in fake_run.commands()


def test_start_failure(installer, fake_run):
    """start 실패 시 ServiceManagerError"""
    fake_run.results["start meshnoded"] = (1, "Job for meshnoded.service failed")

    with pytest.raises(ServiceManagerError) as exc_info:
        installer.install()
    assert "Job for meshnoded.service failed" in str(exc_info.value)


def test_uninstall_best_effort(installer, fake_run):
    """제거는 실패해도 예외 없이 경고만 반환"""
    fake_run.results["stop meshnoded"] = (5, "not loaded")

    result = installer.uninstall()
    assert result.ok == False
    assert len(result.warnings) == 1
    assert "not loaded" in result.warnings[0]


def test_uninstall_removes_unit(installer, fake_run):
    """설치 후 제거하면 유닛 파일 삭제"""
    installer.install()
    result = installer.uninstall()
    assert result.ok == True
    assert not installer.is_installed()


def test_missing_service_manager(installer, monkeypatch):
    """systemctl 이 없으면 ServiceManagerError"""
    def missing(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr("mesh_node_agent.autostart.subprocess.run", missing)
    with pytest.raises(ServiceManagerError):
        installer.install()


def test_new_vpn_autostart_template():
    """내장 템플릿으로 만든 서비스 정의"""
    installer = new_vpn_autostart(ServiceConfig(binary_path="/opt/bin/mesh-node-agent"))
    descriptor = installer.descriptor
    assert descriptor.service_name == "meshnoded"
    assert descriptor.destination_path == "/etc/systemd/system/meshnoded.service"
    assert "ExecStart=/opt/bin/mesh-node-agent meshd" in descriptor.unit_definition_text
    assert "Restart=always" in descriptor.unit_definition_text
    assert "WantedBy=multi-user.target" in descriptor.unit_definition_text
