"""
설정 관리 모듈 테스트
"""

import os
import tempfile
import pytest
from mesh_node_agent.config import Config, VPNConfig
from mesh_node_agent.errors import ConfigError


@pytest.fixture(autouse=True)
def no_default_paths(monkeypatch):
    """시스템에 있는 실제 설정 파일을 읽지 않도록"""
    monkeypatch.setattr(Config, "DEFAULT_CONFIG_PATHS", [])


def test_default_config():
    """기본 설정 테스트"""
    config = Config()
    assert config.dns.resolver_ip == "100.100.100.100"
    assert config.dns.interface == "Wi-Fi"
    assert config.service.name == "meshnoded"
    assert config.vpn.socks_proxy_port == 0


def test_config_load_yaml():
    """YAML 설정 파일 로드 테스트"""
    yaml_content = """
vpn:
  host_name: "dev-laptop"
  login_server_url: "https://headscale.example.com"
  socks_proxy_port: 1055
  unknown_key: "ignored"

dns:
  enabled: false
"""

    with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
        f.write(yaml_content)
        temp_path = f.name

    try:
        config = Config(temp_path)
        assert config.vpn.host_name == "dev-laptop"
        assert config.vpn.login_server_url == "https://headscale.example.com"
        assert config.vpn.socks_proxy_port == 1055
        assert not hasattr(config.vpn, "unknown_key")
        assert config.dns.enabled == False
        assert config.config_path == temp_path
    finally:
        os.unlink(temp_path)


def test_config_save(tmp_path):
    """설정 저장 테스트"""
    config = Config()
    config.vpn.host_name = "saved-host"

    save_path = str(tmp_path / "nested" / "config.yaml")
    config.save(save_path)

    loaded = Config(save_path)
    assert loaded.vpn.host_name == "saved-host"


def test_config_save_json(tmp_path):
    """JSON 형식 저장/로드 테스트"""
    config = Config()
    config.registration.api_url = "https://api.example.com/nodes"

    save_path = str(tmp_path / "config.json")
    config.save(save_path)

    loaded = Config(save_path)
    assert loaded.registration.api_url == "https://api.example.com/nodes"


def test_config_missing_file():
    """명시한 설정 파일이 없으면 ConfigError"""
    with pytest.raises(ConfigError):
        Config("/nonexistent/mesh-node-agent.yaml")


def test_config_invalid_yaml(tmp_path):
    """파싱할 수 없는 설정 파일"""
    path = tmp_path / "config.yaml"
    path.write_text("vpn: [unclosed\n")
    with pytest.raises(ConfigError):
        Config(str(path))


def test_create_sample_loads(tmp_path):
    """샘플 설정 파일은 그대로 로드 가능해야 함"""
    sample = str(tmp_path / "sample" / "config.yaml")
    Config.create_sample(sample)

    config = Config(sample)
    assert config.vpn.host_name == "my-workstation"
    assert config.vpn.up_timeout is None


def test_to_daemon_config():
    """VPNDaemonConfig 변환 (포트 0 은 없음으로 처리)"""
    daemon_config = VPNConfig(host_name="h", login_server_url="u").to_daemon_config()
    assert daemon_config.socks_proxy_port is None
    assert daemon_config.userspace_networking is False

    daemon_config = VPNConfig(socks_proxy_port=1055, userspace_networking=True).to_daemon_config()
    assert daemon_config.socks_proxy_port == 1055
    assert daemon_config.userspace_networking is True
