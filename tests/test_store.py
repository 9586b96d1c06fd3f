"""
노드 저장소 테스트
"""

from unittest.mock import MagicMock

import pytest
import requests
from mesh_node_agent.config import RegistrationConfig
from mesh_node_agent.errors import RegistrationError
from mesh_node_agent.store import FileVPNStore, HTTPRegistrationStore, new_store


def test_get_or_create_file(tmp_path):
    """없는 디렉토리까지 만들고 append 모드로 열기"""
    store = FileVPNStore(str(tmp_path / "node-key"))
    path = tmp_path / "a" / "b" / "out.log"

    f = store.get_or_create_file(str(path))
    f.write("line\n")
    f.close()
    f = store.get_or_create_file(str(path))
    f.write("line2\n")
    f.close()

    assert path.read_text() == "line\nline2\n"


def test_file_store_register_node(tmp_path):
    store = FileVPNStore(str(tmp_path / "keys" / "node-key"))
    store.register_node("abc123")
    assert (tmp_path / "keys" / "node-key").read_text() == "abc123\n"


def make_session(status_code=200, text=""):
    session = MagicMock()
    session.post.return_value = MagicMock(status_code=status_code, text=text)
    return session


def test_http_store_register_node(tmp_path):
    """컨트롤 API 로 공개키 전송 후 로컬에도 저장"""
    session = make_session()
    store = HTTPRegistrationStore("https://api.example.com/nodes", token="secret",
                                  node_key_file=str(tmp_path / "node-key"), session=session)
    store.register_node("abc123")

    args, kwargs = session.post.call_args
    assert args == ("https://api.example.com/nodes",)
    assert kwargs["json"] == {"publicKey": "abc123"}
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert (tmp_path / "node-key").read_text() == "abc123\n"


def test_http_store_rejected(tmp_path):
    session = make_session(status_code=409, text="node already registered")
    store = HTTPRegistrationStore("https://api.example.com/nodes",
                                  node_key_file=str(tmp_path / "node-key"), session=session)

    with pytest.raises(RegistrationError) as exc_info:
        store.register_node("abc123")
    assert "409" in str(exc_info.value)
    assert "node already registered" in str(exc_info.value)
    assert not (tmp_path / "node-key").exists()


def test_http_store_connection_error(tmp_path):
    session = MagicMock()
    session.post.side_effect = requests.exceptions.ConnectionError("refused")
    store = HTTPRegistrationStore("https://api.example.com/nodes",
                                  node_key_file=str(tmp_path / "node-key"), session=session)

    with pytest.raises(RegistrationError):
        store.register_node("abc123")


def test_new_store_selection(tmp_path):
    """api_url 유무에 따라 저장소 선택"""
    local = new_store(RegistrationConfig(node_key_file=str(tmp_path / "k")))
    assert type(local) is FileVPNStore

    remote = new_store(RegistrationConfig(api_url="https://api.example.com/nodes",
                                          node_key_file=str(tmp_path / "k")))
    assert isinstance(remote, HTTPRegistrationStore)
