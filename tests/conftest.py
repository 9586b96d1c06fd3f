"""
공통 테스트 픽스처
"""

import subprocess

import pytest

from mesh_node_agent.logger import init_logger


@pytest.fixture(autouse=True)
def agent_logger(tmp_path):
    """테스트마다 임시 디렉토리에 로그 기록"""
    return init_logger(str(tmp_path / "logs"), "DEBUG", False)


class FakeRun:
    """subprocess.run 대체. 호출된 명령을 기록하고 지정된 결과 반환"""

    def __init__(self, results=None, default_returncode=0):
        self.calls = []
        self.results = results or {}
        self.default_returncode = default_returncode

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        key = " ".join(cmd[1:])
        returncode, output = self.results.get(key, (self.default_returncode, ""))
        return subprocess.CompletedProcess(cmd, returncode, stdout=output, stderr="")

    def commands(self):
        return [" ".join(c) for c in self.calls]


@pytest.fixture
def fake_run():
    return FakeRun()
