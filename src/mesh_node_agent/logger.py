"""
로깅 시스템
패키지 루트 로거(mesh_node_agent)에 파일/에러 파일/Rich 콘솔 핸들러를 한 번 연결하고,
각 모듈은 get_logger(__name__) 로 하위 로거를 받아 쓴다.
"""

import logging
import os
from datetime import datetime
from typing import Optional
from rich.logging import RichHandler
from rich.console import Console

console = Console()

ROOT_LOGGER_NAME = "mesh_node_agent"
DEFAULT_LOG_DIR = "~/.mesh-node-agent/logs"
LOG_FORMAT = '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s'


class AgentLogger:
    """mesh_node_agent 루트 로거의 핸들러 구성"""

    def __init__(self, log_dir: str = DEFAULT_LOG_DIR, log_level: str = "INFO", debug: bool = False):
        self.log_dir = os.path.expanduser(log_dir)
        self.level = logging.DEBUG if debug else getattr(logging, log_level.upper())
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)

        os.makedirs(self.log_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = os.path.join(self.log_dir, f"agent_{timestamp}.log")
        self.error_file = os.path.join(self.log_dir, f"error_{timestamp}.log")

        self.close()
        self.logger.setLevel(self.level)
        # tailer 스레드 로그가 루트 로거로 중복 전달되지 않도록
        self.logger.propagate = False

        formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

        file_handler = logging.FileHandler(self.log_file, encoding='utf-8')
        file_handler.setLevel(self.level)
        file_handler.setFormatter(formatter)

        error_handler = logging.FileHandler(self.error_file, encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)

        # 콘솔 핸들러 (Rich)
        rich_handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=False,
            show_path=debug
        )
        rich_handler.setLevel(self.level)

        for handler in (file_handler, error_handler, rich_handler):
            self.logger.addHandler(handler)

    def close(self):
        """연결된 핸들러 정리"""
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)


_agent_logger: Optional[AgentLogger] = None


def init_logger(log_dir: str, log_level: str, debug: bool) -> AgentLogger:
    """로거 초기화 (CLI 시작 시 설정값으로 호출)"""
    global _agent_logger
    _agent_logger = AgentLogger(log_dir, log_level, debug)
    return _agent_logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """모듈 로거 가져오기. 초기화 전이면 기본 경로로 구성"""
    if _agent_logger is None:
        init_logger(DEFAULT_LOG_DIR, "INFO", False)
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
