"""
Mesh Node Agent
개발자 워크스테이션에서 메시 VPN(Tailscale/Headscale) 클라이언트 수명주기를 관리하는 에이전트

Features:
- tailscaled 데몬 실행 및 노드 등록 (register?key= 로그 감시)
- macOS DNS 설정 오버라이드 및 자동 복원
- systemd 자동 시작 서비스 설치
"""

__version__ = "1.0.0"
__author__ = "DevOps Team"
