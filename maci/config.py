"""
설정 및 로깅
=============

환경 변수 (MACI_*)로 덮어쓸 수 있는 실행 설정.

    MACI_DB_PATH           TinyDB JSON 파일 경로 (없으면 메모리 DB)
    MACI_STATE_TREE_DEPTH  상태 트리 깊이
    MACI_VERIFIER          "groth16" 또는 "mock"
    MACI_LOG_LEVEL         DEBUG / INFO / WARNING ...
    MACI_LOG_FILE          로그 파일 경로 (선택)
    MACI_SECRET_KEY        Flask secret key
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

VERIFIER_MODES = ("groth16", "mock")


@dataclass
class MaciConfig:
    db_path: Optional[Path] = None
    state_tree_depth: int = 10
    verifier: str = "groth16"
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    secret_key: str = field(default="key", repr=False)

    def __post_init__(self):
        if self.db_path is not None:
            self.db_path = Path(self.db_path)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)
        self.state_tree_depth = int(self.state_tree_depth)
        if self.state_tree_depth < 1:
            raise ValueError(f"state_tree_depth는 1 이상이어야 합니다: {self.state_tree_depth}")
        self.verifier = self.verifier.lower()
        if self.verifier not in VERIFIER_MODES:
            raise ValueError(f"알 수 없는 verifier: {self.verifier}")
        self.log_level = self.log_level.upper()

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        return cls(
            db_path=env.get("MACI_DB_PATH") or None,
            state_tree_depth=int(env.get("MACI_STATE_TREE_DEPTH", 10)),
            verifier=env.get("MACI_VERIFIER", "groth16"),
            log_level=env.get("MACI_LOG_LEVEL", "INFO"),
            log_file=env.get("MACI_LOG_FILE") or None,
            secret_key=env.get("MACI_SECRET_KEY", "key"),
        )


def setup_logging(config):
    """루트 로거에 스트림 (그리고 선택적으로 파일) 핸들러를 설정한다."""
    handlers = [logging.StreamHandler()]
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )
