"""
Tests for maci.config.

Covers:
- 기본값, 환경 변수 덮어쓰기
- 잘못된 verifier / 깊이 거부
- 로그 파일 핸들러 경로 생성
"""

from pathlib import Path

import pytest

from maci.config import MaciConfig, setup_logging


class TestMaciConfig:
    def test_defaults(self):
        config = MaciConfig()
        assert config.db_path is None
        assert config.state_tree_depth == 10
        assert config.verifier == "groth16"
        assert config.log_level == "INFO"

    def test_from_env(self, tmp_path):
        env = {
            "MACI_DB_PATH": str(tmp_path / "maci.json"),
            "MACI_STATE_TREE_DEPTH": "3",
            "MACI_VERIFIER": "MOCK",
            "MACI_LOG_LEVEL": "debug",
            "MACI_SECRET_KEY": "s3cret",
        }
        config = MaciConfig.from_env(env)
        assert config.db_path == tmp_path / "maci.json"
        assert config.state_tree_depth == 3
        assert config.verifier == "mock"
        assert config.log_level == "DEBUG"
        assert config.secret_key == "s3cret"
        assert config.log_file is None

    def test_empty_env_uses_defaults(self):
        assert MaciConfig.from_env({}) == MaciConfig()

    def test_secret_key_hidden_from_repr(self):
        assert "s3cret" not in repr(MaciConfig(secret_key="s3cret"))

    def test_unknown_verifier(self):
        with pytest.raises(ValueError):
            MaciConfig(verifier="plonk")

    @pytest.mark.parametrize("depth", [0, -1, "0"])
    def test_invalid_depth(self, depth):
        with pytest.raises(ValueError):
            MaciConfig(state_tree_depth=depth)

    def test_paths_coerced(self):
        config = MaciConfig(db_path="data/maci.json", log_file="logs/maci.log")
        assert config.db_path == Path("data/maci.json")
        assert config.log_file == Path("logs/maci.log")


class TestSetupLogging:
    def test_log_file_created(self, tmp_path):
        log_file = tmp_path / "logs" / "maci.log"
        setup_logging(MaciConfig(log_file=log_file))
        assert log_file.parent.is_dir()
        assert log_file.exists()
