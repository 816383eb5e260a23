# cpclient/tests/unit/test_config.py

"""
Tests for environment settings and logging setup.
"""

import logging

import pytest
from pydantic import ValidationError

from cpclient.config import EngineSettings, get_settings, resolve_nb_workers, setup_logging
from cpclient.core.parameters import Parameters


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("CPCLIENT_SOLVER", "CPCLIENT_SOLVER_ARGS", "CPCLIENT_NB_WORKERS", "CPCLIENT_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    engine = logging.getLogger("cpclient.engine")
    saved = (list(root.handlers), root.level, engine.level)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    engine.setLevel(saved[2])


class TestEngineSettings:
    """Tests for settings defaults and validation"""

    def test_defaults(self, clean_env):
        """Test values when nothing is configured"""
        settings = EngineSettings(_env_file=None)

        assert settings.SOLVER is None
        assert settings.NB_WORKERS is None
        assert settings.LOG_LEVEL == "WARNING"
        assert settings.solver_args() == []

    def test_log_level_is_uppercased(self):
        """Test that log levels are case insensitive"""
        assert EngineSettings(LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        """Test that unknown log levels are rejected"""
        with pytest.raises(ValidationError):
            EngineSettings(LOG_LEVEL="chatty")

    def test_invalid_worker_count(self):
        """Test that a non positive worker count is rejected"""
        with pytest.raises(ValidationError):
            EngineSettings(NB_WORKERS=0)

    def test_solver_args_are_shell_split(self):
        """Test quoting in engine arguments"""
        settings = EngineSettings(SOLVER_ARGS='--port 0 --name "my engine"')
        assert settings.solver_args() == ["--port", "0", "--name", "my engine"]

    def test_environment_variables(self, clean_env):
        """Test that CPCLIENT_ variables are read through get_settings"""
        clean_env.setenv("CPCLIENT_SOLVER", "/opt/engine")
        clean_env.setenv("CPCLIENT_NB_WORKERS", "6")

        settings = get_settings()

        assert settings.SOLVER == "/opt/engine"
        assert settings.NB_WORKERS == 6
        assert get_settings() is settings


class TestResolveNbWorkers:
    """Tests for the worker count fallback"""

    @pytest.mark.parametrize("given", [None, 0])
    def test_unset_takes_environment(self, given):
        """Test that unset or zero worker counts take the configured value"""
        params = Parameters(nb_workers=given) if given is not None else Parameters()
        resolved = resolve_nb_workers(params, EngineSettings(NB_WORKERS=4))

        assert resolved.nb_workers == 4
        assert params.nb_workers == given

    def test_explicit_value_wins(self):
        """Test that an explicit worker count is kept"""
        resolved = resolve_nb_workers(Parameters(nb_workers=2), EngineSettings(NB_WORKERS=4))
        assert resolved.nb_workers == 2

    def test_no_configured_value(self):
        """Test that the engine default stays when nothing is configured"""
        resolved = resolve_nb_workers(Parameters(nb_workers=0), EngineSettings(NB_WORKERS=None))
        assert resolved.nb_workers == 0

    def test_missing_parameters(self):
        """Test resolving when no parameters were given"""
        resolved = resolve_nb_workers(None, EngineSettings(NB_WORKERS=3))

        assert isinstance(resolved, Parameters)
        assert resolved.nb_workers == 3


class TestSetupLogging:
    """Tests for command line logging configuration"""

    def test_levels(self, clean_env, restore_root_logger):
        """Test root and engine logger levels"""
        logger = setup_logging("debug")

        assert logger.name == "cpclient"
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("cpclient.engine").level == logging.INFO

    def test_level_from_settings(self, clean_env, restore_root_logger):
        """Test that CPCLIENT_LOG_LEVEL is used by default"""
        clean_env.setenv("CPCLIENT_LOG_LEVEL", "error")

        setup_logging()

        assert logging.getLogger().level == logging.ERROR
        assert logging.getLogger("cpclient.engine").level == logging.ERROR
