import pytest
from unittest.mock import Mock

from resample_tune.base.base_engine import BaseEngine

# Concrete implementation for testing purposes
class ConcreteTestEngine(BaseEngine):
    def __init__(self, config, logger, engine_dir_name):
        self._engine_dir_name_value = engine_dir_name
        super().__init__(config, logger)

    def _get_engine_directory_name(self) -> str:
        return self._engine_dir_name_value

    def execute(self, *args, **kwargs):
        pass # Not relevant for BaseEngine tests

@pytest.fixture
def mock_logger():
    """Provides a mock logger instance."""
    return Mock()

@pytest.fixture
def base_config(tmp_path):
    """Provides a base configuration dictionary with a temporary results directory."""
    return {
        'outputs': {
            'base_results_dir': str(tmp_path)
        }
    }

def test_base_engine_directory_creation(base_config, mock_logger, tmp_path):
    engine = ConcreteTestEngine(base_config, mock_logger, "03_GridSearch")

    expected_dir = tmp_path / "03_GridSearch"
    assert engine.output_dir == expected_dir
    assert engine.writes_outputs
    assert expected_dir.is_dir()
    mock_logger.info.assert_called_with(f"Output directory for ConcreteTestEngine: {expected_dir}")

def test_skip_dir_creation(base_config, mock_logger, tmp_path):
    base_config['outputs']['skip_dir_creation'] = True
    engine = ConcreteTestEngine(base_config, mock_logger, "03_GridSearch")

    assert not engine.writes_outputs
    assert not (tmp_path / "03_GridSearch").exists()
    mock_logger.info.assert_not_called()

def test_default_base_dir(mock_logger):
    engine = ConcreteTestEngine({'outputs': {'skip_dir_creation': True}}, mock_logger, "X")
    assert str(engine.output_dir).replace("\\", "/") == "results/X"

def test_base_engine_is_abstract(mock_logger):
    with pytest.raises(TypeError):
        BaseEngine({}, mock_logger)
