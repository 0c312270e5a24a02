import logging
from logging.handlers import RotatingFileHandler

import colorlog
import pytest

from giggityflix_catalog.config import AppConfig, LoggingConfig
from giggityflix_catalog.utils.logging import log_file_path, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.parametrize("use_color", [True, False])
def test_setup_logging(tmp_path, restore_root_logger, use_color):
    app_config = AppConfig(logging=LoggingConfig(
        level="WARNING", log_dir=str(tmp_path / "logs"), use_color=use_color
    ))

    setup_logging(app_config)

    root = restore_root_logger
    assert root.level == logging.WARNING
    file_handlers = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].baseFilename == str(tmp_path / "logs" / "catalog.log")

    console = [h for h in root.handlers if not isinstance(h, RotatingFileHandler)]
    assert isinstance(console[0].formatter, colorlog.ColoredFormatter) is use_color

    logging.getLogger("giggityflix_catalog.test").warning("written to file")
    file_handlers[0].flush()
    assert "written to file" in (tmp_path / "logs" / "catalog.log").read_text()


def test_relative_log_dir_lives_under_data_dir(tmp_path, restore_root_logger):
    app_config = AppConfig(
        data_dir=str(tmp_path / "data"),
        logging=LoggingConfig(log_dir="logs", use_color=False)
    )

    setup_logging(app_config)

    assert log_file_path(app_config) == tmp_path / "data" / "logs" / "catalog.log"
    assert (tmp_path / "data" / "logs").is_dir()
