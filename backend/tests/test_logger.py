import logging
from logging.handlers import RotatingFileHandler

from site_scanner.core.logger import configure, get_logger


def test_loggers_share_the_package_hierarchy():
    assert get_logger("checks.robots").name == "site_scanner.checks.robots"
    assert get_logger("site_scanner.core.engine").name == "site_scanner.core.engine"


def test_configure_adds_rotating_file(tmp_path):
    root = logging.getLogger("site_scanner")
    before = list(root.handlers)
    try:
        configure("DEBUG", str(tmp_path / "scan.log"))
        assert root.level == logging.DEBUG
        assert any(isinstance(h, RotatingFileHandler) for h in root.handlers)
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(logging.INFO)
