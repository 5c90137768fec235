import json
import logging

import pytest

from signaturepro.utils.logger import get_logger, setup_logging


@pytest.fixture
def restore_logging():
    handlers = logging.root.handlers[:]
    level = logging.root.level
    yield
    for handler in logging.root.handlers:
        if handler not in handlers:
            handler.close()
    logging.root.handlers = handlers
    logging.root.setLevel(level)


def test_log_lines_carry_only_event_fields(tmp_path, restore_logging):
    log_file = tmp_path / "signaturepro.log"
    setup_logging(log_level="INFO", use_json=True, log_file=str(log_file), environment="test")

    get_logger("signaturepro.test").info("Contract sent for signature", contract_id="contract-1")
    for handler in logging.root.handlers:
        handler.flush()

    entry = json.loads(log_file.read_text().strip().splitlines()[-1])
    assert entry["event"] == "Contract sent for signature"
    assert entry["contract_id"] == "contract-1"
    assert entry["environment"] == "test"
    assert "_record" not in entry
    assert "_from_structlog" not in entry
