from __future__ import annotations

from src.harbor.audit import ActionLog, ActionLogEntry, Outcome
from src.main import format_action_log
from src.utils.logger import Logger


def test_format_empty_log() -> None:
    assert format_action_log(ActionLog()) == "No actions yet."


def test_format_log_newest_first_with_details() -> None:
    log = ActionLog()
    log.log_action(ActionLogEntry("read_page", {}, "shop.example", "read-only", "auto-approved", Outcome.SUCCESS))
    log.log_action(ActionLogEntry(
        "click_element", {}, "shop.example", "interact", "deny", Outcome.DENIED, "User denied permission"
    ))

    lines = format_action_log(log).splitlines()

    assert lines[0].startswith("click_element")
    assert lines[0].endswith("denied  (User denied permission)")
    assert lines[1].split() == ["read_page", "shop.example", "auto-approved", "success"]


def test_child_logger_context(capsys) -> None:
    logger = Logger("Harbor").child("Gate")
    logger.error("Prompt failed", ValueError("bad answer"))

    err = capsys.readouterr().err
    assert "[Harbor:Gate]" in err
    assert "bad answer" in err
