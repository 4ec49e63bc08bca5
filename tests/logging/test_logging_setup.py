import asyncio
import logging

from scriptroom.utils.logging_setup import (
    ContextFilter,
    LOG_CYCLE_ID,
    LOG_PROJECT_ID,
    LOG_TOOL,
    configure_logging,
    log_context,
)


def _record():
    return logging.LogRecord("test.logger", logging.INFO, __file__, 1, "hello", (), None)


def test_context_filter_defaults():
    record = _record()
    ContextFilter().filter(record)
    assert record.cycle_id == "-"
    assert record.project_id == "-"
    assert record.tool == "-"


def test_log_context_scopes_and_restores():
    with log_context(cycle_id="c1", project_id="p1"):
        with log_context(tool="generate_image"):
            record = _record()
            ContextFilter().filter(record)
            assert (record.cycle_id, record.project_id, record.tool) == ("c1", "p1", "generate_image")
        assert LOG_TOOL.get() is None
        assert LOG_CYCLE_ID.get() == "c1"
    assert LOG_CYCLE_ID.get() is None
    assert LOG_PROJECT_ID.get() is None


def test_concurrent_cycles_keep_their_own_ids():
    seen = {}

    async def cycle(cycle_id, project_id):
        with log_context(cycle_id=cycle_id, project_id=project_id):
            await asyncio.sleep(0)
            record = _record()
            ContextFilter().filter(record)
            seen[cycle_id] = record.project_id

    async def both():
        await asyncio.gather(cycle("c1", "film-a"), cycle("c2", "film-b"))

    asyncio.run(both())
    assert seen == {"c1": "film-a", "c2": "film-b"}


def test_configure_logging_writes_context_to_file(tmp_path):
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    saved_flag = getattr(root, "_scriptroom_logging_configured", False)
    log_file = tmp_path / "logs" / "app.log"
    try:
        configure_logging(log_file=str(log_file), level="INFO", force=True, quiet=("scriptroom.test.chatty",))
        with log_context(cycle_id="abc123", project_id="demo"):
            logging.getLogger("scriptroom.test").info("cycle started")
        for handler in root.handlers:
            handler.flush()
        text = log_file.read_text(encoding="utf-8")
        assert "abc123" in text
        assert "demo" in text
        assert "cycle started" in text
        assert logging.getLogger("scriptroom.test.chatty").level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            if handler not in saved_handlers:
                handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
        root._scriptroom_logging_configured = saved_flag
        logging.getLogger("scriptroom.test.chatty").setLevel(logging.NOTSET)
