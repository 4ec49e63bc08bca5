import asyncio
import json
import sqlite3
from datetime import date

import requests

from scriptroom.budget import BudgetLedger, per_second_cost
from scriptroom.realtime.events import ElementAdded, GenerationCompleted, GenerationStarted, Info
from scriptroom.store.models import ElementType
from scriptroom.tools.schema import TOOL_CALL_VARIANTS
from scriptroom.tools.video_gen import VideoResult


def _run(coro):
    return asyncio.run(coro)


def test_every_tool_variant_has_a_handler(executor):
    assert set(executor.handlers) == set(TOOL_CALL_VARIANTS)


def test_add_script_element(executor, repository, sink):
    result = _run(executor.execute(
        "p1", "add_script_element", json.dumps({"content": "INT. HOUSE - DAY", "element_type": "SCENE_HEADING"})
    ))
    assert result == "Script element added successfully: SCENE_HEADING"
    (element,) = repository.list_elements("p1")
    assert element.type is ElementType.SCENE_HEADING
    assert element.order == 0
    assert element.is_generating is False
    assert element.asset_url is None
    assert sink.types() == ["elementAdded"]
    assert sink.events[0][1].element["id"] == element.element_id


def test_sequential_calls_get_gapless_order(executor, repository):
    repository.append_element("p1", ElementType.ACTION, "existing")
    for text in ("MARA", "We should go.", "CUT TO:"):
        _run(executor.execute("p1", "add_script_element", {"content": text, "element_type": "DIALOGUE"}))
    assert [e.order for e in repository.list_elements("p1")] == [0, 1, 2, 3]


def test_generate_image_success(executor, repository, sink, image_generator, publisher):
    result = _run(executor.execute(
        "p1", "generate_image", {"description": "a lighthouse in a storm", "scene_context": "Opening shot"}
    ))
    assert result == "Image generated and saved successfully. The image shows: a lighthouse in a storm"
    assert image_generator.calls == ["a lighthouse in a storm"]
    assert publisher.calls == [("https://provider.example.com/tmp/image.png", "image-1000")]

    (element,) = repository.list_elements("p1")
    assert element.type is ElementType.IMAGE
    assert element.content == "Opening shot"
    assert element.asset_url == "https://assets.example.com/image-1000"
    assert element.is_generating is False

    events = [e for _, e in sink.events]
    assert [type(e) for e in events] == [Info, GenerationStarted, GenerationCompleted, ElementAdded]
    assert events[0].message == "Generating image..."
    assert events[1].element_id == element.element_id
    assert events[2].asset_url == element.asset_url


def test_generate_image_content_falls_back_to_description(executor, repository):
    _run(executor.execute("p1", "generate_image", {"description": "a red door"}))
    assert repository.list_elements("p1")[0].content == "a red door"


def test_generate_image_generator_failure_persists_nothing(make_executor, repository, sink, fakes):
    executor = make_executor(image_generator=fakes.ImageGenerator(error="content policy violation"))
    result = _run(executor.execute("p1", "generate_image", {"description": "x"}))
    assert result == "Failed to generate image: content policy violation"
    assert repository.list_elements("p1") == []
    assert "elementAdded" not in sink.types()
    assert sink.events[-1][1].asset_url is None


def test_generate_image_publish_failure_fails_tool(make_executor, repository, fakes):
    executor = make_executor(publisher=fakes.Publisher(fail=True))
    result = _run(executor.execute("p1", "generate_image", {"description": "x"}))
    assert result == "Failed to generate image: storage unavailable"
    assert repository.list_elements("p1") == []


def test_generate_video_placeholder_success(make_executor, repository, sink, ledger, fakes):
    video = fakes.VideoGenerator(url="https://cdn.example.com/still.png", note="Placeholder clip.")
    executor = make_executor(video_generator=video)
    result = _run(executor.execute(
        "p1", "generate_video", {"image_url": "https://cdn.example.com/still.png", "description": "slow push in"}
    ))
    assert result == "Video generated successfully (5s). Daily budget remaining: $5.00. Placeholder clip."
    assert video.calls == [("https://cdn.example.com/still.png", "slow push in", 5)]

    (element,) = repository.list_elements("p1")
    assert element.type is ElementType.VIDEO
    assert element.content == "slow push in"
    assert element.asset_url == "https://assets.example.com/video-1000"
    assert sink.types() == ["info", "generationStarted", "generationCompleted", "elementAdded"]
    assert ledger.daily_used == 0.0


def test_generate_video_zero_cost_allowed_with_no_budget_left(executor, repository, ledger):
    ledger.record(5.0)
    result = _run(executor.execute("p1", "generate_video", {"image_url": "u", "description": "d"}))
    assert result.startswith("Video generated successfully")
    assert len(repository.list_elements("p1")) == 1


def test_generate_video_daily_preflight_refusal(make_executor, repository, sink, video_generator, ledger):
    executor = make_executor(video_cost=per_second_cost(1.0))
    result = _run(executor.execute("p1", "generate_video", {"image_url": "u", "description": "d", "duration": 10}))
    assert result == "Cannot generate video: Daily budget limit reached. Remaining: $5.00, Need: $10.00"
    assert video_generator.calls == []
    assert sink.events == []
    assert repository.list_elements("p1") == []
    assert ledger.daily_used == 0.0


def test_generate_video_monthly_refusal(make_executor, video_generator):
    clock = {"day": date(2024, 1, 1)}
    ledger = BudgetLedger(daily_cap=5.0, monthly_cap=6.0, today=lambda: clock["day"])
    ledger.record(4.0)
    clock["day"] = date(2024, 1, 2)
    executor = make_executor(ledger=ledger, video_cost=per_second_cost(0.6))
    result = _run(executor.execute("p1", "generate_video", {"image_url": "u", "description": "d"}))
    assert result == "Cannot generate video: Monthly budget limit reached ($6.00). Used: $4.00"
    assert video_generator.calls == []


def test_generate_video_records_checked_cost(make_executor, ledger):
    executor = make_executor(video_cost=per_second_cost(0.1))
    result = _run(executor.execute("p1", "generate_video", {"image_url": "u", "description": "d", "duration": 10}))
    assert result == "Video generated successfully (10s). Daily budget remaining: $4.00"
    assert ledger.daily_used == 1.0
    assert ledger.monthly_used == 1.0


def test_generate_video_publish_failure_uses_provider_url(make_executor, repository, fakes):
    executor = make_executor(publisher=fakes.Publisher(fail=True))
    result = _run(executor.execute("p1", "generate_video", {"image_url": "u", "description": "d"}))
    assert result.startswith("Video generated successfully")
    assert repository.list_elements("p1")[0].asset_url == "https://provider.example.com/tmp/clip.mp4"


def test_generate_video_generator_failure_records_no_charge(make_executor, repository, ledger, fakes):
    executor = make_executor(video_generator=fakes.VideoGenerator(error="timeout"), video_cost=per_second_cost(0.1))
    result = _run(executor.execute("p1", "generate_video", {"image_url": "u", "description": "d"}))
    assert result == "Failed to generate video: timeout"
    assert ledger.daily_used == 0.0
    assert repository.list_elements("p1") == []


def test_concurrent_video_calls_cannot_oversubscribe(make_executor, repository, ledger):
    class SlowVideo:
        async def generate(self, image_url, description, duration):
            await asyncio.sleep(0)
            return VideoResult(asset_url="https://x/clip.mp4", cost=3.0)

    executor = make_executor(video_generator=SlowVideo(), video_cost=per_second_cost(0.6))

    async def both():
        return await asyncio.gather(
            executor.execute("p1", "generate_video", {"image_url": "u", "description": "a"}),
            executor.execute("p2", "generate_video", {"image_url": "u", "description": "b"}),
        )

    results = _run(both())
    assert sum(r.startswith("Video generated successfully") for r in results) == 1
    assert sum(r.startswith("Cannot generate video") for r in results) == 1
    assert ledger.daily_used == 3.0


def test_invalid_arguments_become_result_text(executor, sink):
    result = _run(executor.execute("p1", "add_script_element", {"content": "x", "element_type": "VIDEO"}))
    assert result.startswith("Invalid arguments for add_script_element")
    assert sink.events == []


def test_unknown_tool_becomes_result_text(executor):
    assert _run(executor.execute("p1", "launch_rocket", {})) == "Unknown function: launch_rocket"


def test_store_failure_becomes_result_text(executor, repository, monkeypatch):
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(repository, "append_element", broken)
    result = _run(executor.execute("p1", "add_script_element", {"content": "x", "element_type": "ACTION"}))
    assert result == "Failed to add script element: database is locked"


def test_unexpected_generator_error_still_completes_generation(make_executor, repository, sink):
    class BrokenImages:
        async def generate(self, description):
            raise requests.ConnectionError("connection reset")

    executor = make_executor(image_generator=BrokenImages())
    result = _run(executor.execute("p1", "generate_image", {"description": "x"}))

    assert result == "Failed to generate image: connection reset"
    assert sink.types() == ["info", "generationStarted", "generationCompleted"]
    started, completed = sink.events[1][1], sink.events[2][1]
    assert completed.element_id == started.element_id
    assert completed.asset_url is None
    assert repository.list_elements("p1") == []


def test_store_failure_during_video_completes_generation(executor, repository, sink, monkeypatch):
    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository, "append_element", broken)
    result = _run(executor.execute("p1", "generate_video", {"image_url": "u", "description": "d"}))

    assert result == "Failed to generate video: disk I/O error"
    assert sink.types() == ["info", "generationStarted", "generationCompleted"]
    assert sink.events[-1][1].asset_url is None
