import pytest

from logpare_mcp.prompts import Prompt, PromptArgument, PromptManager, default_prompts


def test_default_prompts_are_listed_with_arguments() -> None:
    manager = PromptManager(prompts=default_prompts())

    listing = {prompt.name: prompt.to_listing() for prompt in manager.list_prompts()}

    assert listing["find_root_cause"]["title"] == "Root Cause Analysis"
    assert [arg["name"] for arg in listing["find_root_cause"]["arguments"]] == ["templates", "stack_traces"]
    assert "fn" not in listing["summarize_logs"]


def test_render_optional_argument() -> None:
    manager = PromptManager(prompts=default_prompts())

    (message,) = manager.render_prompt("diagnose_errors", {"compressed_output": "[2x] ERROR x"})

    assert message.role == "user"
    assert message.content.text.startswith("Analyze these compressed logs for errors:\n\n[2x] ERROR x\n\n")
    assert "Focus specifically on" not in message.content.text


def test_render_ignores_unknown_arguments() -> None:
    prompt = Prompt(name="echo", arguments=[PromptArgument(name="text", required=True)], fn=lambda text: text)

    (message,) = prompt.render({"text": "hi", "extra": "ignored"})

    assert message.content.text == "hi"


def test_render_errors() -> None:
    manager = PromptManager(prompts=default_prompts())

    with pytest.raises(ValueError, match="Unknown prompt: nope"):
        manager.render_prompt("nope")
    with pytest.raises(ValueError, match="Missing required arguments: stack_traces, templates"):
        manager.render_prompt("find_root_cause", {})


def test_duplicate_prompt_keeps_first(caplog: pytest.LogCaptureFixture) -> None:
    first = Prompt(name="p", fn=lambda: "first")
    manager = PromptManager(prompts=[first])

    assert manager.add_prompt(Prompt(name="p", fn=lambda: "second")) is first
    assert "Prompt already exists: p" in caplog.text
