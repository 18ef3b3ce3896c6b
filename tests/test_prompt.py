"""Tests for chat template formatting."""

import dataclasses

import pytest

from llamacpp_cli.prompt import GEMMA_TEMPLATE, ChatTemplate, format_prompt, strip_turn_end


class TestFormatPrompt:
    def test_exact_template(self) -> None:
        assert format_prompt("hi") == (
            "<start_of_turn>user\nhi<end_of_turn>\n<start_of_turn>model\n"
        )

    def test_empty_input(self) -> None:
        """Empty text still yields a complete template."""
        assert format_prompt("") == "<start_of_turn>user\n<end_of_turn>\n<start_of_turn>model\n"

    def test_text_is_not_interpreted(self) -> None:
        """Braces and percent signs are passed through verbatim."""
        assert "{prompt} %s 100%" in format_prompt("{prompt} %s 100%")

    def test_custom_template(self) -> None:
        template = ChatTemplate(user_prefix="[U]", turn_end="[/T]", model_prefix="[M]")

        assert format_prompt("x", template) == "[U]x[/T]\n[M]"

    def test_template_is_frozen(self) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            GEMMA_TEMPLATE.turn_end = "</s>"  # type: ignore[misc]


class TestStripTurnEnd:
    def test_cuts_at_marker(self) -> None:
        assert strip_turn_end("Hello!<end_of_turn>\n<start_of_turn>user") == "Hello!"

    def test_no_marker(self) -> None:
        assert strip_turn_end("  plain reply \n") == "plain reply"

    def test_empty(self) -> None:
        assert strip_turn_end("") == ""
