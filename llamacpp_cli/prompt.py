"""Chat template formatting for Gemma-style instruction models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ChatTemplate:
    """Turn markers wrapped around a single user message.

    Attributes:
        user_prefix: Opens the user turn
        turn_end: Closes a turn
        model_prefix: Opens the model turn the server completes
    """

    user_prefix: str
    turn_end: str
    model_prefix: str

    def format(self, user_text: str) -> str:
        """Wrap user text in the template. Any string is accepted."""
        return f"{self.user_prefix}{user_text}{self.turn_end}\n{self.model_prefix}"


GEMMA_TEMPLATE = ChatTemplate(
    user_prefix="<start_of_turn>user\n",
    turn_end="<end_of_turn>",
    model_prefix="<start_of_turn>model\n",
)


def format_prompt(user_text: str, template: ChatTemplate = GEMMA_TEMPLATE) -> str:
    """Format a user prompt with the chat template."""
    return template.format(user_text)


def strip_turn_end(text: str, template: ChatTemplate = GEMMA_TEMPLATE) -> str:
    """Cut model output at the first turn closure marker."""
    head, _, _ = text.partition(template.turn_end)
    return head.strip()
