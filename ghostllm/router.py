"""Provider resolution: map a model identifier to the provider that serves it.

Resolution is a pure function of the model name. An explicit override always
wins; otherwise the first matching rule applies and anything unmatched is
served by the local backend, so every model name resolves to exactly one
provider.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from ghostllm.models import Provider


@dataclass(frozen=True)
class ResolutionRule:
    """Prefix and exact-name tests for one provider (case-sensitive)."""

    provider: Provider
    prefixes: Tuple[str, ...] = ()
    names: Tuple[str, ...] = ()

    def matches(self, model: str) -> bool:
        return model in self.names or model.startswith(self.prefixes)


RULES: Tuple[ResolutionRule, ...] = (
    ResolutionRule(Provider.OPENAI, prefixes=("gpt-", "o1-"), names=("davinci", "curie")),
    ResolutionRule(Provider.CLAUDE, prefixes=("claude-", "claude_"), names=("claude",)),
    ResolutionRule(
        Provider.GOOGLE,
        prefixes=("gemini-", "bison-", "chat-bison", "text-bison"),
    ),
    ResolutionRule(Provider.COPILOT, prefixes=("copilot-",), names=("github-copilot",)),
)


def resolve_provider(model: str, override: Optional[Provider] = None) -> Provider:
    """Resolve a model identifier to a provider.

    Args:
        model: The model name from the request (e.g. "gpt-4", "llama2").
        override: Explicit provider chosen by the caller, if any.

    Returns:
        The provider that should serve the request. Never fails.
    """
    if override is not None:
        return override

    for rule in RULES:
        if rule.matches(model):
            return rule.provider

    return Provider.LOCAL
