"""Development-assistant tasks served under /v1/zeke/.

Each task kind turns a few free-form fields (code, context, language, task)
into a two-message chat request: a fixed system instruction and a user prompt
built from the kind's template. The request goes through the same provider
pipeline as /v1/chat/completions and the reply is wrapped in a small task
envelope.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Union

from ghostllm.models import (
    ChatMessage,
    ChatRequest,
    Provider,
    TaskEnvelope,
    TaskErrorEnvelope,
    TaskRequest,
    now,
)
from ghostllm.provider import ProviderAdapter, call_provider
from ghostllm.telemetry import logger

TASK_PREFIX = "/v1/zeke/"

DEFAULT_LANGUAGE = "python"


class TaskKind(str, Enum):
    COMPLETE = "complete"
    ANALYZE = "analyze"
    EXPLAIN = "explain"
    REFACTOR = "refactor"
    TEST = "test"
    TERMINAL = "terminal"
    PROJECT_ANALYZE = "project_analyze"


@dataclass(frozen=True)
class TaskProfile:
    """Prompting and sampling policy for one task kind."""

    kind: TaskKind
    response_type: str
    system_prompt: str
    template: str
    temperature: float
    max_tokens: int
    default_model: str = "gpt-4"


_COMPLETE_TEMPLATE = """Language: {language}
Context: {context}
Code to complete:
```{language}
{code}
```

Provide the most likely completion for this code. Return only the completion without explanation."""

_ANALYZE_TEMPLATE = """Language: {language}
Context: {context}
Code to analyze:
```{language}
{code}
```

Provide analysis covering:
1. Code quality and style
2. Performance considerations
3. Security issues
4. Best practice recommendations
5. Potential bugs or issues

Format as JSON with sections: quality, performance, security, recommendations, issues."""

_EXPLAIN_TEMPLATE = """Language: {language}
Context: {context}
Code to explain:
```{language}
{code}
```

Provide a clear, educational explanation of:
1. What this code does
2. How it works step by step
3. Key concepts and patterns used
4. Any notable techniques or algorithms

Make it understandable for developers learning {language}."""

_REFACTOR_TEMPLATE = """Language: {language}
Context: {context}
Code to refactor:
```{language}
{code}
```

Provide refactored code that:
1. Maintains the same functionality
2. Improves readability and maintainability
3. Follows {language} best practices
4. Optimizes performance where possible
5. Reduces complexity

Return the refactored code with explanations of changes made."""

_TEST_TEMPLATE = """Language: {language}
Context: {context}
Code to test:
```{language}
{code}
```

Generate comprehensive tests that:
1. Test normal functionality
2. Test edge cases
3. Test error conditions
4. Follow {language} testing conventions
5. Include descriptive test names

Provide complete test code with setup and assertions."""

_TERMINAL_TEMPLATE = """Shell: {language}
Context: {context}
Command: {code}
Task: {task}

Provide:
1. The exact command(s) to run
2. Explanation of what each command does
3. Any prerequisites or warnings
4. Alternative approaches if applicable

Focus on practical, safe, and efficient solutions."""

_PROJECT_TEMPLATE = """Project path: {code}
Language: {language}
Project context: {context}

Analyze the project and provide insights on:
1. Architecture and design patterns
2. Code organization and structure
3. Dependencies and potential issues
4. Performance optimization opportunities
5. Security considerations
6. Maintainability improvements
7. Technology stack recommendations

Provide actionable recommendations for improvement."""


TASK_PROFILES: Dict[TaskKind, TaskProfile] = {
    TaskKind.COMPLETE: TaskProfile(
        kind=TaskKind.COMPLETE,
        response_type="code_completion",
        system_prompt=(
            "You are an expert AI coding assistant specialized in code completion. "
            "Provide concise, accurate code completions."
        ),
        template=_COMPLETE_TEMPLATE,
        temperature=0.2,
        max_tokens=500,
    ),
    TaskKind.ANALYZE: TaskProfile(
        kind=TaskKind.ANALYZE,
        response_type="code_analysis",
        system_prompt=(
            "You are an expert code reviewer. Analyze code for quality, "
            "performance, security, and best practices."
        ),
        template=_ANALYZE_TEMPLATE,
        temperature=0.3,
        max_tokens=1500,
    ),
    TaskKind.EXPLAIN: TaskProfile(
        kind=TaskKind.EXPLAIN,
        response_type="code_explanation",
        system_prompt=(
            "You are an expert programming tutor. Explain code clearly and educationally."
        ),
        template=_EXPLAIN_TEMPLATE,
        temperature=0.4,
        max_tokens=1000,
    ),
    TaskKind.REFACTOR: TaskProfile(
        kind=TaskKind.REFACTOR,
        response_type="code_refactoring",
        system_prompt=(
            "You are an expert software engineer specializing in code refactoring. "
            "Improve code while maintaining functionality."
        ),
        template=_REFACTOR_TEMPLATE,
        temperature=0.3,
        max_tokens=1500,
    ),
    TaskKind.TEST: TaskProfile(
        kind=TaskKind.TEST,
        response_type="test_generation",
        system_prompt=(
            "You are an expert in test-driven development. "
            "Generate comprehensive tests for given code."
        ),
        template=_TEST_TEMPLATE,
        temperature=0.3,
        max_tokens=2000,
    ),
    TaskKind.TERMINAL: TaskProfile(
        kind=TaskKind.TERMINAL,
        response_type="terminal_assistance",
        system_prompt=(
            "You are an expert system administrator and developer. Help with "
            "terminal commands, debugging, and development tasks."
        ),
        template=_TERMINAL_TEMPLATE,
        temperature=0.3,
        max_tokens=800,
        default_model="gpt-3.5-turbo",
    ),
    TaskKind.PROJECT_ANALYZE: TaskProfile(
        kind=TaskKind.PROJECT_ANALYZE,
        response_type="project_analysis",
        system_prompt=(
            "You are an expert software architect. Analyze project structure, "
            "dependencies, and provide architectural insights."
        ),
        template=_PROJECT_TEMPLATE,
        temperature=0.4,
        max_tokens=2000,
    ),
}

TASK_ROUTES: Dict[str, TaskKind] = {
    TASK_PREFIX + "code/complete": TaskKind.COMPLETE,
    TASK_PREFIX + "code/analyze": TaskKind.ANALYZE,
    TASK_PREFIX + "code/explain": TaskKind.EXPLAIN,
    TASK_PREFIX + "code/refactor": TaskKind.REFACTOR,
    TASK_PREFIX + "code/test": TaskKind.TEST,
    TASK_PREFIX + "terminal/assist": TaskKind.TERMINAL,
    TASK_PREFIX + "project/analyze": TaskKind.PROJECT_ANALYZE,
}

# Endpoint-specific body field -> TaskRequest field
_FIELD_ALIASES: Dict[TaskKind, Dict[str, str]] = {
    TaskKind.TERMINAL: {"command": "code", "shell": "language"},
    TaskKind.PROJECT_ANALYZE: {"project_path": "code"},
}


def parse_task_request(kind: TaskKind, payload: Mapping[str, Any]) -> TaskRequest:
    """Build a TaskRequest from a decoded JSON body, applying field aliases.

    Raises:
        pydantic.ValidationError: If a field has the wrong type.
    """
    fields = dict(payload)
    for alias, name in _FIELD_ALIASES.get(kind, {}).items():
        if alias in fields:
            fields[name] = fields.pop(alias)
    fields.setdefault("task", kind.value)
    return TaskRequest.model_validate(fields)


def build_task_request(kind: TaskKind, task: TaskRequest) -> ChatRequest:
    """Build the canonical two-message chat request for a task."""
    profile = TASK_PROFILES[kind]
    user_prompt = profile.template.format(
        code=task.code or "",
        context=task.context or "",
        language=task.language or DEFAULT_LANGUAGE,
        task=task.task or kind.value,
    )
    return ChatRequest(
        model=task.model or profile.default_model,
        messages=[
            ChatMessage(role="system", content=profile.system_prompt),
            ChatMessage(role="user", content=user_prompt),
        ],
        temperature=profile.temperature,
        max_tokens=profile.max_tokens,
    )


def task_error(message: str) -> TaskErrorEnvelope:
    return TaskErrorEnvelope(message=message, timestamp=now())


async def run_task(
    kind: TaskKind,
    task: TaskRequest,
    adapters: Mapping[Provider, ProviderAdapter],
) -> Union[TaskEnvelope, TaskErrorEnvelope]:
    """Run a task through the provider pipeline and wrap the reply.

    Raises:
        GatewayError: If the provider pipeline fails. The caller reports it
            with a TaskErrorEnvelope.
    """
    profile = TASK_PROFILES[kind]
    logger.info("Task %s requested", profile.response_type)

    request = build_task_request(kind, task)
    result = await call_provider(adapters, request)

    if not result.response.choices:
        return task_error("Invalid AI response format")

    return TaskEnvelope(
        type=profile.response_type,
        content=result.response.choices[0].message.content,
        timestamp=now(),
        provider=result.provider.value,
        model=result.response.model,
    )

