"""Shared helpers for resolving CLI, environment, config file and prompt inputs."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass

from rich.console import Console
from rich.prompt import Prompt

from secretr._errors import ConfigurationError

# Prompts never write to stdout.
_PROMPT_CONSOLE = Console(stderr=True)


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Configuration for resolving an input from multiple sources."""

    env_key: str
    config_key: str | None = None
    default: str | None = None
    required: bool = False
    prompt: str | None = None
    hidden: bool = False


@dataclass(frozen=True, slots=True)
class Prompter:
    """Interactive input callables used as the last resolution source."""

    ask: cabc.Callable[[str], str]
    ask_hidden: cabc.Callable[[str], str]

    @classmethod
    def from_terminal(cls) -> Prompter:
        """Create a prompter reading from the controlling terminal."""

        return cls(ask=_ask_visible, ask_hidden=_ask_hidden)


def _ask_visible(question: str) -> str:
    return Prompt.ask(question, console=_PROMPT_CONSOLE, default="", show_default=False)


def _ask_hidden(question: str) -> str:
    return Prompt.ask(
        question,
        console=_PROMPT_CONSOLE,
        default="",
        show_default=False,
        password=True,
    )


def _from_prompt(resolution: InputResolution, prompter: Prompter | None) -> str | None:
    if resolution.prompt is None or prompter is None:
        return None
    ask = prompter.ask_hidden if resolution.hidden else prompter.ask
    answer = ask(resolution.prompt)
    return answer or None


def resolve_input(
    param_value: str | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
    file_values: cabc.Mapping[str, str] | None = None,
    prompter: Prompter | None = None,
) -> str | None:
    """Resolve input from parameter, environment, config file, prompt or default.

    Examples
    --------
    >>> resolve_input(None, InputResolution(env_key="SECRETR_WSDL"), env={"SECRETR_WSDL": "http://ss"})
    'http://ss'
    >>> resolve_input("flag", InputResolution(env_key="SECRETR_WSDL"), env={"SECRETR_WSDL": "env"})
    'flag'
    """

    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value is not None:
        return env_value

    if resolution.config_key is not None and file_values:
        file_value = file_values.get(resolution.config_key)
        if file_value is not None:
            return file_value

    answer = _from_prompt(resolution, prompter)
    if answer is not None:
        return answer

    if resolution.required:
        msg = f"{resolution.env_key} is required"
        raise ConfigurationError(msg)

    return resolution.default
