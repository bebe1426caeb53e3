"""Unit tests for connection resolution."""

from __future__ import annotations

import pytest

from secretr._connection import (
    EnvContext,
    RawConnectionInputs,
    normalise_endpoint,
    resolve_connection,
)
from secretr._errors import ConfigurationError
from secretr._input_resolution import InputResolution, Prompter, resolve_input

WSDL = "http://host/SSWebService.asmx?WSDL"


def _prompter(answers: dict[str, str], asked: list[tuple[str, bool]] | None = None) -> Prompter:
    log = asked if asked is not None else []

    def ask(question: str) -> str:
        log.append((question, False))
        return answers.get(question, "")

    def ask_hidden(question: str) -> str:
        log.append((question, True))
        return answers.get(question, "")

    return Prompter(ask=ask, ask_hidden=ask_hidden)


@pytest.mark.parametrize(
    "endpoint",
    [
        "http://host/SSWebService.asmx?wsdl",
        "http://host/sswebservice.ASMX?WSDL",
        "http://host/SSWEBSERVICE.asmx?Wsdl",
    ],
)
def test_normalise_endpoint_rewrites_casing(endpoint: str) -> None:
    assert normalise_endpoint(endpoint) == WSDL


def test_normalise_endpoint_leaves_other_urls_untouched() -> None:
    assert normalise_endpoint("https://ss.example/api") == "https://ss.example/api"


def test_flag_wins_over_env_and_config() -> None:
    context = EnvContext(env={"SECRETR_USERNAME": "B", "SECRETR_PASSWORD": "pw", "SECRETR_WSDL": WSDL})
    config = resolve_connection(
        RawConnectionInputs(username="A"),
        context=context,
        file_values={"username": "C"},
    )
    assert config.username == "A"


def test_env_wins_over_config() -> None:
    context = EnvContext(env={"SECRETR_USERNAME": "B", "SECRETR_PASSWORD": "pw", "SECRETR_WSDL": WSDL})
    config = resolve_connection(
        RawConnectionInputs(),
        context=context,
        file_values={"username": "C"},
    )
    assert config.username == "B"


def test_config_wins_over_prompt() -> None:
    asked: list[tuple[str, bool]] = []
    config = resolve_connection(
        RawConnectionInputs(password="pw"),
        context=EnvContext(env={}),
        file_values={"username": "C", "wsdl": WSDL},
        prompter=_prompter({"username": "D"}, asked),
    )
    assert config.username == "C"
    assert asked == []


def test_prompts_for_missing_credentials_with_hidden_password() -> None:
    asked: list[tuple[str, bool]] = []
    config = resolve_connection(
        RawConnectionInputs(wsdl=WSDL),
        context=EnvContext(env={}),
        prompter=_prompter({"username": "alice", "password": "s3cret"}, asked),
    )
    assert (config.username, config.password) == ("alice", "s3cret")
    assert asked == [("username", False), ("password", True)]


def test_missing_endpoint_fails_before_prompting() -> None:
    asked: list[tuple[str, bool]] = []
    with pytest.raises(ConfigurationError, match="WSDL"):
        resolve_connection(
            RawConnectionInputs(),
            context=EnvContext(env={}),
            prompter=_prompter({"username": "alice", "password": "pw"}, asked),
        )
    assert asked == []


def test_missing_credentials_without_prompter_raise() -> None:
    with pytest.raises(ConfigurationError, match="SECRETR_USERNAME is required"):
        resolve_connection(RawConnectionInputs(wsdl=WSDL), context=EnvContext(env={}))


def test_empty_prompt_answer_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="SECRETR_PASSWORD is required"):
        resolve_connection(
            RawConnectionInputs(wsdl=WSDL, username="alice"),
            context=EnvContext(env={}),
            prompter=_prompter({}),
        )


def test_endpoint_from_config_is_normalised_and_defaults_applied() -> None:
    config = resolve_connection(
        RawConnectionInputs(username="u", password="p"),
        context=EnvContext(env={"SECRETR_DOMAIN": "corp"}),
        file_values={"wsdl": "http://host/sswebservice.asmx?wsdl"},
    )
    assert config.endpoint == WSDL
    assert config.domain == "corp"
    assert config.organization == ""


def test_password_is_hidden_from_repr() -> None:
    config = resolve_connection(
        RawConnectionInputs(wsdl=WSDL, username="u", password="hunter2"),
        context=EnvContext(env={}),
    )
    assert "hunter2" not in repr(config)


def test_resolve_input_uses_file_value_then_default() -> None:
    resolution = InputResolution(env_key="SECRETR_DOMAIN", config_key="domain", default="")
    assert resolve_input(None, resolution, env={}, file_values={"domain": "corp"}) == "corp"
    assert resolve_input(None, resolution, env={}, file_values={"wsdl": "http://x"}) == ""
    assert resolve_input(None, InputResolution(env_key="UNSET"), env={}) is None
