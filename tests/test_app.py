import pytest

from english_partner.app import build_app
from english_partner.config import DEFAULT_CHAT_MODEL, Settings, load_settings
from english_partner.conversation import TurnState
from english_partner.errors import GatewayError
from english_partner.gateway import build_openai_client
from english_partner.logger import logger
from english_partner.schemas import NO_MISTAKES_SENTINEL
from conftest import USER_ID


@pytest.fixture
def clean_env(monkeypatch):
    for name in ["OPENAI_API_KEY", "OPENAI_MODEL", "PARTNER_REPLY_TEMPERATURE",
                 "PARTNER_CRITIQUE_TEMPERATURE", "FIREBASE_CREDENTIALS_PATH", "PARTNER_MAX_WEAKNESSES",
                 "PARTNER_DEBUG"]:
        # setenv first so the variable is removed again after the test
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    # load_settings switches the shared logger on or off
    monkeypatch.setattr(logger, "enabled", logger.enabled)
    return monkeypatch


def test_load_settings_defaults(clean_env, tmp_path):
    settings = load_settings(str(tmp_path / ".env"))
    assert settings.openai_api_key is None
    assert settings.chat_model == DEFAULT_CHAT_MODEL
    assert settings.reply_temperature == 0.7
    assert settings.firebase_credentials_path is None
    assert settings.max_weaknesses == 50
    assert settings.debug is True
    assert logger.enabled is True


def test_load_settings_from_dotenv(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "OPENAI_API_KEY=sk-test-1234567890abcd\n"
        "OPENAI_MODEL=gpt-4o-mini\n"
        "PARTNER_REPLY_TEMPERATURE=0.2\n"
        "PARTNER_MAX_WEAKNESSES=oops\n"
    )
    settings = load_settings(str(env_file))
    assert settings.openai_api_key == "sk-test-1234567890abcd"
    assert settings.masked_api_key == "sk-test-...abcd"
    assert settings.chat_model == "gpt-4o-mini"
    assert settings.reply_temperature == 0.2
    assert settings.max_weaknesses == 50


def test_debug_flag_from_dotenv_silences_logger(clean_env, tmp_path, capsys):
    env_file = tmp_path / ".env"
    env_file.write_text("PARTNER_DEBUG=0\n")

    settings = load_settings(str(env_file))

    assert settings.debug is False
    assert logger.enabled is False
    capsys.readouterr()
    logger.api("not shown")
    assert capsys.readouterr().out == ""


def test_openai_client_needs_key():
    with pytest.raises(GatewayError):
        build_openai_client(Settings())


def test_build_app_runs_a_turn(clean_env, fake_openai):
    settings = Settings(openai_api_key="sk-test", chat_model="test-model", max_weaknesses=5)
    app = build_app(settings, client=fake_openai)
    try:
        assert app.store.is_connected() is False
        assert app.store.max_weaknesses == 5

        session = app.start_conversation(USER_ID)
        fake_openai.completions.queue("grammar", {"original": "Hi", "corrected": "Hi", "focus": NO_MISTAKES_SENTINEL})
        fake_openai.completions.queue("message", {"role": "assistant", "content": "Hello!"})
        session.send("Hi")

        assert session.state == TurnState.SETTLED
        reopened = app.open_conversation(USER_ID, session.conversation_id)
        assert [m.content for m in reopened.messages] == ["Hi", "Hello!"]
        assert fake_openai.completions.calls[0]["model"] == "test-model"
    finally:
        app.close()
