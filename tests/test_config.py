"""Tests for settings and the YAML project config."""

import pytest

from pop3_migration.config import (
    PROJECT_DIR,
    ROOT_ENV,
    AccountConfig,
    ProjectConfig,
    Settings,
    find_account,
    find_root,
    get_cache_path,
    get_config_path,
    load_config,
    save_config,
)


class TestSettings:
    def test_defaults_disabled(self):
        settings = Settings()
        assert not settings.enabled
        assert not settings.all_mailboxes

    def test_from_dict(self):
        settings = Settings.from_dict({
            "mailbox": "POP3",
            "all_mailboxes": "yes",
            "ignore_missing_uidls": True,
            "skip_size_check": "no",
        })
        assert settings.enabled
        assert settings.all_mailboxes
        assert settings.ignore_missing_uidls
        assert not settings.skip_size_check

    def test_unknown_setting(self):
        with pytest.raises(ValueError, match="Unknown pop3_migration settings: bogus"):
            Settings.from_dict({"bogus": True})

    def test_bad_bool(self):
        with pytest.raises(ValueError, match="all_mailboxes"):
            Settings.from_dict({"all_mailboxes": "maybe"})

    def test_round_trip(self):
        settings = Settings(mailbox="POP3", skip_uidl_cache=True)
        assert Settings.from_dict(settings.to_dict()) == settings


class TestAccountConfig:
    @pytest.mark.parametrize("acct_type,ssl,port", [
        ("pop3", True, 995),
        ("pop3", False, 110),
        ("imap", True, 993),
        ("imap", False, 143),
    ])
    def test_default_ports(self, acct_type, ssl, port):
        acct = AccountConfig("x", acct_type, "u", "p", "h", ssl=ssl)
        assert acct.effective_port == port

    def test_explicit_port(self):
        assert AccountConfig("x", "imap", "u", "p", "h", port=1143).effective_port == 1143


class TestProjectConfig:
    def test_missing_file(self, tmp_path):
        config = load_config(tmp_path)
        assert config.accounts == {}
        assert not config.settings.enabled

    def test_save_load(self, tmp_path):
        config = ProjectConfig(
            settings=Settings(mailbox="POP3", all_mailboxes=True),
            accounts={
                "src": AccountConfig("src", "pop3", "me", "secret", "pop.example.com"),
                "dst": AccountConfig("dst", "imap", "me", "secret", "imap.example.com", port=1993, ssl=False),
            },
        )
        save_config(config, tmp_path)
        assert get_config_path(tmp_path) == tmp_path / PROJECT_DIR / "config.yaml"
        text = get_config_path(tmp_path).read_text()
        assert "pop3_migration:" in text
        assert "ssl: false" in text

        loaded = load_config(tmp_path)
        assert loaded.settings == config.settings
        assert loaded.accounts == config.accounts

    def test_unknown_account_type(self, tmp_path):
        path = get_config_path(tmp_path)
        path.parent.mkdir()
        path.write_text("accounts:\n  x:\n    type: gmail\n")
        with pytest.raises(ValueError, match="unknown type"):
            load_config(tmp_path)

    def test_find_account(self):
        config = ProjectConfig(accounts={
            "b": AccountConfig("b", "imap", "u", "p", "h"),
            "a": AccountConfig("a", "imap", "u", "p", "h"),
            "c": AccountConfig("c", "pop3", "u", "p", "h"),
        })
        assert find_account(config, "imap").name == "a"
        assert find_account(config, "pop3").name == "c"
        assert find_account(ProjectConfig(), "pop3") is None

    def test_cache_path(self, tmp_path):
        assert get_cache_path(tmp_path) == tmp_path / PROJECT_DIR / "cache.db"


class TestFindRoot:
    def test_walks_up(self, tmp_path, monkeypatch):
        monkeypatch.delenv(ROOT_ENV, raising=False)
        (tmp_path / PROJECT_DIR).mkdir()
        sub = tmp_path / "a" / "b"
        sub.mkdir(parents=True)
        assert find_root(sub) == tmp_path.resolve()

    def test_env_var(self, tmp_path, monkeypatch):
        (tmp_path / PROJECT_DIR).mkdir()
        monkeypatch.setenv(ROOT_ENV, str(tmp_path))
        assert find_root(tmp_path / "elsewhere") == tmp_path.resolve()

    def test_not_found(self, tmp_path, monkeypatch):
        monkeypatch.delenv(ROOT_ENV, raising=False)
        assert find_root(tmp_path) is None
