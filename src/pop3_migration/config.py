"""Project configuration via YAML files."""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

PROJECT_DIR = ".pop3-migration"
CONFIG_FILE = "config.yaml"
ROOT_ENV = "POP3_MIGRATION_ROOT"

ACCOUNT_TYPES = ("pop3", "imap")
DEFAULT_PORTS = {
    ("pop3", True): 995,
    ("pop3", False): 110,
    ("imap", True): 993,
    ("imap", False): 143,
}


@dataclass
class Settings:
    """POP3 migration settings.

    mailbox: name of the mailbox holding the POP3 source ("" disables
        the engine).
    all_mailboxes: match against every target mailbox, not just INBOX.
    ignore_missing_uidls: continue when POP3 messages have no IMAP match.
    ignore_extra_uidls: continue when every IMAP message was matched but
        POP3 has more.
    skip_size_check: don't fetch sizes or match by size.
    skip_uidl_cache: don't read or write resolved UIDLs in the cache.
    """
    mailbox: str = ""
    all_mailboxes: bool = False
    ignore_missing_uidls: bool = False
    ignore_extra_uidls: bool = False
    skip_size_check: bool = False
    skip_uidl_cache: bool = False

    @property
    def enabled(self) -> bool:
        return self.mailbox != ""

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown pop3_migration settings: {', '.join(sorted(unknown))}")
        kwargs = {}
        for name, value in data.items():
            if name == "mailbox":
                kwargs[name] = "" if value is None else str(value)
            else:
                kwargs[name] = _parse_bool(name, value)
        return cls(**kwargs)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _parse_bool(name: str, value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("yes", "true", "1", "on"):
        return True
    if isinstance(value, str) and value.lower() in ("no", "false", "0", "off", ""):
        return False
    raise ValueError(f"Setting {name!r} must be a boolean, got {value!r}")


@dataclass
class AccountConfig:
    """A POP3 or IMAP account."""
    name: str
    type: str  # "pop3" or "imap"
    user: str
    password: str
    host: str
    port: int | None = None
    ssl: bool = True

    @property
    def effective_port(self) -> int:
        return self.port or DEFAULT_PORTS[(self.type, self.ssl)]


@dataclass
class ProjectConfig:
    """Top-level project configuration."""
    settings: Settings = field(default_factory=Settings)
    accounts: dict[str, AccountConfig] = field(default_factory=dict)


def find_root(start: Path | None = None) -> Path | None:
    """Find project root (directory containing .pop3-migration/).

    First checks POP3_MIGRATION_ROOT environment variable, then walks up
    from start/cwd.
    """
    env_root = os.environ.get(ROOT_ENV)
    if env_root:
        env_path = Path(env_root).resolve()
        if (env_path / PROJECT_DIR).is_dir():
            return env_path

    path = (start or Path.cwd()).resolve()
    while path != path.parent:
        if (path / PROJECT_DIR).is_dir():
            return path
        path = path.parent
    return None


def get_root(require: bool = True) -> Path:
    """Get project root, raising if not found and require=True."""
    root = find_root()
    if not root and require:
        raise FileNotFoundError(
            "Not in a pop3-migration project. Run 'pop3-migration init' first."
        )
    return root or Path.cwd()


def get_config_path(root: Path | None = None) -> Path:
    root = root or get_root()
    return root / PROJECT_DIR / CONFIG_FILE


def get_cache_path(root: Path | None = None) -> Path:
    from .store import CACHE_DB
    root = root or get_root()
    return root / PROJECT_DIR / CACHE_DB


def load_config(root: Path | None = None) -> ProjectConfig:
    """Load config from config.yaml."""
    config_path = get_config_path(root)
    if not config_path.exists():
        return ProjectConfig()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    accounts = {}
    for name, acct_data in (data.get("accounts") or {}).items():
        acct_type = acct_data.get("type", "imap")
        if acct_type not in ACCOUNT_TYPES:
            raise ValueError(f"Account {name!r}: unknown type {acct_type!r} (expected pop3 or imap)")
        accounts[name] = AccountConfig(
            name=name,
            type=acct_type,
            user=acct_data.get("user", ""),
            password=acct_data.get("password", ""),
            host=acct_data.get("host", ""),
            port=acct_data.get("port"),
            ssl=_parse_bool("ssl", acct_data.get("ssl", True)),
        )

    return ProjectConfig(
        settings=Settings.from_dict(data.get("pop3_migration") or {}),
        accounts=accounts,
    )


def save_config(config: ProjectConfig, root: Path | None = None) -> None:
    """Save config to config.yaml."""
    config_path = get_config_path(root)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict = {"pop3_migration": config.settings.to_dict()}
    if config.accounts:
        data["accounts"] = {}
        for name, acct in config.accounts.items():
            acct_data = {
                "type": acct.type,
                "user": acct.user,
                "password": acct.password,
                "host": acct.host,
            }
            if acct.port:
                acct_data["port"] = acct.port
            if not acct.ssl:
                acct_data["ssl"] = False
            data["accounts"][name] = acct_data

    with open(config_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def get_account(name: str, root: Path | None = None) -> AccountConfig | None:
    """Get account by name from config."""
    return load_config(root).accounts.get(name)


def find_account(config: ProjectConfig, acct_type: str) -> AccountConfig | None:
    """First account of the given type (sorted by name)."""
    for name in sorted(config.accounts):
        if config.accounts[name].type == acct_type:
            return config.accounts[name]
    return None
