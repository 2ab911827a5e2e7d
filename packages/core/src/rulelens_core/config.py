import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_INCLUDE = [
    "**/*.ts",
    "**/*.tsx",
    "**/*.js",
    "**/*.jsx",
    "**/*.py",
    "**/*.go",
    "**/*.rs",
    "**/*.java",
    "**/*.cs",
]
DEFAULT_EXCLUDE = ["node_modules/**", "dist/**", "build/**", "coverage/**", "*.min.js", "*.bundle.js"]

DEFAULT_CONFIG: dict = {
    "provider": "auto",
    "model": "auto",
    "review_level": "standard",
    "rules_path": None,  # None = <workspace>/.cursor/rules
    "include": list(DEFAULT_INCLUDE),
    "exclude": list(DEFAULT_EXCLUDE),
    "max_files": 50,
    "batch_size": 1,
    "request_delay_ms": 2000,
    "max_changes_per_file": 1000,
    "max_chars_per_file": 20000,
    "comment_style": "both",
    "inline_severity": "warning",
    "enable_auto_fix": False,
    "auto_fix_severity": "error",
    "skip_if_no_rules": False,
    "update_existing_comments": True,
    "enable_architectural_review": False,
    "summary_format": "detailed",
    "enable_suggestions": True,
}

# Keys that may be supplied as GitHub Actions inputs (INPUT_<KEY> env vars).
_LIST_KEYS = {"include", "exclude"}
_INT_KEYS = {"max_files", "batch_size", "request_delay_ms", "max_changes_per_file", "max_chars_per_file"}
_BOOL_KEYS = {
    "enable_auto_fix",
    "skip_if_no_rules",
    "update_existing_comments",
    "enable_architectural_review",
    "enable_suggestions",
}

PROVIDERS = ("auto", "openai", "anthropic", "azure", "bedrock")
REVIEW_LEVELS = ("light", "standard", "thorough")
COMMENT_STYLES = ("inline", "summary", "both")
SUMMARY_FORMATS = ("brief", "detailed", "minimal")

# Numeric ranking shared by inline filtering and auto-fix eligibility.
SEVERITY_RANK = {"error": 4, "warning": 3, "info": 2, "suggestion": 2}
THRESHOLD_RANK = {"error": 4, "warning": 3, "info": 2, "all": 1}

RECOMMENDED_MODELS = {
    "light": {
        "openai": "gpt-4o-mini",
        "anthropic": "claude-3-5-haiku-latest",
        "azure": "gpt-4o-mini",
        "bedrock": "anthropic.claude-3-5-haiku-20241022-v1:0",
    },
    "standard": {
        "openai": "gpt-4o",
        "anthropic": "claude-sonnet-4-20250514",
        "azure": "gpt-4o",
        "bedrock": "anthropic.claude-3-5-sonnet-20241022-v2:0",
    },
    "thorough": {
        "openai": "gpt-4.1",
        "anthropic": "claude-opus-4-20250514",
        "azure": "gpt-4.1",
        "bedrock": "anthropic.claude-3-7-sonnet-20250219-v1:0",
    },
}

DEFAULT_AZURE_API_VERSION = "2024-10-21"

# Credential key -> (Action input, environment variable). The input wins.
_CREDENTIALS = {
    "github_token": ("INPUT_GH_TOKEN", "GITHUB_TOKEN"),
    "openai_api_key": ("INPUT_OPENAI_API_KEY", "OPENAI_API_KEY"),
    "anthropic_api_key": ("INPUT_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"),
    "azure_openai_api_key": ("INPUT_AZURE_OPENAI_API_KEY", "AZURE_OPENAI_API_KEY"),
    "azure_openai_endpoint": ("INPUT_AZURE_OPENAI_ENDPOINT", "AZURE_OPENAI_ENDPOINT"),
    "azure_openai_api_version": ("INPUT_AZURE_OPENAI_API_VERSION", "AZURE_OPENAI_API_VERSION"),
    "bedrock_region": ("INPUT_BEDROCK_REGION", "AWS_REGION"),
    "bedrock_access_key_id": ("INPUT_BEDROCK_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID"),
    "bedrock_secret_access_key": ("INPUT_BEDROCK_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY"),
    "bedrock_session_token": ("INPUT_BEDROCK_SESSION_TOKEN", "AWS_SESSION_TOKEN"),
}


class ConfigError(ValueError):
    """Raised for invalid configuration. Always reported before any network activity."""


def load_config(config_path: str = ".rulelens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .rulelens.yml in the current directory
      3. GitHub Actions inputs (INPUT_* environment variables)
      4. CLI argument overrides

    Credentials come from the Action inputs (gh_token, openai_api_key, ...)
    or, when an input is empty, the matching environment variable.
    """
    config = {**DEFAULT_CONFIG, "include": list(DEFAULT_INCLUDE), "exclude": list(DEFAULT_EXCLUDE)}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        config.update(file_config)

    config.update(_action_inputs(os.environ))

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    config.update(_credentials(os.environ))

    return config


def _action_inputs(env) -> dict:
    """Read INPUT_<KEY> variables the Actions runner sets from the workflow's `with:` block.

    Empty inputs are ignored so an unset input never masks the file or default value.
    """
    inputs: dict = {}
    for key in DEFAULT_CONFIG:
        raw = env.get(f"INPUT_{key.upper()}")
        if raw is None or raw.strip() == "":
            continue
        raw = raw.strip()
        if key in _LIST_KEYS:
            inputs[key] = [p.strip() for p in raw.split(",") if p.strip()]
        elif key in _INT_KEYS:
            try:
                inputs[key] = int(raw)
            except ValueError:
                raise ConfigError(f"Input {key} must be an integer, got {raw!r}")
        elif key in _BOOL_KEYS:
            inputs[key] = raw.lower() in ("true", "1", "yes")
        else:
            inputs[key] = raw
    return inputs


def _credentials(env) -> dict:
    credentials = {}
    for key, names in _CREDENTIALS.items():
        credentials[key] = next((env[n].strip() for n in names if env.get(n, "").strip()), None)
    if not credentials["azure_openai_api_version"]:
        credentials["azure_openai_api_version"] = DEFAULT_AZURE_API_VERSION
    return credentials


@dataclass(frozen=True)
class ReviewOptions:
    """Immutable options value built once at the process boundary."""

    provider: str = "auto"
    model: str = "auto"
    review_level: str = "standard"
    rules_path: Optional[str] = None
    include: tuple = tuple(DEFAULT_INCLUDE)
    exclude: tuple = tuple(DEFAULT_EXCLUDE)
    max_files: int = 50
    batch_size: int = 1
    request_delay_ms: int = 2000
    max_changes_per_file: int = 1000
    max_chars_per_file: int = 20000
    comment_style: str = "both"
    inline_severity: str = "warning"
    enable_auto_fix: bool = False
    auto_fix_severity: str = "error"
    skip_if_no_rules: bool = False
    update_existing_comments: bool = True
    enable_architectural_review: bool = False
    summary_format: str = "detailed"
    enable_suggestions: bool = True
    github_token: Optional[str] = None
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_version: str = DEFAULT_AZURE_API_VERSION
    bedrock_region: Optional[str] = None
    bedrock_access_key_id: Optional[str] = None
    bedrock_secret_access_key: Optional[str] = None
    bedrock_session_token: Optional[str] = None

    @classmethod
    def from_config(cls, config: dict) -> "ReviewOptions":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in config.items() if k in known and v is not None}
        for key in _LIST_KEYS:
            if key in values:
                value = values[key]
                if isinstance(value, str):
                    value = [p.strip() for p in value.split(",") if p.strip()]
                values[key] = tuple(value)
        return cls(**values)

    @property
    def request_delay_seconds(self) -> float:
        return self.request_delay_ms / 1000

    def resolved_provider(self) -> str:
        """Return the concrete provider name, auto-detecting from available credentials."""
        if self.provider != "auto":
            return self.provider
        if self.openai_api_key:
            return "openai"
        if self.anthropic_api_key:
            return "anthropic"
        if self.azure_openai_api_key and self.azure_openai_endpoint:
            return "azure"
        if self.bedrock_access_key_id and self.bedrock_secret_access_key:
            return "bedrock"
        raise ConfigError(
            "No AI provider credentials found. Set OPENAI_API_KEY, ANTHROPIC_API_KEY, "
            "AZURE_OPENAI_API_KEY + AZURE_OPENAI_ENDPOINT or AWS_ACCESS_KEY_ID + AWS_SECRET_ACCESS_KEY."
        )

    def resolved_model(self) -> str:
        if self.model and self.model != "auto":
            return self.model
        return RECOMMENDED_MODELS[self.review_level][self.resolved_provider()]

    def validate(self) -> None:
        """Raise ConfigError on the first invalid value."""
        if self.provider not in PROVIDERS:
            raise ConfigError(f"Unknown provider {self.provider!r}. Choose one of: {', '.join(PROVIDERS)}.")
        if self.review_level not in REVIEW_LEVELS:
            raise ConfigError(f"review_level must be one of: {', '.join(REVIEW_LEVELS)}.")
        if self.comment_style not in COMMENT_STYLES:
            raise ConfigError(f"comment_style must be one of: {', '.join(COMMENT_STYLES)}.")
        if self.summary_format not in SUMMARY_FORMATS:
            raise ConfigError(f"summary_format must be one of: {', '.join(SUMMARY_FORMATS)}.")
        for key in ("inline_severity", "auto_fix_severity"):
            if getattr(self, key) not in THRESHOLD_RANK:
                raise ConfigError(f"{key} must be one of: {', '.join(THRESHOLD_RANK)}.")

        if self.provider == "openai" and not self.openai_api_key:
            raise ConfigError("OPENAI_API_KEY is required when provider is 'openai'.")
        if self.provider == "anthropic" and not self.anthropic_api_key:
            raise ConfigError("ANTHROPIC_API_KEY is required when provider is 'anthropic'.")
        if self.provider == "azure" and not (self.azure_openai_api_key and self.azure_openai_endpoint):
            raise ConfigError("AZURE_OPENAI_API_KEY and AZURE_OPENAI_ENDPOINT are required when provider is 'azure'.")
        if self.provider == "bedrock" and bool(self.bedrock_access_key_id) != bool(self.bedrock_secret_access_key):
            raise ConfigError("AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together for bedrock.")
        self.resolved_provider()

        if not 1 <= self.max_files <= 200:
            raise ConfigError("max_files must be between 1 and 200.")
        if self.batch_size < 1:
            raise ConfigError("batch_size must be a positive integer.")
        if not 0 <= self.request_delay_ms <= 60000:
            raise ConfigError("request_delay_ms must be between 0 and 60000 milliseconds.")
        if self.max_changes_per_file < 1:
            raise ConfigError("max_changes_per_file must be a positive integer.")
        if not self.include:
            raise ConfigError("include patterns cannot be empty.")
