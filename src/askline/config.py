import os
import logging
from dataclasses import dataclass, field

from askline.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36 Edg/140.0.0.0"
)


def get_optional_env(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"Environment variable {name} must be a number, got {raw!r}") from e


@dataclass
class AskConfig:
    version: str = "2.9"
    source: str = "default"
    model: str = "llama-3.1-sonar-large-128k-online"
    use_search_engine: bool = True
    prompt_source: str = "user"
    query_source: str = "chat"


@dataclass
class ClientConfig:
    base_url: str = "https://www.perplexity.ai"
    ask_path: str = "/rest/sse/perplexity_ask"
    user_agent: str = DEFAULT_USER_AGENT
    timeout_seconds: float = 120.0
    jitter_min_seconds: float = 0.8
    jitter_max_seconds: float = 2.3
    data_dir: str = "data/askline"
    title_max_length: int = 50
    ask: AskConfig = field(default_factory=AskConfig)

    @property
    def entry_url(self) -> str:
        return self.base_url.rstrip("/") + "/"

    @property
    def ask_url(self) -> str:
        return self.base_url.rstrip("/") + self.ask_path

    @classmethod
    def from_env(cls) -> "ClientConfig":
        config = cls(
            base_url=get_optional_env("ASKLINE_BASE_URL", cls.base_url),
            user_agent=get_optional_env("ASKLINE_USER_AGENT", DEFAULT_USER_AGENT),
            data_dir=get_optional_env("ASKLINE_DATA_DIR", cls.data_dir),
            timeout_seconds=_float_env("ASKLINE_TIMEOUT", cls.timeout_seconds),
            jitter_min_seconds=_float_env("ASKLINE_JITTER_MIN", cls.jitter_min_seconds),
            jitter_max_seconds=_float_env("ASKLINE_JITTER_MAX", cls.jitter_max_seconds),
        )
        model = os.environ.get("ASKLINE_MODEL")
        if model:
            config.ask.model = model
        return config

    def without_jitter(self) -> "ClientConfig":
        self.jitter_min_seconds = 0.0
        self.jitter_max_seconds = 0.0
        return self

    def validate(self) -> None:
        if self.jitter_min_seconds < 0 or self.jitter_max_seconds < 0:
            raise ConfigError("Jitter bounds must be non-negative")
        if self.jitter_min_seconds > self.jitter_max_seconds:
            raise ConfigError(
                f"jitter_min_seconds ({self.jitter_min_seconds}) exceeds "
                f"jitter_max_seconds ({self.jitter_max_seconds})"
            )
        if self.timeout_seconds <= 0:
            raise ConfigError("timeout_seconds must be positive")
        if self.title_max_length < 1:
            raise ConfigError("title_max_length must be at least 1")
        logger.debug(f"Config validated: base_url={self.base_url} model={self.ask.model}")
