"""
Process-wide configuration.

Static registry (providers, models, routing policy, classifier keywords) is
read from YAML once at import; credentials and tunables are read from the
environment by load_settings() at startup. Both are treated as immutable
for the lifetime of the process.
"""

import logging
import os
import pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from graph.models import SelectedModel

logger = logging.getLogger("tutor-router.config")

ROOT = pathlib.Path(__file__).resolve().parents[1]
CONFIG_PATH = os.getenv("ROUTER_CONFIG", str(ROOT / "config" / "router_config.yaml"))

with open(CONFIG_PATH, "r") as f:
    CONFIG = yaml.safe_load(f)

PRIMARY = "primary"
SECONDARY = "secondary"

# env var -> registry key whose model id it overrides
MODEL_ENV_OVERRIDES = {
    "OPENROUTER_FAST_MODEL": "gemma-4b",
    "OPENROUTER_BALANCED_MODEL": "gemma-12b",
    "OPENROUTER_EXPERT_MODEL": "nemotron-12b",
    "OPENROUTER_LEGACY_MODEL": "llama-70b",
    "GROQ_FALLBACK_MODEL": "groq-mixtral",
}


def _merge_env_config(reg: Dict[str, Dict[str, Any]]):
    """Merge environment variables into the model registry."""
    for env_var, key in MODEL_ENV_OVERRIDES.items():
        val = os.getenv(env_var)
        if val and key in reg:
            reg[key]["id"] = val


def _build_registry(cfg: Dict[str, Any]) -> Dict[str, SelectedModel]:
    raw = {m["key"]: dict(m) for m in cfg.get("models", [])}
    _merge_env_config(raw)
    return {
        key: SelectedModel(
            key=key,
            id=m["id"],
            display_name=m.get("display_name", m["id"]),
            category=m.get("category", "balanced"),
            provider=m["provider"],
            system_role=bool(m.get("system_role", False)),
        )
        for key, m in raw.items()
    }


REG = _build_registry(CONFIG)
PROVIDERS: Dict[str, Dict[str, Any]] = CONFIG.get("providers", {})
ROUTING_POLICY: Dict[str, List[str]] = CONFIG.get("routing_policy", {})
FALLBACK_MODELS: List[str] = CONFIG.get("fallback_models", [])
CLASSIFIER_CFG: Dict[str, Any] = CONFIG.get("classifier", {})
DEFAULTS: Dict[str, Any] = CONFIG.get("defaults", {})


@dataclass(frozen=True)
class ProviderSettings:
    name: str
    role: str
    base_url: str
    api_key: str = field(repr=False, default="")
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class Settings:
    providers: Mapping[str, ProviderSettings]
    timeout_sec: float = 90.0
    max_tokens: int = 1024
    enhanced_max_tokens: int = 2000
    temperature: float = 0.7
    max_attempts: int = 3
    initial_backoff_ms: int = 1000
    # Apply bounded retry to each chain-walk candidate as well (off by default:
    # the plain path moves straight to the next candidate on any failure).
    chain_walk_retry: bool = False

    def provider(self, role: str) -> Optional[ProviderSettings]:
        for p in self.providers.values():
            if p.role == role:
                return p
        return None

    def has_credentials(self, role: str) -> bool:
        p = self.provider(role)
        return bool(p and p.configured)

    @property
    def is_configured(self) -> bool:
        return any(p.configured for p in self.providers.values())


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment (call once at startup)."""
    env = os.environ if env is None else env

    providers = {}
    for name, p in PROVIDERS.items():
        base_url = env.get(p.get("base_url_env", ""), "") or p["base_url"]
        providers[name] = ProviderSettings(
            name=name,
            role=p.get("role", SECONDARY),
            base_url=base_url,
            api_key=env.get(p.get("api_key_env", ""), ""),
            headers=dict(p.get("headers") or {}),
        )

    settings = Settings(
        providers=providers,
        timeout_sec=float(env.get("AI_TIMEOUT_SEC", DEFAULTS.get("timeout_sec", 90))),
        max_tokens=int(env.get("AI_MAX_TOKENS", DEFAULTS.get("max_tokens", 1024))),
        enhanced_max_tokens=int(env.get("AI_ENHANCED_MAX_TOKENS", DEFAULTS.get("enhanced_max_tokens", 2000))),
        temperature=float(env.get("AI_TEMPERATURE", DEFAULTS.get("temperature", 0.7))),
        max_attempts=int(env.get("AI_MAX_RETRIES", DEFAULTS.get("max_attempts", 3))),
        initial_backoff_ms=int(env.get("AI_INITIAL_BACKOFF_MS", DEFAULTS.get("initial_backoff_ms", 1000))),
        chain_walk_retry=str(env.get("CHAIN_WALK_RETRY", "0")).strip() == "1",
    )

    logger.info(
        "Settings loaded: "
        + ", ".join(f"{n}_configured={p.configured}" for n, p in providers.items())
        + f", timeout={settings.timeout_sec}s, chain_walk_retry={settings.chain_walk_retry}"
    )
    if not settings.is_configured:
        logger.warning("No AI provider keys configured. Set OPENROUTER_API_KEY and/or GROQ_API_KEY.")

    return settings
