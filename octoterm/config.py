"""Configuration management."""

import os
from dataclasses import dataclass
from enum import Enum

from dotenv import load_dotenv

from .errors import AuthenticationError

load_dotenv()

DEFAULT_API_URL = "https://api.github.com"


class HydrationPolicy(Enum):
    """What a refresh does when a single notification fails to hydrate."""
    STRICT = "strict"    # abort the whole refresh
    DEGRADE = "degrade"  # keep the notification with an Unknown target


class SortMode(Enum):
    """Ordering applied to the hydrated inbox."""
    RECENCY = "recency"
    RELEVANCE = "relevance"


@dataclass
class GitHubConfig:
    """GitHub API configuration."""
    token: str
    api_url: str
    graphql_url: str
    timeout_seconds: float
    per_page: int = 50  # REST maximum for the notifications endpoint


@dataclass
class PipelineConfig:
    """Refresh pipeline configuration."""
    max_concurrent_requests: int = 10
    hydration_policy: HydrationPolicy = HydrationPolicy.STRICT
    sort_mode: SortMode = SortMode.RECENCY


@dataclass
class AppConfig:
    """Complete application configuration."""
    github: GitHubConfig
    pipeline: PipelineConfig


def _int_env(key: str, default: int, minimum: int = 1) -> int:
    """Parse a positive integer from an environment variable."""
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def _choice_env(key: str, enum_type, default):
    raw = os.getenv(key, "").strip().lower()
    if not raw:
        return default
    try:
        return enum_type(raw)
    except ValueError:
        choices = ", ".join(member.value for member in enum_type)
        raise ValueError(f"{key} must be one of: {choices} (got {raw!r})") from None


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Raises:
        AuthenticationError: If GITHUB_TOKEN is not set.
        ValueError: If a configuration value is malformed.
    """
    token = os.getenv("GITHUB_TOKEN", "").strip()
    if not token:
        raise AuthenticationError(
            "GITHUB_TOKEN is not set. Create a personal access token with the "
            "'notifications' and 'repo' scopes and export it as GITHUB_TOKEN."
        )

    api_url = os.getenv("GITHUB_API_URL", DEFAULT_API_URL).strip().rstrip("/")
    graphql_url = os.getenv("GITHUB_GRAPHQL_URL", "").strip() or f"{api_url}/graphql"

    github = GitHubConfig(
        token=token,
        api_url=api_url,
        graphql_url=graphql_url,
        timeout_seconds=_float_env("HTTP_TIMEOUT_SECONDS", 30.0),
        per_page=_int_env("NOTIFICATIONS_PER_PAGE", 50),
    )
    if github.per_page > 50:
        raise ValueError(f"NOTIFICATIONS_PER_PAGE must be <= 50, got {github.per_page}")

    pipeline = PipelineConfig(
        max_concurrent_requests=_int_env("MAX_CONCURRENT_REQUESTS", 10),
        hydration_policy=_choice_env("HYDRATION_POLICY", HydrationPolicy, HydrationPolicy.STRICT),
        sort_mode=_choice_env("SORT_MODE", SortMode, SortMode.RECENCY),
    )

    return AppConfig(
        github=github,
        pipeline=pipeline,
    )
