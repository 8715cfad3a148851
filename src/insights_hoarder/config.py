"""Configuration management for insights_hoarder."""

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from insights_hoarder.codec import HistoryFormat, parse_format


class Settings(BaseSettings):
    """Job settings from GitHub Actions inputs, environment and .env file.

    Inputs arrive as ``INPUT_<NAME>`` variables. Blank inputs fall back to
    defaults, and owner/repository defaults come from ``GITHUB_REPOSITORY``.
    """

    model_config = SettingsConfigDict(
        env_prefix="INPUT_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
    )

    insights_token: str = ""
    commit_token: str = ""
    owner: str = ""
    repository: str = ""
    all_repos: bool = False
    hoard_owner: str = ""
    hoard_repo: str = ""
    branch: str = "repository-insights"
    directory: str = ".insights"
    format: str = "csv"
    max_retries: int = Field(default=6, ge=0)

    github_repository: str = Field(default="", validation_alias="GITHUB_REPOSITORY")
    github_actions: bool = Field(default=False, validation_alias="GITHUB_ACTIONS")

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: str) -> str:
        return str(value).strip().lower()

    @model_validator(mode="after")
    def _apply_context_defaults(self) -> "Settings":
        context_owner, _, context_repo = self.github_repository.partition("/")
        self.commit_token = self.commit_token or self.insights_token
        self.owner = self.owner or context_owner
        self.repository = self.repository or context_repo
        self.hoard_owner = self.hoard_owner or context_owner
        self.hoard_repo = self.hoard_repo or context_repo
        return self

    @property
    def history_format(self) -> HistoryFormat:
        """Validated history format.

        Raises:
            UnsupportedFormatError: If ``format`` is not json or csv.
        """
        return parse_format(self.format)


def get_settings(**overrides) -> Settings:
    """Get application settings instance.

    Args:
        **overrides: Values taking precedence over the environment; None
            values are ignored.

    Returns:
        Settings loaded from environment and config files.
    """
    return Settings(**{key: value for key, value in overrides.items() if value is not None})
