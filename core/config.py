from pathlib import Path
from dotenv import load_dotenv
from pydantic import Field, ValidationError, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the project root directory (where main.py is)
ROOT_DIR = Path(__file__).parent.parent

dotenv_path = ROOT_DIR / ".env"

# Preload the environment variables; a missing .env is fine when the
# process environment already carries the settings (docker, systemd)
if dotenv_path.exists():
    load_dotenv(dotenv_path)


class ConfigError(Exception):
    """Raised at startup when required settings are absent or malformed"""


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "infinite_plex.log"
    WEBHOOK_PORT: int = 3000

    # Radarr
    RADARR_URL: str
    RADARR_API_KEY: str
    RADARR_MONITOR_TAG_NAME: str

    # 4K Radarr (optional)
    RADARR_4K_URL: str = ""
    RADARR_4K_API_KEY: str = Field("", validate_default=True)
    RADARR_4K_MOVIE_FOLDER: str = Field("", validate_default=True)
    RADARR_4K_QUALITY_PROFILE_ID: int | None = Field(None, validate_default=True)

    # Sonarr
    SONARR_URL: str
    SONARR_API_KEY: str
    SONARR_MONITOR_TAG_NAME: str

    # Tautulli
    TAUTULLI_URL: str
    TAUTULLI_API_KEY: str
    TAUTULLI_STREAM_TERMINATED_MESSAGE: str = (
        "This title is now available. Please restart playback to watch the real file."
    )

    # Plex
    PLEX_URL: str
    PLEX_TOKEN: str
    PLEX_MOVIE_LIBRARY_ID: int
    PLEX_SERIES_LIBRARY_ID: int

    # Placeholder storage and the media tree Plex scans
    DUMMY_FILE_LOCATION: str
    MOVIE_FOLDER_DUMMY: str
    SERIES_FOLDER_DUMMY: str
    PLEX_MOVIE_FOLDER: str
    PLEX_SERIES_FOLDER: str

    # Availability monitor
    CHECK_INTERVAL: int = 5
    MAX_MONITOR_ATTEMPTS: int = 60

    # Seconds before an upstream HTTP call is abandoned
    REQUEST_TIMEOUT: int = 30

    model_config = SettingsConfigDict(
        env_file=str(dotenv_path),
        env_file_encoding='utf-8',
        extra="ignore",  # Ignore extra values not defined in the model
        case_sensitive=True,
    )

    @field_validator('*', mode='before')
    @classmethod
    def clean_string_values(cls, v):
        """Clean string values by removing comments and extra whitespace"""
        if isinstance(v, str):
            # Split on # but only if it's not part of a URL
            if '#' in v and not ('http://' in v or 'https://' in v):
                v = v.split('#')[0].strip()
            else:
                v = v.strip()
        return v

    @field_validator(
        'RADARR_API_KEY', 'RADARR_MONITOR_TAG_NAME', 'SONARR_API_KEY', 'SONARR_MONITOR_TAG_NAME',
        'TAUTULLI_API_KEY', 'PLEX_TOKEN', 'DUMMY_FILE_LOCATION', 'MOVIE_FOLDER_DUMMY',
        'SERIES_FOLDER_DUMMY', 'PLEX_MOVIE_FOLDER', 'PLEX_SERIES_FOLDER',
    )
    @classmethod
    def require_value(cls, v):
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator('RADARR_4K_QUALITY_PROFILE_ID', mode='before')
    @classmethod
    def empty_profile_is_unset(cls, v):
        if isinstance(v, str) and not v.split('#')[0].strip():
            return None
        return v

    @field_validator('PLEX_URL', 'RADARR_URL', 'SONARR_URL', 'TAUTULLI_URL')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"Invalid URL: {v}")
        return v.rstrip('/')

    @field_validator('RADARR_4K_URL')
    @classmethod
    def validate_optional_url(cls, v):
        if v and not v.startswith(('http://', 'https://')):
            raise ValueError(f"Invalid URL: {v}")
        return v.rstrip('/')

    @field_validator('RADARR_4K_API_KEY', 'RADARR_4K_MOVIE_FOLDER', 'RADARR_4K_QUALITY_PROFILE_ID')
    @classmethod
    def require_with_4k_url(cls, v, info: ValidationInfo):
        # Counted with the missing keys by load_settings
        if info.data.get('RADARR_4K_URL') and v in ("", None):
            raise PydanticCustomError('missing', 'Field required once RADARR_4K_URL is set')
        return v

    @property
    def has_4k_support(self) -> bool:
        return bool(self.RADARR_4K_URL)


def load_settings(**overrides) -> Settings:
    """
    Build the settings, collecting every missing or malformed key into a
    single ConfigError instead of failing on the first one.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        missing, invalid = [], []
        for error in e.errors():
            key = ".".join(str(part) for part in error['loc']) or "settings"
            if error['type'] == 'missing':
                missing.append(key)
            else:
                invalid.append(f"{key} ({error['msg']})")
        parts = []
        if missing:
            parts.append(f"Config is missing the following keys: {', '.join(missing)}")
        if invalid:
            parts.append(f"Config has invalid values: {', '.join(invalid)}")
        raise ConfigError("; ".join(parts)) from e


settings = load_settings()
