from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # App settings
    app_name: str = "Fantasy Hub Player Integration"
    debug: bool = True

    # Sleeper (league platform)
    sleeper_base_url: str = "https://api.sleeper.app/v1"
    sleeper_league_id: str = "1240184286171107328"
    sleeper_sport: str = "clubsoccer:epl"

    # Fantasy Football Hub (prediction provider)
    ffh_base_url: str = "https://data.fantasyfootballhub.co.uk/api"
    ffh_auth_static: Optional[str] = None
    ffh_bearer_token: Optional[str] = None
    ffh_max_players: int = 99999
    ffh_results_season: Optional[int] = None  # None: the season in progress today

    # HTTP timeouts (seconds) - a source call past this is a failed source
    source_timeout_seconds: float = 8.0
    ruleset_timeout_seconds: float = 5.0

    # Matching / conversion
    allow_heuristic_matching: bool = True
    max_concurrency: int = 16
    season_length: int = 38
    current_gameweek: Optional[int] = None
    default_ruleset: str = "league"

    # Cache TTLs per key class (seconds)
    cache_ttl_predictions: int = 600          # 10 minutes
    cache_ttl_rosters: int = 120              # 2 minutes
    cache_ttl_matches: int = 86400            # 24 hours
    cache_ttl_ratios: int = 604800            # 7 days
    cache_ttl_default: int = 300              # 5 minutes
    cache_cleanup_interval_minutes: int = 10

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
