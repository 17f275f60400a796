# scorecast/models/types.py
from typing_extensions import TypedDict, Literal
from typing import Optional
from datetime import datetime

SeasonType = Literal["PRE", "REG", "POST"]
GameStatus = Literal["SCHEDULED", "IN_PROGRESS", "FINAL"]
PredictionMode = Literal["historical", "predicted"]

SEASON_TYPES = ("PRE", "REG", "POST")
PREDICTABLE_SEASON_TYPES = ("REG", "POST")

# Metric columns of a team statistic snapshot, in storage order.
STAT_METRICS = (
    "off_points_per_game",
    "off_total_yards_per_game",
    "off_passing_yards_per_game",
    "off_rushing_yards_per_game",
    "off_red_zone_efficiency",
    "off_third_down_efficiency",
    "off_turnovers_per_game",
    "off_time_of_possession",
    "def_points_allowed_per_game",
    "def_total_yards_allowed_per_game",
    "def_passing_yards_allowed_per_game",
    "def_rushing_yards_allowed_per_game",
    "def_red_zone_efficiency",
    "def_third_down_efficiency",
    "def_turnovers_forced_per_game",
    "def_sacks_per_game",
    "turnover_margin",
    "penalty_yards_per_game",
)


class Team(TypedDict):
    id: str
    name: str
    abbreviation: str


class TeamAlias(TypedDict):
    provider: str
    alias: str
    team_id: str


class GameRecord(TypedDict):
    year: int
    week: int
    season_type: SeasonType
    home_team_id: str
    away_team_id: str
    kickoff_time: Optional[datetime]
    status: GameStatus
    home_score: Optional[int]
    away_score: Optional[int]
    home_offensive_yards: Optional[int]
    away_offensive_yards: Optional[int]


class TeamStatsRecord(TypedDict, total=False):
    team_id: str
    year: int
    as_of_week: int
    off_points_per_game: float
    off_total_yards_per_game: float
    off_passing_yards_per_game: float
    off_rushing_yards_per_game: float
    off_red_zone_efficiency: float
    off_third_down_efficiency: float
    off_turnovers_per_game: float
    off_time_of_possession: float
    def_points_allowed_per_game: float
    def_total_yards_allowed_per_game: float
    def_passing_yards_allowed_per_game: float
    def_rushing_yards_allowed_per_game: float
    def_red_zone_efficiency: float
    def_third_down_efficiency: float
    def_turnovers_forced_per_game: float
    def_sacks_per_game: float
    turnover_margin: float
    penalty_yards_per_game: float


class UserPredictionRow(TypedDict, total=False):
    id: str
    user_id: str
    home_team_id: str
    away_team_id: str
    game_id: Optional[str]
    season_year: int
    mode: PredictionMode
    predicted_home_score: float
    predicted_away_score: float
    actual_home_score: Optional[int]
    actual_away_score: Optional[int]
    was_accurate: Optional[bool]


class ModelPredictionRow(TypedDict, total=False):
    user_prediction_id: str
    home_team_features: dict
    away_team_features: dict
    feature_vector: list
    model_version: str
