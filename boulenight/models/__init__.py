from boulenight.models.confirmation import ConfirmationStatus, MatchResultConfirmation
from boulenight.models.match import FINISHED_STATUSES, Match, MatchPlayer, MatchStatus, MatchTeam, TeamSide
from boulenight.models.night import DrawMode, Night, NightAttendance
from boulenight.models.player import Player
from boulenight.models.ranking import Ranking
from boulenight.models.round import Round, RoundBye
from boulenight.models.team import Team, TeamMember

__all__ = [
    "Player",
    "Night",
    "NightAttendance",
    "DrawMode",
    "Round",
    "RoundBye",
    "Match",
    "MatchTeam",
    "MatchPlayer",
    "MatchStatus",
    "TeamSide",
    "FINISHED_STATUSES",
    "MatchResultConfirmation",
    "ConfirmationStatus",
    "Team",
    "TeamMember",
    "Ranking",
]
