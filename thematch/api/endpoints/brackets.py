from typing import List

from fastapi import APIRouter, Depends

from thematch.api.dependencies import get_current_actor, get_tournament_service
from thematch.models.bracket_model import Standing
from thematch.models.tournament_model import Actor
from thematch.schemas import bracket_schemas
from thematch.services.tournament_service import TournamentService

router = APIRouter()


@router.post("/{bracket_id}/matches/{bracket_match_id}/start", response_model=bracket_schemas.ProgressionRead)
def start_match_endpoint(
    bracket_id: str,
    bracket_match_id: str,
    service: TournamentService = Depends(get_tournament_service),
    current_actor: Actor = Depends(get_current_actor),
):
    return service.start_match(bracket_id, bracket_match_id, current_actor)


@router.post("/{bracket_id}/matches/{bracket_match_id}/result", response_model=bracket_schemas.ProgressionRead)
def record_result_endpoint(
    bracket_id: str,
    bracket_match_id: str,
    result_in: bracket_schemas.ScoreSubmission,
    service: TournamentService = Depends(get_tournament_service),
    current_actor: Actor = Depends(get_current_actor),
):
    return service.record_result(
        bracket_id, bracket_match_id, result_in.team1_score, result_in.team2_score, current_actor
    )


@router.put("/{bracket_id}/matches/{bracket_match_id}/live-score", response_model=bracket_schemas.ProgressionRead)
def update_live_score_endpoint(
    bracket_id: str,
    bracket_match_id: str,
    score_in: bracket_schemas.ScoreSubmission,
    service: TournamentService = Depends(get_tournament_service),
    current_actor: Actor = Depends(get_current_actor),
):
    return service.update_live_score(
        bracket_id, bracket_match_id, score_in.team1_score, score_in.team2_score, current_actor
    )


@router.get("/{bracket_id}/standings", response_model=List[Standing])
def get_standings_endpoint(
    bracket_id: str,
    service: TournamentService = Depends(get_tournament_service),
):
    return service.get_standings(bracket_id)
