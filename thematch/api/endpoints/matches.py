from fastapi import APIRouter, Depends, status

from thematch.api.dependencies import get_current_actor, get_tournament_service
from thematch.models.bracket_model import TournamentBracket
from thematch.models.tournament_model import Actor
from thematch.schemas import bracket_schemas, match_schemas
from thematch.services.status_service import status_display
from thematch.services.tournament_service import TournamentService

router = APIRouter()


@router.get("/{match_id}/status", response_model=match_schemas.MatchStatusRead)
def get_match_status_endpoint(
    match_id: str,
    service: TournamentService = Depends(get_tournament_service),
):
    return {"match_id": match_id, **service.get_match_status(match_id)}


@router.post("/{match_id}/status/refresh", response_model=match_schemas.MatchStatusRead)
def refresh_match_status_endpoint(
    match_id: str,
    service: TournamentService = Depends(get_tournament_service),
    current_actor: Actor = Depends(get_current_actor),
):
    computed = service.refresh_status(match_id, current_actor)
    return {"match_id": match_id, **status_display(computed)}


@router.patch("/{match_id}/status", response_model=match_schemas.MatchStatusRead)
def change_match_status_endpoint(
    match_id: str,
    status_in: match_schemas.MatchStatusUpdate,
    service: TournamentService = Depends(get_tournament_service),
    current_actor: Actor = Depends(get_current_actor),
):
    updated = service.change_status(match_id, status_in.status, current_actor, reason=status_in.reason)
    return {"match_id": match_id, **status_display(updated.status)}


@router.post("/{match_id}/bracket", response_model=TournamentBracket, status_code=status.HTTP_201_CREATED)
def create_bracket_endpoint(
    match_id: str,
    bracket_in: bracket_schemas.BracketCreate,
    service: TournamentService = Depends(get_tournament_service),
    current_actor: Actor = Depends(get_current_actor),
):
    return service.create_bracket(
        match_id,
        current_actor,
        entrants=bracket_in.entrants,
        name=bracket_in.name,
        legs=bracket_in.legs,
    )


@router.get("/{match_id}/bracket", response_model=TournamentBracket)
def get_bracket_endpoint(
    match_id: str,
    service: TournamentService = Depends(get_tournament_service),
):
    return service.get_bracket(match_id)
