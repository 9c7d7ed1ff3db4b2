"""
Pokémon catalog routes, served from the local cache with PokéAPI fallback.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

import pokemon_service
from database import get_db
from errors import NotFoundError
from schemas import ApiResponse, Difficulty, PokemonList, PokemonOut, RandomPokemon, TypeTag, ok

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pokemon", tags=["Pokemon"])


@router.get("", response_model=ApiResponse[PokemonList])
def list_pokemon(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    generation: Optional[int] = Query(None, ge=1, le=9),
    type: Optional[str] = Query(None, max_length=20),
    search: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
):
    return ok(pokemon_service.list_pokemon(db, page, limit, generation, type, search))


@router.get("/search", response_model=ApiResponse[list[PokemonOut]])
def search_pokemon(q: str = Query(..., min_length=1, max_length=100),
                   limit: int = Query(20, ge=1, le=100),
                   db: Session = Depends(get_db)):
    return ok(pokemon_service.search(db, q, limit))


@router.get("/random", response_model=ApiResponse[RandomPokemon])
def random_pokemon(difficulty: Difficulty = "medium",
                   generation: Optional[int] = Query(None, ge=1, le=9),
                   type: Optional[str] = Query(None, max_length=20),
                   db: Session = Depends(get_db)):
    return ok(pokemon_service.get_random(db, difficulty, generation, type))


@router.get("/types", response_model=ApiResponse[list[TypeTag]])
def list_types():
    return ok([{"name": name, "color": pokemon_service.type_color(name)} for name in pokemon_service.POKEMON_TYPES])


@router.get("/name/{name}", response_model=ApiResponse[PokemonOut])
def pokemon_by_name(name: str, db: Session = Depends(get_db)):
    pokemon = pokemon_service.get_by_name(db, name)
    if pokemon is None:
        raise NotFoundError("Pokemon not found")
    return ok(pokemon)


@router.get("/{pokemon_id}", response_model=ApiResponse[PokemonOut])
def pokemon_by_id(pokemon_id: int, db: Session = Depends(get_db)):
    pokemon = pokemon_service.get_by_id(db, pokemon_id)
    if pokemon is None:
        raise NotFoundError("Pokemon not found")
    return ok(pokemon)
