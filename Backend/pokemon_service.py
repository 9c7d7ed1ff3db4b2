"""
Pokémon catalog backed by a local cache table.

Lookups by id/name are cache-first and backfill from PokéAPI on a miss.
Random selection only ever reads the cache; run ``seed_db.py`` to warm it.
"""

import json
import logging
import math
import random
from datetime import timedelta
from typing import Optional

import requests
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from database import with_timestamps
from errors import BadRequestError, NotFoundError
from models import PokemonCache, utcnow

logger = logging.getLogger(__name__)

USER_AGENT = "WhosThatPokemon/1.0"

# (generation, first id, last id)
GENERATION_RANGES = (
    (1, 1, 151),
    (2, 152, 251),
    (3, 252, 386),
    (4, 387, 493),
    (5, 494, 649),
    (6, 650, 721),
    (7, 722, 809),
    (8, 810, 905),
    (9, 906, 1008),
)

ROMAN_NUMERALS = ("I", "II", "III", "IV", "V", "VI", "VII", "VIII", "IX")

TYPE_COLORS = {
    "normal": "#A8A878",
    "fire": "#F08030",
    "water": "#6890F0",
    "electric": "#F8D030",
    "grass": "#78C850",
    "ice": "#98D8D8",
    "fighting": "#C03028",
    "poison": "#A040A0",
    "ground": "#E0C068",
    "flying": "#A890F0",
    "psychic": "#F85888",
    "bug": "#A8B820",
    "rock": "#B8A038",
    "ghost": "#705898",
    "dragon": "#7038F8",
    "dark": "#705848",
    "steel": "#B8B8D0",
    "fairy": "#EE99AC",
}
DEFAULT_TYPE_COLOR = "#A8A878"
POKEMON_TYPES = list(TYPE_COLORS)

# tier -> (legendary allowed, mythical allowed, highest generation or None)
DIFFICULTY_RULES = {
    "easy": (False, False, 2),
    "medium": (False, False, None),
    "hard": (True, False, None),
    "expert": (True, True, None),
}

FALLBACK_CHOICES = ("pikachu", "charizard", "blastoise", "venusaur")
CHOICE_COUNT = 4

HINT_COSTS = {
    "flavor_text": 15,
    "type": 10,
    "height_weight": 8,
    "evolution": 12,
    "generation": 3,
}


# ── Static lookups ───────────────────────────────────────────────

def generation_for_id(pokemon_id: int) -> int:
    """Generation a national-dex id belongs to; ids past the table clamp to the last one."""
    for generation, _, last_id in GENERATION_RANGES:
        if pokemon_id <= last_id:
            return generation
    return GENERATION_RANGES[-1][0]


def id_range_for_generation(generation: int) -> tuple:
    for gen, first_id, last_id in GENERATION_RANGES:
        if gen == generation:
            return first_id, last_id
    raise BadRequestError(f"Unknown generation: {generation}")


def type_color(type_name: str) -> str:
    return TYPE_COLORS.get(type_name, DEFAULT_TYPE_COLOR)


# ── Serialization ────────────────────────────────────────────────

def _loads(value, default):
    if value is None or value == "":
        return default
    if isinstance(value, (list, dict)):
        return value
    return json.loads(value)


def serialize_pokemon(row) -> dict:
    """Public shape of a cache row (ORM object or result mapping)."""
    get = row.get if isinstance(row, dict) else lambda key: getattr(row, key)
    return {
        "id": get("id"),
        "name": get("name"),
        "sprite_url": get("sprite_url") or "",
        "types": _loads(get("types"), []),
        "stats": _loads(get("stats"), {}),
        "abilities": _loads(get("abilities"), []),
        "height": get("height"),
        "weight": get("weight"),
        "base_experience": get("base_experience"),
        "is_legendary": bool(get("is_legendary")),
        "is_mythical": bool(get("is_mythical")),
        "generation": get("generation"),
        "description": get("description"),
        "evolves_to": get("evolves_to"),
    }


# ── PokéAPI ──────────────────────────────────────────────────────

def _get_json(url: str) -> Optional[dict]:
    """GET a PokéAPI resource; None on 404 or any transport/HTTP failure."""
    try:
        resp = requests.get(url, timeout=config.HTTP_TIMEOUT, headers={"User-Agent": USER_AGENT})
    except requests.RequestException as exc:
        logger.warning("PokéAPI request failed for %s: %s", url, exc)
        return None
    if resp.status_code == 404:
        return None
    if resp.status_code >= 400:
        logger.warning("PokéAPI returned %d for %s", resp.status_code, url)
        return None
    try:
        return resp.json()
    except ValueError:
        logger.warning("PokéAPI returned invalid JSON for %s", url)
        return None


def _english_flavor_text(species: dict) -> Optional[str]:
    for entry in species.get("flavor_text_entries", []):
        if entry.get("language", {}).get("name") == "en":
            return " ".join(entry.get("flavor_text", "").split())
    return None


def _next_evolution(chain: dict, species_name: str) -> Optional[str]:
    """Name of the first species ``species_name`` evolves into, if any."""
    node = chain.get("chain")
    stack = [node] if node else []
    while stack:
        node = stack.pop()
        if node["species"]["name"] == species_name:
            evolves_to = node.get("evolves_to") or []
            return evolves_to[0]["species"]["name"] if evolves_to else None
        stack.extend(node.get("evolves_to") or [])
    return None


def transform_pokeapi_data(data: dict, species: Optional[dict] = None,
                           evolves_to: Optional[str] = None) -> dict:
    """Map a PokéAPI ``pokemon`` payload (plus optional species data) onto a cache row."""
    species = species or {}
    now = utcnow()
    types = [
        {"name": t["type"]["name"], "color": type_color(t["type"]["name"])}
        for t in sorted(data.get("types", []), key=lambda t: t.get("slot", 0))
    ]
    stats = {s["stat"]["name"]: s["base_stat"] for s in data.get("stats", [])}
    abilities = [a["ability"]["name"] for a in data.get("abilities", [])]

    if evolves_to and evolves_to.lower() == data["name"].lower():
        evolves_to = None

    return {
        "id": data["id"],
        "name": data["name"],
        "sprite_url": (data.get("sprites") or {}).get("front_default") or "",
        "types": json.dumps(types),
        "stats": json.dumps(stats),
        "abilities": json.dumps(abilities),
        # PokéAPI reports decimetres and hectograms
        "height": (data.get("height") or 0) / 10,
        "weight": (data.get("weight") or 0) / 10,
        "base_experience": data.get("base_experience") or 0,
        "is_legendary": bool(species.get("is_legendary", False)),
        "is_mythical": bool(species.get("is_mythical", False)),
        "generation": generation_for_id(data["id"]),
        "description": _english_flavor_text(species) if species else None,
        "evolves_to": evolves_to,
        "cached_at": now,
        "expires_at": now + timedelta(seconds=config.POKEMON_CACHE_TTL),
    }


def fetch_from_pokeapi(identifier) -> Optional[dict]:
    """Fetch and transform one Pokémon by id or name; None if it cannot be fetched."""
    base = config.POKEAPI_BASE_URL
    data = _get_json(f"{base}/pokemon/{str(identifier).lower()}")
    if not data:
        return None

    species = _get_json(f"{base}/pokemon-species/{data['id']}") or {}
    evolves_to = None
    chain_url = (species.get("evolution_chain") or {}).get("url")
    if chain_url:
        chain = _get_json(chain_url)
        if chain:
            evolves_to = _next_evolution(chain, species.get("name", data["name"]))

    return transform_pokeapi_data(data, species, evolves_to)


# ── Cache ────────────────────────────────────────────────────────

_UPSERT_SQL = with_timestamps(
    text(
        """
        INSERT INTO pokemon_cache
            (id, name, sprite_url, types, stats, abilities, height, weight, base_experience,
             is_legendary, is_mythical, generation, description, evolves_to, cached_at, expires_at)
        VALUES
            (:id, :name, :sprite_url, :types, :stats, :abilities, :height, :weight, :base_experience,
             :is_legendary, :is_mythical, :generation, :description, :evolves_to, :cached_at, :expires_at)
        ON CONFLICT (id) DO UPDATE SET
            sprite_url = excluded.sprite_url,
            types = excluded.types,
            stats = excluded.stats,
            abilities = excluded.abilities,
            height = excluded.height,
            weight = excluded.weight,
            base_experience = excluded.base_experience,
            is_legendary = excluded.is_legendary,
            is_mythical = excluded.is_mythical,
            description = excluded.description,
            evolves_to = excluded.evolves_to,
            cached_at = excluded.cached_at,
            expires_at = excluded.expires_at
        """
    ),
    "cached_at",
    "expires_at",
)


def cache_pokemon(db: Session, record: dict) -> bool:
    """Upsert a record into the cache. Failures are logged, never raised."""
    try:
        with db.begin_nested():
            db.execute(_UPSERT_SQL, record)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Failed to cache Pokémon %s: %s", record.get("name"), exc)
        return False
    return True


def get_by_id(db: Session, pokemon_id: int) -> Optional[dict]:
    row = db.get(PokemonCache, pokemon_id)
    if row is not None:
        return serialize_pokemon(row)

    record = fetch_from_pokeapi(pokemon_id)
    if record is None:
        return None
    cache_pokemon(db, record)
    return serialize_pokemon(record)


def get_by_name(db: Session, name: str) -> Optional[dict]:
    name = name.strip().lower()
    row = db.query(PokemonCache).filter(func.lower(PokemonCache.name) == name).first()
    if row is not None:
        return serialize_pokemon(row)

    record = fetch_from_pokeapi(name)
    if record is None:
        return None
    cache_pokemon(db, record)
    return serialize_pokemon(record)


# ── Queries ──────────────────────────────────────────────────────

def _type_pattern(type_name: str) -> str:
    return f'%"name": "{type_name.lower()}"%'


def list_pokemon(db: Session, page: int = 1, limit: int = 20, generation: Optional[int] = None,
                 type_name: Optional[str] = None, search: Optional[str] = None) -> dict:
    conditions, params = [], {}
    if generation:
        conditions.append("generation = :generation")
        params["generation"] = generation
    if type_name:
        conditions.append("types LIKE :type_pattern")
        params["type_pattern"] = _type_pattern(type_name)
    if search:
        conditions.append("LOWER(name) LIKE :search")
        params["search"] = f"%{search.strip().lower()}%"
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    offset = (page - 1) * limit
    rows = db.execute(
        text(f"SELECT * FROM pokemon_cache {where} ORDER BY id LIMIT :limit OFFSET :offset"),
        {**params, "limit": limit, "offset": offset},
    ).mappings().fetchall()
    total = db.execute(text(f"SELECT COUNT(*) FROM pokemon_cache {where}"), params).scalar() or 0

    return {
        "pokemon": [serialize_pokemon(dict(r)) for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if limit else 0,
        },
    }


def search(db: Session, query: str, limit: int = 20) -> list:
    rows = db.execute(
        text(
            """
            SELECT * FROM pokemon_cache
            WHERE LOWER(name) LIKE :pattern
            ORDER BY name
            LIMIT :limit
            """
        ),
        {"pattern": f"%{query.strip().lower()}%", "limit": limit},
    ).mappings().fetchall()
    return [serialize_pokemon(dict(r)) for r in rows]


def _difficulty_conditions(difficulty: str) -> tuple:
    if difficulty not in DIFFICULTY_RULES:
        raise BadRequestError(f"Unknown difficulty: {difficulty}")
    allow_legendary, allow_mythical, max_generation = DIFFICULTY_RULES[difficulty]
    conditions, params = [], {}
    if not allow_legendary:
        conditions.append("is_legendary = :no_legendary")
        params["no_legendary"] = False
    if not allow_mythical:
        conditions.append("is_mythical = :no_mythical")
        params["no_mythical"] = False
    if max_generation is not None:
        conditions.append("id <= :max_id")
        params["max_id"] = id_range_for_generation(max_generation)[1]
    return conditions, params


def get_random(db: Session, difficulty: str = "medium", generation: Optional[int] = None,
               type_name: Optional[str] = None) -> dict:
    """
    Pick one cached Pokémon uniformly at random among those the difficulty allows,
    and build its multiple-choice answers and hints.
    """
    conditions, params = _difficulty_conditions(difficulty)
    if generation:
        first_id, last_id = id_range_for_generation(generation)
        conditions.append("id BETWEEN :first_id AND :last_id")
        params.update(first_id=first_id, last_id=last_id)
    if type_name:
        conditions.append("types LIKE :type_pattern")
        params["type_pattern"] = _type_pattern(type_name)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    row = db.execute(
        text(f"SELECT * FROM pokemon_cache {where} ORDER BY RANDOM() LIMIT 1"), params
    ).mappings().fetchone()
    if row is None:
        raise NotFoundError("No Pokémon found matching criteria")

    pokemon = serialize_pokemon(dict(row))
    return {
        "pokemon": pokemon,
        "choices": generate_choices(db, pokemon["name"], pokemon["generation"]),
        "correct_answer": pokemon["name"],
        "hints": generate_hints(pokemon),
    }


def generate_choices(db: Session, correct_name: str, generation: int) -> list:
    """The correct name plus three distinct same-generation decoys, shuffled."""
    try:
        with db.begin_nested():
            others = db.execute(
                text(
                    """
                    SELECT name FROM pokemon_cache
                    WHERE generation = :generation AND name != :name
                    ORDER BY RANDOM()
                    LIMIT :count
                    """
                ),
                {"generation": generation, "name": correct_name, "count": CHOICE_COUNT - 1},
            ).scalars().all()
    except SQLAlchemyError as exc:
        logger.warning("Choice query failed, using fallback names: %s", exc)
        others = []

    choices = [correct_name] + list(others)
    for name in FALLBACK_CHOICES:
        if len(choices) >= CHOICE_COUNT:
            break
        if name not in choices:
            choices.append(name)

    random.shuffle(choices)
    return choices


def generate_hints(pokemon: dict) -> list:
    """Ordered hints, most to least revealing context first."""
    hints = []

    if pokemon.get("description"):
        hints.append({
            "type": "flavor_text",
            "content": f'Pokédex Entry: "{pokemon["description"]}"',
            "cost": HINT_COSTS["flavor_text"],
        })

    types = pokemon.get("types") or []
    if types:
        type_names = "/".join(t["name"].capitalize() for t in types)
        hints.append({
            "type": "type",
            "content": f"This Pokémon is {type_names}-type.",
            "cost": HINT_COSTS["type"],
        })

    hints.append({
        "type": "height_weight",
        "content": f"It is {pokemon.get('height', 0)}m tall and weighs {pokemon.get('weight', 0)}kg.",
        "cost": HINT_COSTS["height_weight"],
    })

    evolves_to = pokemon.get("evolves_to")
    if evolves_to and evolves_to.lower() != pokemon["name"].lower():
        hints.append({
            "type": "evolution",
            "content": f"It evolves into {evolves_to.capitalize()}.",
            "cost": HINT_COSTS["evolution"],
        })

    generation = pokemon.get("generation")
    if generation:
        label = ROMAN_NUMERALS[generation - 1] if 1 <= generation <= len(ROMAN_NUMERALS) else str(generation)
        hints.append({
            "type": "generation",
            "content": f"This Pokémon was first introduced in Generation {label}.",
            "cost": HINT_COSTS["generation"],
        })

    return hints
