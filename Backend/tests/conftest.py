import json
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["NEW_RELIC_CONFIG_FILE"] = ""
os.environ["GOOGLE_CLIENT_ID"] = "client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "client-secret"
os.environ["GOOGLE_REDIRECT_URI"] = "http://localhost:5173/auth/callback"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import app
from database import enable_sqlite_savepoints, get_db, init_db
from models import PokemonCache, User, new_id, utcnow
from pokemon_service import generation_for_id, type_color
from security import ACCESS, create_token

# id, name, types, legendary, mythical
POKEDEX = [
    (1, "bulbasaur", ["grass", "poison"], False, False),
    (4, "charmander", ["fire"], False, False),
    (7, "squirtle", ["water"], False, False),
    (25, "pikachu", ["electric"], False, False),
    (144, "articuno", ["ice", "flying"], True, False),
    (150, "mewtwo", ["psychic"], True, False),
    (151, "mew", ["psychic"], False, True),
    (152, "chikorita", ["grass"], False, False),
    (155, "cyndaquil", ["fire"], False, False),
]


class FakeResponse:
    """Stand-in for requests.Response."""

    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


def make_pokemon(pokemon_id, name, types=("normal",), legendary=False, mythical=False, **extra):
    now = utcnow()
    fields = dict(
        id=pokemon_id,
        name=name,
        sprite_url=f"https://img.example/{pokemon_id}.png",
        types=json.dumps([{"name": t, "color": type_color(t)} for t in types]),
        stats=json.dumps({"hp": 45, "attack": 49}),
        abilities=json.dumps(["overgrow"]),
        height=0.7,
        weight=6.9,
        base_experience=64,
        is_legendary=legendary,
        is_mythical=mythical,
        generation=generation_for_id(pokemon_id),
        description=f"A Pokémon called {name}.",
        evolves_to=None,
        cached_at=now,
        expires_at=now,
    )
    fields.update(extra)
    return PokemonCache(**fields)


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(test_engine)
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def pokedex(db):
    for pokemon_id, name, types, legendary, mythical in POKEDEX:
        db.add(make_pokemon(pokemon_id, name, types, legendary, mythical))
    db.commit()
    return {name: pokemon_id for pokemon_id, name, *_ in POKEDEX}


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def add_player(db, username):
    """Commit a guest user and hand it back detached, so reading its id never reopens a transaction."""
    user = User(id=new_id(), username=username, is_guest=True, is_verified=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    db.expunge(user)
    db.rollback()
    return user


@pytest.fixture
def player(db):
    return add_player(db, "ash")


@pytest.fixture
def rival(db):
    return add_player(db, "gary")


def bearer(user_id):
    return {"Authorization": f"Bearer {create_token(user_id, ACCESS)}"}


@pytest.fixture
def auth_headers(player):
    return bearer(player.id)
