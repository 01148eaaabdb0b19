from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mealstock.main import app
from mealstock.db import Base, get_db, enable_sqlite_foreign_keys
from mealstock.models import Workspace, Recipe, RecipeIngredient, PlannedMeal, InventoryItem

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool  # one in-memory connection shared by every session
)
enable_sqlite_foreign_keys(engine)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

WORKSPACE_ID = "00000000-0000-0000-0000-000000000000"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    """Test client with DB override."""
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def workspace(db_session):
    """Create a test workspace."""
    ws = Workspace(id=WORKSPACE_ID, slug="test", name="Test Workspace")
    db_session.add(ws)
    db_session.commit()
    db_session.refresh(ws)
    return ws


@pytest.fixture
def headers(workspace):
    return {"X-Workspace-Id": workspace.id}


# --- Factories ---

@pytest.fixture
def make_recipe(db_session, workspace):
    """make_recipe(name, [(name, qty, unit[, aisle]), ...], base_servings=4)"""
    def _make(name, ingredients, base_servings=4):
        recipe = Recipe(workspace_id=workspace.id, name=name, base_servings=base_servings)
        recipe.ingredients = [
            RecipeIngredient(
                name=ing[0], qty=ing[1], unit=ing[2],
                aisle=ing[3] if len(ing) > 3 else None, position=i,
            )
            for i, ing in enumerate(ingredients)
        ]
        db_session.add(recipe)
        db_session.commit()
        return recipe
    return _make


@pytest.fixture
def plan_meal(db_session, workspace):
    def _plan(recipe, day, meal_type="dinner", servings=4):
        meal = PlannedMeal(
            workspace_id=workspace.id, recipe_id=recipe.id if recipe else None,
            date=day, meal_type=meal_type, servings=servings,
        )
        db_session.add(meal)
        db_session.commit()
        return meal
    return _plan


@pytest.fixture
def make_item(db_session, workspace):
    def _make(name, quantity, unit=None, min_quantity=0, **fields):
        item = InventoryItem(
            workspace_id=workspace.id, name=name, quantity=Decimal(str(quantity)),
            unit=unit, min_quantity=Decimal(str(min_quantity)), **fields,
        )
        db_session.add(item)
        db_session.commit()
        return item
    return _make


import fakeredis
import fakeredis.aioredis
from mealstock.infra import redis_client


@pytest.fixture
def fake_redis():
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture(autouse=True)
def mock_redis(fake_redis):
    # Force the fake client into the infra module
    redis_client._redis_async = fake_redis
    yield
    redis_client._redis_async = None
