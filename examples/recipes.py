"""
Recipes example: declarative types, resolvers and field-level authorization.

This example demonstrates:
- Declaring object, input and enum types with gatedql helpers
- A resolver class with queries, guarded mutations and a field resolver
- Role rules combined with the default "authenticated" rule
- A class-level middleware timing every recipe field

Run it with ``python -m examples.recipes``; ``examples/main.py`` serves the same
schema over HTTP.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Dict, List

from gatedql import (
    and_,
    arg,
    authorized,
    build_schema,
    ctx,
    default_auth_rule,
    enum_type,
    field,
    field_resolver,
    in_role_of,
    input_type,
    mutation,
    object_type,
    query,
    resolver,
    root,
    rule,
    use_middleware,
)

logger = logging.getLogger("examples.recipes")


@enum_type
class Difficulty(Enum):
    EASY = "easy"
    HARD = "hard"


@object_type(description="A cooking recipe")
class Recipe:
    title = field(lambda: str)
    difficulty = field(lambda: Difficulty)
    ratings = field(lambda: int, list=True)
    # only signed-in users see who wrote the recipe
    author = field(lambda: str, nullable=True, authorized=default_auth_rule)

    @field(lambda: float, nullable=True)
    def average_rating(self):
        return sum(self.ratings) / len(self.ratings) if self.ratings else None


@input_type()
class RecipeInput:
    title = field(lambda: str)
    difficulty = field(lambda: Difficulty, default=Difficulty.EASY)


RECIPES: List[Dict] = [
    {"title": "Pancakes", "difficulty": Difficulty.EASY, "ratings": [5, 4], "author": "alice"},
    {"title": "Croissants", "difficulty": Difficulty.HARD, "ratings": [5], "author": "bob"},
]


@rule(name="is-author", cache="strict")
def is_author(parent, args, context, info):
    user = context.get("user") if isinstance(context, dict) else None
    return user is not None and parent["author"] == user["name"]


async def timing(data, next_):
    started = time.perf_counter()
    try:
        return await next_()
    finally:
        logger.debug("%s took %.2f ms", data.info.field_name, (time.perf_counter() - started) * 1000)


@use_middleware(timing)
@resolver(of=lambda: Recipe)
class RecipeResolver:
    @query(lambda: Recipe, list=True)
    @arg("difficulty", lambda: Difficulty, nullable=True)
    def recipes(self, difficulty):
        return [r for r in RECIPES if difficulty is None or r["difficulty"] is difficulty]

    @authorized
    @mutation(lambda: Recipe)
    @arg("data", lambda: RecipeInput)
    @ctx("context")
    def add_recipe(self, data, context):
        recipe = {"title": data.title, "difficulty": data.difficulty, "ratings": [], "author": context["user"]["name"]}
        RECIPES.append(recipe)
        return recipe

    @authorized(and_(default_auth_rule, in_role_of("admin")))
    @mutation(lambda: int)
    def clear_ratings(self):
        for r in RECIPES:
            r["ratings"] = []
        return len(RECIPES)

    @authorized(is_author)
    @field_resolver(lambda: int, nullable=True)
    @root("recipe")
    def draft_count(self, recipe):
        return len(recipe["title"]) % 3


schema = build_schema(resolvers=[RecipeResolver], auto_camel_case=True)


async def main():
    guest = {}
    alice = {"user": {"name": "alice", "roles": ["cook"]}}
    admin = {"user": {"name": "root", "roles": ["admin"]}}

    result = await schema.execute("{ recipes { title averageRating author draftCount } }", context_value=guest)
    print("guest:", result.data, [e.message for e in result.errors or []])

    result = await schema.execute("{ recipes { title author draftCount } }", context_value=alice)
    print("alice:", result.data, [e.message for e in result.errors or []])

    result = await schema.execute(
        'mutation { addRecipe(data: {title: "Soup"}) { title difficulty author } }', context_value=alice,
    )
    print("alice adds:", result.data)

    for name, context in (("alice", alice), ("admin", admin)):
        result = await schema.execute("mutation { clearRatings }", context_value=context)
        print(f"{name} clears ratings:", result.data, [e.message for e in result.errors or []])


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(main())
