"""Demonstrate unique and indexed attributes plus List/Set relations."""

from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

import redshelve
from redshelve import ConnectionOptions, Model, UniqueIndexViolation, attribute, list_of, set_of


class UserProfile(Model):
    username = attribute(unique=True)
    email = attribute(unique=True)
    team = attribute(index=True)
    todos = list_of("ToDo")
    followers = set_of("UserProfile")


class ToDo(Model):
    title = attribute()
    done = attribute(lambda value: value == "True", index=True)


def seed_data() -> None:
    alice = UserProfile.create(username="alice", email="alice@example.com", team="team-a")
    bob = UserProfile.create(username="bob", email="bob@example.com", team="team-b")
    charlie = UserProfile.create(username="charlie", email="charlie@example.com", team="team-a")

    alice.todos.replace(
        [
            ToDo.create(title="Review pull requests", done=False),
            ToDo.create(title="Plan sprint", done=False),
        ]
    )
    charlie.todos.replace(
        [
            ToDo.create(title="Write documentation", done=False),
            ToDo.create(title="Fix bug #123", done=True),
        ]
    )
    alice.followers.replace([bob, charlie])


def main() -> None:
    redshelve.connect(ConnectionOptions.from_env())
    redshelve.flush()
    seed_data()

    print("-- All profiles, by username --")
    for profile in UserProfile.all().sort_by("username", alpha=True):
        print(profile.id, profile.attributes)

    print("\n-- Lookup by email --")
    print(UserProfile.with_("email", "alice@example.com"))

    print("\n-- Profiles on team-a --")
    for profile in UserProfile.find(team="team-a"):
        print(profile.username)

    print("\n-- Duplicate username --")
    try:
        UserProfile.create(username="alice", email="other@example.com")
    except UniqueIndexViolation as exc:
        print(f"rejected: {exc}")

    alice = UserProfile.with_("username", "alice")
    print("\n-- Todos for alice --")
    for todo in alice.todos:
        print(todo.title, "(done)" if todo.done else "")
    print("first:", alice.todos.first().title, "| last:", alice.todos.last().title)

    print("\n-- Alice's followers --")
    print(alice.followers.sort_by("username", get="username", alpha=True))

    print("\n-- Finished todos --")
    for todo in ToDo.find(done=True):
        print(todo.title)


if __name__ == "__main__":
    main()
