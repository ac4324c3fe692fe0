import random

import pytest

from app.core.errors import ErrorKind, InfeasibleError, ValidationError
from app.services.exclusions import ExclusionSet
from app.services.pairing import generate_pairings


def as_map(pairings):
    return {pairing.giver_user_id: pairing.recipient_user_id for pairing in pairings}


def assert_derangement(participants, pairings, exclusions=None):
    assignments = as_map(pairings)
    assert len(pairings) == len(participants)
    assert set(assignments.keys()) == set(participants)
    assert set(assignments.values()) == set(participants)
    assert all(giver != recipient for giver, recipient in assignments.items())
    if exclusions is not None:
        assert not any(exclusions.forbids(giver, recipient) for giver, recipient in assignments.items())


def test_pairing_basic_bijection():
    participants = ["1", "2", "3", "4"]
    pairings = generate_pairings(participants, seed=42)
    assert_derangement(participants, pairings)


def test_pairing_two_people():
    assignments = as_map(generate_pairings(["10", "20"], seed=1))
    assert assignments == {"10": "20", "20": "10"}


def test_pairing_deterministic_seed():
    participants = ["1", "2", "3", "4", "5"]
    assert as_map(generate_pairings(participants, seed=123)) == as_map(generate_pairings(participants, seed=123))


def test_pairing_respects_exclusions_in_both_directions():
    participants = ["user-a", "user-b", "user-c", "user-d"]
    exclusions = ExclusionSet.normalize([{"user_id": "user-a", "excluded_user_id": "user-b"}])
    for seed in range(50):
        pairings = generate_pairings(participants, exclusions, seed=seed)
        assert_derangement(participants, pairings, exclusions)
        assignments = as_map(pairings)
        assert assignments["user-a"] != "user-b"
        assert assignments["user-b"] != "user-a"


def test_pairing_randomized_across_runs():
    participants = [str(index) for index in range(6)]
    draws = {tuple(sorted(as_map(generate_pairings(participants, seed=seed)).items())) for seed in range(30)}
    assert len(draws) > 1


def test_pairing_fails_when_every_pair_is_excluded():
    exclusions = ExclusionSet.normalize(
        [
            {"user_id": "one", "excluded_user_id": "two"},
            {"user_id": "two", "excluded_user_id": "three"},
            {"user_id": "three", "excluded_user_id": "one"},
        ]
    )
    with pytest.raises(InfeasibleError) as excinfo:
        generate_pairings(["one", "two", "three"], exclusions, seed=7)
    assert excinfo.value.kind == ErrorKind.INFEASIBLE
    assert "Unable to create Secret Santa assignments" in excinfo.value.message


def test_pairing_fails_for_two_excluded_people():
    exclusions = ExclusionSet.normalize([("1", "2")])
    with pytest.raises(InfeasibleError):
        generate_pairings(["1", "2"], exclusions)


def test_pairing_detects_infeasible_after_search():
    # "hub" may only give to "x" and only receive from "x", which forces x<->hub
    # and leaves y and z to pair with each other; excluding y-z closes that off.
    participants = ["hub", "x", "y", "z"]
    exclusions = ExclusionSet.normalize([("hub", "y"), ("hub", "z"), ("y", "z")])
    with pytest.raises(InfeasibleError):
        generate_pairings(participants, exclusions, seed=3)


def test_pairing_finds_the_only_valid_draw():
    participants = ["hub", "x", "y", "z"]
    exclusions = ExclusionSet.normalize([("hub", "y"), ("hub", "z")])
    for seed in range(20):
        pairings = generate_pairings(participants, exclusions, seed=seed)
        assert_derangement(participants, pairings, exclusions)
        assignments = as_map(pairings)
        assert assignments["hub"] == "x"
        assert assignments["x"] == "hub"


def test_pairing_step_cap_reports_infeasible():
    participants = [str(index) for index in range(8)]
    with pytest.raises(InfeasibleError):
        generate_pairings(participants, seed=1, max_steps=1)


def test_pairing_fails_for_too_few_participants():
    with pytest.raises(ValidationError):
        generate_pairings(["1"])
    with pytest.raises(ValidationError):
        generate_pairings(["1", "1"])


def test_pairing_ignores_exclusions_outside_the_roster():
    exclusions = ExclusionSet.normalize([("1", "2"), ("2", "3")])
    pairings = generate_pairings(["1", "3"], exclusions, seed=4)
    assert as_map(pairings) == {"1": "3", "3": "1"}


def test_pairing_large_group_with_sparse_exclusions():
    rng = random.Random(11)
    participants = [f"user-{index}" for index in range(40)]
    raw = [(participants[index], participants[index + 1]) for index in range(0, 40, 2)]
    exclusions = ExclusionSet.normalize(raw)
    pairings = generate_pairings(participants, exclusions, rng=rng)
    assert_derangement(participants, pairings, exclusions)
