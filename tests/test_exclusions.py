import json

from app.services.exclusions import ExclusionPair, ExclusionSet, exclusions_equal, normalize_exclusions


def test_direction_does_not_matter():
    forward = normalize_exclusions([{"user_id": "a", "excluded_user_id": "b"}], ["a", "b"])
    backward = normalize_exclusions([{"user_id": "b", "excluded_user_id": "a"}], ["a", "b"])
    assert forward == backward
    assert forward.to_payload() == [{"user_id": "a", "excluded_user_id": "b"}]


def test_canonical_output_is_a_fixed_point():
    canonical = normalize_exclusions(
        [
            {"user_id": "c", "excluded_user_id": "a"},
            {"user_id": "b", "excluded_user_id": "a"},
        ],
        ["a", "b", "c"],
    )
    again = normalize_exclusions(canonical.to_payload(), ["a", "b", "c"])
    assert again == canonical
    assert again.to_payload() == canonical.to_payload()


def test_duplicates_and_self_pairs_are_dropped():
    result = normalize_exclusions(
        [
            {"user_id": "a", "excluded_user_id": "b"},
            {"user_id": "b", "excluded_user_id": "a"},
            {"user_id": "a", "excluded_user_id": "b"},
            {"user_id": "c", "excluded_user_id": "c"},
        ]
    )
    assert list(result) == [ExclusionPair("a", "b")]


def test_pairs_outside_the_allowed_set_are_dropped():
    result = normalize_exclusions([("a", "b"), ("a", "z"), ("y", "z")], ["a", "b", "c"])
    assert result.to_payload() == [{"user_id": "a", "excluded_user_id": "b"}]


def test_empty_allowed_set_keeps_everything():
    result = normalize_exclusions([("a", "b"), ("y", "z")], [])
    assert len(result) == 2


def test_output_is_sorted():
    result = normalize_exclusions([("d", "c"), ("b", "a"), ("c", "a")])
    assert [(pair.user_id, pair.excluded_user_id) for pair in result] == [("a", "b"), ("a", "c"), ("c", "d")]


def test_alias_keys_and_numeric_ids():
    result = normalize_exclusions(
        [
            {"userId": 2, "excludedUserId": 1},
            {"giver_user_id": "3", "recipient_user_id": "4"},
            {"USER_ID": "5", "Excluded_User_Id": "6"},
        ]
    )
    assert result.to_payload() == [
        {"user_id": "1", "excluded_user_id": "2"},
        {"user_id": "3", "excluded_user_id": "4"},
        {"user_id": "5", "excluded_user_id": "6"},
    ]


def test_serialized_blob_is_parsed():
    blob = json.dumps({"exclusions": [{"user_id": "b", "excluded_user_id": "a"}]})
    assert normalize_exclusions(blob).to_payload() == [{"user_id": "a", "excluded_user_id": "b"}]


def test_malformed_input_is_treated_as_empty():
    assert len(normalize_exclusions("{not json")) == 0
    assert len(normalize_exclusions(None)) == 0
    assert len(normalize_exclusions(42)) == 0
    assert len(normalize_exclusions([None, "x", {"user_id": "a"}, {"user_id": None, "excluded_user_id": "b"}])) == 0


def test_forbids_is_symmetric():
    exclusions = normalize_exclusions([("a", "b")])
    assert exclusions.forbids("a", "b")
    assert exclusions.forbids("b", "a")
    assert not exclusions.forbids("a", "c")


def test_equality_helper_compares_raw_and_canonical():
    canonical = ExclusionSet([ExclusionPair.between("b", "a")])
    assert exclusions_equal(canonical, [{"user_id": "b", "excluded_user_id": "a"}])
    assert not exclusions_equal(canonical, [])


def test_restricted_to_prunes_against_new_roster():
    exclusions = normalize_exclusions([("a", "b"), ("b", "c")])
    assert exclusions.restricted_to(["a", "b"]).to_payload() == [{"user_id": "a", "excluded_user_id": "b"}]
