from __future__ import annotations

import pytest

from scrutin.core.aggregation import (
    ImportProgress,
    aggregate,
    build_electoral_tree,
    build_geographic_tree,
    entity_nodes,
    find_node,
    iter_level,
    national_summary,
)
from scrutin.core.errors import DataShapeError
from scrutin.core.models import (
    AggregationNode,
    CandidateScore,
    EntityType,
    PublicationRecord,
    PublicationStatus,
)
from scrutin.core.normalize import normalize_rows


def _node(node_id: str, registered: int, actual: int, votes: dict, status: str | None = "I") -> AggregationNode:
    return AggregationNode(
        id=node_id,
        registered_voters=registered,
        actual_voters=actual,
        valid_expressed_votes=sum(votes.values()),
        scores={cid: CandidateScore(candidate_id=cid, votes=v) for cid, v in votes.items()},
        polling_station_count=1,
        import_status=status,
    )


def test_votes_are_additive_across_children() -> None:
    """Trois bureaux avec A = {10, 0, 5} donnent A = 15.

    English: Three stations with A = {10, 0, 5} aggregate to A = 15.
    """
    children = [
        _node("BV1", 100, 50, {"A": 10, "B": 4}),
        _node("BV2", 100, 50, {"A": 0, "B": 9}),
        _node("BV3", 100, 50, {"A": 5}),
    ]

    parent = aggregate(children, id="LV1", level="voting_place")

    assert parent.scores["A"].votes == 15
    assert parent.scores["B"].votes == 13
    assert parent.valid_expressed_votes == 28
    assert parent.registered_voters == 300
    assert parent.polling_station_count == 3


def test_additivity_holds_for_any_partition() -> None:
    children = [_node(f"BV{i}", 100, 40 + i, {"A": i, "B": 2 * i}) for i in range(1, 7)]

    whole = aggregate(children)
    left = aggregate(children[:2])
    right = aggregate(children[2:])
    recombined = aggregate([left, right])

    for candidate_id in ("A", "B"):
        assert whole.scores[candidate_id].votes == recombined.scores[candidate_id].votes
    assert whole.actual_voters == recombined.actual_voters


def test_turnout_is_recomputed_not_averaged() -> None:
    """100/300 = 33.33 %, et non la moyenne 37.5 %.

    English: 100/300 = 33.33 %, not the 37.5 % mean.
    """
    parent = aggregate([_node("BV1", 100, 50, {"A": 50}), _node("BV2", 200, 50, {"A": 50})])

    assert parent.turnout_rate == pytest.approx(33.33)
    assert parent.turnout_rate != pytest.approx(37.5)


def test_percentages_come_from_summed_totals() -> None:
    parent = aggregate([_node("BV1", 10, 10, {"A": 9, "B": 1}), _node("BV2", 100, 100, {"A": 10, "B": 90})])

    # 19/110 et 91/110, pas la moyenne de 90 % et 10 %.
    assert parent.percentage("A") == pytest.approx(17.27)
    assert parent.percentage("B") == pytest.approx(82.73)


def test_empty_children_yield_zero_node() -> None:
    parent = aggregate([], id="C999", level="cel")

    assert parent.registered_voters == 0
    assert parent.turnout_rate == 0.0
    assert parent.scores == {}
    assert parent.child_unit_count == 0
    assert parent.imported_child_unit_count == 0
    assert parent.import_status == "N"


def test_candidate_keys_are_unioned_and_children_aligned() -> None:
    parent = aggregate([_node("BV1", 10, 5, {"A": 5}), _node("BV2", 10, 5, {"B": 5})])

    assert sorted(parent.scores) == ["A", "B"]
    assert all(sorted(child.scores) == ["A", "B"] for child in parent.children)


def test_import_counts_come_from_children_status() -> None:
    parent = aggregate(
        [_node("C1", 1, 1, {}, "I"), _node("C2", 1, 1, {}, "P"), _node("C3", 1, 1, {}, "N")],
        id="004",
        level="circonscription",
    )

    assert parent.child_unit_count == 3
    assert parent.imported_child_unit_count == 2
    assert parent.pending_child_unit_count == 1


def test_import_progress_overrides_derived_counts() -> None:
    parent = aggregate([_node("C1", 1, 1, {}, "I")], progress=ImportProgress(5, 1))

    assert parent.child_unit_count == 5
    assert parent.imported_child_unit_count == 1


def test_electoral_tree_rolls_up_to_national(circonscription_rows) -> None:
    leaves = normalize_rows(circonscription_rows).units

    root = build_electoral_tree(leaves)

    assert root.level == "national"
    assert [node.id for node in iter_level(root, "circonscription")] == ["004", "012"]
    assert [node.id for node in iter_level(root, "cel")] == ["C041", "C042", "C120"]
    circonscription = find_node(root, "circonscription", "004")
    assert circonscription is not None
    assert circonscription.label == "ABOBO"
    assert circonscription.child_unit_count == 2
    assert circonscription.imported_child_unit_count == 2
    assert circonscription.registered_voters == 450
    assert circonscription.scores["U-001"].votes == 85
    assert circonscription.scores["U-003"].votes == 0
    assert root.registered_voters == 530
    assert root.polling_station_count == 4


def test_expected_units_mark_missing_cels_as_pending(circonscription_rows) -> None:
    leaves = normalize_rows(circonscription_rows).units

    root = build_electoral_tree(leaves, expected_units={"circonscription": {"004": 3}})

    circonscription = find_node(root, "circonscription", "004")
    assert circonscription.child_unit_count == 3
    assert circonscription.imported_child_unit_count == 2


def test_geographic_tree_groups_by_full_path(make_row) -> None:
    """Un même code de lieu de vote dans deux départements reste distinct.

    English: The same voting place code in two departments stays distinct.
    """
    rows = [
        make_row("BV1", 100, 50, {"A": 1}, voting_place="LV01", department="001", region="R1"),
        make_row("BV2", 100, 50, {"A": 2}, voting_place="LV01", department="002", region="R1"),
        make_row("BV3", 100, 50, {"A": 3}, voting_place="LV02", department="002", region="R1"),
    ]

    root = build_geographic_tree(normalize_rows(rows).units)

    voting_places = list(iter_level(root, "voting_place"))
    assert len(voting_places) == 3
    department = find_node(root, "department", "002")
    assert department.scores["A"].votes == 5
    assert find_node(root, "region", "R1").scores["A"].votes == 6


def test_missing_hierarchy_code_is_a_data_shape_error(make_row) -> None:
    leaves = normalize_rows([make_row("BV1", votes={"A": 1}, cel="C1")]).units

    with pytest.raises(DataShapeError) as excinfo:
        build_electoral_tree(leaves)

    assert excinfo.value.field == "circonscription"


def test_entity_nodes_for_departments(make_row) -> None:
    rows = [
        make_row("BV1", votes={"A": 1}, cel="C1", department="001"),
        make_row("BV2", votes={"A": 1}, cel="C2", department="001", import_status="N"),
    ]

    nodes = entity_nodes(normalize_rows(rows).units, EntityType.DEPARTMENT)

    assert [node.id for node in nodes] == ["001"]
    assert nodes[0].child_unit_count == 2
    assert nodes[0].imported_child_unit_count == 1


def test_national_summary_counts_publications(circonscription_rows) -> None:
    root = build_electoral_tree(normalize_rows(circonscription_rows).units)
    circonscriptions = list(iter_level(root, "circonscription"))
    records = {
        "004": PublicationRecord("004", EntityType.CIRCONSCRIPTION, PublicationStatus.PUBLISHED),
        "012": PublicationRecord("012", EntityType.CIRCONSCRIPTION),
    }

    summary = national_summary(circonscriptions, records)

    assert summary.circonscription_count == 2
    assert summary.published_count == 1
    assert summary.pending_count == 1
    top = summary.candidates[0]
    assert top.candidate_id == "U-001"
    assert top.votes == 110
    assert top.votes_by_circonscription == {"004": 85, "012": 25}
