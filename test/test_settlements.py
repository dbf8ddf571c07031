"""
Structure aggregation: folding structures per settlement, capital inheritance,
kingdom-wide merges and the proficiency/cost gates.
"""

import logging

from kingmaker.engine.settlements import (
    Settlement,
    SettlementAggregate,
    calculate_storage_capacity,
    check_building_cost,
    check_proficiency,
    evaluate_structures,
    get_capital,
    get_kingdom_aggregate,
    get_merged_data,
    get_settlements,
    merge_across_locations,
    merge_capital,
    missing_costs,
)


def _settlement(id_, settlement_type="Settlement", level=1, structures=None, **kwargs):
    return Settlement(
        id=id_,
        name=id_.capitalize(),
        settlement_type=settlement_type,
        level=level,
        structures=structures or [],
        **kwargs,
    )


def test_empty_settlement_has_base_values():
    aggregate = evaluate_structures([], 1)
    assert aggregate.leadership_activity_number == 2
    assert aggregate.unlocked_activities == frozenset()
    assert aggregate.consumption == 1  # village base
    assert all(v == 0 for v in aggregate.storage.values())


def test_leadership_bonus(catalog):
    aggregate = evaluate_structures([catalog["Houses"], catalog["Town Hall"]], 3)
    assert aggregate.leadership_activity_number == 3


def test_duplicates_fold_independently(catalog):
    aggregate = evaluate_structures([catalog["Granary"], catalog["Granary"]], 1)
    assert aggregate.storage["food"] == 2


def test_consumption_reduction_is_floored(catalog):
    assert evaluate_structures([catalog["Mill"]], 3).consumption == 1
    assert evaluate_structures([catalog["Mill"], catalog["Mill"]], 1).consumption == 0


def test_skill_bonus_capped_by_settlement_type(catalog):
    village = evaluate_structures([catalog["Castle"]], 1)
    city = evaluate_structures([catalog["Castle"]], 9)
    assert village.skill_bonuses == {"defense": 1, "politics": 1}
    assert city.skill_bonuses == {"defense": 2, "politics": 2}


def test_activities_from_activity_and_skill_rules(catalog):
    aggregate = evaluate_structures([catalog["Shrine"], catalog["Barracks"]], 1)
    assert aggregate.unlocked_activities == {"celebrate-holiday", "garrison-army", "recruit-army"}


def test_fold_is_order_independent(catalog):
    structures = [catalog["Granary"], catalog["Town Hall"], catalog["Library"], catalog["Mill"]]
    assert evaluate_structures(structures, 3) == evaluate_structures(list(reversed(structures)), 3)


def _three_aggregates(catalog):
    a = evaluate_structures([catalog["Granary"], catalog["Shrine"]], 1)
    b = evaluate_structures([catalog["Town Hall"], catalog["Library"]], 3)
    c = evaluate_structures([catalog["Castle"], catalog["Stonemason"]], 9)
    return a, b, c


def test_merge_across_locations_is_associative(catalog):
    a, b, c = _three_aggregates(catalog)
    left = merge_across_locations([merge_across_locations([a, b]), c])
    right = merge_across_locations([a, merge_across_locations([b, c])])
    assert left == right


def test_merge_across_locations_is_commutative(catalog):
    a, b, c = _three_aggregates(catalog)
    assert merge_across_locations([a, b, c]) == merge_across_locations([c, a, b])


def test_merge_across_locations_totals(catalog):
    a, b, c = _three_aggregates(catalog)
    merged = merge_across_locations([a, b, c])
    assert merged.leadership_activity_number == 3
    assert merged.consumption == a.consumption + b.consumption + c.consumption
    assert merged.storage["food"] == 1
    assert merged.storage["stone"] == 1
    assert merged.skill_bonuses["defense"] == 2
    assert "celebrate-holiday" in merged.unlocked_activities


def test_merge_of_nothing_is_empty_aggregate():
    assert merge_across_locations([]) == SettlementAggregate()


def test_capital_merge_keeps_local_values(catalog):
    capital = evaluate_structures([catalog["Castle"], catalog["Granary"]], 9)
    local = evaluate_structures([catalog["Shrine"]], 1)
    merged = merge_capital(capital, local)
    assert merged.storage == local.storage
    assert merged.consumption == local.consumption
    assert merged.leadership_activity_number == local.leadership_activity_number
    assert merged.skill_bonuses == local.skill_bonuses
    assert merged.unlocked_activities == capital.unlocked_activities | local.unlocked_activities


def test_viewed_settlement_inherits_capital_activities(catalog):
    locations = [
        _settlement("capital", "Capital", structures=[{"ref": "Barracks"}]),
        _settlement("town", structures=[{"ref": "Granary"}]),
    ]
    view = get_merged_data(locations, "town", catalog)
    assert view.settlement.id == "town"
    assert view.aggregate.storage["food"] == 1
    assert {"garrison-army", "recruit-army"} <= view.aggregate.unlocked_activities

    capital_view = get_merged_data(locations, "capital", catalog)
    assert capital_view.aggregate.storage["food"] == 0

    assert get_merged_data(locations, "missing", catalog) is None


def test_location_filters():
    locations = [
        _settlement("hex", "-"),
        _settlement("capital", "Capital"),
        _settlement("town"),
    ]
    assert [s.id for s in get_settlements(locations)] == ["capital", "town"]
    assert get_capital(locations).id == "capital"
    assert get_capital(locations[2:]) is None


def test_invalid_structure_is_skipped_and_reported(catalog, caplog):
    locations = [
        _settlement("town", structures=[
            {"ref": "Granary"},
            {"name": "Broken", "level": "high"},
            {"ref": "No Such Structure"},
        ]),
    ]
    with caplog.at_level(logging.WARNING, logger="kingmaker.engine.settlements"):
        aggregate, errors = get_kingdom_aggregate(locations, catalog)
    assert aggregate.storage["food"] == 1
    assert len(errors) == 2
    assert errors[0].name == "Broken"
    assert any("Skipping structure" in r.message for r in caplog.records)


def test_kingdom_aggregate_ignores_plain_locations(catalog):
    locations = [
        _settlement("hex", "-", structures=[{"ref": "Granary"}]),
        _settlement("town", structures=[{"ref": "Granary"}]),
    ]
    aggregate, errors = get_kingdom_aggregate(locations, catalog)
    assert aggregate.storage["food"] == 1
    assert errors == []


def test_storage_capacity():
    capacity = calculate_storage_capacity(4, {"food": 1, "stone": 2})
    assert capacity == {"food": 5, "luxuries": 4, "ore": 4, "lumber": 4, "stone": 6}


def test_proficiency_requires_every_skill(catalog, kingdom):
    assert check_proficiency(catalog["Houses"], kingdom)
    assert not check_proficiency(catalog["Shrine"], kingdom)

    kingdom.skill_ranks["folklore"] = 1
    assert check_proficiency(catalog["Shrine"], kingdom)

    kingdom.skill_ranks["defense"] = 2
    assert not check_proficiency(catalog["Castle"], kingdom)
    kingdom.skill_ranks["industry"] = 2
    assert check_proficiency(catalog["Castle"], kingdom)


def test_building_cost(catalog, kingdom):
    assert missing_costs(catalog["Houses"], kingdom) == {"rp": 3, "lumber": 1}
    assert not check_building_cost(catalog["Houses"], kingdom)

    kingdom.resource_points.now = 3
    kingdom.commodities.now.lumber = 1
    assert missing_costs(catalog["Houses"], kingdom) == {}
    assert check_building_cost(catalog["Houses"], kingdom)


def test_costs_read_current_turn_only(catalog, kingdom):
    kingdom.resource_points.next = 50
    kingdom.commodities.next.lumber = 10
    assert not check_building_cost(catalog["Houses"], kingdom)
