from datetime import timedelta

import pytest

from puckpool.models import Player, Roster, RosterSelection, RoundWindow
from puckpool.roster import RosterRejection, composition_counts, validate_save, validate_submit

from .sample_pool import FULL_ROSTER, FULL_STARS, NOW, PLAYERS, TEAMS


OPEN = RoundWindow(round_number=1, name="First Round", pick_deadline=NOW + timedelta(hours=2))
PLAYER_MAP = {player.player_id: player for player in PLAYERS}
TEAM_MAP = {team.abbrev: team for team in TEAMS}
QUALIFIED = {"COL", "DAL", "BOS", "TOR"}


def _save(player_ids, stars=None, *, window=OPEN, roster=None, players=PLAYER_MAP, qualified=QUALIFIED, round_number=1):
    return validate_save(
        round_number,
        window,
        roster,
        player_ids,
        stars or {},
        players,
        qualified,
        now=NOW,
    )


def _code(call) -> str:
    with pytest.raises(RosterRejection) as excinfo:
        call()
    return excinfo.value.code


def _expensive_pool(count: int, cost: int) -> dict[str, Player]:
    return {
        f"p{i}": Player(player_id=f"p{i}", external_id=9000 + i, name=f"P{i}", team="COL", role="forward", cost=cost)
        for i in range(count)
    }


def test_salary_cap_boundary():
    players = _expensive_pool(6, 5)
    players["cheap"] = Player(player_id="cheap", external_id=1, name="Cheap", team="COL", role="forward", cost=1)

    at_cap = [f"p{i}" for i in range(6)]
    assert len(_save(at_cap, players=players)) == 6

    with pytest.raises(RosterRejection) as excinfo:
        _save(at_cap + ["cheap"], players=players)
    assert excinfo.value.code == "over_salary_cap"
    assert excinfo.value.details == {"total_cost": 31, "salary_cap": 30}


def test_full_roster_selections_mark_stars():
    selections = _save(FULL_ROSTER, FULL_STARS)
    assert [selection.player_id for selection in selections] == FULL_ROSTER
    assert {selection.player_id for selection in selections if selection.is_star} == {"wf1", "ed1", "wg1"}


def test_empty_selection_is_allowed():
    assert _save([]) == []


@pytest.mark.parametrize("round_number", [0, 4, -1])
def test_non_scoring_round_is_invalid(round_number):
    assert _code(lambda: _save(["wf1"], round_number=round_number)) == "invalid_round"


def test_missing_deadline_rejected_before_everything_else():
    window = RoundWindow(round_number=1, name="First Round")
    assert _code(lambda: _save(["nobody"], window=window)) == "deadline_not_set"
    assert _code(lambda: _save(["wf1"], window=None)) == "deadline_not_set"


def test_locked_round_rejected():
    window = RoundWindow(round_number=1, name="First Round", pick_deadline=NOW - timedelta(seconds=1))
    assert _code(lambda: _save(["wf1"], window=window)) == "round_locked"


def test_deadline_instant_is_still_open():
    window = RoundWindow(round_number=1, name="First Round", pick_deadline=NOW)
    assert _save(["wf1"], window=window)


def test_submitted_roster_rejected_before_player_checks():
    roster = Roster(roster_id="r1", user_id="u1", round_number=1, submitted=True)
    assert _code(lambda: _save(["nobody"], roster=roster)) == "already_submitted"


def test_unknown_player_before_duplicate():
    assert _code(lambda: _save(["wf1", "wf1", "nobody"])) == "unknown_player"
    assert _code(lambda: _save(["wf1", "wf1"])) == "duplicate_player"


def test_duplicate_before_salary_cap():
    players = _expensive_pool(7, 5)
    assert _code(lambda: _save(["p0", "p0", "p1", "p2", "p3", "p4", "p5"], players=players)) == "duplicate_player"


def test_salary_cap_before_qualification():
    players = {**PLAYER_MAP, **_expensive_pool(6, 5)}
    ids = [f"p{i}" for i in range(6)] + ["xf1"]
    assert _code(lambda: _save(ids, players=players)) == "over_salary_cap"


def test_unqualified_team_rejected():
    with pytest.raises(RosterRejection) as excinfo:
        _save(["wf1", "xf1"])
    assert excinfo.value.code == "team_not_qualified"
    assert excinfo.value.details == {"teams": ["CHI"]}


def test_qualification_before_star_checks():
    assert _code(lambda: _save(["xf1"], {"forward": "wd1"})) == "team_not_qualified"


@pytest.mark.parametrize(
    "stars",
    [
        {"forward": "ef1"},
        {"forward": "wd1"},
        {"goaltender": "wf1"},
        {"center": "wf1"},
    ],
)
def test_invalid_star_designations(stars):
    assert _code(lambda: _save(["wf1", "wd1", "wg1"], stars)) == "invalid_star"


def test_rejection_payload():
    rejection = RosterRejection("over_salary_cap", "Over salary cap", {"total_cost": 31})
    assert rejection.as_dict() == {"code": "over_salary_cap", "error": "Over salary cap", "details": {"total_cost": 31}}
    assert RosterRejection("round_locked", "Round is locked").as_dict() == {
        "code": "round_locked",
        "error": "Round is locked",
    }


def _roster(player_ids, stars=FULL_STARS, *, submitted=False) -> Roster:
    star_ids = {player_id for player_id in stars.values() if player_id}
    return Roster(
        roster_id="r1",
        user_id="u1",
        round_number=1,
        submitted=submitted,
        selections=[RosterSelection(player_id=pid, is_star=pid in star_ids) for pid in player_ids],
    )


def _submit(roster, *, window=OPEN):
    return validate_submit(1, window, roster, PLAYER_MAP, TEAM_MAP, now=NOW)


def test_submit_accepts_complete_roster_with_three_stars():
    roster = _roster(FULL_ROSTER)
    assert _submit(roster) is roster


def test_submit_rejects_two_forwards_in_a_conference():
    roster = _roster([pid for pid in FULL_ROSTER if pid != "wf3"])
    with pytest.raises(RosterRejection) as excinfo:
        _submit(roster)
    assert excinfo.value.code == "roster_incomplete"
    assert excinfo.value.message == "Roster incomplete. Need 3F/2D/1G per conference and 3 star players."
    assert excinfo.value.details["counts"]["western"]["forward"] == 2
    assert excinfo.value.details["counts"]["eastern"]["forward"] == 3


def test_submit_rejects_missing_star():
    roster = _roster(FULL_ROSTER, {"forward": "wf1", "defense": "ed1"})
    with pytest.raises(RosterRejection) as excinfo:
        _submit(roster)
    assert excinfo.value.code == "roster_incomplete"
    assert excinfo.value.details["star_count"] == 2


def test_submit_rejects_two_stars_of_one_role():
    selections = [RosterSelection(player_id=pid, is_star=pid in {"wf1", "ef1", "wg1"}) for pid in FULL_ROSTER]
    roster = Roster(roster_id="r1", user_id="u1", round_number=1, selections=selections)
    assert _code(lambda: _submit(roster)) == "roster_incomplete"


def test_submit_checks_counts_per_conference():
    # Four west forwards and two east forwards: totals match, per-conference counts do not.
    extra = Player(player_id="wf5", external_id=8479999, name="Extra", team="COL", role="forward", cost=1)
    players = {**PLAYER_MAP, "wf5": extra}
    roster = _roster([pid for pid in FULL_ROSTER if pid != "ef3"] + ["wf5"])
    with pytest.raises(RosterRejection):
        validate_submit(1, OPEN, roster, players, TEAM_MAP, now=NOW)


def test_submit_without_roster_and_after_submit():
    assert _code(lambda: _submit(None)) == "no_roster"
    assert _code(lambda: _submit(_roster(FULL_ROSTER, submitted=True))) == "already_submitted"


def test_submit_respects_lock():
    window = RoundWindow(round_number=1, name="First Round", pick_deadline=NOW - timedelta(minutes=5))
    assert _code(lambda: _submit(_roster(FULL_ROSTER), window=window)) == "round_locked"


def test_composition_counts_by_conference():
    counts = composition_counts(_roster(FULL_ROSTER), PLAYER_MAP, TEAM_MAP)
    assert counts == {
        "western": {"forward": 3, "defense": 2, "goaltender": 1},
        "eastern": {"forward": 3, "defense": 2, "goaltender": 1},
    }
