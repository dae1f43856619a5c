"""
playfield/services/scoring_math.py
Pure cricket arithmetic over the delivery ledger.

Nothing here touches the database. Every derived number the backend
stores (inning totals, fall of wickets, player match figures, career
figures) is produced by a fold defined in this module, and the write path
and the rebuild path use the same step functions so they cannot drift.

Overs are kept as BALLS internally; "X.Y" strings are only produced for
display and storage.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from playfield.orm.innings import (
    ExtraType, DismissalType, ILLEGAL_EXTRAS, BOWLER_CREDITED_DISMISSALS
)

BALLS_PER_OVER = 6
OversLike = Union[str, int]


# =============================================================================
# Overs notation + rates
# =============================================================================

def format_overs(balls: int) -> str:
    """Balls to cricket overs notation: 13 -> "2.1" (not a decimal)."""
    if balls < 0:
        raise ValueError(f"Invalid ball count: {balls}")
    return f"{balls // BALLS_PER_OVER}.{balls % BALLS_PER_OVER}"


def overs_to_balls(overs: OversLike) -> int:
    """
    Converts cricket overs notation to balls.

    Accepts "19.4" style strings or whole overs as int. ".x" means x balls
    (0-5): 19.4 = 19*6 + 4 = 118 balls.
    """
    if overs is None:
        raise ValueError("Overs cannot be None")

    s = str(overs).strip()
    if not s:
        raise ValueError("Overs cannot be empty")

    if "." not in s:
        whole = int(s)
        if whole < 0:
            raise ValueError(f"Invalid overs: {overs}")
        return whole * BALLS_PER_OVER

    over_part, ball_part = s.split(".", 1)
    whole = int(over_part) if over_part else 0
    extra_balls = int(ball_part) if ball_part.strip() else 0

    if whole < 0:
        raise ValueError(f"Invalid overs: {overs}")
    if extra_balls < 0 or extra_balls >= BALLS_PER_OVER:
        raise ValueError(f"Invalid overs format: {overs} (balls part must be 0-5)")

    return whole * BALLS_PER_OVER + extra_balls


def strike_rate(runs: int, balls: int) -> float:
    """Runs per 100 balls; 0 when no balls were faced."""
    if balls <= 0:
        return 0.0
    return round(runs / balls * 100, 2)


def economy_rate(runs: int, balls: int) -> float:
    """Runs per over; 0 when no balls were bowled."""
    if balls <= 0:
        return 0.0
    return round(runs / (balls / BALLS_PER_OVER), 2)


def average(runs: int, dismissals: int) -> Optional[float]:
    """Runs per dismissal; undefined (None) without a dismissal."""
    if dismissals <= 0:
        return None
    return round(runs / dismissals, 2)


# =============================================================================
# Delivery helpers
# =============================================================================

def _extra_type(delivery) -> Optional[ExtraType]:
    return ExtraType(delivery.extra_type) if delivery.extra_type else None


def _dismissal(delivery) -> Optional[DismissalType]:
    return DismissalType(delivery.dismissal_type) if delivery.dismissal_type else None


def is_legal(extra_type: Optional[ExtraType]) -> bool:
    return extra_type not in ILLEGAL_EXTRAS


def extras_breakdown(extra_type: Optional[ExtraType], extra_runs: int) -> Dict[str, int]:
    """
    Split a delivery's extra runs into the inning's extras columns.

    A no-ball carries exactly one no-ball run; whatever the caller recorded
    beyond that is booked as byes.
    """
    breakdown = {
        "wide_runs": 0,
        "no_ball_runs": 0,
        "bye_runs": 0,
        "leg_bye_runs": 0,
        "penalty_runs": 0,
    }
    if extra_type is None or extra_runs <= 0:
        return breakdown

    if extra_type == ExtraType.WIDE:
        breakdown["wide_runs"] = extra_runs
    elif extra_type == ExtraType.NO_BALL:
        breakdown["no_ball_runs"] = 1
        breakdown["bye_runs"] = extra_runs - 1
    elif extra_type == ExtraType.BYE:
        breakdown["bye_runs"] = extra_runs
    elif extra_type == ExtraType.LEG_BYE:
        breakdown["leg_bye_runs"] = extra_runs
    elif extra_type == ExtraType.PENALTY:
        breakdown["penalty_runs"] = extra_runs
    return breakdown


def runs_charged_to_bowler(delivery) -> int:
    """Bat runs plus wide and no-ball runs; byes, leg byes and penalties are not the bowler's."""
    breakdown = extras_breakdown(_extra_type(delivery), delivery.extra_runs)
    return delivery.runs_scored + breakdown["wide_runs"] + breakdown["no_ball_runs"]


@dataclass(frozen=True)
class DeliveryPosition:
    sequence_number: int
    over_number: int
    ball_number_in_over: int
    delivery_in_over: int


def position_for(deliveries_before: int, legal_balls_before: int, deliveries_in_over_before: int) -> DeliveryPosition:
    """
    Where the next delivery sits in the inning.

    The over is decided by legal balls alone: after six legal balls the
    next delivery, legal or not, opens the following over. A wide or
    no-ball repeats the ball number of the legal ball still to come.
    """
    return DeliveryPosition(
        sequence_number=deliveries_before + 1,
        over_number=legal_balls_before // BALLS_PER_OVER + 1,
        ball_number_in_over=legal_balls_before % BALLS_PER_OVER + 1,
        delivery_in_over=deliveries_in_over_before + 1,
    )


# =============================================================================
# Innings fold
# =============================================================================

@dataclass(frozen=True)
class WicketSnapshot:
    wicket_number: int
    player_out_id: int
    score_at_wicket: int
    overs_at_wicket: str
    sequence_number: int


@dataclass
class InningsTotals:
    """Running aggregate of one inning. apply() is the single fold step."""
    score: int = 0
    wickets: int = 0
    balls: int = 0
    deliveries: int = 0
    wide_runs: int = 0
    no_ball_runs: int = 0
    bye_runs: int = 0
    leg_bye_runs: int = 0
    penalty_runs: int = 0
    fall_of_wickets: List[WicketSnapshot] = field(default_factory=list)

    @property
    def overs(self) -> str:
        return format_overs(self.balls)

    @property
    def extras(self) -> int:
        return self.wide_runs + self.no_ball_runs + self.bye_runs + self.leg_bye_runs + self.penalty_runs

    def apply(self, delivery) -> Optional[WicketSnapshot]:
        """Fold one delivery in; returns the fall-of-wicket snapshot if it took a wicket."""
        extra_type = _extra_type(delivery)

        self.deliveries += 1
        self.score += delivery.runs_scored + delivery.extra_runs
        if is_legal(extra_type):
            self.balls += 1
        for column, runs in extras_breakdown(extra_type, delivery.extra_runs).items():
            setattr(self, column, getattr(self, column) + runs)

        if not delivery.is_wicket:
            return None

        self.wickets += 1
        snapshot = WicketSnapshot(
            wicket_number=self.wickets,
            player_out_id=delivery.player_out_id,
            score_at_wicket=self.score,
            overs_at_wicket=self.overs,
            sequence_number=delivery.sequence_number,
        )
        self.fall_of_wickets.append(snapshot)
        return snapshot

    def as_columns(self) -> Dict[str, object]:
        """Values for the materialized Inning columns."""
        return {
            "score": self.score,
            "wickets": self.wickets,
            "balls": self.balls,
            "overs": self.overs,
            "wide_runs": self.wide_runs,
            "no_ball_runs": self.no_ball_runs,
            "bye_runs": self.bye_runs,
            "leg_bye_runs": self.leg_bye_runs,
            "penalty_runs": self.penalty_runs,
        }

    @classmethod
    def from_inning(cls, inning) -> "InningsTotals":
        """Resume folding from an inning's stored columns (fall of wickets not carried)."""
        return cls(
            score=inning.score,
            wickets=inning.wickets,
            balls=inning.balls,
            wide_runs=inning.wide_runs,
            no_ball_runs=inning.no_ball_runs,
            bye_runs=inning.bye_runs,
            leg_bye_runs=inning.leg_bye_runs,
            penalty_runs=inning.penalty_runs,
        )


def fold_innings(deliveries: Iterable) -> InningsTotals:
    """Fold a ledger (in sequence order) from zero."""
    totals = InningsTotals()
    for delivery in sorted(deliveries, key=lambda d: d.sequence_number):
        totals.apply(delivery)
    return totals


# =============================================================================
# Player match figures
# =============================================================================

@dataclass
class BattingFigures:
    innings_batted: int = 0
    runs: int = 0
    balls_faced: int = 0
    fours: int = 0
    sixes: int = 0
    times_out: int = 0
    highest_score: int = 0
    fifties: int = 0
    hundreds: int = 0

    @property
    def strike_rate(self) -> float:
        return strike_rate(self.runs, self.balls_faced)


@dataclass
class BowlingFigures:
    balls_bowled: int = 0
    runs_conceded: int = 0
    wickets: int = 0
    maidens: int = 0
    wides: int = 0
    no_balls: int = 0

    @property
    def overs(self) -> str:
        return format_overs(self.balls_bowled)

    @property
    def economy(self) -> float:
        return economy_rate(self.runs_conceded, self.balls_bowled)


@dataclass
class FieldingFigures:
    catches: int = 0
    stumpings: int = 0
    run_outs: int = 0


def _by_inning(deliveries: Iterable) -> Dict[int, list]:
    grouped: Dict[int, list] = defaultdict(list)
    for delivery in deliveries:
        grouped[delivery.inning_id].append(delivery)
    return grouped


def batting_figures(deliveries: Iterable, user_id: int) -> BattingFigures:
    figures = BattingFigures()
    for inning_deliveries in _by_inning(deliveries).values():
        took_part = False
        inning_runs = 0
        for d in inning_deliveries:
            if user_id in (d.striker_id, d.non_striker_id):
                took_part = True
            if d.is_wicket and d.player_out_id == user_id:
                took_part = True
                figures.times_out += 1
            if d.striker_id != user_id:
                continue
            inning_runs += d.runs_scored
            if _extra_type(d) != ExtraType.WIDE:
                figures.balls_faced += 1
            if d.is_four:
                figures.fours += 1
            if d.is_six:
                figures.sixes += 1
        if not took_part:
            continue
        figures.innings_batted += 1
        figures.runs += inning_runs
        figures.highest_score = max(figures.highest_score, inning_runs)
        if inning_runs >= 100:
            figures.hundreds += 1
        elif inning_runs >= 50:
            figures.fifties += 1
    return figures


def bowling_figures(deliveries: Iterable, user_id: int) -> BowlingFigures:
    figures = BowlingFigures()
    overs: Dict[tuple, List[int]] = defaultdict(lambda: [0, 0])  # (legal balls, runs charged)
    for d in deliveries:
        if d.bowler_id != user_id:
            continue
        extra_type = _extra_type(d)
        charged = runs_charged_to_bowler(d)
        figures.runs_conceded += charged
        if is_legal(extra_type):
            figures.balls_bowled += 1
        if extra_type == ExtraType.WIDE:
            figures.wides += 1
        elif extra_type == ExtraType.NO_BALL:
            figures.no_balls += 1
        if d.is_wicket and _dismissal(d) in BOWLER_CREDITED_DISMISSALS:
            figures.wickets += 1
        over = overs[(d.inning_id, d.over_number)]
        over[0] += 1 if is_legal(extra_type) else 0
        over[1] += charged
    figures.maidens = sum(
        1 for legal, runs in overs.values() if legal == BALLS_PER_OVER and runs == 0
    )
    return figures


def fielding_figures(deliveries: Iterable, user_id: int) -> FieldingFigures:
    figures = FieldingFigures()
    for d in deliveries:
        if not d.is_wicket:
            continue
        dismissal = _dismissal(d)
        if dismissal == DismissalType.CAUGHT and d.fielder1_id == user_id:
            figures.catches += 1
        elif dismissal == DismissalType.STUMPED and d.fielder1_id == user_id:
            figures.stumpings += 1
        elif dismissal == DismissalType.RUN_OUT and user_id in (d.fielder1_id, d.fielder2_id):
            figures.run_outs += 1
    return figures


def participants(deliveries: Iterable) -> set:
    """Every user who batted, bowled or fielded in the given deliveries."""
    users = set()
    for d in deliveries:
        users.update((d.striker_id, d.non_striker_id, d.bowler_id))
        for other in (d.player_out_id, d.fielder1_id, d.fielder2_id):
            if other is not None:
                users.add(other)
    return users


# =============================================================================
# Career fold
# =============================================================================

@dataclass
class CareerTotals:
    """Accumulates PlayerMatchStat rows; add() is the single fold step."""
    matches: int = 0
    innings: int = 0
    runs_scored: int = 0
    balls_faced: int = 0
    times_out: int = 0
    highest_score: int = 0
    fifties: int = 0
    hundreds: int = 0
    fours: int = 0
    sixes: int = 0
    balls_bowled: int = 0
    runs_conceded: int = 0
    wickets_taken: int = 0
    maidens: int = 0
    best_bowling_wickets: int = 0
    best_bowling_runs: int = 0
    catches: int = 0
    stumpings: int = 0
    run_outs: int = 0
    _has_best_bowling: bool = field(default=False, repr=False)

    def add(self, stat) -> None:
        self.matches += 1
        self.innings += stat.innings_batted
        self.runs_scored += stat.runs_scored
        self.balls_faced += stat.balls_faced
        self.times_out += stat.times_out
        self.highest_score = max(self.highest_score, stat.highest_score)
        self.fifties += stat.fifties
        self.hundreds += stat.hundreds
        self.fours += stat.fours
        self.sixes += stat.sixes
        self.balls_bowled += stat.balls_bowled
        self.runs_conceded += stat.runs_conceded
        self.wickets_taken += stat.wickets_taken
        self.maidens += stat.maidens
        self.catches += stat.catches
        self.stumpings += stat.stumpings
        self.run_outs += stat.run_outs
        if stat.balls_bowled and _better_bowling(
            stat.wickets_taken, stat.runs_conceded,
            self.best_bowling_wickets, self.best_bowling_runs,
            has_best=self._has_best_bowling,
        ):
            self.best_bowling_wickets = stat.wickets_taken
            self.best_bowling_runs = stat.runs_conceded
            self._has_best_bowling = True

    @classmethod
    def from_career(cls, career) -> "CareerTotals":
        totals = cls(
            matches=career.matches,
            innings=career.innings,
            runs_scored=career.runs_scored,
            balls_faced=career.balls_faced,
            times_out=career.innings - career.not_outs,
            highest_score=career.highest_score,
            fifties=career.fifties,
            hundreds=career.hundreds,
            fours=career.fours,
            sixes=career.sixes,
            balls_bowled=career.balls_bowled,
            runs_conceded=career.runs_conceded,
            wickets_taken=career.wickets_taken,
            maidens=career.maidens,
            best_bowling_wickets=career.best_bowling_wickets,
            best_bowling_runs=career.best_bowling_runs,
            catches=career.catches,
            stumpings=career.stumpings,
            run_outs=career.run_outs,
        )
        totals._has_best_bowling = career.balls_bowled > 0
        return totals

    def as_columns(self) -> Dict[str, object]:
        return {
            "matches": self.matches,
            "innings": self.innings,
            "runs_scored": self.runs_scored,
            "balls_faced": self.balls_faced,
            "not_outs": self.innings - self.times_out,
            "highest_score": self.highest_score,
            "fifties": self.fifties,
            "hundreds": self.hundreds,
            "fours": self.fours,
            "sixes": self.sixes,
            "batting_average": average(self.runs_scored, self.times_out),
            "strike_rate": strike_rate(self.runs_scored, self.balls_faced),
            "balls_bowled": self.balls_bowled,
            "runs_conceded": self.runs_conceded,
            "wickets_taken": self.wickets_taken,
            "maidens": self.maidens,
            "best_bowling_wickets": self.best_bowling_wickets,
            "best_bowling_runs": self.best_bowling_runs,
            "bowling_average": average(self.runs_conceded, self.wickets_taken),
            "economy": economy_rate(self.runs_conceded, self.balls_bowled),
            "catches": self.catches,
            "stumpings": self.stumpings,
            "run_outs": self.run_outs,
        }


def _better_bowling(wickets: int, runs: int, best_wickets: int, best_runs: int, has_best: bool) -> bool:
    """More wickets wins; equal wickets, fewer runs wins."""
    if not has_best:
        return True
    if wickets != best_wickets:
        return wickets > best_wickets
    return runs < best_runs
