"""
Semantic test: command-line goal syntax.

Invariant:
The CLI accepts gp:N, skill:NAME:L and skills:NAME=L,... goals and rejects
anything else with an argparse type error.
"""

from __future__ import annotations

import argparse

import pytest

from idle_planner.core.domain.skills import Skill
from idle_planner.runtime.entrypoint import main, parse_goal
from idle_planner.solver.goal import MultiSkillGoal, ReachGpGoal, ReachSkillLevelGoal


def test_gp_goal() -> None:
    assert parse_goal("gp:500") == ReachGpGoal(500.0)


def test_single_skill_goal() -> None:
    assert parse_goal("skill:Woodcutting:15") == ReachSkillLevelGoal(Skill.WOODCUTTING, 15)


def test_multi_skill_goal() -> None:
    goal = parse_goal("skills:mining=5,smithing=10")

    assert isinstance(goal, MultiSkillGoal)
    assert goal == MultiSkillGoal.of({Skill.MINING: 5, Skill.SMITHING: 10})


@pytest.mark.parametrize("raw", ["gold:5", "gp:lots", "skill:cooking:5", "skill:mining:0", "skills:mining"])
def test_invalid_goals_rejected(raw: str) -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        parse_goal(raw)


def test_main_prints_plan(capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["--goal", "gp:20", "--max-steps", "5"])

    out = capsys.readouterr().out
    assert code == 0
    assert out.startswith("Plan:")
