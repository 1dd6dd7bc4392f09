"""Unit tests for the reaction compass, tone valve and bio-rhythm."""

import pytest
from datetime import datetime, time


# =========================
# Reaction compass
# =========================

class TestReactionCompass:
    """Tests for dominance / heat / stance."""

    def test_explosive_example(self):
        from core.compass import SocialStance, react
        from personality.traits import PersonalityTraits

        traits = PersonalityTraits(agreeableness=0.2, extraversion=0.8, neuroticism=0.9)
        result = react(traits, intimacy=0.1, resentment=0.9, arousal=0.9, offensiveness=7)

        assert result.stance is SocialStance.EXPLOSIVE
        assert result.dominance == 1.0
        assert result.heat == pytest.approx(0.9)

    def test_deterministic(self):
        from core.compass import react
        from personality.traits import PersonalityTraits

        traits = PersonalityTraits(agreeableness=0.4, extraversion=0.6, neuroticism=0.3)
        a = react(traits, 0.4, 0.2, 0.6, 5)
        b = react(traits, 0.4, 0.2, 0.6, 5)
        assert a == b

    def test_neutral_below_conflict_threshold(self):
        from core.compass import SocialStance, react
        from personality.traits import PersonalityTraits

        result = react(PersonalityTraits(), 0.0, 1.0, 1.0, offensiveness=2)
        assert result.stance is SocialStance.NEUTRAL
        assert result.dominance == 0.0 and result.heat == 0.0
        assert result.directives == ()

    @pytest.mark.parametrize(
        "d,h,stance",
        [
            (0.6, 0.6, "explosive"),
            (0.6, 0.5, "cold_dismissal"),
            (0.5, 0.6, "vulnerable"),
            (0.5, 0.5, "withdrawal"),
        ],
    )
    def test_quadrants(self, d, h, stance):
        from core.compass import stance_for

        assert stance_for(d, h).value == stance

    def test_dominance_formula(self):
        from core.compass import dominance
        from personality.traits import PersonalityTraits

        t = PersonalityTraits(agreeableness=0.5, extraversion=0.5)
        assert dominance(t, intimacy=0.5, resentment=0.2) == pytest.approx(0.2 + 0.1 + 0.15 + 0.1)

    def test_close_friend_softens_dominance(self):
        from core.compass import dominance
        from personality.traits import PersonalityTraits

        t = PersonalityTraits()
        assert dominance(t, 0.9, 0.3) < dominance(t, 0.1, 0.3)

    def test_directives_are_enumerated(self):
        from core.compass import ReactionResult, SocialStance

        r = ReactionResult(dominance=0.8, heat=0.2, stance=SocialStance.COLD_DISMISSAL)
        assert "stance: dismiss" in r.directives
        assert "cold_dismissal" in str(r)


# =========================
# Tone valve
# =========================

class TestToneValve:
    """Tests for the three-level tone valve."""

    def _valve(self):
        from config.loader import CompassConfig
        from core.compass import ToneValve
        return ToneValve(CompassConfig())

    def test_hostile_on_offensiveness(self):
        from core.compass import ToneLevel

        assert self._valve().level(0.0, 0.0, 7) is ToneLevel.HOSTILE
        assert self._valve().level(0.0, 0.0, 6) is ToneLevel.NORMAL

    def test_hostile_on_resentment(self):
        from core.compass import ToneLevel

        assert self._valve().level(0.85, 0.0, 0) is ToneLevel.HOSTILE

    def test_cold(self):
        from core.compass import ToneLevel

        assert self._valve().level(0.5, 0.0, 0) is ToneLevel.COLD
        assert self._valve().level(0.0, 0.7, 0) is ToneLevel.COLD

    def test_constraints_table(self):
        from core.compass import ToneLevel, ToneValve

        hostile = ToneValve.constraints(ToneLevel.HOSTILE)
        assert hostile.max_sentences == 1
        assert hostile.forbid_apology and hostile.forbid_emoji
        cold = ToneValve.constraints(ToneLevel.COLD)
        assert cold.max_sentences == 2 and not cold.forbid_apology
        assert "forbid_metaphor: true" in cold.lines()
        assert ToneValve.constraints(ToneLevel.NORMAL).max_sentences == 5


# =========================
# Bio-rhythm
# =========================

class TestBioRhythm:
    """Tests for the circadian laziness curve."""

    def _bio(self):
        from biorhythm import BioRhythm
        from config.loader import BioRhythmConfig
        return BioRhythm(BioRhythmConfig())

    def test_boundary_continuity(self):
        bio = self._bio()
        assert abs(bio.laziness(time(21, 59)) - bio.laziness(time(22, 0))) < 0.1
        assert abs(bio.laziness(time(4, 59)) - bio.laziness(time(5, 0))) < 0.1
        assert abs(bio.laziness(time(0, 59)) - bio.laziness(time(1, 0))) < 0.1
        assert abs(bio.laziness(time(7, 59)) - bio.laziness(time(8, 0))) < 0.1

    def test_daytime_is_exactly_zero(self):
        bio = self._bio()
        for hour in range(10, 22):
            for minute in (0, 30, 59):
                assert bio.laziness(time(hour, minute)) == 0.0

    def test_plateau(self):
        bio = self._bio()
        assert bio.laziness(time(3, 0)) == pytest.approx(0.9)

    def test_no_jump_anywhere(self):
        bio = self._bio()
        prev = bio.laziness(0.0)
        for step in range(1, 24 * 60 + 1):
            cur = bio.laziness(step / 60.0)
            assert abs(cur - prev) < 0.05
            prev = cur

    def test_accepts_datetime_and_float(self):
        bio = self._bio()
        assert bio.laziness(datetime(2024, 5, 1, 3, 0)) == bio.laziness(3.0)

    def test_phase_names(self):
        from biorhythm import BioRhythm

        assert BioRhythm.phase(9.0) == "morning"
        assert BioRhythm.phase(14.0) == "awake"
        assert BioRhythm.phase(23.0) == "winding_down"
        assert BioRhythm.phase(2.0) == "deep_night"
        assert BioRhythm.phase(6.0) == "waking_up"

    def test_tolerance(self):
        from core.perception import Need

        bio = self._bio()
        assert bio.tolerance(0.0, Need.CHITCHAT) == 1.0
        assert bio.tolerance(0.5, Need.COMFORT) == pytest.approx(0.3)
        assert bio.tolerance(0.9, Need.VENT, topic_repeated=True) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
