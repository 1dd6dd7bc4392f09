"""Unit tests for the VAR emotion engine (emotion.py)."""

import pytest


def _engine():
    from config.loader import EmotionConfig
    from emotion import EmotionEngine
    return EmotionEngine(EmotionConfig())


# =========================
# Decay
# =========================

class TestDecay:
    """Tests for time decay toward baseline."""

    def test_zero_elapsed_is_identity(self):
        from emotion import EmotionState

        s = EmotionState(valence=0.6, arousal=0.9, resentment=0.5, last_updated=0.0)
        out = _engine().decay(s, 0)

        assert out.valence == pytest.approx(0.6)
        assert out.arousal == pytest.approx(0.9)
        assert out.resentment == pytest.approx(0.5)

    def test_negative_elapsed_counts_as_zero(self):
        from emotion import EmotionState

        s = EmotionState(valence=-0.4, arousal=0.2, resentment=0.3)
        out = _engine().decay(s, -7200)

        assert out.valence == pytest.approx(-0.4)
        assert out.resentment == pytest.approx(0.3)

    def test_one_hour_rates(self):
        """Valence moves 4%, arousal 5% toward baseline; resentment x0.95."""
        from emotion import EmotionState

        s = EmotionState(valence=1.0, arousal=1.0, resentment=1.0)
        out = _engine().decay(s, 3600)

        assert out.valence == pytest.approx(0.96)
        assert out.arousal == pytest.approx(1.0 - 0.5 * 0.05)
        assert out.resentment == pytest.approx(0.95)

    def test_decay_capped_at_24_hours(self):
        from emotion import EmotionState

        s = EmotionState(valence=1.0, arousal=0.5, resentment=1.0)
        day = _engine().decay(s, 24 * 3600)
        week = _engine().decay(s, 7 * 24 * 3600)

        assert week.valence == pytest.approx(day.valence)
        assert week.resentment == pytest.approx(day.resentment)

    def test_now_sets_last_updated(self):
        from emotion import EmotionState

        out = _engine().decay(EmotionState(last_updated=10.0), 60, now=70.0)
        assert out.last_updated == 70.0


# =========================
# Update
# =========================

class TestUpdate:
    """Tests for one stimulus step."""

    def test_outputs_always_clamped(self):
        from emotion import EmotionState

        eng = _engine()
        s = EmotionState()
        for _ in range(50):
            s = eng.update(s, dv=5.0, da=5.0, dr=5.0, elapsed_s=0, now=0.0)
            assert -1.0 <= s.valence <= 1.0
            assert 0.0 <= s.arousal <= 1.0
            assert 0.0 <= s.resentment <= 1.0

        for _ in range(50):
            s = eng.update(s, dv=-5.0, da=-5.0, dr=-5.0, elapsed_s=0, now=0.0)
            assert -1.0 <= s.valence <= 1.0
            assert 0.0 <= s.arousal <= 1.0
            assert 0.0 <= s.resentment <= 1.0

    def test_soft_boundary_monotonicity(self):
        """The same push moves valence less the closer it already is to 1."""
        from emotion import EmotionState

        eng = _engine()
        near_edge = eng.update(EmotionState(valence=0.9), 0.1, 0.0, 0.0, 0, now=0.0)
        centre = eng.update(EmotionState(valence=0.0), 0.1, 0.0, 0.0, 0, now=0.0)

        assert near_edge.valence - 0.9 < centre.valence - 0.0
        assert near_edge.valence > 0.9

    def test_soft_boundary_exact_value(self):
        from emotion import EmotionState
        from utils.helpers import sigmoid

        out = _engine().update(EmotionState(valence=0.5), 0.2, 0.0, 0.0, 0, now=0.0)
        # Suppression still applies at R = 0: 1 - sigmoid(-5)
        suppression = 1.0 - sigmoid(10.0 * (0.0 - 0.5))
        assert out.valence == pytest.approx(0.5 + 0.2 * suppression * 0.5 ** 1.5)

    def test_resentment_suppresses_positive_valence(self):
        from emotion import EmotionState

        eng = _engine()
        calm = eng.update(EmotionState(valence=0.0, resentment=0.0), 0.2, 0, 0, 0, now=0.0)
        bitter = eng.update(EmotionState(valence=0.0, resentment=0.7), 0.2, 0, 0, 0, now=0.0)

        assert 0.0 < bitter.valence < calm.valence

    def test_negative_stimulus_not_suppressed(self):
        from emotion import EmotionState

        eng = _engine()
        a = eng.update(EmotionState(resentment=0.0), -0.2, 0, 0, 0, now=0.0)
        b = eng.update(EmotionState(resentment=0.7), -0.2, 0, 0, 0, now=0.0)
        assert a.valence == pytest.approx(b.valence)


# =========================
# Meltdown and the apology valve
# =========================

class TestMeltdown:
    """Tests for meltdown gating and apology discharge."""

    def test_meltdown_blocks_positive_stimulus(self):
        from emotion import EmotionState

        eng = _engine()
        s = EmotionState(valence=-0.75, resentment=0.85)
        assert eng.is_meltdown(s)

        out = eng.update(s, dv=0.5, da=0.0, dr=0.0, elapsed_s=0, now=0.0)
        assert out.valence <= s.valence

    def test_apology_discharges_resentment(self):
        from core.perception import SocialEvent
        from emotion import EmotionState

        eng = _engine()
        s = EmotionState(valence=-0.75, resentment=0.85)
        out = eng.update(s, 0.0, 0.0, 0.0, 0, events={SocialEvent.APOLOGY}, now=0.0)

        assert out.resentment < s.resentment
        assert out.resentment == pytest.approx(0.85 * 0.6)
        assert out.resentment <= 0.8
        assert not eng.is_meltdown(out)

    def test_apology_lets_positive_stimulus_through(self):
        """Once the apology breaks the meltdown, the same push is no longer zeroed."""
        from core.perception import SocialEvent
        from emotion import EmotionState

        eng = _engine()
        s = EmotionState(valence=-0.75, resentment=0.85)
        out = eng.update(s, 0.3, 0.0, 0.0, 0, events={SocialEvent.APOLOGY}, now=0.0)
        assert out.valence > s.valence

    def test_not_meltdown_on_one_condition(self):
        from emotion import EmotionState

        eng = _engine()
        assert not eng.is_meltdown(EmotionState(valence=-0.9, resentment=0.5))
        assert not eng.is_meltdown(EmotionState(valence=0.0, resentment=0.95))

    def test_meltdown_response_cycles(self):
        eng = _engine()
        first = eng.meltdown_response(0)
        second = eng.meltdown_response(1)
        assert first != second
        assert eng.meltdown_response(2) == first


# =========================
# Stimulus from perception
# =========================

class TestStimulus:
    """Tests for stimulus_from_perception()."""

    def test_hostile_message_feeds_resentment(self):
        from core.perception import PerceptionRecord

        p = PerceptionRecord.build(offensiveness=4, surface_valence=-0.5, surface_arousal=0.6, confidence=0.45)
        dv, da, dr = _engine().stimulus_from_perception(p, intimacy=0.0)

        assert dv < 0
        assert da > 0
        assert dr == pytest.approx(0.1 * 2 * 0.4)

    def test_below_threshold_no_resentment(self):
        from core.perception import PerceptionRecord

        p = PerceptionRecord.build(offensiveness=2, surface_valence=-0.2, confidence=0.5)
        _, _, dr = _engine().stimulus_from_perception(p)
        assert dr == 0.0

    def test_intimacy_buffers_valence_swing(self):
        from core.perception import PerceptionRecord

        p = PerceptionRecord.build(surface_valence=-0.6, confidence=1.0)
        eng = _engine()
        stranger, _, _ = eng.stimulus_from_perception(p, intimacy=0.0)
        close, _, _ = eng.stimulus_from_perception(p, intimacy=1.0)

        assert close == pytest.approx(stranger * 0.5)

    def test_neglect_and_praise(self):
        from core.perception import PerceptionRecord, SocialEvent

        eng = _engine()
        _, _, dr = eng.stimulus_from_perception(PerceptionRecord.build(social_events={SocialEvent.NEGLECT}))
        dv, _, _ = eng.stimulus_from_perception(PerceptionRecord.build(social_events={SocialEvent.PRAISE}))

        assert dr == pytest.approx(0.05)
        assert dv == pytest.approx(0.1)


# =========================
# Labels and serialization
# =========================

class TestIntrospection:
    """Tests for labels, descriptions and to_dict/from_dict."""

    @pytest.mark.parametrize(
        "valence,arousal,label",
        [
            (0.5, 0.8, "excited"),
            (0.5, 0.2, "happy"),
            (-0.5, 0.2, "sad"),
            (-0.5, 0.8, "irritated"),
            (0.0, 0.8, "tense"),
            (0.0, 0.5, "calm"),
        ],
    )
    def test_labels(self, valence, arousal, label):
        from emotion import EmotionEngine, EmotionState

        assert EmotionEngine.label(EmotionState(valence=valence, arousal=arousal)) == label

    def test_description_contains_numbers(self):
        from emotion import EmotionState

        text = _engine().description(EmotionState(valence=-0.5, arousal=0.8, resentment=0.3))
        assert "irritated" in text
        assert "resentment=0.30" in text

    def test_dict_roundtrip_keeps_fields(self):
        from emotion import EmotionState

        s = EmotionState(valence=-0.25, arousal=0.7, resentment=0.1, last_updated=123.0)
        assert EmotionState.from_dict(s.to_dict()) == s

    def test_from_dict_defaults(self):
        from emotion import EmotionState

        s = EmotionState.from_dict({})
        assert s.arousal == 0.5 and s.valence == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
