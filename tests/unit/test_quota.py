from coach.core.quota import AllowAllQuotaGate, InMemoryQuotaGate, QuotaKind


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_free_member_is_denied_after_limit():
    gate = InMemoryQuotaGate(workout_limit=2, chat_limit=5, clock=FakeClock())

    gate.record("m", QuotaKind.WORKOUT)
    assert gate.check("m", QuotaKind.WORKOUT).remaining == 1
    gate.record("m", QuotaKind.WORKOUT)

    decision = gate.check("m", QuotaKind.WORKOUT)
    assert decision.allowed is False
    assert decision.upgrade_required is True
    assert decision.limit == 2


def test_kinds_are_counted_separately():
    gate = InMemoryQuotaGate(workout_limit=1, chat_limit=1, clock=FakeClock())
    gate.record("m", QuotaKind.WORKOUT)

    assert gate.check("m", QuotaKind.WORKOUT).allowed is False
    assert gate.check("m", QuotaKind.CHAT).allowed is True


def test_usage_expires_after_period():
    clock = FakeClock()
    gate = InMemoryQuotaGate(workout_limit=1, chat_limit=1, period_days=30, clock=clock)
    gate.record("m", QuotaKind.WORKOUT)
    assert gate.check("m", QuotaKind.WORKOUT).allowed is False

    clock.now += 30 * 86_400
    assert gate.check("m", QuotaKind.WORKOUT).allowed is True


def test_pro_members_are_unlimited():
    gate = InMemoryQuotaGate(workout_limit=0, chat_limit=0, pro_members=["pro"], clock=FakeClock())
    gate.record("pro", QuotaKind.WORKOUT)
    decision = gate.check("pro", QuotaKind.WORKOUT)
    assert decision.allowed is True
    assert decision.plan == "pro"


def test_allow_all_gate():
    assert AllowAllQuotaGate().check("anyone", QuotaKind.CHAT).allowed is True
